# errors.py
"""
Failures that reach the caller of /api/generate.

Each carries the HTTP status it maps to and a message written for the person
in front of the browser, not a raw exception string.
"""


class ArticleGenerationError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequest(ArticleGenerationError):
    status_code = 400


class ConfigurationAbsence(ArticleGenerationError):
    """No usable reference articles on disk."""

    status_code = 400


class BackendUnavailable(ArticleGenerationError):
    status_code = 503


class ModelMissing(ArticleGenerationError):
    status_code = 400

    def __init__(self, model: str):
        super().__init__(
            f"The required AI model '{model}' is not installed. Please run:\n\n"
            f"ollama pull {model}\n\n"
            "If you experience issues, you can try a different model like:\n"
            "ollama pull llama2"
        )
        self.model = model


class UpstreamFailure(ArticleGenerationError):
    status_code = 500


class CorpusReadFailure(ArticleGenerationError):
    """An article file exists but could not be read."""

    status_code = 500
