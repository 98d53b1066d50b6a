# In core/errors.py

class AliaError(Exception):
    """Base error for the relay. `status_code` is the HTTP status the handler answers with."""
    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(AliaError, ValueError):
    status_code = 400


class UpstreamError(AliaError):
    """Raised by the conversation relay when the chat API call fails."""


class UpstreamAuthError(UpstreamError):
    status_code = 401


class UpstreamNotFound(UpstreamError):
    status_code = 404


class UpstreamProcessingError(UpstreamError):
    status_code = 500


class NoAssistantOutput(UpstreamProcessingError):
    """The chat API answered but gave no assistant message to relay."""


class SynthesisError(AliaError):
    """Text-to-speech failed. Never surfaced to the client."""
