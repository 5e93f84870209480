"""Error taxonomy surfaced to HTTP callers as ``{"error": message}``."""

from __future__ import annotations


class TutorError(Exception):
    status_code: int = 500
    message: str = "Internal error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)

    @property
    def detail(self) -> str:
        return str(self)


class InvalidUnit(TutorError):
    status_code = 400
    message = "Invalid unit number"


class UnitNotFound(TutorError):
    status_code = 404
    message = "Unit not found"


class InvalidRequest(TutorError):
    status_code = 400
    message = "Invalid request"


class SessionNotFound(TutorError):
    status_code = 404
    message = "Conversation not found"


class UploadError(TutorError):
    status_code = 400
    message = "No audio file provided"


class UploadTooLarge(UploadError):
    status_code = 413
    message = "Audio file too large"


class TranscriptionFailure(TutorError):
    # Caller asks the learner to repeat; no conversation turn is recorded.
    status_code = 422
    message = "Could not understand the audio, please try again"


class UpstreamFailure(TutorError):
    status_code = 500
    message = "Upstream AI service failed"


class CurriculumError(TutorError):
    message = "Curriculum document is invalid"
