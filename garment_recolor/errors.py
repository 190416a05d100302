from __future__ import annotations


class RecolorError(RuntimeError):
    pass


class DecodeError(RecolorError):
    """Image buffer could not be decoded."""


class InvalidDimensionsError(RecolorError):
    pass


class MasksMissingError(RecolorError):
    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"required masks missing: {', '.join(missing)}")


class GeometryChangedError(RecolorError):
    pass


class EditServiceError(RecolorError):
    """Failure reported by (or while talking to) the image edit service.

    `status` is the HTTP-style status when one is known. `attempt` is the
    zero-based attempt index the error was observed on.
    """

    retryable = False

    def __init__(self, message: str, *, status: int | None = None, attempt: int | None = None) -> None:
        self.message = message
        self.status = status
        self.attempt = attempt
        super().__init__(message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.status is not None:
            parts.append(f"status={self.status}")
        if self.attempt is not None:
            parts.append(f"attempt={self.attempt + 1}")
        return " ".join(parts)


class RateLimited(EditServiceError):
    retryable = True


class ServiceUnavailable(EditServiceError):
    retryable = True


class InvalidRequest(EditServiceError):
    pass


class EditExhaustedError(RecolorError):
    def __init__(self, last_error: EditServiceError, attempts: int) -> None:
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(f"edit failed after {attempts} attempt(s): {last_error}")
