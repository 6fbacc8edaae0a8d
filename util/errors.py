# util/errors.py
from typing import Optional
from util.enums import ErrorMessage


class AppError(Exception):
    # Flow: raise AppError subclasses to short-circuit with a typed message.
    def __init__(self, message: str, exit_code: int = 1) -> None:
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code

    @classmethod
    def from_info(cls, info: ErrorMessage, detail: Optional[str] = None) -> "AppError":
        message = info.value.message
        if detail:
            message = f"{message} ({detail})"
        return cls(message, exit_code=info.value.exit_code)


class IndexUnavailableError(AppError):
    """The candidate store could not be loaded; the only failure callers see."""


class ProviderUnavailableError(AppError):
    """A remote embedding provider failed. Never escapes the provider chain."""

    def __init__(self, provider: str, reason: str) -> None:
        super().__init__(f"{provider}: {reason}", exit_code=0)
        self.provider = provider
        self.reason = reason
