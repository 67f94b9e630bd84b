from enum import Enum


class ErrorCode(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    PR_EXISTS = "PR_EXISTS"
    USER_EXISTS = "USER_EXISTS"
    TEAM_EXISTS = "TEAM_EXISTS"
    PR_MERGED = "PR_MERGED"
    NOT_ASSIGNED = "NOT_ASSIGNED"
    NO_CANDIDATE = "NO_CANDIDATE"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class AppError(Exception):
    """Domain error with a machine-readable code.

    The original exception, if any, is kept as ``__cause__`` by raising
    with ``raise AppError(...) from exc``.
    """

    def __init__(self, code: ErrorCode, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        if self.__cause__ is not None:
            return f"{self.message}: {self.__cause__}"
        return self.message

    def __repr__(self) -> str:
        return f"<AppError(code={self.code.value}, message={self.message!r})>"


def wrap_error(exc: Exception, message: str) -> AppError:
    """Pass domain errors through, wrap anything else as an internal error."""
    if isinstance(exc, AppError):
        return exc
    error = AppError(ErrorCode.INTERNAL_SERVER_ERROR, message)
    error.__cause__ = exc
    error.__suppress_context__ = True
    return error
