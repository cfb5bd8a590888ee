from __future__ import annotations

from typing import Optional


class CVScanError(Exception):
    """Base class for every error raised by cvscan."""


class ConfigError(CVScanError):
    pass


class CacheError(CVScanError):
    """The response cache could not be opened or used."""


class TransportError(CVScanError):
    """The remote call could not be completed (network, auth, rate limit, empty reply)."""

    def __init__(self, message: str, status: str = "error", http_status: Optional[int] = None):
        super().__init__(message)
        self.status = status
        self.http_status = http_status


class ResponseValidationError(CVScanError):
    """A reply was received but could not be decoded or was missing answers."""

    def __init__(self, message: str, raw_response: str = ""):
        super().__init__(message)
        self.raw_response = raw_response


class RetriesExhaustedError(CVScanError):
    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f"failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class FanOutError(CVScanError):
    """Every failure from one fan-out, keyed by input index."""

    def __init__(self, errors: dict[int, BaseException]):
        self.errors = dict(sorted(errors.items()))
        lines = [f"[{i}] {type(e).__name__}: {e}" for i, e in self.errors.items()]
        super().__init__(f"{len(self.errors)} task(s) failed:\n" + "\n".join(lines))

    @property
    def exceptions(self) -> list[BaseException]:
        return list(self.errors.values())


class CVNotFoundError(CVScanError):
    pass
