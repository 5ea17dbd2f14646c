"""Error taxonomy for ingestion, oracle calls, and packaging."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .models import ProjectFile


class MigrationError(RuntimeError):
    """Base class for failures raised by the migration pipeline."""


class InvalidReference(MigrationError):
    """Raised when a repository URL cannot be parsed into owner and repo."""


class RepositoryUnavailable(MigrationError):
    """Raised when the repository tree or a blob cannot be retrieved."""


class NoInputFiles(MigrationError):
    """Raised when a run is requested without any files to migrate."""


class OracleMalformedResponse(MigrationError):
    """Raised when an oracle response is not the JSON shape we asked for.

    Client methods recover from this locally with default values; it never
    escapes the oracle package.
    """


class OracleCallFailure(MigrationError):
    """Raised when the oracle transport fails; aborts the current run."""


class OracleTimeout(OracleCallFailure):
    """Raised when an oracle call exceeds its request timeout."""


class StreamInterrupted(OracleCallFailure):
    """Raised when a translation stream stops before it is exhausted.

    ``partial`` holds the file as last published, with ``status == error``
    and whatever content had been received.
    """

    def __init__(self, message: str, partial: Optional["ProjectFile"] = None) -> None:
        super().__init__(message)
        self.partial = partial


class RunCancelled(MigrationError):
    """Raised when a run is cancelled through its cancellation token."""


class PackagingRefused(MigrationError):
    """Raised when there is no plan or no translated content to package."""


__all__ = [
    "InvalidReference",
    "MigrationError",
    "NoInputFiles",
    "OracleCallFailure",
    "OracleMalformedResponse",
    "OracleTimeout",
    "PackagingRefused",
    "RepositoryUnavailable",
    "RunCancelled",
    "StreamInterrupted",
]
