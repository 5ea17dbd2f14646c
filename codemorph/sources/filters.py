"""Path filtering shared by repository and upload ingestion."""

from __future__ import annotations

from typing import Iterable, Sequence


def is_excluded(path: str, excluded_dirs: Iterable[str]) -> bool:
    """Return True when any directory segment of ``path`` is a housekeeping dir."""
    excluded = set(excluded_dirs)
    directories = path.strip("/").split("/")[:-1]
    return any(segment in excluded for segment in directories)


def has_allowed_extension(path: str, extensions: Sequence[str]) -> bool:
    lowered = path.lower()
    return any(lowered.endswith(ext.lower()) for ext in extensions)


def is_source_path(path: str, *, extensions: Sequence[str], excluded_dirs: Iterable[str]) -> bool:
    return has_allowed_extension(path, extensions) and not is_excluded(path, excluded_dirs)


__all__ = ["has_allowed_extension", "is_excluded", "is_source_path"]
