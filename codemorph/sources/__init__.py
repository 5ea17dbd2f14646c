"""Ingestion adapters producing pending project files."""

from .repository import RepositorySource, parse_repository_url
from .upload import UploadSource

__all__ = ["RepositorySource", "UploadSource", "parse_repository_url"]
