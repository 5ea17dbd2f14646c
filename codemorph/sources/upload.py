"""Local upload ingestion from a project directory or zip archive."""

from __future__ import annotations

import os
import zipfile
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from ..config import RepositoryConfig
from ..events import EventLog
from ..logging import get_logger
from ..models import AgentRole, ProjectFile
from .filters import is_source_path


def _iter_directory(root: Path, excluded_dirs: List[str]) -> Iterator[Tuple[str, Path]]:
    excluded = set(excluded_dirs)
    for dirpath, dirnames, filenames in os.walk(root):
        current_dir = Path(dirpath)
        rel_dir = current_dir.relative_to(root).as_posix() if current_dir != root else ""
        dirnames[:] = sorted(name for name in dirnames if name not in excluded)
        for filename in sorted(filenames):
            rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
            yield rel_path, current_dir / filename


def _common_root(names: List[str]) -> str:
    """Return the single top-level folder shared by every archive member, if any."""
    tops = {name.split("/", 1)[0] for name in names}
    if len(tops) != 1 or any("/" not in name for name in names):
        return ""
    return f"{tops.pop()}/"


class UploadSource:
    """Loads project files from disk, applying the same filters and file cap as repository ingestion."""

    def __init__(
        self,
        config: RepositoryConfig | None = None,
        *,
        event_log: EventLog | None = None,
        limit: Optional[int] = None,
    ) -> None:
        self.config = config or RepositoryConfig()
        self.event_log = event_log if event_log is not None else EventLog()
        self.limit = limit if limit is not None else self.config.max_files
        self.logger = get_logger("sources.upload")

    def load(self, path: str | Path) -> List[ProjectFile]:
        """Return pending project files from a directory or ``.zip`` archive."""
        source = Path(path).expanduser().resolve()
        if not source.exists():
            raise FileNotFoundError(f"Upload path not found: {path}")

        if source.is_dir():
            files = self._load_directory(source)
        elif zipfile.is_zipfile(source):
            files = self._load_archive(source)
        else:
            raise ValueError(f"Upload must be a directory or zip archive: {path}")

        self.event_log.info(
            AgentRole.EXPLORER, f"Loaded {len(files)} source files from {source.name}."
        )
        return files

    def _load_directory(self, root: Path) -> List[ProjectFile]:
        files: List[ProjectFile] = []
        for rel_path, file_path in _iter_directory(root, self.config.excluded_dirs):
            if not self._accepts(rel_path):
                continue
            content = file_path.read_text(encoding="utf-8", errors="replace")
            files.append(ProjectFile.create(rel_path, content))
            if self._reached_limit(files):
                break
        return files

    def _load_archive(self, archive_path: Path) -> List[ProjectFile]:
        files: List[ProjectFile] = []
        with zipfile.ZipFile(archive_path) as archive:
            members = [info for info in archive.infolist() if not info.is_dir()]
            prefix = _common_root([info.filename for info in members])
            for info in members:
                rel_path = info.filename[len(prefix):]
                if not rel_path or not self._accepts(rel_path):
                    continue
                content = archive.read(info).decode("utf-8", errors="replace")
                files.append(ProjectFile.create(rel_path, content))
                if self._reached_limit(files):
                    break
        self.logger.debug("Read %d members from %s", len(files), archive_path)
        return files

    def _accepts(self, rel_path: str) -> bool:
        return is_source_path(
            rel_path,
            extensions=self.config.extensions,
            excluded_dirs=self.config.excluded_dirs,
        )

    def _reached_limit(self, files: List[ProjectFile]) -> bool:
        return len(files) >= self.limit


__all__ = ["UploadSource"]
