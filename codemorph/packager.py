"""Packages migrated files and a generated report into a zip archive."""

from __future__ import annotations

import io
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

from jinja2 import Environment, FileSystemLoader

from .errors import PackagingRefused
from .logging import get_logger
from .models import FileStatus, MigrationPlan, MigrationState, ProjectFile

ARCHIVE_ROOT = "migrated-project"
MANIFEST_NAME = "README.md"
PLACEHOLDER = "// Source conversion was unsuccessful for this module."
DEFAULT_RUN_INSTRUCTIONS = "Please consult the target framework documentation for runtime setup."

_TARGET_EXTENSIONS = {
    "java": ".java",
    "python": ".py",
    "go": ".go",
    "typescript": ".ts",
}
_FALLBACK_EXTENSION = ".txt"

# (target language, target framework) -> canonical source root
_SOURCE_ROOTS = {
    ("java", "spring boot"): "src/main/java/com/migrated",
}

# Fixed entry timestamp keeps repeated builds byte-identical.
_ZIP_TIMESTAMP = (1980, 1, 1, 0, 0, 0)


def target_extension(language: str) -> str:
    return _TARGET_EXTENSIONS.get(language.strip().lower(), _FALLBACK_EXTENSION)


def archive_name(target_language: str) -> str:
    """Return the download file name for a target language label."""
    slug = "-".join(target_language.strip().lower().split()) or "project"
    return f"{ARCHIVE_ROOT}-{slug}.zip"


@dataclass(frozen=True)
class ArchiveEntry:
    """One input file and where it lands in the archive."""

    source: str
    target: str
    content: str
    status: str


class ProjectPackager:
    """Builds the downloadable archive for a finished (or partially finished) run."""

    def __init__(self, templates_dir: Path | None = None) -> None:
        self.logger = get_logger("packager")
        self._env = self._create_env(templates_dir)

    def build(
        self,
        files: Sequence[ProjectFile],
        plan: Optional[MigrationPlan],
        state: MigrationState,
        *,
        reviews: Mapping[str, str] | None = None,
    ) -> bytes:
        """Return zip bytes with one entry per input file plus the manifest.

        Raises :class:`PackagingRefused` when there is no plan or no file has
        completed, non-empty translated content.
        """
        if plan is None:
            raise PackagingRefused("No migration plan available; run a migration first.")
        if not any(self._translated(file) is not None for file in files):
            raise PackagingRefused("No migrated files found to download.")

        entries = self.entries(files, state.target_language, state.target_framework)
        manifest = self.render_manifest(state, plan, entries, reviews=reviews)

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for entry in entries:
                self._write(archive, entry.target, entry.content)
            self._write(archive, MANIFEST_NAME, manifest)
        self.logger.debug("Packaged %d files for %s", len(entries), state.target.label)
        return buffer.getvalue()

    def entries(
        self,
        files: Sequence[ProjectFile],
        target_language: str,
        target_framework: str,
    ) -> List[ArchiveEntry]:
        """Map every input file to a unique archive path and its content."""
        entries: List[ArchiveEntry] = []
        used: Dict[str, int] = {}
        for file in files:
            path = self.target_path(file, target_language, target_framework)
            path = self._disambiguate(path, used)
            content = self._translated(file)
            entries.append(
                ArchiveEntry(
                    source=file.path,
                    target=path,
                    content=content if content is not None else PLACEHOLDER,
                    status=file.status.value,
                )
            )
        return entries

    @staticmethod
    def target_path(file: ProjectFile, target_language: str, target_framework: str) -> str:
        """Return the archive-relative path for ``file`` in the target ecosystem."""
        stem = file.name.split(".")[0] or file.name
        file_name = stem + target_extension(target_language)

        directory = file.path.rsplit("/", 1)[0] if "/" in file.path else ""
        source_root = _SOURCE_ROOTS.get(
            (target_language.strip().lower(), target_framework.strip().lower())
        )
        if source_root:
            directory = f"{source_root}/{directory}" if directory else source_root
        return f"{directory}/{file_name}" if directory else file_name

    def render_manifest(
        self,
        state: MigrationState,
        plan: MigrationPlan,
        entries: Sequence[ArchiveEntry],
        *,
        reviews: Mapping[str, str] | None = None,
    ) -> str:
        template = self._env.get_template("README.md.j2")
        return template.render(
            source=state.source,
            target=state.target,
            plan=plan,
            run_instructions=plan.run_instructions or DEFAULT_RUN_INSTRUCTIONS,
            entries=entries,
            reviews=dict(reviews or {}),
        )

    @staticmethod
    def _translated(file: ProjectFile) -> Optional[str]:
        if file.status is FileStatus.COMPLETED and file.translated_content:
            return file.translated_content
        return None

    @staticmethod
    def _disambiguate(path: str, used: Dict[str, int]) -> str:
        if path not in used:
            used[path] = 1
            return path
        base, dot, ext = path.rpartition(".")
        if not dot or "/" in ext:
            base, ext = path, ""
        while True:
            used[path] += 1
            candidate = f"{base}_{used[path]}.{ext}" if ext else f"{base}_{used[path]}"
            if candidate not in used:
                used[candidate] = 1
                return candidate

    @staticmethod
    def _write(archive: zipfile.ZipFile, relative: str, content: str) -> None:
        info = zipfile.ZipInfo(f"{ARCHIVE_ROOT}/{relative}", date_time=_ZIP_TIMESTAMP)
        info.compress_type = zipfile.ZIP_DEFLATED
        info.external_attr = 0o644 << 16
        archive.writestr(info, content.encode("utf-8"))

    @staticmethod
    def _create_env(templates_dir: Path | None) -> Environment:
        directories = []
        if templates_dir:
            directories.append(str(templates_dir))
        directories.append(str(Path(__file__).with_name("templates")))
        loader = FileSystemLoader(directories)
        return Environment(
            loader=loader,
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )


__all__ = [
    "ARCHIVE_ROOT",
    "ArchiveEntry",
    "MANIFEST_NAME",
    "PLACEHOLDER",
    "ProjectPackager",
    "archive_name",
    "target_extension",
]
