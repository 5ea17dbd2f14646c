"""Core data models shared across codemorph components."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Sequence, Tuple


class AgentRole(str, Enum):
    """The four stages of a migration run, named after the agent that owns them."""

    EXPLORER = "EXPLORER"
    ARCHITECT = "ARCHITECT"
    MIGRATOR = "MIGRATOR"
    REVIEWER = "REVIEWER"


class FileStatus(str, Enum):
    PENDING = "pending"
    ANALYZING = "analyzing"
    TRANSLATING = "translating"
    COMPLETED = "completed"
    ERROR = "error"


class MessageType(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


_LANGUAGE_BY_SUFFIX = {
    ".py": "Python",
    ".js": "JavaScript",
    ".jsx": "JavaScript",
    ".ts": "TypeScript",
    ".tsx": "TypeScript",
    ".java": "Java",
    ".kt": "Kotlin",
    ".go": "Go",
    ".rs": "Rust",
    ".rb": "Ruby",
    ".php": "PHP",
    ".cs": "C#",
    ".c": "C",
    ".h": "C",
    ".cpp": "C++",
    ".hpp": "C++",
    ".cc": "C++",
    ".scala": "Scala",
    ".swift": "Swift",
}


def detect_language(path: str) -> str:
    """Infer a display language from the file extension."""
    name = path.rsplit("/", 1)[-1]
    if "." not in name.lstrip("."):
        return "text"
    suffix = "." + name.rsplit(".", 1)[-1].lower()
    return _LANGUAGE_BY_SUFFIX.get(suffix, suffix[1:])


@dataclass(frozen=True)
class ProjectFile:
    """One source artifact and its migration status."""

    path: str
    name: str
    content: str
    language: str
    translated_content: Optional[str] = None
    status: FileStatus = FileStatus.PENDING

    @classmethod
    def create(cls, path: str, content: str) -> "ProjectFile":
        """Build a pending file, deriving ``name`` and ``language`` from ``path``."""
        normalised = path.strip("/")
        return cls(
            path=normalised,
            name=normalised.rsplit("/", 1)[-1],
            content=content,
            language=detect_language(normalised),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in (FileStatus.COMPLETED, FileStatus.ERROR)


@dataclass(frozen=True)
class Analysis:
    """Explorer output: the detected source ecosystem."""

    language: str = "Unknown"
    framework: str = "Unknown"


@dataclass(frozen=True)
class Ecosystem:
    """A language/framework pair such as ``Java (Spring Boot)``."""

    language: str
    framework: str

    @property
    def label(self) -> str:
        return f"{self.language} ({self.framework})"


@dataclass(frozen=True)
class MigrationPlan:
    """Architect output, shared read-only by every file translation in a run."""

    steps: Tuple[str, ...] = ()
    mappings: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    dependencies: Tuple[str, ...] = ()
    run_instructions: Optional[str] = None

    @classmethod
    def build(
        cls,
        *,
        steps: Sequence[str] = (),
        mappings: Mapping[str, str] | None = None,
        dependencies: Sequence[str] = (),
        run_instructions: Optional[str] = None,
    ) -> "MigrationPlan":
        return cls(
            steps=tuple(steps),
            mappings=MappingProxyType(dict(mappings or {})),
            dependencies=tuple(dependencies),
            run_instructions=run_instructions,
        )


@dataclass(frozen=True)
class AgentMessage:
    """One entry in the append-only activity log."""

    id: str
    role: AgentRole
    text: str
    timestamp: int
    type: MessageType = MessageType.INFO


@dataclass(frozen=True)
class MigrationState:
    """Aggregate run state, published to observers as immutable snapshots."""

    target_language: str
    target_framework: str
    source_language: str = ""
    source_framework: str = ""
    files: Tuple[ProjectFile, ...] = ()
    is_processing: bool = False
    active_agent: Optional[AgentRole] = None
    progress: float = 0.0
    current_index: Optional[int] = None

    @property
    def source(self) -> Ecosystem:
        return Ecosystem(self.source_language, self.source_framework)

    @property
    def target(self) -> Ecosystem:
        return Ecosystem(self.target_language, self.target_framework)

    @property
    def is_complete(self) -> bool:
        return not self.is_processing and self.progress >= 100

    def with_file(self, index: int, file: ProjectFile) -> "MigrationState":
        """Return a copy with the file at ``index`` replaced."""
        files = list(self.files)
        files[index] = file
        return replace(self, files=tuple(files))


__all__ = [
    "AgentMessage",
    "AgentRole",
    "Analysis",
    "Ecosystem",
    "FileStatus",
    "MessageType",
    "MigrationPlan",
    "MigrationState",
    "ProjectFile",
    "detect_language",
]
