"""Stage orchestration for migration runs (Explorer → Architect → Migrator → Reviewer)."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, TypeVar

from .config import CodeMorphConfig
from .constants import (
    PROGRESS_DONE,
    PROGRESS_EXPLORED,
    PROGRESS_MIGRATED,
    PROGRESS_PLANNED,
    PROGRESS_START,
)
from .errors import MigrationError, NoInputFiles, OracleCallFailure, PackagingRefused
from .events import EventLog
from .logging import get_logger
from .models import (
    AgentMessage,
    AgentRole,
    Analysis,
    Ecosystem,
    FileStatus,
    MigrationPlan,
    MigrationState,
    ProjectFile,
)
from .oracle import TranslationOracle
from .packager import ProjectPackager, archive_name
from .sources import RepositorySource
from .streaming import CancellationToken, StreamingConsumer

StateListener = Callable[[MigrationState], None]

_T = TypeVar("_T")


@dataclass
class MigrationResult:
    """Outcome of a single :meth:`StageOrchestrator.run` call."""

    state: MigrationState
    plan: Optional[MigrationPlan]
    messages: Sequence[AgentMessage]
    reviews: Mapping[str, str] = field(default_factory=dict)
    error: Optional[MigrationError] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.state.is_complete

    @property
    def archive_name(self) -> str:
        return archive_name(self.state.target_language)


class StageOrchestrator:
    """Sequences the four migration stages and owns the run state.

    The orchestrator is the only writer of :class:`MigrationState`. Each
    change produces a new immutable snapshot which is handed to every
    subscribed listener. Files are translated strictly one after another; the
    next translation request is not issued until the previous stream drained.
    """

    def __init__(
        self,
        oracle: TranslationOracle,
        *,
        config: CodeMorphConfig | None = None,
        event_log: EventLog | None = None,
        repository: RepositorySource | None = None,
        streaming: StreamingConsumer | None = None,
        packager: ProjectPackager | None = None,
        target_language: str | None = None,
        target_framework: str | None = None,
    ) -> None:
        self.oracle = oracle
        self.config = config or CodeMorphConfig(root=Path.cwd())
        self.event_log = event_log if event_log is not None else EventLog()
        self.repository = repository or RepositorySource(
            self.config.repository, event_log=self.event_log
        )
        self.streaming = streaming or StreamingConsumer(
            max_buffer_chars=self.config.migration.max_buffer_chars
        )
        self.packager = packager or ProjectPackager()
        self.logger = get_logger("orchestrator")

        self._lock = threading.RLock()
        self._listeners: List[StateListener] = []
        self._state = MigrationState(
            target_language=target_language or self.config.migration.target_language,
            target_framework=target_framework or self.config.migration.target_framework,
        )
        self._plan: Optional[MigrationPlan] = None
        self._reviews: Dict[str, str] = {}
        self._cancel_token: Optional[CancellationToken] = None

    # ------------------------------------------------------------------
    # Observation

    @property
    def state(self) -> MigrationState:
        with self._lock:
            return self._state

    @property
    def migration_plan(self) -> Optional[MigrationPlan]:
        return self._plan

    @property
    def reviews(self) -> Mapping[str, str]:
        return dict(self._reviews)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register ``listener`` for every published snapshot; returns an unsubscribe callable."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Input management

    def set_target(self, language: str, framework: str) -> None:
        self._ensure_idle()
        self._publish(target_language=language, target_framework=framework)

    def load_files(self, files: Sequence[ProjectFile]) -> None:
        """Install uploaded files as the input for the next run."""
        self._ensure_idle()
        self._publish(files=tuple(files))

    def cancel(self) -> None:
        token = self._cancel_token
        if token is not None:
            token.cancel()

    # ------------------------------------------------------------------
    # Pipeline

    def run(
        self,
        *,
        files: Sequence[ProjectFile] | None = None,
        repo_url: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> MigrationResult:
        """Execute all four stages and return the outcome.

        Pipeline failures never raise; they are logged once as an ``error``
        message and reported through :attr:`MigrationResult.error`.
        """
        with self._lock:
            self._ensure_idle()
            self._state = replace(
                self._state,
                is_processing=True,
                active_agent=AgentRole.EXPLORER,
                current_index=None,
            )
            snapshot = self._state
        self._plan = None
        self._reviews = {}
        self._cancel_token = token = cancel_token or CancellationToken()
        self._notify(snapshot)
        self.logger.info("Starting migration run to %s", snapshot.target.label)

        error: Optional[MigrationError] = None
        try:
            inputs = self._resolve_inputs(files, repo_url)
            pending = tuple(
                replace(file, translated_content=None, status=FileStatus.PENDING)
                for file in inputs
            )
            self._publish(
                files=pending,
                source_language="",
                source_framework="",
                progress=PROGRESS_START,
            )

            token.raise_if_cancelled()
            analysis = self.explore(pending)
            token.raise_if_cancelled()
            plan = self.plan(
                Ecosystem(analysis.language, analysis.framework), self.state.target
            )
            self.migrate(plan, cancel_token=token)
            self.review(cancel_token=token)
        except MigrationError as exc:
            error = exc
            self._fail(exc)
        except Exception as exc:
            self.logger.exception("Unexpected error during migration run")
            error = MigrationError(f"Unexpected failure: {exc}")
            error.__cause__ = exc
            self._fail(error)
        finally:
            self._cancel_token = None

        return MigrationResult(
            state=self.state,
            plan=self._plan,
            messages=self.event_log.messages,
            reviews=dict(self._reviews),
            error=error,
        )

    def explore(self, files: Sequence[ProjectFile]) -> Analysis:
        """Detect the source ecosystem from a bounded prefix of file paths."""
        self._enter(AgentRole.EXPLORER)
        self.event_log.info(AgentRole.EXPLORER, "Analyzing project source stack...")
        limit = self.config.migration.analyze_file_limit
        paths = [file.path for file in files[:limit]]
        analysis = self._call_oracle("analyze", self.oracle.analyze, paths)

        self._publish(source_language=analysis.language, source_framework=analysis.framework)
        self._advance(PROGRESS_EXPLORED)
        self.event_log.success(
            AgentRole.EXPLORER,
            f"Detected Source: {analysis.language} ({analysis.framework})",
        )
        return analysis

    def plan(self, source: Ecosystem, target: Ecosystem | None = None) -> MigrationPlan:
        """Ask the oracle for a migration plan and freeze it for the run."""
        target = target or self.state.target
        self._enter(AgentRole.ARCHITECT)
        self.event_log.info(
            AgentRole.ARCHITECT, f"Designing migration strategy to {target.label}..."
        )
        plan = self._call_oracle("plan", self.oracle.plan, source, target)
        self._plan = plan
        self.event_log.success(
            AgentRole.ARCHITECT, "Blueprint finalized. Starting translation sequence..."
        )
        self._advance(PROGRESS_PLANNED)
        return plan

    def migrate(
        self,
        plan: MigrationPlan,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> Tuple[ProjectFile, ...]:
        """Translate every file in order, streaming partial content into the state."""
        self._enter(AgentRole.MIGRATOR)
        snapshot = self.state
        files = snapshot.files
        source, target = snapshot.source, snapshot.target
        total = len(files)

        for index, file in enumerate(files):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            self._publish(current_index=index)
            self.event_log.info(AgentRole.MIGRATOR, f"Transforming {file.path}...")

            chunks = self._call_oracle(
                "translate", self.oracle.translate_stream, file, source, target, plan
            )
            self.streaming.consume(
                file,
                chunks,
                lambda value, position=index: self._publish_file(position, value),
                cancel_token=cancel_token,
            )
            span = PROGRESS_MIGRATED - PROGRESS_PLANNED
            self._advance(PROGRESS_PLANNED + ((index + 1) / total) * span)
            self.logger.debug("Translated %s (%d/%d)", file.path, index + 1, total)

        self._publish(current_index=None)
        return self.state.files

    def review(self, *, cancel_token: CancellationToken | None = None) -> None:
        """Finalize the run, optionally collecting per-file review notes."""
        self._enter(AgentRole.REVIEWER)
        snapshot = self.state
        if self.config.migration.review_files:
            for file in snapshot.files:
                if file.status is not FileStatus.COMPLETED or file.translated_content is None:
                    continue
                if cancel_token is not None:
                    cancel_token.raise_if_cancelled()
                note = self._call_oracle(
                    "review",
                    self.oracle.review,
                    file.content,
                    file.translated_content,
                    snapshot.target.label,
                )
                self._reviews[file.path] = note
                self.event_log.info(AgentRole.REVIEWER, f"Reviewed {file.path}.")

        self.event_log.info(AgentRole.REVIEWER, "Final verification of all modules completed.")
        self.event_log.success(
            AgentRole.REVIEWER, "Migration SUCCESS. Project is ready for deployment."
        )
        self._publish(
            is_processing=False,
            active_agent=None,
            current_index=None,
            progress=PROGRESS_DONE,
        )
        self.logger.info("Migration run finished with %d files", len(snapshot.files))

    def package(self) -> Optional[bytes]:
        """Return the archive for the current state, or ``None`` with a warning if refused."""
        snapshot = self.state
        try:
            data = self.packager.build(
                snapshot.files, self._plan, snapshot, reviews=self._reviews
            )
        except PackagingRefused as exc:
            self.event_log.warning(AgentRole.REVIEWER, str(exc))
            return None
        self.event_log.success(
            AgentRole.REVIEWER,
            f"Migrated project packaged as {archive_name(snapshot.target_language)}.",
        )
        return data

    # ------------------------------------------------------------------
    # Helpers

    def _resolve_inputs(
        self, files: Sequence[ProjectFile] | None, repo_url: str | None
    ) -> List[ProjectFile]:
        current = list(files) if files is not None else list(self.state.files)
        if repo_url and repo_url.strip():
            fetched = self.repository.fetch(repo_url)
            if fetched:
                current = fetched
            elif not current:
                raise NoInputFiles("No files found to migrate from the provided GitHub link.")
        if not current:
            raise NoInputFiles("No source files available. Please upload or provide a GitHub URL.")
        return current

    def _call_oracle(self, operation: str, func: Callable[..., _T], *args: Any) -> _T:
        try:
            return func(*args)
        except MigrationError:
            raise
        except Exception as exc:
            raise OracleCallFailure(f"Oracle {operation} call failed: {exc}") from exc

    def _fail(self, exc: MigrationError) -> None:
        role = self.state.active_agent or AgentRole.EXPLORER
        self.logger.debug("Run aborted", exc_info=exc)
        self.event_log.error(role, f"Migration Failure: {exc}")
        self._publish(is_processing=False, active_agent=None, current_index=None)

    def _ensure_idle(self) -> None:
        if self.state.is_processing:
            raise MigrationError("A migration run is already in progress")

    def _enter(self, role: AgentRole) -> None:
        self._publish(active_agent=role)

    def _advance(self, progress: float) -> None:
        with self._lock:
            if progress <= self._state.progress:
                return
            self._state = replace(self._state, progress=min(progress, PROGRESS_DONE))
            snapshot = self._state
        self._notify(snapshot)

    def _publish(self, **changes: Any) -> None:
        with self._lock:
            self._state = replace(self._state, **changes)
            snapshot = self._state
        self._notify(snapshot)

    def _publish_file(self, index: int, file: ProjectFile) -> None:
        with self._lock:
            self._state = self._state.with_file(index, file)
            snapshot = self._state
        self._notify(snapshot)

    def _notify(self, snapshot: MigrationState) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:
                self.logger.exception("State listener %r failed", listener)


__all__ = ["MigrationResult", "StageOrchestrator", "StateListener"]
