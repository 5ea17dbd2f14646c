"""Tests for the stage orchestrator."""

from __future__ import annotations

import io
import zipfile
from http.client import IncompleteRead
from typing import List

import pytest

from codemorph.config import CodeMorphConfig
from codemorph.errors import (
    MigrationError,
    NoInputFiles,
    OracleCallFailure,
    RunCancelled,
    StreamInterrupted,
)
from codemorph.events import EventLog
from codemorph.models import AgentRole, FileStatus, MessageType, MigrationState, ProjectFile
from codemorph.orchestrator import StageOrchestrator
from codemorph.packager import PLACEHOLDER
from tests._fixtures.github import FakeGitHub, blob_entry
from tests._fixtures.oracle import FakeOracle


def _files(*paths: str) -> List[ProjectFile]:
    return [ProjectFile.create(path, f"# {path}\n") for path in paths]


def _orchestrator(
    oracle: FakeOracle, config: CodeMorphConfig, event_log: EventLog
) -> StageOrchestrator:
    return StageOrchestrator(oracle, config=config, event_log=event_log)


def _archive_names(data: bytes) -> List[str]:
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        return archive.namelist()


def test_run_two_files_end_to_end(
    fake_oracle: FakeOracle, config: CodeMorphConfig, event_log: EventLog
) -> None:
    orchestrator = _orchestrator(fake_oracle, config, event_log)

    result = orchestrator.run(files=_files("a.py", "b.py"))

    assert result.error is None
    assert result.succeeded is True
    state = result.state
    assert state.progress == 100
    assert state.is_processing is False
    assert state.active_agent is None
    assert state.current_index is None
    assert (state.source_language, state.source_framework) == ("Python", "Flask")
    assert [file.status for file in state.files] == [FileStatus.COMPLETED] * 2
    assert state.files[0].translated_content == "// a.py\nclass Migrated {}\n"
    for role in AgentRole:
        assert event_log.filter(role=role), f"no messages for {role}"
    assert event_log.filter(type=MessageType.ERROR) == []
    assert fake_oracle.operations() == ["analyze", "plan", "translate", "translate"]

    data = orchestrator.package()
    assert data is not None
    assert _archive_names(data) == [
        "migrated-project/src/main/java/com/migrated/a.java",
        "migrated-project/src/main/java/com/migrated/b.java",
        "migrated-project/README.md",
    ]
    assert result.archive_name == "migrated-project-java.zip"


def test_run_logs_stage_messages_in_order(
    fake_oracle: FakeOracle, config: CodeMorphConfig, event_log: EventLog
) -> None:
    orchestrator = _orchestrator(fake_oracle, config, event_log)

    orchestrator.run(files=_files("src/app.py"))

    assert [(message.role, message.text) for message in event_log.messages] == [
        (AgentRole.EXPLORER, "Analyzing project source stack..."),
        (AgentRole.EXPLORER, "Detected Source: Python (Flask)"),
        (AgentRole.ARCHITECT, "Designing migration strategy to Java (Spring Boot)..."),
        (AgentRole.ARCHITECT, "Blueprint finalized. Starting translation sequence..."),
        (AgentRole.MIGRATOR, "Transforming src/app.py..."),
        (AgentRole.REVIEWER, "Final verification of all modules completed."),
        (AgentRole.REVIEWER, "Migration SUCCESS. Project is ready for deployment."),
    ]
    timestamps = [message.timestamp for message in event_log.messages]
    assert timestamps == sorted(timestamps)


def test_files_are_translated_strictly_in_order(
    config: CodeMorphConfig, event_log: EventLog
) -> None:
    oracle = FakeOracle(
        chunks={
            "a.py": ["a1", "a2", "a3"],
            "b.py": ["b1", "b2"],
            "c.py": ["c1"],
        }
    )
    orchestrator = _orchestrator(oracle, config, event_log)
    snapshots: List[MigrationState] = []
    orchestrator.subscribe(snapshots.append)

    orchestrator.run(files=_files("a.py", "b.py", "c.py"))

    for snapshot in snapshots:
        for index in range(1, len(snapshot.files)):
            if snapshot.files[index].status is not FileStatus.PENDING:
                assert snapshot.files[index - 1].status is FileStatus.COMPLETED

    partials = [
        snapshot.files[0].translated_content
        for snapshot in snapshots
        if snapshot.files and snapshot.files[0].status is FileStatus.TRANSLATING
    ]
    assert partials == ["a1", "a1a2", "a1a2a3"]

    indexes = [snapshot.current_index for snapshot in snapshots if snapshot.current_index is not None]
    assert indexes == sorted(indexes)
    assert set(indexes) == {0, 1, 2}


def test_progress_is_monotonic_and_hits_checkpoints(
    fake_oracle: FakeOracle, config: CodeMorphConfig, event_log: EventLog
) -> None:
    orchestrator = _orchestrator(fake_oracle, config, event_log)
    progress: List[float] = []
    orchestrator.subscribe(lambda state: progress.append(state.progress))

    orchestrator.run(files=_files("a.py", "b.py"))

    assert progress == sorted(progress)
    distinct = sorted(set(progress))
    assert distinct == [0.0, 5.0, 15.0, 25.0, 57.5, 90.0, 100.0]


def test_progress_resets_to_start_checkpoint_on_new_run(
    fake_oracle: FakeOracle, config: CodeMorphConfig, event_log: EventLog
) -> None:
    orchestrator = _orchestrator(fake_oracle, config, event_log)
    orchestrator.run(files=_files("a.py"))
    progress: List[float] = []
    orchestrator.subscribe(lambda state: progress.append(state.progress))

    orchestrator.run()

    assert 5.0 in progress
    assert progress[-1] == 100
    assert len(fake_oracle.operations()) == 6


def test_plan_failure_aborts_run_and_keeps_progress(
    config: CodeMorphConfig, event_log: EventLog
) -> None:
    oracle = FakeOracle(fail_on="plan")
    orchestrator = _orchestrator(oracle, config, event_log)

    result = orchestrator.run(files=_files("a.py", "b.py"))

    assert isinstance(result.error, OracleCallFailure)
    assert result.succeeded is False
    assert result.plan is None
    state = result.state
    assert state.progress == 15
    assert state.is_processing is False
    assert state.active_agent is None
    assert [file.status for file in state.files] == [FileStatus.PENDING] * 2
    errors = event_log.filter(type=MessageType.ERROR)
    assert len(errors) == 1
    assert errors[0].role is AgentRole.ARCHITECT
    assert errors[0].text == "Migration Failure: Oracle plan call failed: plan unavailable"
    assert "translate" not in oracle.operations()


def test_run_without_files_fails_with_no_input(
    fake_oracle: FakeOracle, config: CodeMorphConfig, event_log: EventLog
) -> None:
    orchestrator = _orchestrator(fake_oracle, config, event_log)

    result = orchestrator.run()

    assert isinstance(result.error, NoInputFiles)
    assert result.state.progress == 0
    assert result.state.is_processing is False
    assert fake_oracle.calls == []
    errors = event_log.filter(type=MessageType.ERROR)
    assert [message.text for message in errors] == [
        "Migration Failure: No source files available. Please upload or provide a GitHub URL."
    ]


def test_invalid_repo_url_without_uploads_fails_with_no_input(
    github: FakeGitHub,
    fake_oracle: FakeOracle,
    config: CodeMorphConfig,
    event_log: EventLog,
) -> None:
    orchestrator = _orchestrator(fake_oracle, config, event_log)

    result = orchestrator.run(repo_url="not-a-url")

    assert isinstance(result.error, NoInputFiles)
    errors = event_log.filter(type=MessageType.ERROR)
    assert len(errors) == 2
    assert errors[0].text.startswith("GitHub Fetch Error: Invalid GitHub URL")
    assert errors[1].text == (
        "Migration Failure: No files found to migrate from the provided GitHub link."
    )
    assert github.requests == []
    assert fake_oracle.calls == []


def test_empty_fetch_falls_back_to_uploaded_files(
    github: FakeGitHub,
    fake_oracle: FakeOracle,
    config: CodeMorphConfig,
    event_log: EventLog,
) -> None:
    orchestrator = _orchestrator(fake_oracle, config, event_log)
    orchestrator.load_files(_files("upload.py"))

    result = orchestrator.run(repo_url="https://github.com/acme/ghost")

    assert result.error is None
    assert [file.path for file in result.state.files] == ["upload.py"]
    assert len(event_log.filter(type=MessageType.ERROR)) == 1


def test_fetched_files_replace_uploaded_files(
    github: FakeGitHub,
    fake_oracle: FakeOracle,
    config: CodeMorphConfig,
    event_log: EventLog,
) -> None:
    entry = blob_entry("svc/api.py")
    github.add_tree("acme", "svc", "main", [entry])
    github.add_blob(entry["url"], "def api():\n    pass\n")
    orchestrator = _orchestrator(fake_oracle, config, event_log)
    orchestrator.load_files(_files("upload.py"))

    result = orchestrator.run(repo_url="acme/svc")

    assert [file.path for file in result.state.files] == ["svc/api.py"]
    assert result.state.files[0].status is FileStatus.COMPLETED


def test_stream_failure_marks_file_error_and_aborts(
    config: CodeMorphConfig, event_log: EventLog
) -> None:
    oracle = FakeOracle(fail_stream_after={"b.py": 1})
    orchestrator = _orchestrator(oracle, config, event_log)

    result = orchestrator.run(files=_files("a.py", "b.py", "c.py"))

    assert isinstance(result.error, StreamInterrupted)
    files = result.state.files
    assert files[0].status is FileStatus.COMPLETED
    assert files[1].status is FileStatus.ERROR
    assert files[1].translated_content == "// b.py\n"
    assert files[2].status is FileStatus.PENDING
    assert result.state.progress == pytest.approx(25 + 65 / 3)
    errors = event_log.filter(type=MessageType.ERROR)
    assert len(errors) == 1
    assert errors[0].role is AgentRole.MIGRATOR
    assert "stream dropped" in errors[0].text
    assert [call[1] for call in oracle.calls if call[0] == "translate"] == ["a.py", "b.py"]

    data = orchestrator.package()
    assert data is not None
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        root = "migrated-project/src/main/java/com/migrated"
        assert archive.read(f"{root}/a.java").decode("utf-8") == "// a.py\nclass Migrated {}\n"
        assert archive.read(f"{root}/b.java").decode("utf-8") == PLACEHOLDER
        assert archive.read(f"{root}/c.java").decode("utf-8") == PLACEHOLDER


def test_translate_call_failure_is_wrapped(config: CodeMorphConfig, event_log: EventLog) -> None:
    oracle = FakeOracle(fail_on="translate")
    orchestrator = _orchestrator(oracle, config, event_log)

    result = orchestrator.run(files=_files("a.py"))

    assert isinstance(result.error, OracleCallFailure)
    assert isinstance(result.error.__cause__, RuntimeError)
    assert result.state.progress == 25
    assert result.state.files[0].status is FileStatus.PENDING


def test_cancel_during_stream_stops_run(config: CodeMorphConfig, event_log: EventLog) -> None:
    holder: List[StageOrchestrator] = []
    oracle = FakeOracle(on_chunk=lambda path, position: holder[0].cancel())
    orchestrator = _orchestrator(oracle, config, event_log)
    holder.append(orchestrator)

    result = orchestrator.run(files=_files("a.py", "b.py"))

    assert isinstance(result.error, RunCancelled)
    assert result.state.files[0].status is FileStatus.ERROR
    assert result.state.files[0].translated_content == "// a.py\n"
    assert result.state.files[1].status is FileStatus.PENDING
    assert result.state.is_processing is False
    errors = event_log.filter(type=MessageType.ERROR)
    assert [message.text for message in errors] == ["Migration Failure: Migration cancelled"]


def test_run_rejects_changes_while_processing(
    config: CodeMorphConfig, event_log: EventLog
) -> None:
    holder: List[StageOrchestrator] = []
    rejected: List[Exception] = []

    def on_chunk(path: str, position: int) -> None:
        try:
            holder[0].set_target("Go", "Gin")
        except MigrationError as exc:
            rejected.append(exc)

    oracle = FakeOracle(on_chunk=on_chunk)
    orchestrator = _orchestrator(oracle, config, event_log)
    holder.append(orchestrator)

    result = orchestrator.run(files=_files("a.py"))

    assert result.error is None
    assert rejected and "already in progress" in str(rejected[0])
    assert result.state.target_language == "Java"


def test_analyze_receives_bounded_path_prefix(
    fake_oracle: FakeOracle, config: CodeMorphConfig, event_log: EventLog
) -> None:
    config.migration.analyze_file_limit = 3
    orchestrator = _orchestrator(fake_oracle, config, event_log)

    orchestrator.run(files=_files(*(f"m{index}.py" for index in range(5))))

    analyze_call = fake_oracle.calls[0]
    assert analyze_call == ("analyze", ["m0.py", "m1.py", "m2.py"])


def test_every_translation_shares_the_run_plan(
    fake_oracle: FakeOracle, config: CodeMorphConfig, event_log: EventLog
) -> None:
    orchestrator = _orchestrator(fake_oracle, config, event_log)

    result = orchestrator.run(files=_files("a.py", "b.py", "c.py"))

    plans = [call[2] for call in fake_oracle.calls if call[0] == "translate"]
    assert len(plans) == 3
    assert all(plan is result.plan for plan in plans)
    assert orchestrator.migration_plan is result.plan


def test_review_files_collects_notes(
    fake_oracle: FakeOracle, config: CodeMorphConfig, event_log: EventLog
) -> None:
    config.migration.review_files = True
    orchestrator = _orchestrator(fake_oracle, config, event_log)

    result = orchestrator.run(files=_files("a.py", "b.py"))

    assert result.reviews == {
        "a.py": "Looks good for Java (Spring Boot).",
        "b.py": "Looks good for Java (Spring Boot).",
    }
    reviewer_texts = [message.text for message in event_log.filter(role=AgentRole.REVIEWER)]
    assert reviewer_texts[:2] == ["Reviewed a.py.", "Reviewed b.py."]

    data = orchestrator.package()
    assert data is not None
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        manifest = archive.read("migrated-project/README.md").decode("utf-8")
    assert "## Review Notes" in manifest
    assert "Looks good for Java (Spring Boot)." in manifest


def test_package_without_plan_warns_and_returns_none(
    fake_oracle: FakeOracle, config: CodeMorphConfig, event_log: EventLog
) -> None:
    orchestrator = _orchestrator(fake_oracle, config, event_log)
    orchestrator.load_files(_files("a.py"))

    assert orchestrator.package() is None
    assert orchestrator.package() is None

    warnings = event_log.filter(type=MessageType.WARNING)
    assert len(warnings) == 2
    assert all(message.role is AgentRole.REVIEWER for message in warnings)


def test_package_is_idempotent_for_the_same_state(
    fake_oracle: FakeOracle, config: CodeMorphConfig, event_log: EventLog
) -> None:
    orchestrator = _orchestrator(fake_oracle, config, event_log)
    orchestrator.run(files=_files("a.py", "pkg/b.py"))

    assert orchestrator.package() == orchestrator.package()


def test_failing_listener_does_not_break_run(
    fake_oracle: FakeOracle, config: CodeMorphConfig, event_log: EventLog
) -> None:
    orchestrator = _orchestrator(fake_oracle, config, event_log)

    def broken(state: MigrationState) -> None:
        raise ValueError("listener bug")

    orchestrator.subscribe(broken)
    seen: List[MigrationState] = []
    unsubscribe = orchestrator.subscribe(seen.append)

    result = orchestrator.run(files=_files("a.py"))

    assert result.succeeded is True
    assert seen and seen[-1] == result.state
    unsubscribe()
    count = len(seen)
    orchestrator.set_target("Go", "Gin")
    assert len(seen) == count


def test_target_selection_drives_archive_layout(
    fake_oracle: FakeOracle, config: CodeMorphConfig, event_log: EventLog
) -> None:
    orchestrator = _orchestrator(fake_oracle, config, event_log)
    orchestrator.set_target("Go", "Gin")

    result = orchestrator.run(files=_files("svc/handlers.py"))

    assert fake_oracle.calls[1][2].label == "Go (Gin)"
    assert result.archive_name == "migrated-project-go.zip"
    data = orchestrator.package()
    assert data is not None
    assert _archive_names(data) == [
        "migrated-project/svc/handlers.go",
        "migrated-project/README.md",
    ]


def test_truncated_repository_response_falls_back_to_uploads(
    github: FakeGitHub,
    fake_oracle: FakeOracle,
    config: CodeMorphConfig,
    event_log: EventLog,
) -> None:
    entry = blob_entry("svc/api.py")
    github.add_tree("acme", "svc", "main", [entry])
    github.failures[entry["url"]] = IncompleteRead(b"par")
    orchestrator = _orchestrator(fake_oracle, config, event_log)
    orchestrator.load_files(_files("upload.py"))

    result = orchestrator.run(repo_url="acme/svc")

    assert result.error is None
    assert orchestrator.state.is_processing is False
    assert orchestrator.state.active_agent is None
    assert [file.path for file in result.state.files] == ["upload.py"]
    assert len(event_log.filter(type=MessageType.ERROR)) == 1


class _ExplodingRepository:
    def fetch(self, url: str) -> List[ProjectFile]:
        raise KeyError("tree")


def test_unexpected_error_resets_state_and_logs_once(
    fake_oracle: FakeOracle, config: CodeMorphConfig, event_log: EventLog
) -> None:
    orchestrator = StageOrchestrator(
        fake_oracle, config=config, event_log=event_log, repository=_ExplodingRepository()
    )
    orchestrator.load_files(_files("upload.py"))

    result = orchestrator.run(repo_url="acme/svc")

    assert isinstance(result.error, MigrationError)
    assert isinstance(result.error.__cause__, KeyError)
    assert orchestrator.state.is_processing is False
    assert orchestrator.state.active_agent is None
    errors = event_log.filter(type=MessageType.ERROR)
    assert len(errors) == 1
    assert errors[0].text.startswith("Migration Failure: Unexpected failure")

    assert orchestrator.run().succeeded is True


def test_empty_translation_is_packaged_as_placeholder(
    config: CodeMorphConfig, event_log: EventLog
) -> None:
    oracle = FakeOracle(chunks={"a.py": [""]})
    orchestrator = _orchestrator(oracle, config, event_log)

    result = orchestrator.run(files=_files("a.py", "b.py"))

    assert result.state.files[0].status is FileStatus.COMPLETED
    data = orchestrator.package()
    assert data is not None
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        empty = archive.read("migrated-project/src/main/java/com/migrated/a.java")
        translated = archive.read("migrated-project/src/main/java/com/migrated/b.java")
    assert empty.decode("utf-8") == PLACEHOLDER
    assert translated.decode("utf-8") == "// b.py\nclass Migrated {}\n"
