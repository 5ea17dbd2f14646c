from __future__ import annotations

from pathlib import Path

import pytest

from codemorph.config import CodeMorphConfig
from codemorph.events import EventLog
from tests._fixtures.github import FakeGitHub
from tests._fixtures.oracle import FakeOracle
from tests._fixtures.project_builder import ProjectBuilder


@pytest.fixture
def project_builder(tmp_path: Path) -> ProjectBuilder:
    """Provide a reusable project builder rooted at the pytest tmp_path."""
    return ProjectBuilder(tmp_path)


@pytest.fixture
def config(tmp_path: Path) -> CodeMorphConfig:
    """Default configuration that never touches the user's environment."""
    return CodeMorphConfig(root=tmp_path)


@pytest.fixture
def event_log() -> EventLog:
    return EventLog()


@pytest.fixture
def fake_oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture
def github(monkeypatch: pytest.MonkeyPatch) -> FakeGitHub:
    """Patch repository ingestion to talk to an in-memory GitHub API."""
    fake = FakeGitHub()
    monkeypatch.setattr("codemorph.sources.repository.urlopen", fake.urlopen)
    return fake
