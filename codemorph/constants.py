"""Shared constants for targets, agent labels, and progress checkpoints."""

from __future__ import annotations

from .models import AgentRole

TARGET_LANGUAGES: tuple[str, ...] = ("Java", "Python", "Go", "TypeScript")

TARGET_FRAMEWORKS: tuple[str, ...] = ("Spring Boot", "FastAPI", "Gin", "Next.js")

DEFAULT_TARGET_LANGUAGE = "Java"
DEFAULT_TARGET_FRAMEWORK = "Spring Boot"

AGENT_INFO: dict[AgentRole, dict[str, str]] = {
    AgentRole.EXPLORER: {"label": "Explorer Agent", "desc": "Analyzing structure..."},
    AgentRole.ARCHITECT: {"label": "Architect Agent", "desc": "Designing strategy..."},
    AgentRole.MIGRATOR: {"label": "Migrator Agent", "desc": "Writing target code..."},
    AgentRole.REVIEWER: {"label": "Reviewer Agent", "desc": "Validating output..."},
}

# Progress checkpoints (percent) at stage boundaries.
PROGRESS_START = 5.0
PROGRESS_EXPLORED = 15.0
PROGRESS_PLANNED = 25.0
PROGRESS_MIGRATED = 90.0
PROGRESS_DONE = 100.0


__all__ = [
    "AGENT_INFO",
    "DEFAULT_TARGET_FRAMEWORK",
    "DEFAULT_TARGET_LANGUAGE",
    "PROGRESS_DONE",
    "PROGRESS_EXPLORED",
    "PROGRESS_MIGRATED",
    "PROGRESS_PLANNED",
    "PROGRESS_START",
    "TARGET_FRAMEWORKS",
    "TARGET_LANGUAGES",
]
