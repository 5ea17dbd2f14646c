"""Staged multi-agent source migration: explore, plan, translate, review, package."""

from .models import AgentRole, FileStatus, MessageType, MigrationPlan, MigrationState, ProjectFile
from .orchestrator import MigrationResult, StageOrchestrator

__version__ = "0.1.0"

__all__ = [
    "AgentRole",
    "FileStatus",
    "MessageType",
    "MigrationPlan",
    "MigrationResult",
    "MigrationState",
    "ProjectFile",
    "StageOrchestrator",
    "__version__",
]
