"""Prompt text for each oracle operation."""

from __future__ import annotations

import json
from typing import Sequence

from ..models import Ecosystem, MigrationPlan, ProjectFile

ANALYZE_SYSTEM = "You identify the technology stack of software projects from their file layout."
PLAN_SYSTEM = "Act as a Senior Software Architect planning cross-language migrations."
TRANSLATE_SYSTEM = "You translate source code between languages and frameworks. Return only code."
REVIEW_SYSTEM = "You review machine-translated code for correctness and idiomatic style."


def analyze_prompt(paths: Sequence[str]) -> str:
    listing = "\n".join(paths)
    return (
        "Analyze these project files and identify the primary programming language and "
        "framework used.\n"
        'Return the answer in JSON format with keys "language" and "framework".\n'
        f"Files:\n{listing}"
    )


def plan_prompt(source: Ecosystem, target: Ecosystem) -> str:
    return (
        "Create a detailed migration plan to move an application from "
        f"{source.label} to {target.label}.\n"
        "Include file mapping logic and specific run instructions for the target project.\n"
        "Return JSON with keys:\n"
        '- "steps": array of strings\n'
        '- "mappings": object with "logic" and "data" string descriptions\n'
        '- "dependencies": array of dependency identifiers to add\n'
        '- "runInstructions": markdown steps to build and run the target application'
    )


def translate_prompt(
    file: ProjectFile, source: Ecosystem, target: Ecosystem, plan: MigrationPlan
) -> str:
    guidance = json.dumps(dict(plan.mappings), sort_keys=True)
    return (
        f"Translate the following code from {source.label} to {target.label}.\n"
        f"Use this migration plan guidance: {guidance}.\n"
        f"Preserve logic but use idiomatic patterns for {target.framework}.\n"
        "Return ONLY the translated code.\n\n"
        f"File Path: {file.path}\n"
        "Original Source Code:\n"
        f"{file.content}"
    )


def review_prompt(original: str, translated: str, target: str) -> str:
    return (
        f"Review this translation to {target}.\n"
        f"Original:\n{original}\n\n"
        f"Translated:\n{translated}"
    )


__all__ = [
    "ANALYZE_SYSTEM",
    "PLAN_SYSTEM",
    "REVIEW_SYSTEM",
    "TRANSLATE_SYSTEM",
    "analyze_prompt",
    "plan_prompt",
    "review_prompt",
    "translate_prompt",
]
