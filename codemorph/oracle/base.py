"""Translation oracle contract and tolerant response parsing."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Iterator, List, Protocol, Sequence

from ..errors import OracleMalformedResponse
from ..logging import get_logger
from ..models import Analysis, Ecosystem, MigrationPlan, ProjectFile

DEFAULT_ANALYSIS = Analysis(language="Unknown", framework="Unknown")
DEFAULT_RUN_INSTRUCTIONS = "Run instructions not generated."
DEFAULT_REVIEW = "Review complete."

_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n(?P<body>.*?)\n?```\s*$", re.DOTALL)

logger = get_logger("oracle")


class TranslationOracle(Protocol):
    """What the orchestrator needs from the detection/planning/translation service."""

    def analyze(self, paths: Sequence[str]) -> Analysis:
        ...

    def plan(self, source: Ecosystem, target: Ecosystem) -> MigrationPlan:
        ...

    def translate_stream(
        self,
        file: ProjectFile,
        source: Ecosystem,
        target: Ecosystem,
        plan: MigrationPlan,
    ) -> Iterator[str]:
        ...

    def review(self, original: str, translated: str, target: str) -> str:
        ...


def parse_json_object(text: str | None) -> Dict[str, Any]:
    """Decode a JSON object from oracle output, tolerating a markdown code fence."""
    if text is None or not text.strip():
        raise OracleMalformedResponse("Oracle returned an empty response")
    candidate = text.strip()
    fenced = _FENCE_RE.match(candidate)
    if fenced:
        candidate = fenced.group("body").strip()
    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise OracleMalformedResponse(f"Oracle returned invalid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise OracleMalformedResponse("Oracle returned JSON that is not an object")
    return payload


def parse_analysis(text: str | None) -> Analysis:
    """Return the detected ecosystem, or ``Unknown``/``Unknown`` when malformed."""
    try:
        payload = parse_json_object(text)
    except OracleMalformedResponse as exc:
        logger.warning("Falling back to default analysis: %s", exc)
        return DEFAULT_ANALYSIS
    return Analysis(
        language=_clean_str(payload.get("language")) or DEFAULT_ANALYSIS.language,
        framework=_clean_str(payload.get("framework")) or DEFAULT_ANALYSIS.framework,
    )


def parse_plan(text: str | None) -> MigrationPlan:
    """Return the migration plan, or an empty plan when malformed."""
    try:
        payload = parse_json_object(text)
    except OracleMalformedResponse as exc:
        logger.warning("Falling back to default migration plan: %s", exc)
        return MigrationPlan.build(run_instructions=DEFAULT_RUN_INSTRUCTIONS)

    mappings_raw = payload.get("mappings")
    mappings: Dict[str, str] = {}
    if isinstance(mappings_raw, dict):
        for key, value in mappings_raw.items():
            if value is None:
                continue
            mappings[str(key)] = value if isinstance(value, str) else json.dumps(value)

    run_instructions = payload.get("runInstructions", payload.get("run_instructions"))
    return MigrationPlan.build(
        steps=_str_list(payload.get("steps")),
        mappings=mappings,
        dependencies=_str_list(payload.get("dependencies")),
        run_instructions=run_instructions if isinstance(run_instructions, str) else None,
    )


def parse_review(text: str | None) -> str:
    if text is None or not text.strip():
        return DEFAULT_REVIEW
    return text.strip()


def _clean_str(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if isinstance(item, (str, int, float))]


__all__ = [
    "DEFAULT_ANALYSIS",
    "DEFAULT_REVIEW",
    "DEFAULT_RUN_INSTRUCTIONS",
    "TranslationOracle",
    "parse_analysis",
    "parse_json_object",
    "parse_plan",
    "parse_review",
]
