"""In-memory translation oracle used by orchestrator and service tests."""

from __future__ import annotations

from typing import Callable, Dict, Iterator, List, Optional, Sequence

from codemorph.models import Analysis, Ecosystem, MigrationPlan, ProjectFile


class FakeOracle:
    """Records every call and streams canned chunks per file path."""

    def __init__(
        self,
        *,
        analysis: Analysis | None = None,
        plan: MigrationPlan | None = None,
        chunks: Dict[str, List[str]] | None = None,
        fail_on: Optional[str] = None,
        fail_stream_after: Dict[str, int] | None = None,
        on_chunk: Callable[[str, int], None] | None = None,
    ) -> None:
        self.analysis = analysis or Analysis(language="Python", framework="Flask")
        self.plan_result = plan or MigrationPlan.build(
            steps=["Port modules"],
            mappings={"logic": "functions to classes", "data": "dicts to records"},
            dependencies=["org.springframework.boot:spring-boot-starter-web"],
            run_instructions="mvn spring-boot:run",
        )
        self.chunks = chunks or {}
        self.fail_on = fail_on
        self.fail_stream_after = fail_stream_after or {}
        self.on_chunk = on_chunk
        self.calls: List[tuple] = []

    def analyze(self, paths: Sequence[str]) -> Analysis:
        self.calls.append(("analyze", list(paths)))
        if self.fail_on == "analyze":
            raise RuntimeError("analyze unavailable")
        return self.analysis

    def plan(self, source: Ecosystem, target: Ecosystem) -> MigrationPlan:
        self.calls.append(("plan", source, target))
        if self.fail_on == "plan":
            raise RuntimeError("plan unavailable")
        return self.plan_result

    def translate_stream(
        self,
        file: ProjectFile,
        source: Ecosystem,
        target: Ecosystem,
        plan: MigrationPlan,
    ) -> Iterator[str]:
        self.calls.append(("translate", file.path, plan))
        if self.fail_on == "translate":
            raise RuntimeError("translate unavailable")
        chunks = self.chunks.get(file.path, [f"// {file.name}\n", "class Migrated {}\n"])
        return self._stream(file.path, chunks)

    def _stream(self, path: str, chunks: List[str]) -> Iterator[str]:
        fail_after = self.fail_stream_after.get(path)
        for position, chunk in enumerate(chunks):
            if fail_after is not None and position >= fail_after:
                raise ConnectionError("stream dropped")
            if self.on_chunk is not None:
                self.on_chunk(path, position)
            yield chunk

    def review(self, original: str, translated: str, target: str) -> str:
        self.calls.append(("review", original, translated, target))
        if self.fail_on == "review":
            raise RuntimeError("review unavailable")
        return f"Looks good for {target}."

    def operations(self) -> List[str]:
        return [call[0] for call in self.calls]


__all__ = ["FakeOracle"]
