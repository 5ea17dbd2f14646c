"""HTTP client for an OpenAI-compatible chat completions oracle."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Optional, Sequence
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from ..config import OracleConfig, load_config
from ..errors import OracleCallFailure, OracleMalformedResponse, OracleTimeout
from ..logging import get_logger
from ..models import Analysis, Ecosystem, MigrationPlan, ProjectFile
from . import prompts
from .base import parse_analysis, parse_plan, parse_review

_DONE = object()


@dataclass
class OracleRequest:
    """Represents a single chat completion call."""

    prompt: str
    system: Optional[str]
    model: str
    temperature: Optional[float]
    json_mode: bool
    stream: bool
    base_url: str
    api_key: str
    request_timeout: Optional[float]


Transport = Callable[[OracleRequest], Iterable[str]]


class OracleClient:
    """Implements the translation oracle contract over ``/chat/completions``.

    Every call goes through ``transport``, which yields response text: the
    whole completion at once for plain calls, one delta per server-sent event
    for streamed calls. Tests inject a fake transport; production uses
    :meth:`_http_transport`.
    """

    def __init__(
        self,
        config: OracleConfig | None = None,
        *,
        transport: Transport | None = None,
    ) -> None:
        self.config = config if config is not None else load_config().oracle
        self.api_key = self.config.require_api_key()
        self.base_url = self.config.base_url.rstrip("/")
        self.models = self.config.models
        self._transport = transport or self._http_transport
        self.logger = get_logger("oracle.client")

    def analyze(self, paths: Sequence[str]) -> Analysis:
        request = self._request(
            prompts.analyze_prompt(paths),
            system=prompts.ANALYZE_SYSTEM,
            model=self.models.analyze,
            json_mode=True,
        )
        return parse_analysis(self._complete(request))

    def plan(self, source: Ecosystem, target: Ecosystem) -> MigrationPlan:
        request = self._request(
            prompts.plan_prompt(source, target),
            system=prompts.PLAN_SYSTEM,
            model=self.models.plan,
            json_mode=True,
        )
        return parse_plan(self._complete(request))

    def translate_stream(
        self,
        file: ProjectFile,
        source: Ecosystem,
        target: Ecosystem,
        plan: MigrationPlan,
    ) -> Iterator[str]:
        """Yield translated code incrementally as the oracle produces it."""
        request = self._request(
            prompts.translate_prompt(file, source, target, plan),
            system=prompts.TRANSLATE_SYSTEM,
            model=self.models.translate,
            stream=True,
        )
        self.logger.debug("Streaming translation for %s", file.path)
        for chunk in self._transport(request):
            if chunk:
                yield chunk

    def review(self, original: str, translated: str, target: str) -> str:
        request = self._request(
            prompts.review_prompt(original, translated, target),
            system=prompts.REVIEW_SYSTEM,
            model=self.models.review,
        )
        return parse_review(self._complete(request))

    def _request(
        self,
        prompt: str,
        *,
        system: str | None,
        model: str,
        json_mode: bool = False,
        stream: bool = False,
    ) -> OracleRequest:
        return OracleRequest(
            prompt=prompt,
            system=system,
            model=model,
            temperature=self.config.temperature,
            json_mode=json_mode,
            stream=stream,
            base_url=self.base_url,
            api_key=self.api_key,
            request_timeout=self.config.request_timeout,
        )

    def _complete(self, request: OracleRequest) -> str | None:
        try:
            return "".join(self._transport(request))
        except OracleMalformedResponse as exc:
            self.logger.warning("Oracle response for %s was malformed: %s", request.model, exc)
            return None

    @staticmethod
    def _http_transport(request: OracleRequest) -> Iterator[str]:
        endpoint = f"{request.base_url}/chat/completions"
        payload: dict[str, object] = {
            "model": request.model,
            "messages": OracleClient._build_messages(request.system, request.prompt),
        }
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.json_mode:
            payload["response_format"] = {"type": "json_object"}
        if request.stream:
            payload["stream"] = True

        data = json.dumps(payload).encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {request.api_key}",
        }
        if request.stream:
            headers["Accept"] = "text/event-stream"
        http_request = Request(endpoint, data=data, headers=headers, method="POST")

        raw = b""
        try:
            with urlopen(http_request, timeout=request.request_timeout) as response:  # type: ignore[arg-type]
                if request.stream:
                    for raw_line in response:
                        delta = OracleClient._parse_event(raw_line)
                        if delta is _DONE:
                            break
                        if delta:
                            yield delta  # type: ignore[misc]
                else:
                    raw = response.read()
        except HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="ignore") if hasattr(exc, "read") else ""
            message = detail.strip() or exc.reason
            raise OracleCallFailure(
                f"Oracle request failed with status {exc.code}: {message}"
            ) from exc
        except URLError as exc:
            if isinstance(exc.reason, TimeoutError):
                raise OracleTimeout(f"Oracle request timed out after {request.request_timeout}s") from exc
            raise OracleCallFailure(f"Oracle request failed: {exc.reason}") from exc
        except TimeoutError as exc:
            raise OracleTimeout(f"Oracle request timed out after {request.request_timeout}s") from exc
        except OSError as exc:
            raise OracleCallFailure(f"Oracle request failed: {exc}") from exc

        if request.stream:
            return

        try:
            response_payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise OracleMalformedResponse("Oracle returned an invalid JSON envelope") from exc
        yield OracleClient._extract_content(response_payload)

    @staticmethod
    def _parse_event(raw_line: bytes) -> object:
        """Return the text delta carried by one server-sent event line."""
        line = raw_line.decode("utf-8", errors="replace").strip()
        if not line.startswith("data:"):
            return ""
        data = line[len("data:"):].strip()
        if data == "[DONE]":
            return _DONE
        try:
            event = json.loads(data)
        except json.JSONDecodeError:
            get_logger("oracle.client").warning("Skipping malformed stream event: %.80s", data)
            return ""
        if not isinstance(event, dict):
            return ""
        choices = event.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            return ""
        delta = choices[0].get("delta")
        if isinstance(delta, dict) and isinstance(delta.get("content"), str):
            return delta["content"]
        return ""

    @staticmethod
    def _build_messages(system: str | None, prompt: str) -> list[dict[str, str]]:
        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return messages

    @staticmethod
    def _extract_content(payload: object) -> str:
        if not isinstance(payload, dict):
            return ""
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            return ""
        first = choices[0]
        if not isinstance(first, dict):
            return ""
        message = first.get("message")
        if isinstance(message, dict):
            content = message.get("content")
            if isinstance(content, str):
                return content
        text = first.get("text")
        if isinstance(text, str):
            return text
        return ""


__all__ = ["OracleClient", "OracleRequest", "Transport"]
