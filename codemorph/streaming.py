"""Drains an incremental translation stream into observable per-file states."""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import Callable, Iterable, Optional

from .errors import RunCancelled, StreamInterrupted
from .logging import get_logger
from .models import FileStatus, ProjectFile

FilePublisher = Callable[[ProjectFile], None]


class CancellationToken:
    """Cooperative cancellation flag checked at every suspension point."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelled("Migration cancelled")


class StreamingConsumer:
    """Appends streamed chunks to a running buffer and publishes each partial state.

    Every non-empty chunk produces one ``translating`` publication carrying the
    buffer so far; normal exhaustion produces one final ``completed``
    publication. If the stream raises, is cancelled, or grows past
    ``max_buffer_chars``, the file is published once with ``status == error``
    and the partial buffer, and the failure is re-raised.
    """

    def __init__(self, *, max_buffer_chars: Optional[int] = None) -> None:
        self.max_buffer_chars = max_buffer_chars
        self.logger = get_logger("streaming")

    def consume(
        self,
        file: ProjectFile,
        chunks: Iterable[str],
        publish: FilePublisher,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> ProjectFile:
        buffer = ""
        try:
            for chunk in chunks:
                if chunk:
                    if (
                        self.max_buffer_chars is not None
                        and len(buffer) + len(chunk) > self.max_buffer_chars
                    ):
                        raise StreamInterrupted(
                            f"Translation of {file.path} exceeded {self.max_buffer_chars} characters"
                        )
                    buffer += chunk
                    publish(
                        replace(file, translated_content=buffer, status=FileStatus.TRANSLATING)
                    )
                if cancel_token is not None:
                    cancel_token.raise_if_cancelled()
        except Exception as exc:
            failed = replace(file, translated_content=buffer or None, status=FileStatus.ERROR)
            publish(failed)
            self.logger.debug(
                "Stream for %s stopped after %d characters: %s", file.path, len(buffer), exc
            )
            if isinstance(exc, RunCancelled):
                raise
            if isinstance(exc, StreamInterrupted):
                exc.partial = failed
                raise
            raise StreamInterrupted(
                f"Translation stream for {file.path} failed: {exc}", partial=failed
            ) from exc

        completed = replace(file, translated_content=buffer, status=FileStatus.COMPLETED)
        publish(completed)
        return completed


__all__ = ["CancellationToken", "FilePublisher", "StreamingConsumer"]
