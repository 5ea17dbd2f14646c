"""Tests for the agent activity log."""

from __future__ import annotations

import threading
from typing import List

from codemorph.events import EventLog
from codemorph.models import AgentMessage, AgentRole, MessageType


def test_append_records_ordered_messages() -> None:
    ticks = iter([1_000, 1_005, 1_010])
    log = EventLog(clock=lambda: next(ticks))

    log.info(AgentRole.EXPLORER, "first")
    log.success(AgentRole.ARCHITECT, "second")
    log.error(AgentRole.MIGRATOR, "third")

    messages = log.messages
    assert [message.text for message in messages] == ["first", "second", "third"]
    assert [message.type for message in messages] == [
        MessageType.INFO,
        MessageType.SUCCESS,
        MessageType.ERROR,
    ]
    assert [message.timestamp for message in messages] == [1_000, 1_005, 1_010]
    assert len({message.id for message in messages}) == 3
    assert all(len(message.id) == 9 for message in messages)
    assert len(log) == 3


def test_timestamps_never_go_backwards() -> None:
    ticks = iter([2_000, 1_500, 2_100])
    log = EventLog(clock=lambda: next(ticks))

    for text in ("a", "b", "c"):
        log.info(AgentRole.REVIEWER, text)

    assert [message.timestamp for message in log] == [2_000, 2_000, 2_100]


def test_filter_by_role_and_type() -> None:
    log = EventLog()
    log.info(AgentRole.EXPLORER, "looking")
    log.warning(AgentRole.EXPLORER, "branch missing")
    log.warning(AgentRole.REVIEWER, "nothing to package")

    assert [m.text for m in log.filter(role=AgentRole.EXPLORER)] == ["looking", "branch missing"]
    assert [m.text for m in log.filter(type=MessageType.WARNING)] == [
        "branch missing",
        "nothing to package",
    ]
    assert [
        m.text for m in log.filter(role=AgentRole.REVIEWER, type=MessageType.WARNING)
    ] == ["nothing to package"]


def test_subscribe_and_unsubscribe() -> None:
    log = EventLog()
    received: List[AgentMessage] = []
    unsubscribe = log.subscribe(received.append)

    first = log.info(AgentRole.EXPLORER, "one")
    unsubscribe()
    log.info(AgentRole.EXPLORER, "two")

    assert received == [first]


def test_messages_snapshot_is_immutable() -> None:
    log = EventLog()
    log.info(AgentRole.EXPLORER, "one")

    snapshot = log.messages
    log.info(AgentRole.EXPLORER, "two")

    assert isinstance(snapshot, tuple)
    assert len(snapshot) == 1
    assert len(log.messages) == 2


def test_concurrent_appends_are_all_recorded() -> None:
    log = EventLog()

    def worker(index: int) -> None:
        for step in range(50):
            log.info(AgentRole.MIGRATOR, f"{index}-{step}")

    threads = [threading.Thread(target=worker, args=(index,)) for index in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    messages = log.messages
    assert len(messages) == 200
    timestamps = [message.timestamp for message in messages]
    assert timestamps == sorted(timestamps)
