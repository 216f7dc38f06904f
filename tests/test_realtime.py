import json

import pytest

from livequiz.core.clock import to_epoch_ms
from livequiz.realtime.events import (
    LEADERBOARD_UPDATE, PARTICIPANT_COMPLETED, PARTICIPANT_PROGRESS, PARTICIPANT_STARTED,
    ParticipantProgressed, ParticipantStarted, SessionCompleted,
)
from livequiz.realtime.hub import ConnectionHub
from livequiz.realtime.notifier import Notifier
from livequiz.services.quiz_engine import QuizEngine


class FakeWebSocket:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.accepted = False
        self.closed = False
        self.sent = []

    async def accept(self):
        self.accepted = True

    async def send_text(self, text):
        if self.fail:
            raise RuntimeError("socket gone")
        self.sent.append(json.loads(text))

    async def close(self, code=1000):
        self.closed = True


class RecordingHub:
    def __init__(self):
        self.messages = []

    async def broadcast(self, message_type, data):
        self.messages.append((message_type, data))
        return 1


# ---------- hub ----------

async def test_hub_broadcasts_to_every_socket():
    hub = ConnectionHub()
    a, b = FakeWebSocket(), FakeWebSocket()
    await hub.connect(a)
    await hub.connect(b)

    delivered = await hub.broadcast("LeaderboardUpdate", {"difficulty": "noob", "entries": []})

    assert delivered == 2
    assert a.accepted and b.accepted
    assert a.sent == b.sent == [{"type": "LeaderboardUpdate", "data": {"difficulty": "noob", "entries": []}}]


async def test_hub_drops_dead_sockets():
    hub = ConnectionHub()
    alive, dead = FakeWebSocket(), FakeWebSocket(fail=True)
    await hub.connect(alive)
    await hub.connect(dead)

    assert await hub.broadcast("ping", {}) == 1
    assert len(hub) == 1
    assert await hub.broadcast("ping", {}) == 1


async def test_hub_disconnect_and_close_all():
    hub = ConnectionHub()
    a, b = FakeWebSocket(), FakeWebSocket()
    await hub.connect(a)
    await hub.connect(b)
    await hub.disconnect(a)
    assert await hub.broadcast("x", {}) == 1

    await hub.close_all()
    assert b.closed
    assert len(hub) == 0
    assert await hub.broadcast("x", {}) == 0


# ---------- notifier ----------

@pytest.fixture
def hub():
    return RecordingHub()


@pytest.fixture
async def notifier(hub, session_factory, clock):
    n = Notifier(hub, session_factory, leaderboard_size=10, clock=clock)
    await n.start()
    yield n
    await n.stop()


@pytest.fixture
def wired_engine(notifier, clock):
    return QuizEngine(publisher=notifier.publish, clock=clock)


async def test_started_event_renders_ongoing_snapshot(seeded, notifier, wired_engine, hub, db, clock):
    sid = wired_engine.start_session(db, "Ada", "+4711111111", "noob", "https://example.com/a.png").session_id
    await notifier.drain()

    assert len(hub.messages) == 1
    message_type, data = hub.messages[0]
    assert message_type == PARTICIPANT_STARTED
    assert data["sessionId"] == sid
    assert data["name"] == "Ada"
    assert data["avatarUrl"] == "https://example.com/a.png"
    assert data["difficulty"] == "noob"
    assert data["currentQuestionIndex"] == 0
    assert data["totalQuestions"] == 3
    assert data["totalPenaltyMs"] == 0
    assert data["completed"] is False
    assert data["lastActivityMs"] == to_epoch_ms(clock())


async def test_progress_event_after_wrong_answer(seeded, notifier, wired_engine, hub, db):
    sid = wired_engine.start_session(db, "Ada", "+4711111111", "noob").session_id
    wired_engine.get_current(db, sid)
    wired_engine.submit_answer(db, sid, "nope")
    await notifier.drain()

    types = [t for t, _ in hub.messages]
    assert types == [PARTICIPANT_STARTED, PARTICIPANT_PROGRESS]
    assert hub.messages[-1][1]["totalPenaltyMs"] == 10_000


async def test_completion_renders_ranking_and_leaderboard(seeded, notifier, wired_engine, hub, db, clock):
    sid = wired_engine.start_session(db, "Ada", "+4711111111", "nerd").session_id
    for answer in ("Central Processing Unit", "Merge sort"):
        wired_engine.get_current(db, sid)
        clock.advance(seconds=1)
        wired_engine.submit_answer(db, sid, answer)
    await notifier.drain()

    types = [t for t, _ in hub.messages]
    assert types[-2:] == [PARTICIPANT_COMPLETED, LEADERBOARD_UPDATE]
    completion = hub.messages[-2][1]
    assert completion == {
        "sessionId": sid,
        "name": "Ada",
        "avatarUrl": "",
        "difficulty": "nerd",
        "totalMs": 2000,
        "ranking": 1,
        "isTopThree": True,
        "isOnLeaderboard": True,
    }
    board = hub.messages[-1][1]
    assert board == {"difficulty": "nerd", "entries": [{"name": "Ada", "totalMs": 2000, "avatarUrl": ""}]}


async def test_unknown_session_is_skipped(seeded, notifier, hub):
    notifier.publish(ParticipantProgressed("missing"))
    notifier.publish(SessionCompleted("missing", 100))
    await notifier.drain()
    assert hub.messages == []


async def test_render_failure_does_not_stop_worker(seeded, notifier, wired_engine, hub, db, monkeypatch):
    real_render = notifier.render
    calls = []

    def flaky(event):
        calls.append(event)
        if len(calls) == 1:
            raise RuntimeError("database hiccup")
        return real_render(event)

    monkeypatch.setattr(notifier, "render", flaky)
    wired_engine.start_session(db, "Ada", "+4711111111", "noob")
    wired_engine.start_session(db, "Grace", "+4722222222", "noob")
    await notifier.drain()

    assert len(calls) == 2
    assert [data["name"] for _, data in hub.messages] == ["Grace"]
    assert notifier.running


async def test_publish_without_running_loop_is_dropped(hub, session_factory):
    idle = Notifier(hub, session_factory)
    idle.publish(ParticipantStarted("anything"))
    assert not idle.running
    assert hub.messages == []
