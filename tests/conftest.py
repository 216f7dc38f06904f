import random

import pytest
from fastapi.testclient import TestClient

from livequiz.core.config import Settings
from livequiz.core.database import build_engine, build_session_factory, init_db, transaction
from livequiz.main import create_app
from livequiz.services.quiz_engine import QuizEngine
from livequiz.services.seeder import add_quiz
from tests.helpers import ADMIN_PASSWORD, NERD, NOOB, FakeClock, current_answer


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        ENVIRONMENT="testing",
        DATABASE_URL="sqlite://",
        SECRET_KEY="test-secret-key",
        ADMIN_PASSWORD=ADMIN_PASSWORD,
        SEED_ON_STARTUP=False,
        SESSION_COOKIE_SECURE=True,
        CORS_ORIGINS="https://quiz.example.com",
    )


@pytest.fixture
def engine(tmp_path):
    # file-backed so the app's worker threads each get their own connection
    eng = build_engine(f"sqlite:///{tmp_path / 'quiz.db'}")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def seeded(session_factory):
    with session_factory() as session, transaction(session):
        add_quiz(session, "Noob Quiz", "noob", NOOB)
        add_quiz(session, "Nerd Quiz", "nerd", NERD)
        add_quiz(session, "Empty Quiz", "empty", [])


@pytest.fixture
def events():
    return []


@pytest.fixture
def quiz_engine(clock, events):
    return QuizEngine(publisher=events.append, clock=clock, rng=random.Random(7))


@pytest.fixture
def play(seeded, quiz_engine, db, clock):
    """Run a whole session: every question answered correctly after `seconds`."""

    def _play(name, phone, difficulty="noob", seconds=1, wrong_on_first=0):
        result = quiz_engine.start_session(db, name, phone, difficulty)
        assert result.success, result.message
        session_id = result.session_id
        first = True
        while not quiz_engine.get_current(db, session_id).done:
            clock.advance(seconds=seconds)
            if first:
                for _ in range(wrong_on_first):
                    quiz_engine.submit_answer(db, session_id, "definitely wrong")
                first = False
            outcome = quiz_engine.submit_answer(db, session_id, current_answer(db, session_id))
            assert outcome.correct
        return session_id

    return _play


@pytest.fixture
def app(settings, engine, clock, seeded):
    return create_app(settings=settings, db_engine=engine, clock=clock, rng=random.Random(7), seed=False)


@pytest.fixture
def client(app):
    # https so the Secure session cookie is sent back
    with TestClient(app, base_url="https://testserver") as c:
        yield c


@pytest.fixture
def admin_headers(client):
    r = client.post("/api/admin/login", json={"password": ADMIN_PASSWORD})
    assert r.status_code == 200
    return {"Authorization": f"Bearer {r.json()['token']}"}
