from livequiz.core.database import build_engine, build_session_factory, init_db
from livequiz.models.orm import Question, Quiz
from livequiz.services.seeder import NERD_QUESTIONS, NOOB_QUESTIONS, seed_quizzes
from tests.helpers import start


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "healthy", "version": "1.0.0", "environment": "testing"}


def test_cors_allows_configured_origin(client):
    r = client.options(
        "/api/session/start",
        headers={"Origin": "https://quiz.example.com", "Access-Control-Request-Method": "POST"},
    )
    assert r.headers["access-control-allow-origin"] == "https://quiz.example.com"
    assert r.headers["access-control-allow-credentials"] == "true"


def test_websocket_ping(client):
    with client.websocket_connect("/ws/quiz") as ws:
        ws.send_text("ping")
        assert ws.receive_json() == {"type": "pong"}


def test_websocket_receives_session_events(client):
    with client.websocket_connect("/ws/quiz") as ws:
        ws.send_text("ping")
        ws.receive_json()

        start(client, name="Ada", phone="+4711111111")
        message = ws.receive_json()

    assert message["type"] == "ParticipantStarted"
    assert message["data"]["name"] == "Ada"
    assert message["data"]["totalQuestions"] == 3


def test_seed_is_idempotent():
    engine = build_engine("sqlite://")
    init_db(engine)
    factory = build_session_factory(engine)
    with factory() as db:
        assert seed_quizzes(db) is True
        assert seed_quizzes(db) is False
        quizzes = {quiz.difficulty: quiz for quiz in db.query(Quiz).all()}
        assert set(quizzes) == {"noob", "nerd"}
        assert [qq.sequence for qq in quizzes["noob"].quiz_questions] == list(range(1, len(NOOB_QUESTIONS) + 1))
        assert len(quizzes["nerd"].quiz_questions) == len(NERD_QUESTIONS)
        assert db.query(Question).count() == len(NOOB_QUESTIONS) + len(NERD_QUESTIONS)
        code_fix = [qq.question for qq in quizzes["nerd"].quiz_questions if qq.question.type.value == "CodeFix"]
        assert len(code_fix) == 1
        assert set(code_fix[0].payload) == {"initialCode", "testCode"}
    engine.dispose()


def test_memory_engine_enforces_foreign_keys():
    engine = build_engine("sqlite://")
    with engine.connect() as conn:
        assert conn.exec_driver_sql("PRAGMA foreign_keys").scalar() == 1
    engine.dispose()
