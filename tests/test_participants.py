import csv
import io
import logging

from livequiz.services import participants, ranking


def _rows(text):
    return list(csv.DictReader(io.StringIO(text)))


def test_export_positions_restart_per_difficulty(play, db):
    play("Ada", "+4711111111", "noob", seconds=1)
    play("Lin", "+4722222222", "noob", seconds=2)
    play("Grace", "+4733333333", "nerd", seconds=1)

    rows = _rows(participants.export_leaderboard_csv(db))

    assert [(r["Name"], r["Difficulty"], r["Position"]) for r in rows] == [
        ("Grace", "nerd", "1"),
        ("Ada", "noob", "1"),
        ("Lin", "noob", "2"),
    ]


def test_export_logs_when_rows_are_cut(play, db, monkeypatch, caplog):
    play("Ada", "+4711111111", seconds=1)
    play("Lin", "+4722222222", seconds=2)
    monkeypatch.setattr(ranking, "ADMIN_MAX_LIMIT", 1)

    with caplog.at_level(logging.WARNING, logger="livequiz.services.participants"):
        rows = _rows(participants.export_leaderboard_csv(db, "noob"))

    assert [r["Name"] for r in rows] == ["Ada"]
    assert "truncated to 1 of 2 rows" in caplog.text


def test_export_within_limit_does_not_warn(play, db, caplog):
    play("Ada", "+4711111111")
    with caplog.at_level(logging.WARNING, logger="livequiz.services.participants"):
        participants.export_leaderboard_csv(db)
    assert "truncated" not in caplog.text


def test_count_completed(play, quiz_engine, db):
    play("Ada", "+4711111111", "noob")
    play("Grace", "+4722222222", "nerd")
    quiz_engine.start_session(db, "Playing", "+4733333333", "noob")

    assert ranking.count_completed(db) == 2
    assert ranking.count_completed(db, "noob") == 1
    assert ranking.count_completed(db, "expert") == 0
