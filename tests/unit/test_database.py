import pytest
from sqlalchemy import text

from invoicelocks.core.database import get_db


def test_get_db_rolls_back_and_closes_on_error() -> None:
    sessions = get_db()
    db = next(sessions)
    db.execute(text("SELECT 1"))
    assert db.in_transaction()

    with pytest.raises(RuntimeError):
        sessions.throw(RuntimeError("request failed"))

    assert not db.in_transaction()


def test_get_db_closes_session_after_request() -> None:
    sessions = get_db()
    db = next(sessions)
    db.execute(text("SELECT 1"))

    with pytest.raises(StopIteration):
        next(sessions)

    assert not db.in_transaction()
