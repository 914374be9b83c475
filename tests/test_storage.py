"""Tests for the SQLAlchemy document gateway."""

from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from storage import DocumentStore


def test_read_all_of_unknown_owner_is_empty(documents):
    assert documents.read_all("nobody") == {}


def test_write_then_read(documents):
    assert documents.write("ana", {"habits": "[]", "data": "{}"}) is True
    assert documents.read_all("ana") == {"habits": "[]", "data": "{}"}


def test_write_updates_existing_rows(documents):
    documents.write("ana", {"habits": "[]"})
    documents.write("ana", {"habits": '[{"id": "1"}]'})
    assert documents.read_all("ana") == {"habits": '[{"id": "1"}]'}


def test_owners_are_isolated(documents):
    documents.write("ana", {"settings": '{"mode": "ZEN"}'})
    documents.write("luis", {"settings": '{"mode": "HERO"}'})
    assert documents.read_all("ana") == {"settings": '{"mode": "ZEN"}'}


def test_corrupt_payload_is_stored_as_is(documents):
    documents.write("ana", {"data": "}{ not json"})
    assert documents.read_all("ana")["data"] == "}{ not json"


def test_database_error_returns_false(session_factory, caplog):
    store = DocumentStore(session_factory)
    with patch("sqlalchemy.orm.Session.commit", side_effect=OperationalError("INSERT", {}, Exception("locked"))):
        assert store.write("ana", {"habits": "[]"}) is False
    assert store.read_all("ana") == {}
    assert "Error de BD" in caplog.text
