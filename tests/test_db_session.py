# tests/test_db_session.py
"""Tests for engine options and per-event session handling."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from sqlalchemy.pool import StaticPool

from beefunded.db.session import engine_options, session_scope


def test_in_memory_sqlite_shares_one_connection_across_threads() -> None:
    options = engine_options("sqlite://")

    assert options["connect_args"] == {"check_same_thread": False}
    assert options["poolclass"] is StaticPool


def test_file_sqlite_uses_default_pool() -> None:
    options = engine_options("sqlite:///./beefunded.db")

    assert options == {"connect_args": {"check_same_thread": False}}


def test_server_databases_ping_pooled_connections() -> None:
    assert engine_options("postgresql+psycopg://user:pw@db/beefunded") == {"pool_pre_ping": True}


def test_session_scope_closes_session() -> None:
    session = MagicMock()

    with session_scope(lambda: session) as db:
        assert db is session

    session.close.assert_called_once()
    session.rollback.assert_not_called()


def test_session_scope_rolls_back_on_error() -> None:
    session = MagicMock()

    with pytest.raises(RuntimeError):
        with session_scope(lambda: session):
            raise RuntimeError("boom")

    session.rollback.assert_called_once()
    session.close.assert_called_once()
