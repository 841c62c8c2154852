"""
Unit tests for the shared database session.

Everything runs on SQLite files; endpoint resolution is faked by patching
socket.getaddrinfo and connection failures by a custom engine factory.
"""

import socket
import threading
from dataclasses import replace

import pytest
from sqlalchemy.exc import OperationalError

from todoserver.db import session as session_module
from todoserver.db.session import DatabaseSession, default_engine_factory
from todoserver.errors import DatabaseConnectionError


def fake_getaddrinfo(*hosts: str):
    """getaddrinfo replacement returning the given IPs in order."""
    def getaddrinfo(host, port, *args, **kwargs):
        return [
            (socket.AF_INET, socket.SOCK_STREAM, 6, "", (ip, port))
            for ip in hosts
        ]
    return getaddrinfo


class RecordingFactory:
    """Engine factory that fails for some hosts and remembers every call."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.calls = []

    def __call__(self, config, host, port):
        self.calls.append(host)
        if host in self.failing:
            raise OperationalError("connect", {}, ConnectionRefusedError(f"refused by {host}"))
        return default_engine_factory(config, host, port)


class TestConnect:
    """Tests for ensure_connected and the endpoint sweep."""

    def test_first_connect(self, db_config):
        db = DatabaseSession(db_config)
        assert db.is_connected is False
        assert db.generation == 0

        db.ensure_connected()

        assert db.is_connected is True
        assert db.generation == 1
        assert db.dialect == "sqlite"
        db.close()

    def test_healthy_connection_is_reused(self, db):
        generation = db.generation
        db.ensure_connected()
        db.ensure_connected()
        assert db.generation == generation

    def test_reconnect_after_lost_link(self, db):
        generation = db.generation
        db._connection.close()

        db.ensure_connected()

        assert db.is_connected
        assert db.generation == generation + 1

    def test_endpoints_tried_in_resolver_order(self, db_config, monkeypatch):
        monkeypatch.setattr(
            session_module.socket, "getaddrinfo",
            fake_getaddrinfo("10.0.0.1", "10.0.0.2", "10.0.0.1", "10.0.0.3"),
        )
        factory = RecordingFactory(failing={"10.0.0.1"})
        db = DatabaseSession(db_config, engine_factory=factory)

        db.ensure_connected()

        # duplicates dropped, sweep stops at the first success
        assert factory.calls == ["10.0.0.1", "10.0.0.2"]
        assert db.is_connected
        db.close()

    def test_all_endpoints_fail(self, db_config, monkeypatch):
        monkeypatch.setattr(
            session_module.socket, "getaddrinfo",
            fake_getaddrinfo("10.0.0.1", "10.0.0.2"),
        )
        factory = RecordingFactory(failing={"10.0.0.1", "10.0.0.2"})
        db = DatabaseSession(db_config, engine_factory=factory)

        with pytest.raises(DatabaseConnectionError, match="refused by 10.0.0.2"):
            db.ensure_connected()

        assert factory.calls == ["10.0.0.1", "10.0.0.2"]
        assert db.is_connected is False
        assert db.generation == 0

    def test_failed_sweep_drops_old_connection(self, db, monkeypatch):
        db._connection.close()
        monkeypatch.setattr(db, "_engine_factory", RecordingFactory(failing={"127.0.0.1"}))

        with pytest.raises(DatabaseConnectionError):
            db.ensure_connected()

        assert db.is_connected is False
        assert db._statements == {}

    def test_recovers_on_next_call(self, db_config):
        factory = RecordingFactory(failing={"127.0.0.1"})
        db = DatabaseSession(db_config, engine_factory=factory)

        with pytest.raises(DatabaseConnectionError):
            db.ensure_connected()

        factory.failing.clear()
        db.ensure_connected()
        assert db.is_connected
        db.close()

    def test_unresolvable_host(self, db_config, monkeypatch):
        def getaddrinfo(*args, **kwargs):
            raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")

        monkeypatch.setattr(session_module.socket, "getaddrinfo", getaddrinfo)
        db = DatabaseSession(db_config)

        with pytest.raises(DatabaseConnectionError, match="cannot resolve"):
            db.ensure_connected()

    def test_connection_error_is_builtin_connection_error(self, db_config):
        db = DatabaseSession(db_config, engine_factory=RecordingFactory(failing={"127.0.0.1"}))
        with pytest.raises(ConnectionError):
            db.ensure_connected()


class TestStatements:
    """Tests for statement preparation and generations."""

    def test_prepared_on_connect(self, db):
        assert set(db._statements) == {"list", "insert", "update", "delete", "last_insert_id"}
        assert all(stmt.generation == db.generation for stmt in db._statements.values())

    def test_stale_statement_triggers_full_reprepare(self, db):
        db._statements["insert"] = replace(db._statements["insert"], generation=0)
        before = dict(db._statements)

        db.ensure_prepared()

        assert all(stmt.generation == db.generation for stmt in db._statements.values())
        # all five were replaced, not just the stale one
        assert all(db._statements[name] is not before[name] for name in before)

    def test_reconnect_reprepares(self, db):
        before = dict(db._statements)
        db._connection.close()

        with db.exclusive():
            assert all(stmt.generation == db.generation for stmt in db._statements.values())
            assert all(db._statements[name] is not before[name] for name in before)
            assert db.fetch_all("list") == []

    def test_ensure_prepared_requires_connection(self, db_config):
        with pytest.raises(DatabaseConnectionError, match="not connected"):
            DatabaseSession(db_config).ensure_prepared()

    def test_unknown_statement(self, db):
        with pytest.raises(KeyError):
            db.execute("drop_everything")


class TestQueries:
    """Tests for execute, fetch_all and scalar."""

    def test_insert_and_list(self, db):
        with db.exclusive():
            assert db.execute("insert", title="first") == 1
            first_id = db.scalar("last_insert_id")
            db.execute("insert", title="second")
            second_id = db.scalar("last_insert_id")

        rows = db.fetch_all("list")
        assert [row.id for row in rows] == [first_id, second_id]
        assert rows[0].title == "first"
        assert rows[0].done == 0

    def test_update_and_delete_rowcounts(self, db):
        with db.exclusive():
            db.execute("insert", title="x")
            todo_id = db.scalar("last_insert_id")

        assert db.execute("update", title="y", done=True, id=todo_id) == 1
        assert db.execute("delete", id=todo_id) == 1
        assert db.execute("delete", id=todo_id) == 0

    def test_probe(self, db):
        db.probe()

    def test_create_schema_is_idempotent(self, db):
        db.create_schema()
        db.create_schema()

    def test_close_is_idempotent(self, db):
        db.close()
        db.close()
        assert db.is_connected is False


class TestLocking:
    """The session lock serializes whole exclusive() blocks."""

    def test_exclusive_blocks_other_threads(self, db):
        entered = threading.Event()
        release = threading.Event()
        order = []

        def holder():
            with db.exclusive():
                entered.set()
                release.wait(timeout=5)
                order.append("holder")

        def waiter():
            with db.exclusive():
                order.append("waiter")

        t1 = threading.Thread(target=holder)
        t1.start()
        entered.wait(timeout=5)

        t2 = threading.Thread(target=waiter)
        t2.start()
        t2.join(timeout=0.2)
        assert t2.is_alive()

        release.set()
        t1.join(timeout=5)
        t2.join(timeout=5)
        assert order == ["holder", "waiter"]

    def test_concurrent_inserts_get_their_own_ids(self, db):
        ids = []
        ids_lock = threading.Lock()

        def insert(n):
            with db.exclusive():
                db.execute("insert", title=f"todo {n}")
                new_id = db.scalar("last_insert_id")
            with ids_lock:
                ids.append(new_id)

        threads = [threading.Thread(target=insert, args=(n,)) for n in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert len(set(ids)) == 20
        assert sorted(row.id for row in db.fetch_all("list")) == sorted(ids)
