from dataclasses import dataclass
import logging
from pathlib import Path

from rich.logging import RichHandler

from ebookledger import BookRegistry, CallContext, MemEngine, Settings, SqliteEngine
from ebookledger.console import setup_logging
from ebookledger.current import Current
from ebookledger.settings import logger


def test_settings_from_env(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("EBOOKLEDGER_DATABASE_MODE", "sqlite")
    monkeypatch.setenv("EBOOKLEDGER_LOCAL_DATA_PATH", str(tmp_path / "data"))
    monkeypatch.setenv("EBOOKLEDGER_CASCADE_DELETE", "true")
    monkeypatch.setenv("EBOOKLEDGER_ADMIN_PRINCIPAL", "root")
    s = Settings()
    assert s.database_mode == "sqlite"
    assert s.cascade_delete
    assert not s.strict_maintenance
    assert s.db_path == tmp_path / "data" / "ebookledger.db"

    registry = BookRegistry.of_settings(s)
    assert isinstance(registry.engine, SqliteEngine)
    assert registry.cascade_delete
    assert registry.check_admin_access(CallContext("root"))
    i = registry.upload(CallContext("alice", 1), "Dune", 1, "s", ["c"])
    registry.close()
    assert s.db_path.exists()

    reopened = BookRegistry.of_settings(s)
    assert reopened.get_owner(i) == "alice"
    assert reopened.total_records == 1
    reopened.close()


def test_current_registry(monkeypatch):
    monkeypatch.delenv("EBOOKLEDGER_DATABASE_MODE", raising=False)
    with Settings(database_mode="memory", system_principal="vault"):
        with BookRegistry.default() as registry:
            assert BookRegistry.current() is registry
            assert isinstance(registry.engine, MemEngine)
            assert registry.system_principal == "vault"
        other = BookRegistry()
        with other:
            assert BookRegistry.current() is other


def test_setup_logging_once():
    setup_logging("debug")
    h = setup_logging("info")
    assert logger.level == logging.INFO
    assert sum(isinstance(x, RichHandler) for x in logger.handlers) == 1
    assert h.level == logging.INFO
    setup_logging("not-a-level")
    assert logger.level == logging.WARNING


def test_current_nesting():
    @dataclass
    class Shelf(Current):
        name: str

        @classmethod
        def default(cls):
            return cls(name="default")

    assert Shelf.current().name == "default"
    a, b = Shelf("a"), Shelf("b")
    with a:
        assert Shelf.current() is a
        with b:
            assert Shelf.current() is b
            with a:
                assert Shelf.current() is a
            assert Shelf.current() is b
        assert Shelf.current() is a
    assert Shelf.current().name == "default"
    assert Shelf.CURRENT is not Settings.CURRENT
