from abc import ABC
from contextlib import contextmanager
from dataclasses import MISSING
import logging
from sqlite3 import Connection
import textwrap
from typing import (
    Any,
    ContextManager,
    Generic,
    Iterable,
    Iterator,
    Literal,
    Optional,
    Type,
    TypeVar,
    Union,
)

from pydantic import TypeAdapter

K = TypeVar("K")
V = TypeVar("V")

logger = logging.getLogger("ebookledger.sqlite")


class Table(Generic[K, V]):
    """A key-value table."""

    name: str

    def get(self, key: K, default: Union[V, Literal[MISSING]] = MISSING) -> V:
        """Returns the value at key.

        Raises:
            KeyError: if there is no value and no default was given.
        """
        raise NotImplementedError()

    def set(self, key: K, value: V):
        """Insert or replace the value at key."""
        raise NotImplementedError()

    def insert(self, key: K, value: V) -> bool:
        """Insert the value only if the key is absent. Returns true if it was inserted."""
        raise NotImplementedError()

    def delete(self, key: K) -> bool:
        """Remove the key. Returns true if there was something to remove."""
        raise NotImplementedError()

    def items(self) -> Iterable[tuple[K, V]]:
        raise NotImplementedError()

    def keys(self) -> Iterable[K]:
        for k, _ in self.items():
            yield k

    def clear(self):
        raise NotImplementedError()

    def __contains__(self, key: K) -> bool:
        raise NotImplementedError()

    def __len__(self) -> int:
        raise NotImplementedError()


class Engine(ABC):
    """Owns a set of tables and the transactions over them."""

    mode: Literal["memory", "sqlite"]

    def table(self, name: str, K: Type[K], V: Type[V]) -> Table[K, V]:
        raise NotImplementedError()

    def transaction(self) -> ContextManager[Any]:
        """All writes to this engine's tables made in the context are kept or discarded together.

        The writes are discarded if the context exits with an exception."""
        raise NotImplementedError()

    def close(self):
        pass


class MemTable(Table[K, V]):
    data: dict

    def __init__(self, name: str, engine: "MemEngine"):
        self.name = name
        self.engine = engine
        self.data = {}

    def _write(self, key, value):
        # journal the previous value so the engine can undo this write.
        self.engine.journal(self, key, self.data.get(key, MISSING))
        if value is MISSING:
            del self.data[key]
        else:
            self.data[key] = value

    def get(self, key, default=MISSING):
        if key in self.data:
            return self.data[key]
        if default is not MISSING:
            return default
        raise KeyError(key)

    def set(self, key, value):
        self._write(key, value)

    def insert(self, key, value):
        if key in self.data:
            return False
        self._write(key, value)
        return True

    def delete(self, key):
        if key not in self.data:
            return False
        self._write(key, MISSING)
        return True

    def items(self):
        return list(self.data.items())

    def clear(self):
        for key in list(self.data):
            self._write(key, MISSING)

    def __contains__(self, key):
        return key in self.data

    def __len__(self):
        return len(self.data)


class MemEngine(Engine):
    """Tables that live in a python dictionary. Values must be immutable.

    Inside a transaction every write records the value it replaced;
    on failure the writes are undone in reverse order."""

    mode = "memory"
    tables: dict[str, MemTable]
    undo: Optional[list[tuple[MemTable, Any, Any]]]

    def __init__(self):
        self.tables = {}
        self.undo = None

    def table(self, name, K, V):
        if name not in self.tables:
            self.tables[name] = MemTable(name, self)
        return self.tables[name]

    def journal(self, table: MemTable, key, previous):
        if self.undo is not None:
            self.undo.append((table, key, previous))

    def rollback(self, undo: list[tuple[MemTable, Any, Any]]):
        for table, key, previous in reversed(undo):
            if previous is MISSING:
                table.data.pop(key, None)
            else:
                table.data[key] = previous

    @contextmanager
    def transaction(self):
        if self.undo is not None:
            # nested transactions are absorbed by the outermost one.
            yield self
            return
        undo = self.undo = []
        try:
            yield self
        except BaseException:
            self.rollback(undo)
            raise
        finally:
            self.undo = None


class SqliteEngine(Engine):
    mode = "sqlite"

    def __init__(self, connection: Connection):
        self.connection = connection
        self.depth = 0

    def execute(self, query: str, values: tuple[Any, ...] = ()):
        msg = textwrap.indent(str(query) + "\n" + str(values), " " * 4)
        logger.debug(f"SqliteEngine.execute:\n{msg}")
        return self.connection.execute(query, values)

    def table(self, name, K, V):
        return SqliteTable(self, name, K, V)

    @contextmanager
    def transaction(self):
        if self.depth > 0:
            yield self
            return
        self.depth += 1
        try:
            with self.connection:
                yield self
        finally:
            self.depth -= 1

    def close(self):
        self.connection.close()


class SqliteTable(Table[K, V]):
    """A table in sqlite with json-serialised keys and values."""

    def __init__(self, engine: SqliteEngine, name: str, K: Type[K], V: Type[V]):
        self.engine = engine
        self.name = name
        self.key_adapter = TypeAdapter(K)
        self.value_adapter = TypeAdapter(V)
        self.engine.execute(
            f"CREATE TABLE IF NOT EXISTS {self.name} (key TEXT PRIMARY KEY, value BLOB);"
        )

    def encode_key(self, key: K) -> str:
        return self.key_adapter.dump_json(key).decode()

    def decode_key(self, key: str) -> K:
        return self.key_adapter.validate_json(key)

    def encode(self, value: V) -> bytes:
        return self.value_adapter.dump_json(value)

    def decode(self, value: bytes) -> V:
        return self.value_adapter.validate_json(value)

    def get(self, key, default=MISSING):
        cur = self.engine.execute(
            f"SELECT value FROM {self.name} WHERE key=? ;", (self.encode_key(key),)
        )
        item = cur.fetchone()
        if item is None:
            if default is not MISSING:
                return default
            else:
                raise KeyError(key)
        return self.decode(item[0])

    def set(self, key, value):
        self.engine.execute(
            f"INSERT OR REPLACE INTO {self.name} (key, value) VALUES (?,?);",
            (self.encode_key(key), self.encode(value)),
        )

    def insert(self, key, value):
        cur = self.engine.execute(
            f"INSERT OR IGNORE INTO {self.name} (key, value) VALUES (?,?);",
            (self.encode_key(key), self.encode(value)),
        )
        return cur.rowcount == 1

    def delete(self, key):
        cur = self.engine.execute(
            f"DELETE FROM {self.name} WHERE key=? ;", (self.encode_key(key),)
        )
        return cur.rowcount > 0

    def items(self) -> Iterator[tuple[K, V]]:
        cur = self.engine.execute(f"SELECT key, value FROM {self.name};")
        for key, v in cur.fetchall():
            yield self.decode_key(key), self.decode(v)

    def keys(self) -> Iterator[K]:
        for (x,) in self.engine.execute(f"SELECT key FROM {self.name};").fetchall():
            yield self.decode_key(x)

    def clear(self):
        self.engine.execute(f"DELETE FROM {self.name};")

    def __contains__(self, key) -> bool:
        return (
            self.engine.execute(
                f"SELECT 1 FROM {self.name} WHERE key=? ;", (self.encode_key(key),)
            ).fetchone()
            is not None
        )

    def __len__(self):
        (n,) = self.engine.execute(f"SELECT COUNT(*) FROM {self.name};").fetchone()
        return n
