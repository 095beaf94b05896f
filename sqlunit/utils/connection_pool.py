import abc
import logging
import typing as t
from threading import Lock, get_ident

logger = logging.getLogger(__name__)


class ConnectionPool(abc.ABC):
    @abc.abstractmethod
    def get_cursor(self) -> t.Any:
        """Returns cached cursor instance.

        Automatically creates a new instance if one is not available.

        Returns:
            A cursor instance.
        """

    @abc.abstractmethod
    def get(self) -> t.Any:
        """Returns cached connection instance.

        Automatically opens a new connection if one is not available.

        Returns:
            A connection instance.
        """

    @abc.abstractmethod
    def close_cursor(self) -> None:
        """Closes the current cursor instance if exists."""

    @abc.abstractmethod
    def interrupt_all(self) -> None:
        """Interrupts the queries currently running on any of the pool's cursors."""

    @abc.abstractmethod
    def close_all(self) -> None:
        """Closes all cached cursors and connections."""


class ThreadLocalSharedConnectionPool(ConnectionPool):
    """Shares a single connection between threads, giving each thread its own cursor.

    The cursor of a thread is the slot that a concurrently running test holds while it
    executes. Releasing the slot closes the cursor.
    """

    def __init__(self, connection_factory: t.Callable[[], t.Any]):
        self._connection_factory = connection_factory
        self._connection: t.Optional[t.Any] = None
        self._thread_cursors: t.Dict[t.Hashable, t.Any] = {}
        self._connection_lock = Lock()
        self._thread_cursors_lock = Lock()

    def get_cursor(self) -> t.Any:
        thread_id = get_ident()
        with self._thread_cursors_lock:
            if thread_id not in self._thread_cursors:
                self._thread_cursors[thread_id] = self.get().cursor()
            return self._thread_cursors[thread_id]

    def get(self) -> t.Any:
        with self._connection_lock:
            if self._connection is None:
                self._connection = self._connection_factory()
            return self._connection

    def close_cursor(self) -> None:
        thread_id = get_ident()
        with self._thread_cursors_lock:
            if thread_id in self._thread_cursors:
                _try_close(self._thread_cursors.pop(thread_id), "cursor")

    def interrupt_all(self) -> None:
        with self._thread_cursors_lock:
            cursors = list(self._thread_cursors.values())

        for cursor in cursors:
            if hasattr(cursor, "interrupt"):
                try:
                    cursor.interrupt()
                except Exception:
                    logger.exception("Failed to interrupt cursor")

    def close_all(self) -> None:
        with self._thread_cursors_lock, self._connection_lock:
            for cursor in self._thread_cursors.values():
                _try_close(cursor, "cursor")
            self._thread_cursors.clear()
            _try_close(self._connection, "connection")
            self._connection = None


class SingletonConnectionPool(ConnectionPool):
    def __init__(self, connection_factory: t.Callable[[], t.Any]):
        self._connection_factory = connection_factory
        self._connection: t.Optional[t.Any] = None
        self._cursor: t.Optional[t.Any] = None

    def get_cursor(self) -> t.Any:
        if not self._cursor:
            self._cursor = self.get().cursor()
        return self._cursor

    def get(self) -> t.Any:
        if not self._connection:
            self._connection = self._connection_factory()
        return self._connection

    def close_cursor(self) -> None:
        _try_close(self._cursor, "cursor")
        self._cursor = None

    def interrupt_all(self) -> None:
        if self._cursor is not None and hasattr(self._cursor, "interrupt"):
            self._cursor.interrupt()

    def close_all(self) -> None:
        _try_close(self._connection, "connection")
        self._connection = None
        self._cursor = None


def create_connection_pool(
    connection_factory: t.Callable[[], t.Any], multithreaded: bool
) -> ConnectionPool:
    return (
        ThreadLocalSharedConnectionPool(connection_factory)
        if multithreaded
        else SingletonConnectionPool(connection_factory)
    )


def _try_close(closeable: t.Any, kind: str) -> None:
    if closeable is None:
        return
    try:
        closeable.close()
    except Exception:
        logger.exception("Failed to close %s", kind)
