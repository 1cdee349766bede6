"""Keyed locks that serialize read-modify-write cycles on one aggregate.

Protean checks an aggregate's version before writing, but the read and the
write are separate statements, so two writers can both pass the check. A
lock held around the whole command closes that window.

``ProcessLocks`` covers every caller in one process and is all the memory
provider needs, since its data never leaves the process. With PostgreSQL,
``AdvisoryLocks`` adds a session-level advisory lock so writers in other
processes (the web app and the channel worker) queue on the same key.
"""

import threading
from contextlib import contextmanager
from weakref import WeakValueDictionary

import structlog
from protean.domain import Domain
from sqlalchemy import create_engine, text

logger = structlog.get_logger(__name__)


class ProcessLocks:
    def __init__(self):
        self._locks: WeakValueDictionary[str, threading.Lock] = WeakValueDictionary()
        self._guard = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: str):
        lock = self._lock_for(key)
        with lock:
            yield


class AdvisoryLocks:
    """PostgreSQL advisory locks, layered over the in-process locks.

    The in-process lock is taken first so one process never holds more than
    one database connection per key.
    """

    def __init__(self, engine, process_locks: ProcessLocks):
        self.engine = engine
        self.process_locks = process_locks

    @contextmanager
    def hold(self, key: str):
        with self.process_locks.hold(key), self.engine.connect() as connection:
            connection.execute(text("SELECT pg_advisory_lock(hashtextextended(:key, 0))"), {"key": key})
            try:
                yield
            finally:
                connection.execute(text("SELECT pg_advisory_unlock(hashtextextended(:key, 0))"), {"key": key})
                connection.commit()


# Shared by every service object in the process
process_locks = ProcessLocks()


def locks_for(domain: Domain):
    """Pick the lock flavour matching the domain's default database.

    Must be called inside the domain's context.
    """
    provider = dict(domain.providers.items()).get("default")
    if provider is not None and provider.conn_info["provider"] == "postgresql":
        logger.info("advisory_locks_enabled", domain=domain.name)
        return AdvisoryLocks(create_engine(provider.conn_info["database_uri"]), process_locks)
    return process_locks
