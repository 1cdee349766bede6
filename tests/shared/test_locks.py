"""Tests for per-key locks around aggregate read-modify-write cycles."""

import threading
import time
from unittest.mock import MagicMock

import pytest
from shared.locks import AdvisoryLocks, ProcessLocks, locks_for, process_locks


class TestProcessLocks:
    def test_same_key_is_serialized(self):
        locks = ProcessLocks()
        inside = []
        overlaps = []

        def worker():
            with locks.hold("customer:C-1"):
                if inside:
                    overlaps.append(True)
                inside.append(True)
                time.sleep(0.01)
                inside.pop()

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert overlaps == []

    def test_different_keys_do_not_block(self):
        locks = ProcessLocks()
        entered = threading.Event()

        def other():
            with locks.hold("customer:C-2"):
                entered.set()

        with locks.hold("customer:C-1"):
            thread = threading.Thread(target=other)
            thread.start()
            assert entered.wait(timeout=1.0)
            thread.join()


class TestAdvisoryLocks:
    def test_lock_and_unlock_on_one_connection(self):
        engine = MagicMock()
        connection = engine.connect.return_value.__enter__.return_value
        locks = AdvisoryLocks(engine, ProcessLocks())

        with locks.hold("customer:C-1"):
            assert connection.execute.call_count == 1

        statements = [str(call.args[0]) for call in connection.execute.call_args_list]
        assert "pg_advisory_lock" in statements[0]
        assert "pg_advisory_unlock" in statements[1]
        assert all(call.args[1] == {"key": "customer:C-1"} for call in connection.execute.call_args_list)
        connection.commit.assert_called_once()

    def test_unlocks_when_the_body_fails(self):
        engine = MagicMock()
        connection = engine.connect.return_value.__enter__.return_value
        locks = AdvisoryLocks(engine, ProcessLocks())

        with pytest.raises(RuntimeError), locks.hold("customer:C-1"):
            raise RuntimeError("boom")

        assert "pg_advisory_unlock" in str(connection.execute.call_args_list[-1].args[0])


class TestLocksFor:
    def test_memory_provider_uses_process_locks(self, customers_bed):
        from customers.domain import customers

        with customers_bed.domain_context():
            assert locks_for(customers) is process_locks
