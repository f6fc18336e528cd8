"""Unit tests for ReadWriteLock."""

from __future__ import annotations

import threading
import time

import pytest

from kv_server.domain.services import ReadWriteLock


@pytest.mark.unit
class TestReadWriteLock:
    """Shared/exclusive semantics."""

    @pytest.fixture
    def lock(self) -> ReadWriteLock:
        return ReadWriteLock()

    def test_multiple_readers_share(self, lock: ReadWriteLock) -> None:
        """Several readers can hold the lock at once."""
        lock.acquire_read()
        lock.acquire_read()

        assert lock.readers == 2
        assert not lock.write_held

        lock.release_read()
        lock.release_read()
        assert lock.readers == 0

    def test_writer_waits_for_readers(self, lock: ReadWriteLock) -> None:
        """A writer blocks until the last reader leaves."""
        acquired = threading.Event()

        def writer() -> None:
            with lock.write_locked():
                acquired.set()

        lock.acquire_read()
        thread = threading.Thread(target=writer)
        thread.start()

        assert not acquired.wait(0.1)
        lock.release_read()
        assert acquired.wait(2)
        thread.join(2)

    def test_reader_waits_for_writer(self, lock: ReadWriteLock) -> None:
        """Readers are excluded while a writer holds the lock."""
        acquired = threading.Event()

        def reader() -> None:
            with lock.read_locked():
                acquired.set()

        lock.acquire_write()
        thread = threading.Thread(target=reader)
        thread.start()

        assert not acquired.wait(0.1)
        lock.release_write()
        assert acquired.wait(2)
        thread.join(2)

    def test_waiting_writer_blocks_new_readers(self, lock: ReadWriteLock) -> None:
        """Once a writer is queued, new readers queue behind it."""
        order: list[str] = []
        writer_started = threading.Event()

        def writer() -> None:
            writer_started.set()
            with lock.write_locked():
                order.append("writer")

        def reader() -> None:
            with lock.read_locked():
                order.append("reader")

        lock.acquire_read()
        writer_thread = threading.Thread(target=writer)
        writer_thread.start()
        writer_started.wait(2)
        time.sleep(0.05)  # let the writer register as waiting

        reader_thread = threading.Thread(target=reader)
        reader_thread.start()
        time.sleep(0.05)
        assert order == []

        lock.release_read()
        writer_thread.join(2)
        reader_thread.join(2)
        assert order == ["writer", "reader"]

    def test_release_without_hold_raises(self, lock: ReadWriteLock) -> None:
        with pytest.raises(RuntimeError):
            lock.release_read()
        with pytest.raises(RuntimeError):
            lock.release_write()

    def test_context_manager_releases_on_error(self, lock: ReadWriteLock) -> None:
        with pytest.raises(ValueError):
            with lock.write_locked():
                raise ValueError("boom")

        assert not lock.write_held
