"""
Tests for the host-wide run lock.
"""

import os

import pytest

from pveups.shutdown.lock import AlreadyRunningError, RunLock


def test_acquire_and_release(lock_path):
    lock = RunLock(lock_path)
    assert lock.acquire() is True
    assert lock.held
    assert lock_path.read_text().strip() == str(os.getpid())

    lock.release()
    assert not lock.held


def test_creates_parent_directory(tmp_path):
    path = tmp_path / "nested" / "dir" / "pveups.lock"
    lock = RunLock(path)
    assert lock.acquire()
    assert path.exists()
    lock.release()


def test_second_holder_is_refused(lock_path):
    first = RunLock(lock_path)
    second = RunLock(lock_path)

    assert first.acquire()
    try:
        assert second.acquire() is False
        assert not second.held
    finally:
        first.release()

    assert second.acquire() is True
    second.release()


def test_not_reentrant(lock_path):
    lock = RunLock(lock_path)
    lock.acquire()
    try:
        with pytest.raises(RuntimeError):
            lock.acquire()
    finally:
        lock.release()


def test_release_without_acquire_is_noop(lock_path):
    RunLock(lock_path).release()


def test_context_manager(lock_path):
    with RunLock(lock_path) as lock:
        assert lock.held
        with pytest.raises(AlreadyRunningError):
            with RunLock(lock_path):
                pass
    assert not lock.held
    assert RunLock(lock_path).acquire()
