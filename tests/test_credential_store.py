import threading
from unittest.mock import patch

import pytest

from agent_auth.credential_store.in_memory_credential_store import InMemoryCredentialStore


@pytest.fixture
def credential_store():
    """Provides a fresh store for each test."""
    return InMemoryCredentialStore()


def test_set_and_get(credential_store):
    credential_store.set("flow_state:abc", {"code_verifier": "v1", "state": "abc"})
    assert credential_store.get("flow_state:abc") == {"code_verifier": "v1", "state": "abc"}


def test_get_missing_key_returns_empty_dict(credential_store):
    """Absent keys are a soft miss, not an error."""
    assert credential_store.get("missing") == {}


def test_remove(credential_store):
    credential_store.set("k", {"v": 1})
    credential_store.remove("k")
    assert credential_store.get("k") == {}


def test_remove_missing_key_does_not_raise(credential_store):
    credential_store.remove("never-set")


def test_set_overwrites(credential_store):
    credential_store.set("k", {"v": 1})
    credential_store.set("k", {"v": 2})
    assert credential_store.get("k") == {"v": 2}


def test_values_are_copied(credential_store):
    value = {"nested": {"v": 1}}
    credential_store.set("k", value)
    value["nested"]["v"] = 99

    retrieved = credential_store.get("k")
    retrieved["nested"]["v"] = 42

    assert credential_store.get("k") == {"nested": {"v": 1}}


def test_entries_expire_after_ttl():
    with patch("agent_auth.credential_store.in_memory_credential_store.time") as mock_time:
        mock_time.monotonic.return_value = 1000.0
        store = InMemoryCredentialStore(ttl_seconds=300)
        store.set("k", {"v": 1})

        mock_time.monotonic.return_value = 1299.0
        assert store.get("k") == {"v": 1}

        mock_time.monotonic.return_value = 1300.0
        assert store.get("k") == {}
        assert len(store) == 0


def test_purge_expired():
    with patch("agent_auth.credential_store.in_memory_credential_store.time") as mock_time:
        mock_time.monotonic.return_value = 0.0
        store = InMemoryCredentialStore(ttl_seconds=10)
        store.set("old", {"v": 1})

        mock_time.monotonic.return_value = 5.0
        store.set("new", {"v": 2})

        mock_time.monotonic.return_value = 11.0
        assert store.purge_expired() == 1
        assert store.get("new") == {"v": 2}


def test_no_ttl_never_expires():
    with patch("agent_auth.credential_store.in_memory_credential_store.time") as mock_time:
        mock_time.monotonic.return_value = 0.0
        store = InMemoryCredentialStore()
        store.set("k", {"v": 1})
        mock_time.monotonic.return_value = 10_000_000.0
        assert store.get("k") == {"v": 1}


def test_concurrency(credential_store):
    """Concurrent set/get on independent keys does not corrupt entries."""
    num_threads = 50
    num_operations_per_thread = 100
    threads = []
    errors = []

    def worker(thread_id):
        key = f"flow_state:{thread_id}"
        value = {"code_verifier": f"verifier_{thread_id}"}
        for _ in range(num_operations_per_thread):
            credential_store.set(key, value)
            if credential_store.get(key) != value:
                errors.append(thread_id)

    for i in range(num_threads):
        thread = threading.Thread(target=worker, args=(i,))
        threads.append(thread)
        thread.start()

    for thread in threads:
        thread.join()

    assert errors == []
    for i in range(num_threads):
        assert credential_store.get(f"flow_state:{i}") == {"code_verifier": f"verifier_{i}"}


def test_compare_and_set_replaces_matching_value(credential_store):
    credential_store.set("k", {"status": "AWAITING_REDIRECT"})

    assert credential_store.compare_and_set(
        "k", {"status": "AWAITING_REDIRECT"}, {"status": "TOKEN_EXCHANGE_IN_PROGRESS"}
    )
    assert credential_store.get("k") == {"status": "TOKEN_EXCHANGE_IN_PROGRESS"}


def test_compare_and_set_rejects_stale_value(credential_store):
    credential_store.set("k", {"status": "TOKEN_EXCHANGE_IN_PROGRESS"})

    assert not credential_store.compare_and_set(
        "k", {"status": "AWAITING_REDIRECT"}, {"status": "TOKEN_EXCHANGE_IN_PROGRESS"}
    )
    assert not credential_store.compare_and_set("missing", {}, {"v": 1})
    assert credential_store.get("missing") == {}


def test_compare_and_set_single_winner_across_threads(credential_store):
    credential_store.set("k", {"claimed_by": None})
    winners = []

    def worker(thread_id):
        if credential_store.compare_and_set("k", {"claimed_by": None}, {"claimed_by": thread_id}):
            winners.append(thread_id)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(20)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(winners) == 1
    assert credential_store.get("k") == {"claimed_by": winners[0]}
