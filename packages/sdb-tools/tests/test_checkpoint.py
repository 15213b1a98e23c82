"""Tests for the checkpoint ledger."""

import random
import sqlite3

import pytest

from sdb_tools.checkpoint import CheckpointStore
from sdb_tools.errors import ErrorKind, SdbError

SEED = [f"item-{i:02d}" for i in range(10)]


@pytest.fixture
def status_path(tmp_path):
    return tmp_path / "users.simpledb_op_status"


@pytest.fixture
def store(status_path):
    checkpoint = CheckpointStore(status_path, worker_id="w1")
    checkpoint.initialize(lambda: SEED)
    return checkpoint


def placements(checkpoint):
    report = checkpoint.report()
    working = [
        item
        for worker in report.workers
        for item in checkpoint.working_items(worker.worker_id)
    ]
    return checkpoint.incomplete_items(), working, checkpoint.complete_items()


def assert_conserved(checkpoint, seed):
    incomplete, working, complete = placements(checkpoint)
    everything = incomplete + working + complete
    assert sorted(everything) == sorted(seed)
    assert len(set(everything)) == len(everything)


class TestLifecycle:
    """Tests for seeding and attaching."""

    def test_fresh_file_does_not_exist(self, status_path):
        assert not CheckpointStore(status_path).exists()

    def test_initialize_seeds_once(self, store, status_path):
        """A second worker attaches without re-seeding."""
        seeds = []
        other = CheckpointStore(status_path, worker_id="w2")
        other.initialize(lambda: seeds.append(1) or ["other"])

        assert seeds == []
        assert store.incomplete_items() == SEED
        assert store.complete_items() == []
        assert store.failed_items() == {}
        assert {w.worker_id for w in store.report().workers} == {"w1", "w2"}

    def test_attach_resets_working_items(self, store, status_path):
        """Items held by a worker that never released them are not reclaimed."""
        _ = store.reserve_chunk(3)
        again = CheckpointStore(status_path, worker_id="w1")
        again.initialize(lambda: SEED)

        assert again.working_items() == []
        assert again.incomplete_items() == SEED[3:]

    def test_generated_worker_ids_differ(self, status_path):
        assert CheckpointStore(status_path).worker_id != CheckpointStore(status_path).worker_id

    def test_detach_releases_and_removes_worker(self, store):
        _ = store.reserve_chunk(4)
        store.detach()

        assert store.report().workers == []
        assert store.incomplete_items() == SEED[4:] + SEED[:4]

    def test_unattached_worker_cannot_reserve(self, store, status_path):
        stranger = CheckpointStore(status_path, worker_id="nobody")
        with pytest.raises(SdbError) as exc_info:
            _ = stranger.reserve_chunk(1)
        assert exc_info.value.kind == ErrorKind.CHECKPOINT


class TestWork:
    """Tests for reserving, finishing and releasing chunks."""

    def test_reserve_from_head(self, store):
        assert store.reserve_chunk(3) == SEED[:3]
        assert store.working_items() == SEED[:3]
        assert store.incomplete_items() == SEED[3:]

    def test_reserve_until_empty(self, store):
        chunks = []
        while chunk := store.reserve_chunk(4):
            chunks.append(chunk)
            store.finish_chunk(chunk)

        assert [len(c) for c in chunks] == [4, 4, 2]
        assert store.incomplete_count() == 0
        assert store.complete_items() == SEED

    def test_workers_get_disjoint_chunks(self, store, status_path):
        other = CheckpointStore(status_path, worker_id="w2")
        other.initialize(lambda: SEED)

        first = store.reserve_chunk(4)
        second = other.reserve_chunk(4)

        assert not set(first) & set(second)
        assert_conserved(store, SEED)

    def test_failure_annotates_complete_item(self, store):
        """A failed item is still complete; the failure is a side note."""
        chunk = store.reserve_chunk(2)
        store.record_failure(chunk[0], "SdbError: rejected")
        store.finish_chunk(chunk)

        assert chunk[0] in store.complete_items()
        assert store.failed_items() == {chunk[0]: "SdbError: rejected"}

    def test_finish_ignores_items_not_held(self, store):
        chunk = store.reserve_chunk(2)
        store.finish_chunk([*chunk, "item-09"])

        assert store.complete_items() == chunk
        assert "item-09" in store.incomplete_items()

    def test_release_returns_items_to_tail(self, store):
        chunk = store.reserve_chunk(3)
        store.release_working_items()

        assert store.working_items() == []
        assert store.incomplete_items() == SEED[3:] + chunk

    def test_release_after_first_chunk_keeps_relative_order(self, status_path):
        """Finishing one chunk and releasing leaves the rest in original order."""
        seed = [f"k{i}" for i in range(9)]
        checkpoint = CheckpointStore(status_path, worker_id="w1")
        checkpoint.initialize(lambda: seed)

        first = checkpoint.reserve_chunk(3)
        checkpoint.finish_chunk(first)
        checkpoint.release_working_items()

        assert checkpoint.incomplete_items() == seed[3:]
        assert checkpoint.complete_items() == seed[:3]

    def test_random_operations_conserve_items(self, store, status_path):
        """Items are never lost or duplicated by any sequence of operations."""
        other = CheckpointStore(status_path, worker_id="w2")
        other.initialize(lambda: SEED)
        rng = random.Random(7)

        for _ in range(60):
            worker = rng.choice([store, other])
            action = rng.choice(["reserve", "finish", "fail", "release"])
            if action == "reserve":
                _ = worker.reserve_chunk(rng.randint(1, 4))
            elif action == "finish":
                held = worker.working_items()
                worker.finish_chunk(held[: rng.randint(0, len(held))])
            elif action == "fail" and worker.working_items():
                worker.record_failure(worker.working_items()[0], "RuntimeError: x")
            else:
                worker.release_working_items()
            assert_conserved(store, SEED)


class TestReport:
    """Tests for summaries."""

    def test_summary(self, store):
        chunk = store.reserve_chunk(4)
        store.record_failure(chunk[0], "RuntimeError: x")
        store.finish_chunk(chunk[:2])

        report = store.report()

        assert (report.incomplete, report.complete, report.failed) == (6, 2, 1)
        assert report.summary().splitlines() == [
            "Items (not done/done/failed): 6/2/1",
            "Worker w1 working on 2 items",
        ]


class TestCorruption:
    """Tests for unreadable ledgers."""

    def test_invalid_payload(self, store, status_path):
        conn = sqlite3.connect(status_path)
        with conn:
            _ = conn.execute(
                "UPDATE status SET value = ? WHERE key = ?", ('{"not": "a list"}', ":incomplete_items")
            )
        conn.close()

        with pytest.raises(SdbError) as exc_info:
            _ = store.incomplete_items()
        assert exc_info.value.kind == ErrorKind.CHECKPOINT

    def test_not_a_database(self, status_path):
        status_path.write_text("definitely not sqlite\n" * 20)

        with pytest.raises(SdbError) as exc_info:
            _ = CheckpointStore(status_path).exists()
        assert exc_info.value.kind == ErrorKind.CHECKPOINT
