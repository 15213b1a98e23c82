"""Tests for the YAML dump file."""

import multiprocessing

import pytest
import yaml

from sdb_tools.dumpfile import DumpFile
from sdb_tools.errors import ErrorKind, SdbError
from sdb_tools.protocols import RecordInput, RecordOutput


def append_batches(path, prefix, batches, batch_size):
    dump = DumpFile(path)
    for batch in range(batches):
        _ = dump.append(
            (f"{prefix}-{batch:03d}-{i}", {"payload": ["x" * 2048], "batch": [str(batch)]})
            for i in range(batch_size)
        )


class TestDumpFile:
    """Tests for DumpFile."""

    def test_missing_file_is_empty(self, tmp_path):
        dump = DumpFile(tmp_path / "missing.yaml")
        assert list(dump) == []
        assert dump.size() == 0

    def test_append_then_read_in_order(self, tmp_path):
        """Appended batches read back in file order."""
        dump = DumpFile(tmp_path / "users.yaml")

        assert dump.append([("b", {"role": ["admin", "owner"]})]) == 1
        assert dump.append([("a", {"email": ["ada@example.com"]}), ("c", {})]) == 2

        assert dump.item_names() == ["b", "a", "c"]
        assert dict(dump) == {
            "b": {"role": ["admin", "owner"]},
            "a": {"email": ["ada@example.com"]},
            "c": {},
        }

    def test_documents_are_single_entry_mappings(self, tmp_path):
        path = tmp_path / "users.yaml"
        _ = DumpFile(path).append([("user-1", {"email": ["ada@example.com"]})])

        assert path.read_text(encoding="utf-8") == "---\nuser-1:\n  email:\n  - ada@example.com\n"

    def test_empty_append_writes_nothing(self, tmp_path):
        path = tmp_path / "users.yaml"
        assert DumpFile(path).append([]) == 0
        assert not path.exists()

    def test_scalar_values_become_lists(self, tmp_path):
        path = tmp_path / "legacy.yaml"
        path.write_text("--- \nold: \n  age: 42\n  tags: [x, y]\n", encoding="utf-8")

        assert list(DumpFile(path)) == [("old", {"age": ["42"], "tags": ["x", "y"]})]

    def test_unicode_round_trips(self, tmp_path):
        dump = DumpFile(tmp_path / "names.yaml")
        _ = dump.append([("ünïcode", {"name": ["Zoë"]})])

        assert list(dump) == [("ünïcode", {"name": ["Zoë"]})]

    @pytest.mark.parametrize(
        "content",
        [
            "--- \n- just\n- a list\n",
            "--- \na: {}\nb: {}\n",
            "--- \na: not-a-map\n",
            "--- \na: [unclosed\n",
        ],
    )
    def test_malformed_documents(self, tmp_path, content):
        path = tmp_path / "bad.yaml"
        path.write_text(content, encoding="utf-8")

        with pytest.raises(SdbError) as exc_info:
            _ = list(DumpFile(path))
        assert exc_info.value.kind == ErrorKind.INVALID_INPUT

    def test_satisfies_record_protocols(self, tmp_path):
        dump = DumpFile(tmp_path / "x.yaml")
        assert isinstance(dump, RecordInput)
        assert isinstance(dump, RecordOutput)

    def test_concurrent_appends_from_two_processes(self, tmp_path):
        """Appends from separate processes never interleave inside a document."""
        path = tmp_path / "shared.yaml"
        context = multiprocessing.get_context("fork")
        workers = [
            context.Process(target=append_batches, args=(path, prefix, 40, 5))
            for prefix in ("a", "b")
        ]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join(timeout=60)
        assert [worker.exitcode for worker in workers] == [0, 0]

        with path.open(encoding="utf-8") as f:
            documents = list(yaml.safe_load_all(f))
        assert len(documents) == 400
        assert all(isinstance(doc, dict) and len(doc) == 1 for doc in documents)

        dump = DumpFile(path)
        assert dump.size() == 400
        expected = {
            f"{prefix}-{batch:03d}-{i}"
            for prefix in ("a", "b")
            for batch in range(40)
            for i in range(5)
        }
        assert set(dump.item_names()) == expected
        assert all(attrs["payload"] == ["x" * 2048] for _, attrs in dump)
