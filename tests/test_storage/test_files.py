"""Tests for the directory-backed transactional storage."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from unittest.mock import patch

import pytest

from deltalog.storage.files import FileStorage


def _data(root: Path) -> dict[str, bytes]:
    """Read every key file under ``root/data`` directly from disk."""
    data_dir = root / "data"
    return {
        str(path.relative_to(data_dir)).replace("\\", "/"): path.read_bytes()
        for path in data_dir.rglob("*")
        if path.is_file()
    }


class TestLayout:
    def test_creates_store_directories(self, tmp_path: Path) -> None:
        FileStorage(tmp_path / "store")
        assert (tmp_path / "store" / "data").is_dir()
        assert (tmp_path / "store" / "locks").is_dir()

    def test_one_file_per_key(self, tmp_path: Path) -> None:
        storage = FileStorage(tmp_path)
        asyncio.run(storage.put("update/3", b"\x00\xff"))

        assert (tmp_path / "data" / "update" / "3").read_bytes() == b"\x00\xff"

    @pytest.mark.parametrize("key", ["../escape", "state/../doc", "", "a b"])
    def test_rejects_unsafe_keys(self, tmp_path: Path, key: str) -> None:
        storage = FileStorage(tmp_path)
        with pytest.raises(ValueError, match="Invalid storage key"):
            asyncio.run(storage.put(key, b"x"))
        assert _data(tmp_path) == {}


class TestReadsAndWrites:
    def test_get_missing_returns_none(self, file_storage: FileStorage) -> None:
        assert asyncio.run(file_storage.get("state/doc")) is None

    def test_list_by_prefix(self, file_storage: FileStorage) -> None:
        async def _run():
            await file_storage.put("update/1", b"a")
            await file_storage.put("update/2", b"b")
            await file_storage.put("state/doc", b"snap")
            return await file_storage.list("update/")

        assert asyncio.run(_run()) == {"update/1": b"a", "update/2": b"b"}

    def test_list_missing_directory_is_empty(self, file_storage: FileStorage) -> None:
        assert asyncio.run(file_storage.list("update/")) == {}

    def test_list_skips_temp_files(self, tmp_path: Path) -> None:
        storage = FileStorage(tmp_path)
        asyncio.run(storage.put("update/1", b"a"))
        (tmp_path / "data" / "update" / ".tmp.abc123").write_bytes(b"partial")

        assert asyncio.run(storage.list("update/")) == {"update/1": b"a"}

    def test_delete(self, file_storage: FileStorage) -> None:
        async def _run():
            await file_storage.put("update/1", b"a")
            await file_storage.delete(["update/1", "update/9"])
            return await file_storage.get("update/1")

        assert asyncio.run(_run()) is None

    def test_persists_across_instances(self, tmp_path: Path) -> None:
        asyncio.run(FileStorage(tmp_path).put("state/doc", b"snap"))
        assert asyncio.run(FileStorage(tmp_path).get("state/doc")) == b"snap"


class TestTransactions:
    def test_commit_applies_all_writes(self, tmp_path: Path) -> None:
        storage = FileStorage(tmp_path)
        asyncio.run(storage.put("update/1", b"a"))

        async def body(tx):
            await tx.delete(["update/1"])
            await tx.put("state/doc", b"snap")
            await tx.put("state/count", b"0")
            return "done"

        assert asyncio.run(storage.transaction(body)) == "done"
        assert _data(tmp_path) == {"state/doc": b"snap", "state/count": b"0"}
        assert not (tmp_path / "journal.json").exists()

    def test_failed_transaction_writes_nothing(self, tmp_path: Path) -> None:
        storage = FileStorage(tmp_path)
        asyncio.run(storage.put("update/1", b"a"))

        async def body(tx):
            await tx.put("state/doc", b"snap")
            await tx.delete(["update/1"])
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            asyncio.run(storage.transaction(body))
        assert _data(tmp_path) == {"update/1": b"a"}

    def test_concurrent_transactions_are_serialized(self, file_storage: FileStorage) -> None:
        async def increment(tx):
            value = int(await tx.get("state/n") or b"0")
            await asyncio.sleep(0)
            await tx.put("state/n", str(value + 1).encode())

        async def _run():
            await asyncio.gather(*(file_storage.transaction(increment) for _ in range(10)))
            return await file_storage.get("state/n")

        assert asyncio.run(_run()) == b"10"

    def test_separate_instances_share_the_lock(self, tmp_path: Path) -> None:
        first = FileStorage(tmp_path)
        second = FileStorage(tmp_path)

        async def increment(tx):
            value = int(await tx.get("state/n") or b"0")
            await asyncio.sleep(0.01)
            await tx.put("state/n", str(value + 1).encode())

        async def _run():
            await asyncio.gather(
                *(s.transaction(increment) for s in [first, second] * 3)
            )
            return await first.get("state/n")

        assert asyncio.run(_run()) == b"6"


class TestJournal:
    def test_journal_written_before_apply(self, tmp_path: Path) -> None:
        storage = FileStorage(tmp_path)
        seen: list[dict] = []
        real_apply = FileStorage._apply

        def spy(self, puts, deletes):
            seen.append(json.loads((tmp_path / "journal.json").read_text()))
            real_apply(self, puts, deletes)

        with patch.object(FileStorage, "_apply", spy):
            asyncio.run(storage.put("state/doc", b"\x01\x02"))

        assert seen == [{"puts": {"state/doc": "0102"}, "deletes": []}]

    def test_leftover_journal_replayed_on_open(self, tmp_path: Path) -> None:
        storage = FileStorage(tmp_path)
        asyncio.run(storage.put("update/1", b"a"))

        journal = {"puts": {"state/doc": b"snap".hex(), "state/count": b"0".hex()}, "deletes": ["update/1"]}
        (tmp_path / "journal.json").write_text(json.dumps(journal))

        reopened = FileStorage(tmp_path)
        assert asyncio.run(reopened.get("state/doc")) == b"snap"
        assert _data(tmp_path) == {"state/doc": b"snap", "state/count": b"0"}
        assert not (tmp_path / "journal.json").exists()

    def test_leftover_journal_replayed_before_transaction(self, tmp_path: Path) -> None:
        storage = FileStorage(tmp_path)
        journal = {"puts": {"state/count": b"4".hex()}, "deletes": []}
        (tmp_path / "journal.json").write_text(json.dumps(journal))

        async def body(tx):
            return await tx.get("state/count")

        assert asyncio.run(storage.transaction(body)) == b"4"

    def test_crash_mid_apply_recovers_all_writes(self, tmp_path: Path) -> None:
        storage = FileStorage(tmp_path)
        asyncio.run(storage.put("update/1", b"a"))

        def crash(self, puts, deletes):
            raise OSError("power loss")

        async def body(tx):
            await tx.put("state/doc", b"snap")
            await tx.delete(["update/1"])

        with patch.object(FileStorage, "_apply", crash):
            with pytest.raises(OSError, match="power loss"):
                asyncio.run(storage.transaction(body))

        assert (tmp_path / "journal.json").exists()
        FileStorage(tmp_path)
        assert _data(tmp_path) == {"state/doc": b"snap"}


class TestPrefixScan:
    def test_prefix_cannot_escape_data_directory(self, tmp_path: Path) -> None:
        storage = FileStorage(tmp_path)
        asyncio.run(storage.put("state/doc", b"s"))

        assert asyncio.run(storage.list("../")) == {}
        assert asyncio.run(storage.list("state//")) == {}

    def test_nested_keys(self, file_storage: FileStorage) -> None:
        async def _run():
            await file_storage.put("update/a/1", b"x")
            await file_storage.put("update/2", b"y")
            return await file_storage.list("update/")

        assert asyncio.run(_run()) == {"update/a/1": b"x", "update/2": b"y"}


class TestOpen:
    def test_open_builds_store_off_the_loop(self, tmp_path: Path) -> None:
        async def _run():
            storage = await FileStorage.open(tmp_path / "store", lock_timeout=1)
            await storage.put("state/doc", b"snap")
            return storage, await storage.get("state/doc")

        storage, value = asyncio.run(_run())
        assert isinstance(storage, FileStorage)
        assert storage.lock_timeout == 1
        assert value == b"snap"

    def test_open_replays_leftover_journal(self, tmp_path: Path) -> None:
        FileStorage(tmp_path)
        journal = {"puts": {"state/doc": b"snap".hex()}, "deletes": []}
        (tmp_path / "journal.json").write_text(json.dumps(journal))

        async def _run():
            storage = await FileStorage.open(tmp_path)
            return await storage.get("state/doc")

        assert asyncio.run(_run()) == b"snap"
        assert not (tmp_path / "journal.json").exists()
