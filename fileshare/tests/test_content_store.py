"""
Integration Tests: Content Store

Tests both key variants against a real temporary directory:
    - store / get / get_bytes / exists / update / delete / get_hash
    - Not-found, invalid-input and I/O-failure results
    - Cancellation before and during a transfer
    - Exclusive concurrent writes and reclaiming abandoned in-flight files
    - Extension inference, stale-variant pruning and ambiguity
    - Metrics recorded per operation
"""

import asyncio
import hashlib
import io
import logging
import os
import time
from pathlib import Path

import pytest

from fileshare.core.cancellation import CancellationToken
from fileshare.core.config import StorageConfig
from fileshare.core.errors import ErrorCode
from fileshare.core.types import ContentId, ContentName, ContentPayload
from fileshare.storage import hashing, transfer
from fileshare.storage.content_store import ContentStore
from fileshare.storage.protocols import ContentProvider
from fileshare.storage.transfer import open_reader
from fileshare.tests.helpers import (
    PDF_BYTES,
    PNG_BYTES,
    TEXT_BYTES,
    CancelAfterReads,
    NonSeekableStream,
    payload,
)


def listing(root: Path) -> list[str]:
    return sorted(p.name for p in root.iterdir())


class TestProtocol:
    def test_stores_satisfy_content_provider(self, name_store, id_store):
        assert isinstance(name_store, ContentProvider)
        assert isinstance(id_store, ContentProvider)

    def test_root_is_created(self, storage_config, name_store):
        assert storage_config.root_dir.is_dir()


class TestNameStore:
    """Name-addressed store operations."""

    def test_store_then_get_bytes(self, name_store):
        key = ContentName("a.txt")
        stored = asyncio.run(name_store.store(key, payload(b"hello")))

        assert stored.success
        assert stored.messages == ["File a.txt stored successfully."]
        assert stored.value.file_name == "a.txt"
        assert stored.value.extension == "txt"
        assert stored.value.size_bytes == 5

        read = asyncio.run(name_store.get_bytes(key))
        assert read.success
        assert read.value == b"hello"

    def test_store_large_content_in_chunks(self, name_store):
        data = bytes(range(256)) * 40
        key = ContentName("blob.bin")
        assert asyncio.run(name_store.store(key, payload(data))).success
        assert asyncio.run(name_store.get_bytes(key)).value == data

    def test_store_replaces_existing(self, name_store, storage_config):
        key = ContentName("a.txt")
        asyncio.run(name_store.store(key, payload(b"first version")))
        asyncio.run(name_store.store(key, payload(b"second")))

        assert (storage_config.root_dir / "a.txt").read_bytes() == b"second"
        assert listing(storage_config.root_dir) == ["a.txt"]

    def test_get_streams_content(self, name_store):
        key = ContentName("a.txt")
        asyncio.run(name_store.store(key, payload(b"streamed")))

        result = asyncio.run(name_store.get(key))
        assert result.success
        with result.value as content:
            assert content.length == 8
            assert content.reported_length == 8
            assert content.stream.read() == b"streamed"
        assert content.stream.closed

    def test_exists(self, name_store):
        key = ContentName("a.txt")
        asyncio.run(name_store.store(key, payload(b"x")))

        result = asyncio.run(name_store.exists(key))
        assert result.success
        assert result.value is True
        assert result.messages == ["File a.txt exists."]

    def test_exists_missing(self, name_store):
        result = asyncio.run(name_store.exists(ContentName("nope.txt")))
        assert not result.success
        assert result.value is False
        assert result.not_found
        assert result.error_messages == ["File nope.txt does not exist."]

    @pytest.mark.parametrize("operation", ["get", "get_bytes", "get_hash", "delete"])
    def test_missing_key_is_not_found(self, name_store, operation):
        result = asyncio.run(getattr(name_store, operation)(ContentName("missing")))
        assert not result.success
        assert result.not_found
        assert result.error_messages == ["File missing does not exist."]

    def test_get_hash(self, name_store):
        data = b"hash me please"
        key = ContentName("h.bin")
        asyncio.run(name_store.store(key, payload(data)))

        result = asyncio.run(name_store.get_hash(key))
        assert result.success
        assert result.value == hashlib.sha256(data).hexdigest()

    def test_hash_of_empty_file(self, name_store):
        key = ContentName("empty")
        asyncio.run(name_store.store(key, payload(b"")))
        assert asyncio.run(name_store.get_hash(key)).value == hashlib.sha256(b"").hexdigest()

    def test_update_overwrites(self, name_store, storage_config):
        key = ContentName("a.txt")
        asyncio.run(name_store.store(key, payload(b"a much longer original body")))

        result = asyncio.run(name_store.update(key, payload(b"short")))
        assert result.success
        assert result.value.size_bytes == 5
        assert (storage_config.root_dir / "a.txt").read_bytes() == b"short"

    def test_update_missing_creates_nothing(self, name_store, storage_config):
        result = asyncio.run(name_store.update(ContentName("a.txt"), payload(b"x")))
        assert result.not_found
        assert listing(storage_config.root_dir) == []

    def test_delete(self, name_store, storage_config):
        key = ContentName("a.txt")
        asyncio.run(name_store.store(key, payload(b"x")))

        result = asyncio.run(name_store.delete(key))
        assert result.success
        assert result.value == ["a.txt"]
        assert listing(storage_config.root_dir) == []
        assert asyncio.run(name_store.exists(key)).not_found

    @pytest.mark.parametrize("bad", [None, ContentPayload(stream=None, length=3)])
    def test_store_requires_stream(self, name_store, storage_config, bad):
        result = asyncio.run(name_store.store(ContentName("a.txt"), bad))
        assert result.has_error(ErrorCode.STORE_INVALID_INPUT)
        assert listing(storage_config.root_dir) == []

    def test_update_requires_stream(self, name_store):
        key = ContentName("a.txt")
        asyncio.run(name_store.store(key, payload(b"x")))
        result = asyncio.run(name_store.update(key, None))
        assert result.has_error(ErrorCode.STORE_INVALID_INPUT)

    def test_declared_length_mismatch_only_warns(self, name_store, caplog):
        """An empty stream declared as 100 bytes still stores."""
        with caplog.at_level(logging.WARNING, logger="fileshare.storage.content_store"):
            result = asyncio.run(
                name_store.store(ContentName("empty.txt"), payload(b"", length=100))
            )

        assert result.success
        assert result.value.size_bytes == 0
        assert any("length mismatch" in r.getMessage() for r in caplog.records)

    def test_unknown_length(self, name_store):
        result = asyncio.run(name_store.store(ContentName("a"), payload(b"abc", length=-1)))
        assert result.success
        assert result.value.size_bytes == 3

    def test_io_failure_when_root_missing(self, tmp_path, metrics):
        config = StorageConfig(root_dir=tmp_path / "gone", create_root=False)
        store = ContentStore.for_names(config, metrics)

        result = asyncio.run(store.store(ContentName("a.txt"), payload(b"x")))
        assert result.has_error(ErrorCode.STORE_IO_FAILURE)
        assert result.error_messages[0].startswith("An error occurred: ")

    def test_source_read_error_is_io_failure(self, name_store, storage_config):
        class Broken(io.RawIOBase):
            def readable(self):
                return True

            def readinto(self, buffer):
                raise OSError("device unplugged")

        result = asyncio.run(
            name_store.store(ContentName("a.txt"), ContentPayload(stream=Broken()))
        )
        assert result.has_error(ErrorCode.STORE_IO_FAILURE)
        assert "device unplugged" in result.error_messages[0]
        assert listing(storage_config.root_dir) == []


class TestCancellation:
    """Pre-start and mid-transfer cancellation."""

    @pytest.mark.parametrize(
        "operation", ["exists", "get", "get_bytes", "get_hash", "delete"]
    )
    def test_cancelled_before_start(self, name_store, storage_config, operation):
        key = ContentName("a.txt")
        asyncio.run(name_store.store(key, payload(b"keep me")))
        token = CancellationToken.cancelled_token("shutdown")

        result = asyncio.run(getattr(name_store, operation)(key, cancel=token))
        assert result.cancelled
        assert not result.success
        assert (storage_config.root_dir / "a.txt").read_bytes() == b"keep me"

    @pytest.mark.parametrize("operation", ["store", "update"])
    def test_cancelled_write_touches_nothing(self, name_store, storage_config, operation):
        key = ContentName("a.txt")
        asyncio.run(name_store.store(key, payload(b"original")))
        token = CancellationToken.cancelled_token()

        result = asyncio.run(
            getattr(name_store, operation)(key, payload(b"replacement"), cancel=token)
        )
        assert result.cancelled
        assert listing(storage_config.root_dir) == ["a.txt"]
        assert (storage_config.root_dir / "a.txt").read_bytes() == b"original"

    def test_cancel_mid_transfer_leaves_no_files(self, name_store, storage_config):
        token = CancellationToken()
        stream = CancelAfterReads(b"x" * 200, token, reads=1)

        result = asyncio.run(
            name_store.store(ContentName("big.bin"), ContentPayload(stream=stream), cancel=token)
        )

        assert result.cancelled
        assert "client went away" in result.error_messages[0]
        assert listing(storage_config.root_dir) == []

    def test_cancel_mid_update_keeps_previous_content(self, name_store, storage_config):
        key = ContentName("a.txt")
        asyncio.run(name_store.store(key, payload(b"previous")))
        token = CancellationToken()
        stream = CancelAfterReads(b"y" * 200, token, reads=2)

        result = asyncio.run(
            name_store.update(key, ContentPayload(stream=stream), cancel=token)
        )

        assert result.cancelled
        assert listing(storage_config.root_dir) == ["a.txt"]
        assert (storage_config.root_dir / "a.txt").read_bytes() == b"previous"

    def test_id_store_cancel_mid_transfer(self, id_store, storage_config):
        token = CancellationToken()
        stream = CancelAfterReads(TEXT_BYTES * 20, token, reads=1)

        result = asyncio.run(
            id_store.store(ContentId.generate(), ContentPayload(stream=stream), cancel=token)
        )
        assert result.cancelled
        assert listing(storage_config.root_dir) == []

    @pytest.mark.parametrize(
        "operation, module", [("get_bytes", transfer), ("get_hash", hashing)]
    )
    def test_cancel_mid_read(self, name_store, storage_config, monkeypatch, operation, module):
        key = ContentName("big.bin")
        asyncio.run(name_store.store(key, payload(b"z" * 200)))
        token = CancellationToken()

        def cancelling_open(path, mode="rb"):
            return CancelAfterReads(Path(path).read_bytes(), token, reads=1)

        monkeypatch.setattr(module, "open", cancelling_open, raising=False)

        result = asyncio.run(getattr(name_store, operation)(key, cancel=token))
        assert result.cancelled
        assert result.value is None
        assert "client went away" in result.error_messages[0]
        assert (storage_config.root_dir / "big.bin").read_bytes() == b"z" * 200


class TestAbandonedWrites:
    """In-flight files left behind by a writer that never cleaned up."""

    @staticmethod
    def leave_in_flight(root: Path, file_name: str, age: float) -> Path:
        temp = root / f".{file_name}.partial"
        temp.write_bytes(b"half written")
        stamp = time.time() - age
        os.utime(temp, (stamp, stamp))
        return temp

    @pytest.mark.parametrize("operation", ["store", "update"])
    def test_abandoned_file_is_reclaimed(self, name_store, storage_config, operation):
        key = ContentName("report.pdf")
        asyncio.run(name_store.store(key, payload(b"v1")))
        self.leave_in_flight(
            storage_config.root_dir,
            "report.pdf",
            age=storage_config.abandoned_write_seconds + 60,
        )

        result = asyncio.run(getattr(name_store, operation)(key, payload(b"v2")))
        assert result.success
        assert listing(storage_config.root_dir) == ["report.pdf"]
        assert (storage_config.root_dir / "report.pdf").read_bytes() == b"v2"

    def test_live_in_flight_file_blocks_writer(self, name_store, storage_config):
        key = ContentName("report.pdf")
        asyncio.run(name_store.store(key, payload(b"v1")))
        temp = self.leave_in_flight(storage_config.root_dir, "report.pdf", age=0)

        result = asyncio.run(name_store.store(key, payload(b"v2")))
        assert result.has_error(ErrorCode.STORE_IO_FAILURE)
        assert temp.read_bytes() == b"half written"
        assert (storage_config.root_dir / "report.pdf").read_bytes() == b"v1"

    def test_abandoned_id_file_is_reclaimed(self, id_store, storage_config):
        cid = ContentId.generate()
        self.leave_in_flight(
            storage_config.root_dir,
            f"{cid}.pdf",
            age=storage_config.abandoned_write_seconds + 60,
        )

        result = asyncio.run(id_store.store(cid, payload(PDF_BYTES)))
        assert result.success
        assert listing(storage_config.root_dir) == [f"{cid}.pdf"]

    def test_threshold_comes_from_config(self, tmp_path, metrics):
        config = StorageConfig(root_dir=tmp_path, abandoned_write_seconds=5)
        store = ContentStore.for_names(config, metrics)
        self.leave_in_flight(tmp_path, "a.txt", age=10)

        assert asyncio.run(store.store(ContentName("a.txt"), payload(b"x"))).success
        assert listing(tmp_path) == ["a.txt"]

    def test_in_flight_name_cannot_be_stored(self, name_store):
        """A caller cannot claim the path another key's write goes through."""
        assert name_store.parse_key(".a.txt.partial").is_err()
        assert asyncio.run(name_store.store(ContentName("a.txt"), payload(b"hello"))).success


class TestOpenReader:
    def test_returns_stream_and_size(self, tmp_path):
        path = tmp_path / "a.bin"
        path.write_bytes(b"12345")

        stream, size = asyncio.run(open_reader(path))
        with stream:
            assert size == 5
            assert stream.read() == b"12345"

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            asyncio.run(open_reader(tmp_path / "missing"))

    def test_get_reports_io_failure(self, name_store, monkeypatch):
        asyncio.run(name_store.store(ContentName("a.txt"), payload(b"x")))

        def denied(path, mode="rb"):
            raise PermissionError("denied")

        monkeypatch.setattr(transfer, "open", denied, raising=False)

        result = asyncio.run(name_store.get(ContentName("a.txt")))
        assert result.has_error(ErrorCode.STORE_IO_FAILURE)
        assert result.error_messages == ["An error occurred: denied"]


class TestConcurrentWrites:
    """Exclusive creation of the in-flight file."""

    def test_two_writers_one_winner(self, name_store, storage_config):
        key = ContentName("race.bin")
        first = b"A" * 500
        second = b"B" * 500

        async def race():
            return await asyncio.gather(
                name_store.store(key, payload(first)),
                name_store.store(key, payload(second)),
            )

        results = asyncio.run(race())

        outcomes = sorted(r.success for r in results)
        assert outcomes == [False, True]
        loser = next(r for r in results if not r.success)
        assert loser.has_error(ErrorCode.STORE_IO_FAILURE)

        content = (storage_config.root_dir / "race.bin").read_bytes()
        assert content in (first, second)
        assert listing(storage_config.root_dir) == ["race.bin"]

    def test_distinct_keys_are_independent(self, name_store, storage_config):
        async def many():
            return await asyncio.gather(*(
                name_store.store(ContentName(f"f{i}.txt"), payload(f"body {i}".encode()))
                for i in range(10)
            ))

        assert all(r.success for r in asyncio.run(many()))
        assert len(listing(storage_config.root_dir)) == 10

    def test_read_never_sees_partial_write(self, name_store, storage_config):
        key = ContentName("doc.txt")
        asyncio.run(name_store.store(key, payload(b"old" * 100)))

        async def write_and_read():
            write = asyncio.ensure_future(name_store.store(key, payload(b"new" * 100)))
            await asyncio.sleep(0)
            read = await name_store.get_bytes(key)
            await write
            return read

        read = asyncio.run(write_and_read())
        assert read.value in (b"old" * 100, b"new" * 100)


class TestIdStore:
    """Id-addressed store with inferred extensions."""

    def test_pdf_gets_pdf_extension(self, id_store, storage_config):
        cid = ContentId.generate()
        result = asyncio.run(id_store.store(cid, payload(PDF_BYTES)))

        assert result.success
        assert result.value.extension == "pdf"
        assert result.value.file_name == f"{cid}.pdf"
        assert listing(storage_config.root_dir) == [f"{cid}.pdf"]
        assert asyncio.run(id_store.get_bytes(cid)).value == PDF_BYTES

    def test_text_gets_txt_extension(self, id_store):
        cid = ContentId.generate()
        assert asyncio.run(id_store.store(cid, payload(TEXT_BYTES))).value.extension == "txt"

    def test_short_content_has_no_extension(self, id_store, storage_config):
        cid = ContentId.generate()
        result = asyncio.run(id_store.store(cid, payload(b"tiny")))

        assert result.success
        assert result.value.extension == ""
        assert listing(storage_config.root_dir) == [str(cid)]
        assert asyncio.run(id_store.exists(cid)).value is True

    def test_forward_only_stream_stored_intact(self, id_store):
        cid = ContentId.generate()
        data = PNG_BYTES + bytes(range(256)) * 4

        result = asyncio.run(id_store.store(cid, ContentPayload(stream=NonSeekableStream(data))))
        assert result.value.extension == "png"
        assert result.value.size_bytes == len(data)
        assert asyncio.run(id_store.get_bytes(cid)).value == data

    def test_seekable_stream_mid_position(self, id_store):
        """Content starts at the stream's current position."""
        cid = ContentId.generate()
        stream = io.BytesIO(b"skipped!" + PDF_BYTES)
        stream.seek(8)

        result = asyncio.run(id_store.store(cid, ContentPayload(stream=stream)))
        assert result.value.extension == "pdf"
        assert asyncio.run(id_store.get_bytes(cid)).value == PDF_BYTES

    def test_restore_prunes_stale_variant(self, id_store, storage_config):
        cid = ContentId.generate()
        asyncio.run(id_store.store(cid, payload(PNG_BYTES)))
        asyncio.run(id_store.store(cid, payload(TEXT_BYTES)))

        assert listing(storage_config.root_dir) == [f"{cid}.txt"]
        assert asyncio.run(id_store.get_bytes(cid)).value == TEXT_BYTES

    def test_stale_variant_kept_when_pruning_disabled(self, tmp_path, metrics):
        config = StorageConfig(root_dir=tmp_path, prune_stale_variants=False)
        store = ContentStore.for_ids(config, metrics)
        cid = ContentId.generate()
        asyncio.run(store.store(cid, payload(TEXT_BYTES)))
        asyncio.run(store.store(cid, payload(PNG_BYTES)))

        assert listing(tmp_path) == [f"{cid}.png", f"{cid}.txt"]
        # Lexicographic tie-break picks .png
        assert asyncio.run(store.get_bytes(cid)).value == PNG_BYTES

    def test_update_keeps_file_name(self, id_store, storage_config):
        cid = ContentId.generate()
        asyncio.run(id_store.store(cid, payload(PDF_BYTES)))

        result = asyncio.run(id_store.update(cid, payload(TEXT_BYTES)))
        assert result.success
        assert result.value.file_name == f"{cid}.pdf"
        assert result.value.extension == "pdf"
        assert (storage_config.root_dir / f"{cid}.pdf").read_bytes() == TEXT_BYTES

    def test_delete_removes_every_variant(self, id_store, storage_config):
        cid = ContentId.generate()
        for ext in ("pdf", "txt"):
            (storage_config.root_dir / f"{cid}.{ext}").write_bytes(b"x")

        result = asyncio.run(id_store.delete(cid))
        assert sorted(result.value) == [f"{cid}.pdf", f"{cid}.txt"]
        assert listing(storage_config.root_dir) == []

    def test_in_flight_file_is_invisible(self, id_store, storage_config):
        cid = ContentId.generate()
        (storage_config.root_dir / f".{cid}.pdf.partial").write_bytes(b"half")

        assert asyncio.run(id_store.exists(cid)).not_found

    def test_hash_matches_content(self, id_store):
        cid = ContentId.generate()
        asyncio.run(id_store.store(cid, payload(PDF_BYTES)))
        assert asyncio.run(id_store.get_hash(cid)).value == hashlib.sha256(PDF_BYTES).hexdigest()

    def test_parse_key(self, id_store):
        cid = ContentId.generate()
        assert id_store.parse_key(str(cid)).unwrap() == cid
        assert id_store.parse_key("report.pdf").is_err()


class TestStoreMetrics:
    """Metrics recorded per operation."""

    def test_outcomes_counted(self, name_store, metrics):
        key = ContentName("a.txt")
        asyncio.run(name_store.store(key, payload(b"12345")))
        asyncio.run(name_store.get_bytes(key))
        asyncio.run(name_store.get_bytes(ContentName("missing")))

        ops = metrics.counter("fileshare_operations_total", ["operation", "outcome"])
        assert ops.get(operation="store", outcome="ok") == 1
        assert ops.get(operation="get_bytes", outcome="ok") == 1
        assert ops.get(operation="get_bytes", outcome="not_found") == 1

        transferred = metrics.counter("fileshare_bytes_total", ["direction"])
        assert transferred.get(direction="in") == 5
        assert transferred.get(direction="out") == 5

    def test_latency_and_in_flight(self, name_store, metrics):
        asyncio.run(name_store.store(ContentName("a.txt"), payload(b"x")))

        latency = metrics.histogram("fileshare_operation_duration_seconds", ["operation"])
        assert latency.count(operation="store") == 1
        assert metrics.gauge("fileshare_transfers_in_flight").get() == 0

    def test_cancelled_outcome(self, name_store, metrics):
        token = CancellationToken.cancelled_token()
        asyncio.run(name_store.exists(ContentName("a.txt"), cancel=token))

        ops = metrics.counter("fileshare_operations_total", ["operation", "outcome"])
        assert ops.get(operation="exists", outcome="cancelled") == 1
