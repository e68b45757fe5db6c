"""Tests for the file-per-record metadata store."""
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from fileintake.core.exceptions import CorruptRecordError, RecordNotFoundError
from fileintake.core.models import BackendKind, FileRecord, LocalLocator, RemoteLocator, new_file_id
from fileintake.storage.metadata import MetadataStore


def make_record(uploaded_at: datetime | None = None, name: str = "notes.txt") -> FileRecord:
    file_id = new_file_id()
    uploaded_at = uploaded_at or datetime(2024, 5, 17, 12, 0, tzinfo=timezone.utc)
    return FileRecord(
        id=file_id,
        original_name=name,
        stored_name=f"{file_id}.txt",
        mime_type="text/plain",
        size=11,
        uploaded_at=uploaded_at,
        backend=BackendKind.LOCAL,
        locator=LocalLocator(relative_path=f"{uploaded_at:%Y/%m/%d}/{file_id}.txt"),
    )


@pytest.fixture
def store(tmp_path: Path) -> MetadataStore:
    return MetadataStore(base_path=tmp_path / "metadata", storage_root=tmp_path)


class TestMetadataStore:
    """Test cases for MetadataStore."""

    @pytest.mark.asyncio
    async def test_save_and_load(self, store: MetadataStore) -> None:
        """Test a saved record loads back unchanged."""
        record = make_record()
        await store.save(record)

        assert await store.load(record.id) == record
        assert await store.exists(record.id)

    @pytest.mark.asyncio
    async def test_one_document_per_record(self, store: MetadataStore) -> None:
        record = make_record()
        await store.save(record)

        assert sorted(p.name for p in store.base_path.iterdir()) == [f"{record.id}.json"]

    @pytest.mark.asyncio
    async def test_persisted_shape(self, store: MetadataStore) -> None:
        """Test the document uses the camelCase record format."""
        record = make_record()
        await store.save(record)

        document = json.loads((store.base_path / f"{record.id}.json").read_text())
        assert document["originalName"] == "notes.txt"
        assert document["relativePath"] == record.locator.relative_path
        assert document["storageType"] == "local"
        assert "path" not in document

    @pytest.mark.asyncio
    async def test_load_missing(self, store: MetadataStore) -> None:
        with pytest.raises(RecordNotFoundError):
            await store.load(new_file_id())

    @pytest.mark.asyncio
    async def test_load_rejects_non_id(self, store: MetadataStore) -> None:
        """Test traversal-shaped identifiers are simply not found."""
        with pytest.raises(RecordNotFoundError):
            await store.load("../../etc/passwd")

    @pytest.mark.asyncio
    async def test_delete(self, store: MetadataStore) -> None:
        record = make_record()
        await store.save(record)

        await store.delete(record.id)

        assert not await store.exists(record.id)
        with pytest.raises(RecordNotFoundError):
            await store.delete(record.id)

    @pytest.mark.asyncio
    async def test_list_all_newest_first(self, store: MetadataStore) -> None:
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        records = [make_record(base + timedelta(minutes=i)) for i in range(3)]
        for record in records:
            await store.save(record)

        listed = await store.list_all()

        assert [r.id for r in listed] == [r.id for r in reversed(records)]

    @pytest.mark.asyncio
    async def test_list_all_skips_corrupt(self, store: MetadataStore) -> None:
        """Test one unreadable document does not break the listing."""
        good = make_record()
        await store.save(good)
        (store.base_path / f"{new_file_id()}.json").write_text("{not json")
        (store.base_path / "stray.txt").write_text("ignored")

        listed = await store.list_all()

        assert [r.id for r in listed] == [good.id]

    @pytest.mark.asyncio
    async def test_list_all_skips_undecodable(self, store: MetadataStore) -> None:
        """Test a document that is not UTF-8 is skipped like any corrupt one."""
        good = make_record()
        await store.save(good)
        bad_id = new_file_id()
        (store.base_path / f"{bad_id}.json").write_bytes(b'{"id": "\xff\xfe"}')

        listed = await store.list_all()

        assert [r.id for r in listed] == [good.id]
        with pytest.raises(CorruptRecordError):
            await store.load(bad_id)

    @pytest.mark.asyncio
    async def test_exists(self, store: MetadataStore) -> None:
        record = make_record()

        assert await store.exists(record.id) is False
        await store.save(record)
        assert await store.exists(record.id) is True
        assert await store.exists("../metadata") is False
        assert await store.exists(record.id.upper()) is False

    @pytest.mark.asyncio
    async def test_load_corrupt(self, store: MetadataStore) -> None:
        file_id = new_file_id()
        (store.base_path / f"{file_id}.json").write_text('{"id": "x"}')

        with pytest.raises(CorruptRecordError):
            await store.load(file_id)

    @pytest.mark.asyncio
    async def test_remote_record_round_trip(self, store: MetadataStore) -> None:
        file_id = new_file_id()
        record = FileRecord(
            id=file_id,
            original_name="scan.pdf",
            stored_name=f"{file_id}.pdf",
            mime_type="application/pdf",
            size=2048,
            uploaded_at=datetime(2024, 2, 2, tzinfo=timezone.utc),
            backend=BackendKind.S3,
            locator=RemoteLocator(
                url=f"https://bucket.s3.amazonaws.com/uploads/{file_id}.pdf",
                key=f"uploads/{file_id}.pdf",
            ),
        )
        await store.save(record)

        assert await store.load(file_id) == record


class TestLegacyRecords:
    """Test cases for records written before relative paths existed."""

    def write_document(self, store: MetadataStore, file_id: str, **fields: object) -> None:
        document = {
            "id": file_id,
            "originalName": "photo.png",
            "fileName": f"{file_id}.png",
            "mimeType": "image/png",
            "size": 42,
            "uploadDate": "2023-11-05T08:30:00.000Z",
            **fields,
        }
        (store.base_path / f"{file_id}.json").write_text(json.dumps(document))

    @pytest.mark.asyncio
    async def test_absolute_path_inside_root(self, store: MetadataStore) -> None:
        """Test a legacy absolute path is normalised to a relative one."""
        file_id = new_file_id()
        absolute = store.storage_root / "2023" / "11" / "05" / f"{file_id}.png"
        self.write_document(store, file_id, path=str(absolute))

        record = await store.load(file_id)

        assert record.backend == BackendKind.LOCAL
        assert record.locator == LocalLocator(relative_path=f"2023/11/05/{file_id}.png")
        assert record.uploaded_at == datetime(2023, 11, 5, 8, 30, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_absolute_path_from_moved_root(self, store: MetadataStore) -> None:
        """Test the date-partitioned tail survives a relocated storage root."""
        file_id = new_file_id()
        self.write_document(
            store, file_id, path=f"/srv/old-uploads/2023/11/05/{file_id}.png"
        )

        record = await store.load(file_id)

        assert record.locator.relative_path == f"2023/11/05/{file_id}.png"

    @pytest.mark.asyncio
    async def test_relative_path_preferred(self, store: MetadataStore) -> None:
        file_id = new_file_id()
        self.write_document(
            store,
            file_id,
            relativePath=f"2024/01/01/{file_id}.png",
            path=f"/elsewhere/2023/11/05/{file_id}.png",
            storageType="local",
        )

        record = await store.load(file_id)

        assert record.locator.relative_path == f"2024/01/01/{file_id}.png"

    @pytest.mark.asyncio
    async def test_no_path_is_corrupt(self, store: MetadataStore) -> None:
        file_id = new_file_id()
        self.write_document(store, file_id)

        with pytest.raises(CorruptRecordError):
            await store.load(file_id)

    @pytest.mark.asyncio
    async def test_escaping_path_is_corrupt(self, store: MetadataStore) -> None:
        file_id = new_file_id()
        self.write_document(store, file_id, relativePath="../../etc/passwd")

        with pytest.raises(CorruptRecordError):
            await store.load(file_id)

    @pytest.mark.asyncio
    async def test_unknown_storage_type_is_corrupt(self, store: MetadataStore) -> None:
        file_id = new_file_id()
        self.write_document(store, file_id, relativePath="a/b.png", storageType="cloudinary")

        with pytest.raises(CorruptRecordError):
            await store.load(file_id)
