"""Tests for OperationEngine — folder, rename, move and delete over flat store calls."""

from __future__ import annotations

import pytest

from objtree.exceptions import NotFoundError
from objtree.store import MemoryObjectStore
from objtree.tree.items import FileItem, FolderItem
from objtree.tree.operations import OperationEngine, top_level_only
from objtree.tree.paths import VirtualPath
from objtree.tree.types import ErrorKind


@pytest.fixture
def engine(store: MemoryObjectStore) -> OperationEngine:
    return OperationEngine(store)


def _file(path: str) -> FileItem:
    return FileItem(VirtualPath.parse(path))


def _folder(path: str) -> FolderItem:
    return FolderItem(VirtualPath.parse(path))


def _mutations(store: MemoryObjectStore) -> list[tuple[str, str]]:
    return [call for call in store.calls if call[0] in ("upload", "delete")]


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


class TestCreateFolder:
    async def test_create_uploads_marker(self, engine, store):
        result = await engine.create_folder("", "Recordings")
        assert result.success is True
        assert result.path == "Recordings"
        assert isinstance(result.item, FolderItem)
        assert result.item.children == []
        assert store.calls == [("list", ""), ("upload", "Recordings/.placeholder")]
        assert store.contents()["Recordings/.placeholder"] == b""

    async def test_create_nested(self, engine, store):
        result = await engine.create_folder("Scores", "Drafts")
        assert result.success is True
        assert "Scores/Drafts/.placeholder" in store.keys()

    async def test_conflict(self, engine, store):
        result = await engine.create_folder("", "Scores")
        assert result.success is False
        assert result.error is ErrorKind.CONFLICT
        assert _mutations(store) == []

    async def test_conflict_with_file(self, engine, store):
        result = await engine.create_folder("", "song.mp3")
        assert result.error is ErrorKind.CONFLICT

    @pytest.mark.parametrize("name", ["", "a/b", "..", ".placeholder"])
    async def test_invalid_name_makes_no_calls(self, engine, store, name):
        result = await engine.create_folder("", name)
        assert result.success is False
        assert result.error is ErrorKind.INVALID_NAME
        assert store.calls == []

    async def test_list_failure(self, engine, store):
        store.fail_on("list", "")
        result = await engine.create_folder("", "Recordings")
        assert result.error is ErrorKind.TRANSPORT_FAILURE
        assert _mutations(store) == []


class TestUploadFile:
    async def test_upload_new(self, engine, store):
        result = await engine.upload_file("Archive", "old.mp3", b"old")
        assert result.success is True
        assert result.item.size == 3
        assert store.contents()["Archive/old.mp3"] == b"old"

    async def test_overwrite_by_default(self, engine, store):
        result = await engine.upload_file("", "song.mp3", b"remastered")
        assert result.success is True
        assert store.contents()["song.mp3"] == b"remastered"

    async def test_no_overwrite(self, engine, store):
        result = await engine.upload_file("", "song.mp3", b"x", overwrite=False)
        assert result.error is ErrorKind.CONFLICT
        assert store.contents()["song.mp3"] == b"ID3 song bytes"

    async def test_folder_name_taken(self, engine, store):
        result = await engine.upload_file("", "Scores", b"x")
        assert result.error is ErrorKind.CONFLICT
        assert _mutations(store) == []


# ---------------------------------------------------------------------------
# Rename
# ---------------------------------------------------------------------------


class TestRename:
    async def test_rename_file(self, engine, store):
        result = await engine.rename_item(_file("song.mp3"), "song-final.mp3")
        assert result.success is True
        assert (result.old_path, result.new_path) == ("song.mp3", "song-final.mp3")
        assert store.calls == [
            ("list", ""),
            ("download", "song.mp3"),
            ("upload", "song-final.mp3"),
            ("delete", "song.mp3"),
        ]
        assert store.contents()["song-final.mp3"] == b"ID3 song bytes"
        assert "song.mp3" not in store.keys()

    async def test_same_name_is_zero_call_noop(self, engine, store):
        result = await engine.rename_item(_file("song.mp3"), "song.mp3")
        assert result.success is True
        assert result.noop is True
        assert store.calls == []

    async def test_conflict_leaves_store_unchanged(self, engine, store):
        before = store.contents()
        result = await engine.rename_item(_file("song.mp3"), "notes.txt")
        assert result.error is ErrorKind.CONFLICT
        assert store.contents() == before
        assert _mutations(store) == []

    async def test_invalid_name(self, engine, store):
        result = await engine.rename_item(_file("song.mp3"), "a/b.mp3")
        assert result.error is ErrorKind.INVALID_NAME
        assert store.calls == []

    async def test_root_cannot_be_renamed(self, engine):
        result = await engine.rename_item(FolderItem(VirtualPath.root()), "x")
        assert result.error is ErrorKind.INVALID_TARGET

    async def test_rename_folder_moves_marker_last(self, engine, store):
        result = await engine.rename_item(_folder("Scores"), "Sheets")
        assert result.success is True
        assert store.calls_for("delete") == [
            "Scores/a.pdf",
            "Scores/b.pdf",
            "Scores/.placeholder",
        ]
        assert [k for k in store.keys() if k.startswith("Sheets/")] == [
            "Sheets/.placeholder",
            "Sheets/a.pdf",
            "Sheets/b.pdf",
        ]
        assert not any(k.startswith("Scores/") for k in store.keys())

    async def test_rename_nested_folder(self, engine, store):
        result = await engine.rename_item(_folder("Photos"), "Pictures")
        assert result.success is True
        assert store.contents()["Pictures/2024/beach.jpg"] == b"\xff\xd8 beach"
        assert "Pictures/2024/.placeholder" in store.keys()

    async def test_partial_failure_reports_leaves(self, engine, store):
        store.fail_on("upload", "Sheets/b.pdf")
        result = await engine.rename_item(_folder("Scores"), "Sheets")
        assert result.success is False
        assert result.error is ErrorKind.PARTIAL_FAILURE
        assert result.succeeded == ["Scores/a.pdf", "Scores/.placeholder"]
        assert result.failed == ["Scores/b.pdf"]
        assert "Scores/b.pdf" in store.keys()
        assert "Sheets/a.pdf" in store.keys()

    async def test_delete_of_original_fails(self, engine, store):
        store.fail_on("delete", "song.mp3")
        result = await engine.rename_item(_file("song.mp3"), "song-final.mp3")
        assert result.error is ErrorKind.PARTIAL_FAILURE
        assert result.failed == ["song.mp3"]
        assert {"song.mp3", "song-final.mp3"} <= set(store.keys())

    async def test_single_file_download_failure(self, engine, store):
        store.fail_on("download", "song.mp3")
        result = await engine.rename_item(_file("song.mp3"), "song-final.mp3")
        assert result.error is ErrorKind.TRANSPORT_FAILURE
        assert result.failed == ["song.mp3"]
        assert _mutations(store) == []


# ---------------------------------------------------------------------------
# Move
# ---------------------------------------------------------------------------


class TestMove:
    async def test_move_folder_into_archive(self, engine, store):
        result = await engine.move_item(_folder("Scores"), "Archive")
        assert result.success is True
        assert result.new_path == "Archive/Scores"
        assert store.contents()["Archive/Scores/a.pdf"] == b"%PDF a"
        assert store.contents()["Archive/Scores/b.pdf"] == b"%PDF bb"
        assert "Archive/Scores/.placeholder" in store.keys()
        assert not any(k.startswith("Scores/") for k in store.keys())

    async def test_move_to_root(self, engine, store):
        result = await engine.move_item(_file("Scores/a.pdf"), "")
        assert result.success is True
        assert "a.pdf" in store.keys()

    async def test_current_parent_is_zero_call_noop(self, engine, store):
        result = await engine.move_item(_file("Scores/a.pdf"), "Scores")
        assert result.success is True
        assert result.noop is True
        assert store.calls == []

    @pytest.mark.parametrize("destination", ["Photos", "Photos/2024"])
    async def test_into_itself_or_descendant(self, engine, store, destination):
        result = await engine.move_item(_folder("Photos"), destination)
        assert result.error is ErrorKind.INVALID_TARGET
        assert store.calls == []

    async def test_destination_must_be_folder(self, engine, store):
        result = await engine.move_item(_file("notes.txt"), "song.mp3")
        assert result.error is ErrorKind.INVALID_TARGET
        assert _mutations(store) == []

    async def test_missing_destination(self, engine, store):
        result = await engine.move_item(_file("notes.txt"), "Nowhere")
        assert result.error is ErrorKind.INVALID_TARGET

    async def test_collision_leaves_listings_unchanged(self, engine, store):
        await store.upload("Archive/song.mp3", b"older take")
        root_before = await store.list("")
        archive_before = await store.list("Archive")
        store.reset_calls()

        result = await engine.move_item(_file("song.mp3"), "Archive")

        assert result.success is False
        assert result.error is ErrorKind.CONFLICT
        assert _mutations(store) == []
        assert await store.list("") == root_before
        assert await store.list("Archive") == archive_before
        assert store.contents()["Archive/song.mp3"] == b"older take"


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------


class TestDelete:
    async def test_delete_file_returns_snapshot(self, engine, store):
        result = await engine.delete_item(_file("song.mp3"))
        assert result.success is True
        assert [(str(e.path), e.content) for e in result.snapshot] == [
            ("song.mp3", b"ID3 song bytes")
        ]
        assert "song.mp3" not in store.keys()

    async def test_delete_folder_snapshot_includes_marker(self, engine, store):
        result = await engine.delete_item(_folder("Scores"))
        assert result.success is True
        assert [str(e.path) for e in result.snapshot] == [
            "Scores/a.pdf",
            "Scores/b.pdf",
            "Scores/.placeholder",
        ]
        assert not any(k.startswith("Scores/") for k in store.keys())

    async def test_snapshot_failure_makes_no_destructive_call(self, engine, store):
        store.fail_on("download", "Scores/b.pdf")
        result = await engine.delete_item(_folder("Scores"))
        assert result.success is False
        assert result.error is ErrorKind.TRANSPORT_FAILURE
        assert store.calls_for("delete") == []

    async def test_missing_item(self, engine, store):
        result = await engine.delete_item(_file("ghost.txt"))
        assert result.error is ErrorKind.NOT_FOUND
        assert store.calls_for("delete") == []

    async def test_failed_leaf_rolls_back(self, engine, store):
        before = store.contents()
        store.fail_on("delete", "Scores/b.pdf")
        result = await engine.delete_item(_folder("Scores"))
        assert result.success is False
        assert result.error is ErrorKind.TRANSPORT_FAILURE
        assert result.failed == ["Scores/b.pdf"]
        assert store.contents() == before

    async def test_failed_rollback_is_partial_failure(self, engine, store):
        store.fail_on("delete", "Scores/b.pdf")
        store.fail_on("upload", "Scores/a.pdf")
        result = await engine.delete_item(_folder("Scores"))
        assert result.error is ErrorKind.PARTIAL_FAILURE
        assert set(result.failed) == {"Scores/b.pdf", "Scores/a.pdf"}
        assert result.snapshot is not None

    async def test_delete_at_explicit_path(self, engine, store):
        item = _file("song.mp3")
        await store.upload("Archive/song.mp3", b"moved")
        result = await engine.delete_item(item, VirtualPath.parse("Archive/song.mp3"))
        assert result.success is True
        assert result.snapshot[0].content == b"moved"
        assert "song.mp3" in store.keys()


class TestBatchDelete:
    async def test_item_two_of_three_fails(self, engine, store):
        items = [_file("song.mp3"), _file("notes.txt"), _file("Scores/a.pdf")]
        store.fail_on("delete", "notes.txt")

        result = await engine.batch_delete(items)

        assert result.success is False
        assert result.error is ErrorKind.PARTIAL_FAILURE
        assert [d.item for d in result.deleted] == [items[0], items[2]]
        assert result.failed == ["notes.txt"]
        assert "notes.txt" in store.keys()
        assert "song.mp3" not in store.keys()
        assert "Scores/a.pdf" not in store.keys()

    async def test_all_fail_keeps_first_error(self, engine, store):
        result = await engine.batch_delete([_file("ghost.txt"), _file("phantom.txt")])
        assert result.error is ErrorKind.NOT_FOUND
        assert result.deleted == []

    async def test_nested_items_deduplicated(self, engine, store):
        scores = _folder("Scores")
        result = await engine.batch_delete([_file("Scores/a.pdf"), scores, scores])
        assert result.success is True
        assert [d.item for d in result.deleted] == [scores]

    def test_top_level_only(self):
        photos = _folder("Photos")
        beach = _file("Photos/2024/beach.jpg")
        song = _file("song.mp3")
        assert top_level_only([beach, song, photos]) == [song, photos]


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------


class TestReadOnly:
    async def test_download_file(self, engine, store):
        result = await engine.download_file(_file("Scores/a.pdf"))
        assert result.success is True
        assert result.data == b"%PDF a"
        assert result.file_type == "document"
        assert _mutations(store) == []

    async def test_download_folder_rejected(self, engine, store):
        result = await engine.download_file(_folder("Scores"))
        assert result.error is ErrorKind.INVALID_TARGET
        assert store.calls == []

    async def test_check_free_one_list_per_parent(self, engine, store):
        paths = [VirtualPath.parse(p) for p in ("Scores/c.pdf", "Scores/a.pdf", "zzz.txt")]
        result = await engine.check_free(paths)
        assert result.error is ErrorKind.CONFLICT
        assert "Scores/a.pdf" in result.message
        assert store.calls == [("list", "Scores"), ("list", "")]

    async def test_check_free_all_free(self, engine):
        result = await engine.check_free([VirtualPath.parse("Archive/new.txt")])
        assert result.success is True


class TestPrimitives:
    async def test_enumerate_objects_depth_first(self, engine):
        objects = await engine.enumerate_objects(VirtualPath.parse("Photos"))
        assert [str(p) for p in objects] == ["Photos/2024/beach.jpg", "Photos/2024/.placeholder"]

    async def test_capture_nothing_raises(self, engine):
        with pytest.raises(NotFoundError):
            await engine.capture(_folder("Empty"))

    async def test_restore_is_idempotent(self, engine, store):
        deleted = await engine.delete_item(_folder("Scores"))
        first = await engine.restore(deleted.snapshot)
        second = await engine.restore(deleted.snapshot)
        assert first.success and second.success
        assert store.contents()["Scores/b.pdf"] == b"%PDF bb"
        assert len(first.restored) == 3

    async def test_restore_partial(self, engine, store):
        deleted = await engine.delete_item(_folder("Scores"))
        store.fail_on("upload", "Scores/b.pdf")
        result = await engine.restore(deleted.snapshot)
        assert result.error is ErrorKind.PARTIAL_FAILURE
        assert result.failed == ["Scores/b.pdf"]

    async def test_relocate_without_conflict_check(self, engine, store):
        await store.upload("Sheets/a.pdf", b"stale")
        store.reset_calls()
        result = await engine.relocate(
            _folder("Scores"),
            VirtualPath.parse("Scores"),
            VirtualPath.parse("Sheets"),
            check_conflict=False,
        )
        assert result.success is True
        assert store.contents()["Sheets/a.pdf"] == b"%PDF a"
        assert ("list", "") not in store.calls
