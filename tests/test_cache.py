"""Tests for TreeCache listing, sorting, filtering and path bookkeeping."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from objtree.store import MemoryObjectStore
from objtree.tree.cache import TreeCache, filter_items, sort_items
from objtree.tree.items import FileItem, FolderItem
from objtree.tree.paths import VirtualPath
from objtree.tree.types import ErrorKind, SortDirection, SortField


@pytest.fixture
def cache(store: MemoryObjectStore) -> TreeCache:
    return TreeCache(store)


def _names(items) -> list[str]:
    return [item.name for item in items]


def _file(name: str, size: int | None = None, age_days: int | None = None) -> FileItem:
    stamp = None
    if age_days is not None:
        stamp = datetime(2024, 1, 1, tzinfo=UTC) - timedelta(days=age_days)
    return FileItem(VirtualPath.parse(name), size=size, updated_at=stamp)


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


class TestListChildren:
    async def test_root_listing_sorted_folders_first(self, cache):
        result = await cache.list_children("")
        assert result.success is True
        assert _names(result.items) == ["Archive", "Photos", "Scores", "notes.txt", "song.mp3"]
        assert [i.kind.value for i in result.items[:3]] == ["folder"] * 3

    async def test_markers_hidden(self, cache):
        result = await cache.list_children("Scores")
        assert _names(result.items) == ["a.pdf", "b.pdf"]

    async def test_markers_shown_when_configured(self, store):
        cache = TreeCache(store, hide_markers=False)
        result = await cache.list_children("Scores")
        assert ".placeholder" in _names(result.items)

    async def test_kind_comes_from_backend_not_name(self):
        store = MemoryObjectStore({"v1.0/readme": b"r", "Makefile": b"m"})
        cache = TreeCache(store)
        result = await cache.list_children("")
        kinds = {i.name: type(i) for i in result.items}
        assert kinds == {"v1.0": FolderItem, "Makefile": FileItem}

    async def test_children_stored_on_node(self, cache):
        await cache.list_children("")
        assert cache.is_loaded("")
        assert not cache.is_loaded("Scores")
        assert _names(cache.items_at("")) == _names(cache.root.children)

    async def test_relisting_reuses_items(self, cache, store):
        first = await cache.list_children("")
        song = next(i for i in first.items if i.name == "song.mp3")
        await store.upload("zebra.txt", b"z")
        second = await cache.list_children("")
        assert next(i for i in second.items if i.name == "song.mp3") is song
        assert "zebra.txt" in _names(second.items)

    async def test_removed_objects_forgotten(self, cache, store):
        first = await cache.list_children("")
        song = next(i for i in first.items if i.name == "song.mp3")
        await store.delete("song.mp3")
        await cache.list_children("")
        assert cache.find(song.id) is None

    async def test_failure_leaves_cache_untouched(self, cache, store):
        await cache.list_children("")
        before = cache.items_at("")
        await store.upload("new.txt", b"n")
        store.fail_on("list", "")
        result = await cache.list_children("")
        assert result.success is False
        assert result.error is ErrorKind.TRANSPORT_FAILURE
        assert cache.items_at("") == before

    async def test_list_before_parent(self, cache):
        result = await cache.list_children("Photos/2024")
        assert _names(result.items) == ["beach.jpg"]
        assert cache.node("Photos/2024") is not None


# ---------------------------------------------------------------------------
# Expand / collapse
# ---------------------------------------------------------------------------


class TestToggleExpand:
    async def test_expand_loads_once(self, cache, store):
        await cache.list_children("")
        scores = cache.find_path("Scores")
        store.reset_calls()

        result = await cache.toggle_expand(scores)
        assert result.success is True
        assert scores.expanded is True
        assert _names(scores.children) == ["a.pdf", "b.pdf"]
        assert store.calls == [("list", "Scores")]

        await cache.toggle_expand(scores)
        assert scores.expanded is False
        await cache.toggle_expand(scores)
        assert scores.expanded is True
        assert store.calls == [("list", "Scores")]

    async def test_expand_failure_stays_collapsed(self, cache, store):
        await cache.list_children("")
        scores = cache.find_path("Scores")
        store.fail_on("list", "Scores")
        result = await cache.toggle_expand(scores)
        assert result.success is False
        assert scores.expanded is False
        assert scores.children is None

    async def test_expanded_children_registered(self, cache):
        await cache.list_children("")
        scores = cache.find_path("Scores")
        await cache.toggle_expand(scores)
        a = cache.find_path("Scores/a.pdf")
        assert a is not None
        assert cache.find(a.id) is a


# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------


class TestSort:
    def _mixed(self):
        return [
            _file("b.txt", size=10, age_days=1),
            FolderItem(VirtualPath.parse("Zeta")),
            _file("a.txt", size=10, age_days=5),
            _file("c.txt", size=None, age_days=None),
            FolderItem(VirtualPath.parse("alpha")),
            _file("D.txt", size=3, age_days=2),
        ]

    def test_folders_first_by_name(self):
        ordered = sort_items(self._mixed(), SortField.SIZE)
        assert _names(ordered[:2]) == ["alpha", "Zeta"]

    def test_size_ties_broken_by_name_missing_size_is_zero(self):
        ordered = sort_items(self._mixed(), SortField.SIZE)
        assert _names(ordered[2:]) == ["c.txt", "D.txt", "a.txt", "b.txt"]

    def test_updated_at_missing_is_earliest(self):
        ordered = sort_items(self._mixed(), SortField.UPDATED_AT)
        assert _names(ordered[2:]) == ["c.txt", "a.txt", "D.txt", "b.txt"]

    def test_name_is_case_insensitive(self):
        ordered = sort_items(self._mixed(), SortField.NAME)
        assert _names(ordered[2:]) == ["a.txt", "b.txt", "c.txt", "D.txt"]

    @pytest.mark.parametrize("field", list(SortField))
    def test_sorting_twice_is_idempotent(self, field):
        once = sort_items(self._mixed(), field)
        assert sort_items(once, field) == once

    @pytest.mark.parametrize("field", list(SortField))
    def test_direction_toggle_reverses_each_group(self, field):
        items = self._mixed()
        asc = sort_items(items, field, SortDirection.ASC)
        desc = sort_items(items, field, SortDirection.DESC)
        assert desc[:2] == list(reversed(asc[:2]))
        assert desc[2:] == list(reversed(asc[2:]))

    async def test_set_sort_resorts_loaded_listings(self, cache):
        await cache.list_children("")
        cache.set_sort(SortField.SIZE, SortDirection.DESC)
        assert cache.sort_field is SortField.SIZE
        files = [i.name for i in cache.items_at("") if isinstance(i, FileItem)]
        assert files == ["notes.txt", "song.mp3"]
        assert _names(cache.items_at(""))[:3] == ["Scores", "Photos", "Archive"]


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


class TestFilter:
    def _items(self):
        return [
            FolderItem(VirtualPath.parse("Music")),
            _file("song.mp3"),
            _file("Songbook.pdf"),
            _file("beach.jpg"),
        ]

    def test_query_case_insensitive(self):
        assert _names(filter_items(self._items(), "SONG")) == ["song.mp3", "Songbook.pdf"]

    def test_empty_query_keeps_everything(self):
        assert len(filter_items(self._items(), "  ")) == 4

    def test_type_filter_excludes_folders(self):
        assert _names(filter_items(self._items(), file_type="document")) == ["Songbook.pdf"]

    def test_query_and_type_combined(self):
        assert _names(filter_items(self._items(), "song", "audio")) == ["song.mp3"]


# ---------------------------------------------------------------------------
# Mutation helpers
# ---------------------------------------------------------------------------


class TestMutation:
    async def test_insert_into_loaded_parent(self, cache):
        await cache.list_children("")
        item = FileItem(VirtualPath.parse("aaa.txt"), size=1)
        assert cache.insert(item) is True
        assert cache.find_path("aaa.txt") is item
        assert _names(cache.items_at(""))[3] == "aaa.txt"

    async def test_insert_into_unloaded_parent(self, cache):
        item = FileItem(VirtualPath.parse("Scores/c.pdf"))
        assert cache.insert(item) is False
        assert cache.find(item.id) is None

    async def test_remove_forgets_subtree(self, cache):
        await cache.list_children("")
        scores = cache.find_path("Scores")
        await cache.toggle_expand(scores)
        a = cache.find_path("Scores/a.pdf")
        cache.remove(scores)
        assert cache.find_path("Scores") is None
        assert cache.find(a.id) is None
        assert cache.node("Scores") is None

    async def test_relocate_rebases_loaded_descendants(self, cache):
        await cache.list_children("")
        photos = cache.find_path("Photos")
        await cache.toggle_expand(photos)
        year = cache.find_path("Photos/2024")
        await cache.toggle_expand(year)
        beach = cache.find_path("Photos/2024/beach.jpg")

        cache.relocate(photos, VirtualPath.parse("Archive/Photos"))

        assert photos.path == "Archive/Photos"
        assert year.path == "Archive/Photos/2024"
        assert beach.path == "Archive/Photos/2024/beach.jpg"
        assert cache.node("Archive/Photos/2024") is year
        assert cache.node("Photos/2024") is None
        assert cache.find_path("Photos") is None
        assert photos.expanded is True

    async def test_relocate_into_loaded_parent(self, cache):
        await cache.list_children("")
        archive = cache.find_path("Archive")
        await cache.toggle_expand(archive)
        song = cache.find_path("song.mp3")
        cache.relocate(song, VirtualPath.parse("Archive/song.mp3"))
        assert cache.find_path("Archive/song.mp3") is song
        assert "song.mp3" not in _names(cache.items_at(""))

    async def test_loaded_paths(self, cache):
        await cache.list_children("")
        await cache.toggle_expand(cache.find_path("Photos"))
        await cache.toggle_expand(cache.find_path("Photos/2024"))
        assert [str(p) for p in cache.loaded_paths("Photos")] == ["Photos", "Photos/2024"]
        assert [str(p) for p in cache.loaded_paths()][0] == ""

    async def test_refresh_loaded_skips_unloaded(self, cache, store):
        await cache.list_children("")
        store.reset_calls()
        results = await cache.refresh_loaded(["", "Scores", ""])
        assert len(results) == 1
        assert store.calls == [("list", "")]

    async def test_relocate_over_stale_entry_keeps_rebased_nodes(self, cache):
        await cache.list_children("")
        archive = cache.find_path("Archive")
        await cache.toggle_expand(archive)
        stale = FolderItem(VirtualPath.parse("Archive/Photos"), children=[])
        cache.insert(stale)
        photos = cache.find_path("Photos")
        # listed while Photos itself is unloaded, so photos.walk() cannot reach it
        await cache.list_children("Photos/2024")
        year = cache.node("Photos/2024")
        assert year is not None

        cache.relocate(photos, VirtualPath.parse("Archive/Photos"))

        assert cache.node("Archive/Photos/2024") is year
        assert cache.node("Archive/Photos") is photos
        assert cache.find(stale.id) is None
        assert cache.find(photos.id) is photos
        assert [c for c in archive.children if c.name == "Photos"] == [photos]
