"""Tests for merging a remote listing into the manifest"""

from genvault.api.listing import RemoteItem
from genvault.core.reconciler import merge
from genvault.models.manifest import ArchiveManifest, ItemStatus

from .conftest import BASE_URI, write_sized_file


def _merge(manifest, remote_items, output_dir, labels=None):
    return merge(
        manifest,
        remote_items,
        labels or {},
        output_dir,
        file_extension=".wav",
        remote_base_uri=BASE_URI,
    )


def _remote(item_id, **fields):
    return RemoteItem(id=item_id, **fields)


class TestMerge:
    """Test creation and refresh of manifest entries"""

    def test_new_items_are_created_pending(self, tmp_path):
        manifest = ArchiveManifest()
        remote = [
            _remote("a1", title="Song", author_id="u1", sound="ambient", seed=7),
            _remote("b2"),
        ]

        created = _merge(manifest, remote, tmp_path, labels={"u1": "Alice"})

        assert created == 2
        a1 = manifest.items["a1"]
        assert a1.status == ItemStatus.PENDING
        assert a1.title == "Song"
        assert a1.creator_label == "Alice"
        assert a1.category == "ambient"
        assert a1.seed == 7
        assert a1.remote_uri == f"{BASE_URI}/song/a1"
        b2 = manifest.items["b2"]
        assert b2.title == "Untitled"
        assert b2.creator_label == "Unknown"
        assert b2.local_artifact_name is None

    def test_mistyped_listing_record_merges(self, tmp_path):
        manifest = ArchiveManifest()
        remote = RemoteItem.from_api(
            {"id": "a1", "title": 1999, "created_at": 1700000000, "play_count": 2.0}
        )

        created = _merge(manifest, [remote], tmp_path)

        assert created == 1
        a1 = manifest.items["a1"]
        assert a1.status == ItemStatus.PENDING
        assert a1.title == "1999"
        assert a1.play_count == 2

    def test_merge_is_idempotent(self, tmp_path):
        manifest = ArchiveManifest()
        remote = [_remote("a1", title="Song"), _remote("b2", title="Other")]

        _merge(manifest, remote, tmp_path)
        before = manifest.model_dump()
        created = _merge(manifest, remote, tmp_path)

        assert created == 0
        assert manifest.model_dump() == before

    def test_duplicate_ids_in_one_listing_create_one_item(self, tmp_path):
        manifest = ArchiveManifest()

        created = _merge(manifest, [_remote("a1"), _remote("a1")], tmp_path)

        assert created == 1
        assert list(manifest.items) == ["a1"]

    def test_existing_items_keep_status_and_history(self, tmp_path):
        manifest = ArchiveManifest()
        _merge(manifest, [_remote("a1", title="Old"), _remote("b2")], tmp_path)
        manifest.items["a1"].mark_acquired("a1.wav", 5 * 1024 * 1024)
        manifest.items["a1"].last_attempt_at = "2024-01-01T00:00:00.000+00:00"
        manifest.items["b2"].mark_failed("HTTP 500")

        _merge(
            manifest,
            [_remote("a1", title="New", lyrics="la la"), _remote("b2", title="B")],
            tmp_path,
        )

        a1 = manifest.items["a1"]
        assert a1.title == "New"
        assert a1.lyrics == "la la"
        assert a1.status == ItemStatus.ACQUIRED
        assert a1.local_artifact_name == "a1.wav"
        assert a1.artifact_size_mb == 5.0
        assert a1.last_attempt_at == "2024-01-01T00:00:00.000+00:00"
        b2 = manifest.items["b2"]
        assert b2.title == "B"
        assert b2.status == ItemStatus.FAILED
        assert b2.last_error == "HTTP 500"


class TestExistingArtifacts:
    """Test first-run recovery of a pre-populated output directory"""

    def test_id_named_file_marks_item_acquired(self, tmp_path):
        write_sized_file(tmp_path / "a1.wav", 100)
        manifest = ArchiveManifest()

        _merge(manifest, [_remote("a1"), _remote("b2")], tmp_path)

        assert manifest.items["a1"].status == ItemStatus.ACQUIRED
        assert manifest.items["a1"].local_artifact_name == "a1.wav"
        assert manifest.items["b2"].status == ItemStatus.PENDING

    def test_label_named_file_marks_item_acquired(self, tmp_path):
        write_sized_file(tmp_path / "Alice - Night Drive.wav", 100)
        manifest = ArchiveManifest()

        _merge(
            manifest,
            [_remote("a1", title="Night Drive", author_id="u1")],
            tmp_path,
            labels={"u1": "Alice"},
        )

        assert manifest.items["a1"].status == ItemStatus.ACQUIRED
        assert manifest.items["a1"].local_artifact_name == "Alice - Night Drive.wav"

    def test_label_name_is_sanitized(self, tmp_path):
        write_sized_file(tmp_path / "AC-DC - What-If.wav", 100)
        manifest = ArchiveManifest()

        _merge(
            manifest,
            [_remote("a1", title="What?If", author_id="u1")],
            tmp_path,
            labels={"u1": "AC/DC"},
        )

        assert manifest.items["a1"].status == ItemStatus.ACQUIRED

    def test_label_name_collapses_whitespace(self, tmp_path):
        write_sized_file(tmp_path / "Alice - Night Drive.wav", 100)
        manifest = ArchiveManifest()

        _merge(
            manifest,
            [_remote("a1", title="Night\tDrive\n", author_id="u1")],
            tmp_path,
            labels={"u1": "Alice"},
        )

        assert manifest.items["a1"].status == ItemStatus.ACQUIRED
        assert manifest.items["a1"].local_artifact_name == "Alice - Night Drive.wav"

    def test_id_named_file_is_preferred(self, tmp_path):
        write_sized_file(tmp_path / "a1.wav", 100)
        write_sized_file(tmp_path / "Unknown - Song.wav", 100)
        manifest = ArchiveManifest()

        _merge(manifest, [_remote("a1", title="Song")], tmp_path)

        assert manifest.items["a1"].local_artifact_name == "a1.wav"

    def test_label_name_is_not_claimed_twice(self, tmp_path):
        write_sized_file(tmp_path / "Unknown - Song.wav", 100)
        manifest = ArchiveManifest()

        _merge(
            manifest, [_remote("a1", title="Song"), _remote("b2", title="Song")], tmp_path
        )

        assert manifest.items["a1"].status == ItemStatus.ACQUIRED
        assert manifest.items["b2"].status == ItemStatus.PENDING
        assert manifest.items["b2"].local_artifact_name is None

    def test_label_name_recorded_by_earlier_run_is_not_reused(self, tmp_path):
        write_sized_file(tmp_path / "Unknown - Song.wav", 100)
        manifest = ArchiveManifest()
        _merge(manifest, [_remote("a1", title="Song")], tmp_path)

        _merge(manifest, [_remote("c3", title="Song")], tmp_path)

        assert manifest.items["c3"].status == ItemStatus.PENDING

    def test_unreadable_output_directory_counts_as_empty(self, tmp_path):
        manifest = ArchiveManifest()

        created = _merge(manifest, [_remote("a1")], tmp_path / "missing")

        assert created == 1
        assert manifest.items["a1"].status == ItemStatus.PENDING
