"""Property-based tests for storage path resolution.

**Feature: video-worker, Property 13: Storage Path Resolution**
"""

from pathlib import Path

import pytest
from hypothesis import given, settings, strategies as st

from videoworker.core.storage import (
    PROCESSED_SUFFIX,
    LocalStorage,
    StorageConfig,
    safe_file_stem,
)


def make_storage(root: Path, temp: bool = True) -> LocalStorage:
    return LocalStorage(
        StorageConfig(
            upload_path=str(root / "uploads"),
            processed_path=str(root / "processed"),
            temp_path=str(root / "tmp") if temp else None,
        )
    )


class TestPathResolution:
    """Upload and processed path resolution."""

    def test_relative_reference_is_under_upload_root(self, tmp_path) -> None:
        storage = make_storage(tmp_path)
        assert storage.resolve_upload_path("user1/raw.mp4") == tmp_path / "uploads" / "user1" / "raw.mp4"

    def test_absolute_reference_is_unchanged(self, tmp_path) -> None:
        storage = make_storage(tmp_path)
        absolute = tmp_path / "mnt" / "raw.mp4"
        assert storage.resolve_upload_path(str(absolute)) == absolute

    def test_processed_path_naming(self, tmp_path) -> None:
        storage = make_storage(tmp_path)
        assert storage.processed_path_for("v1") == tmp_path / "processed" / "v1_processed.mp4"

    @given(video_id=st.text(min_size=1, max_size=64))
    @settings(max_examples=100)
    def test_processed_path_stays_in_processed_root(self, video_id: str) -> None:
        """**Feature: video-worker, Property 13: Storage Path Resolution**

        For any video id, the processed asset SHALL be a direct child of the
        processed root with the processed suffix.
        """
        root = Path("/srv/videos")
        storage = make_storage(root)

        path = storage.processed_path_for(video_id)

        assert path.parent == root / "processed"
        assert path.name.endswith(PROCESSED_SUFFIX)

    @given(video_id=st.text(min_size=1, max_size=64))
    @settings(max_examples=100)
    def test_safe_file_stem_is_a_single_component(self, video_id: str) -> None:
        stem = safe_file_stem(video_id)
        assert stem
        assert "/" not in stem and "\\" not in stem
        assert not stem.startswith(".")

    def test_plain_ids_are_unchanged(self) -> None:
        assert safe_file_stem("abc-123_X.y") == "abc-123_X.y"

    @pytest.mark.parametrize(
        "first, second",
        [("a/b", "a_b"), (".x", "x"), ("..", "_"), ("a b", "a_b")],
    )
    def test_sanitized_ids_do_not_collide_with_plain_ids(self, tmp_path, first, second) -> None:
        storage = make_storage(tmp_path)
        assert storage.processed_path_for(first) != storage.processed_path_for(second)

    @given(
        first=st.text(min_size=1, max_size=32),
        second=st.text(min_size=1, max_size=32),
    )
    @settings(max_examples=200)
    def test_distinct_ids_get_distinct_processed_paths(self, first: str, second: str) -> None:
        """**Feature: video-worker, Property 13: Storage Path Resolution**

        For any two distinct video ids, the processed assets SHALL be
        written to distinct files.
        """
        storage = make_storage(Path("/srv/videos"))
        same_path = storage.processed_path_for(first) == storage.processed_path_for(second)
        assert same_path == (first == second)


class TestDirectories:
    """Directory creation and processed file lookup."""

    def test_ensure_directories_creates_roots(self, tmp_path) -> None:
        storage = make_storage(tmp_path)
        storage.ensure_directories()
        assert (tmp_path / "processed").is_dir()
        assert (tmp_path / "tmp").is_dir()

    def test_temp_root_is_optional(self, tmp_path) -> None:
        storage = make_storage(tmp_path, temp=False)
        storage.ensure_directories()
        assert storage.temp_root is None
        assert not (tmp_path / "tmp").exists()

    def test_get_processed_file_path_requires_existing_file(self, tmp_path) -> None:
        storage = make_storage(tmp_path)
        storage.ensure_directories()

        with pytest.raises(FileNotFoundError):
            storage.get_processed_file_path("v1")

        (tmp_path / "processed" / "v1_processed.mp4").write_bytes(b"mp4")
        assert storage.get_processed_file_path("v1") == tmp_path / "processed" / "v1_processed.mp4"
