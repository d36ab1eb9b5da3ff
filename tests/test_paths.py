"""
Tests for the paths module.

Project root detection and canonical paths.
"""

import pytest

from shelter_avail.paths import (
    PROJECT_ROOT,
    find_project_root,
    CONFIG_DIR,
    PARAMS_PATH,
    RAW_DIR,
    INTERIM_DIR,
    PROCESSED_DIR,
    MERGED_DIR,
    MODEL_DIR,
    METADATA_DIR,
    LOGS_DIR,
)


class TestProjectRoot:
    """Tests for project root detection."""

    def test_project_root_exists(self):
        """PROJECT_ROOT should be a valid directory."""
        assert PROJECT_ROOT.exists()
        assert PROJECT_ROOT.is_dir()

    def test_project_root_marker_exists(self):
        """The .project-root marker file should exist."""
        marker = PROJECT_ROOT / ".project-root"
        assert marker.exists(), "Missing .project-root marker file"

    def test_find_project_root_from_subdir(self):
        """find_project_root should work from any subdirectory."""
        subdir = PROJECT_ROOT / "src" / "shelter_avail"
        assert find_project_root(subdir) == PROJECT_ROOT

    def test_find_project_root_raises_on_invalid_path(self, tmp_path):
        """find_project_root should raise if no marker found."""
        with pytest.raises(FileNotFoundError):
            find_project_root(tmp_path)

    def test_find_project_root_uses_marker(self, tmp_path):
        """A .project-root marker in a parent directory is found."""
        (tmp_path / ".project-root").touch()
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_project_root(nested) == tmp_path


class TestCanonicalPaths:
    """Tests for canonical path definitions."""

    def test_raw_dir_under_data(self):
        """RAW_DIR should be under data/."""
        assert RAW_DIR.name == "raw"
        assert RAW_DIR.parent.name == "data"

    def test_processed_subdirs(self):
        """Pipeline outputs live under data/processed/."""
        for d in [MERGED_DIR, MODEL_DIR, METADATA_DIR]:
            assert d.parent == PROCESSED_DIR

    def test_params_file_present(self):
        """configs/params.yml ships with the repo."""
        assert PARAMS_PATH.parent == CONFIG_DIR
        assert PARAMS_PATH.exists()

    def test_all_paths_absolute(self):
        """All canonical paths should be absolute and free of '..'."""
        paths_to_check = [
            PROJECT_ROOT, RAW_DIR, INTERIM_DIR, PROCESSED_DIR,
            CONFIG_DIR, LOGS_DIR, MERGED_DIR, MODEL_DIR,
        ]
        for p in paths_to_check:
            assert p.is_absolute(), f"Path is not absolute: {p}"
            assert ".." not in p.parts, f"Path contains '..': {p}"


@pytest.mark.smoke
class TestPathsSmoke:
    """Smoke tests for paths module."""

    def test_import_succeeds(self):
        """Basic import should work."""
        from shelter_avail import paths
        assert paths.PROJECT_ROOT is not None

    def test_src_exists(self):
        assert (PROJECT_ROOT / "src").exists()
