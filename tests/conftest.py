"""Shared fixtures: a throwaway project tree under tmp_path."""

import pytest

from specflow.lib.config import ProjectProfile, load_paths
from specflow.lib.state import StateStore


@pytest.fixture
def paths(tmp_path):
    """Project paths with an empty .specify/ directory."""
    (tmp_path / ".specify").mkdir()
    return load_paths(tmp_path)


@pytest.fixture
def profile():
    return ProjectProfile()


@pytest.fixture
def store(paths):
    """Initialized state store."""
    store = StateStore(paths.state_file)
    store.init()
    return store


@pytest.fixture
def feature_dir(paths):
    """specs/0020-auth/ registered as the active phase's directory."""
    d = paths.specs_dir / "0020-auth"
    d.mkdir(parents=True)
    return d
