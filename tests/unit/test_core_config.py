from pathlib import Path

import pytest

from stashbox.core.config import DEFAULT_CACHE_TTL, DEFAULT_ROOT, StashConfig


def test_defaults():
    config = StashConfig()

    assert config.root == DEFAULT_ROOT
    assert config.cache_enabled is True
    assert config.cache_ttl == DEFAULT_CACHE_TTL


def test_derived_paths(tmp_path: Path):
    config = StashConfig(root=tmp_path)

    assert config.control_dir == tmp_path / ".stash"
    assert config.db_path == tmp_path / ".stash" / "secrets.db"
    assert config.staging_dir == tmp_path / ".stash" / "staging"
    assert config.contents_path == tmp_path / "contents"


def test_from_env(tmp_path: Path):
    env = {
        "STASHBOX_ROOT": str(tmp_path / "vault"),
        "STASHBOX_NO_CACHE": "yes",
        "STASHBOX_CACHE_TTL": "42",
        "STASHBOX_CHUNK_SIZE": "4096",
    }
    config = StashConfig.from_env(env)

    assert config.root == tmp_path / "vault"
    assert config.cache_enabled is False
    assert config.cache_ttl == 42
    assert config.chunk_size == 4096


def test_overrides_win_over_env(tmp_path: Path):
    env = {"STASHBOX_ROOT": str(tmp_path / "env")}
    config = StashConfig.from_env(env, root=tmp_path / "flag", cache_enabled=None)

    assert config.root == tmp_path / "flag"
    assert config.cache_enabled is True


def test_instances_are_independent(tmp_path: Path):
    a = StashConfig(root=tmp_path / "a")
    b = StashConfig(root=tmp_path / "b")

    assert a.db_path != b.db_path


@pytest.mark.parametrize("field", ["cache_ttl", "chunk_size"])
def test_rejects_non_positive(tmp_path: Path, field):
    with pytest.raises(ValueError):
        StashConfig(root=tmp_path, **{field: 0})
