from __future__ import annotations

import pytest
from pydantic import ValidationError

from clustering.types import ClusterOptions
from settings.registry import (
    clear_settings_cache,
    get_profile,
    get_registry,
    get_settings,
    listings_path,
)
from settings.types import ClusterSettings


def test_profiles_load_from_yaml():
    reg = get_registry()
    assert {"default", "dense-city"} <= set(reg)
    dense = reg["dense-city"].config
    assert dense.clustering.minPoints == 3
    assert dense.data.engine == "duckdb"


def test_default_settings_match_map_defaults():
    cfg = get_settings()
    assert cfg.id == "default"
    assert cfg.clustering.to_options() == ClusterOptions(
        radius=75.0, min_points=2, min_zoom=0, max_zoom=16, extent=512, node_size=64
    )
    p = listings_path()
    assert p is not None and p.name == "sample_listings.json"
    assert p.is_absolute()


def test_env_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("RENTMAP_PROFILE", "dense-city")
    monkeypatch.setenv("RENTMAP_ENGINE", "IN_MEMORY")
    monkeypatch.setenv("RENTMAP_CLUSTER_RADIUS", "40")
    monkeypatch.setenv("RENTMAP_CLUSTER_MAX_ZOOM", "12")
    monkeypatch.setenv("RENTMAP_LISTINGS_PATH", str(tmp_path / "x.json"))
    clear_settings_cache()

    cfg = get_settings()
    assert cfg.id == "dense-city"
    assert cfg.data.engine == "in_memory"
    assert cfg.clustering.radius == 40.0
    assert cfg.clustering.maxZoom == 12
    assert cfg.clustering.minPoints == 3
    assert listings_path() == tmp_path / "x.json"


def test_unknown_engine_and_profile_fall_back(monkeypatch):
    monkeypatch.setenv("RENTMAP_PROFILE", "does-not-exist")
    monkeypatch.setenv("RENTMAP_ENGINE", "postgres")
    clear_settings_cache()
    assert get_profile().config.id == "default"
    assert get_settings().data.engine == "in_memory"


def test_invalid_env_values_are_rejected(monkeypatch):
    monkeypatch.setenv("RENTMAP_CLUSTER_RADIUS", "wide")
    clear_settings_cache()
    with pytest.raises(ValueError):
        get_settings()

    monkeypatch.setenv("RENTMAP_CLUSTER_RADIUS", "-5")
    clear_settings_cache()
    with pytest.raises(ValidationError):
        get_settings()


def test_cluster_settings_zoom_range():
    with pytest.raises(ValidationError):
        ClusterSettings(minZoom=10, maxZoom=5)
