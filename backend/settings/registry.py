from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Iterable

import yaml

from settings.types import ProfileConfig

logger = logging.getLogger(__name__)

DEFAULT_PROFILE_ID = "default"


def _repo_root() -> Path:
    # .../backend/settings/registry.py -> repo root is 2 levels up
    return Path(__file__).resolve().parents[2]


def _profiles_root() -> Path:
    return _repo_root() / "profiles"


@dataclass(frozen=True)
class ProfileEntry:
    config: ProfileConfig
    # Absolute path to profile.yaml on disk (useful for debugging).
    path: Path | None


def _iter_profile_yaml_files() -> Iterable[Path]:
    root = _profiles_root()
    if not root.exists():
        return []
    # Convention: profiles/*/profile.yaml
    return root.glob("*/profile.yaml")


def _load_yaml(path: Path) -> dict:
    raw = path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid profile yaml root: {path}")
    return data


@lru_cache(maxsize=1)
def get_registry() -> dict[str, ProfileEntry]:
    out: dict[str, ProfileEntry] = {}
    for p in sorted(_iter_profile_yaml_files(), key=lambda x: str(x)):
        cfg = ProfileConfig.model_validate(_load_yaml(p))
        out[cfg.id] = ProfileEntry(config=cfg, path=p)
    return out


def get_profile(profile_id: str | None = None) -> ProfileEntry:
    reg = get_registry()
    pid = (profile_id or os.getenv("RENTMAP_PROFILE") or "").strip() or DEFAULT_PROFILE_ID
    entry = reg.get(pid)
    if entry is not None:
        return entry
    if pid != DEFAULT_PROFILE_ID:
        logger.warning("Unknown profile %r, falling back to %r", pid, DEFAULT_PROFILE_ID)
    entry = reg.get(DEFAULT_PROFILE_ID)
    if entry is not None:
        return entry
    # No YAML at all: built-in defaults.
    return ProfileEntry(config=ProfileConfig(id=DEFAULT_PROFILE_ID), path=None)


@lru_cache(maxsize=1)
def get_settings() -> ProfileConfig:
    """
    Active profile with environment overrides applied.
    """
    cfg = get_profile().config
    data = cfg.data.model_copy(
        update={
            k: v
            for k, v in {
                "engine": _env_engine(),
                "listingsPath": _env_str("RENTMAP_LISTINGS_PATH"),
            }.items()
            if v is not None
        }
    )
    clustering = cfg.clustering.model_copy(
        update={
            k: v
            for k, v in {
                "radius": _env_number("RENTMAP_CLUSTER_RADIUS", float),
                "maxZoom": _env_number("RENTMAP_CLUSTER_MAX_ZOOM", int),
                "minPoints": _env_number("RENTMAP_CLUSTER_MIN_POINTS", int),
            }.items()
            if v is not None
        }
    )
    # Re-validate so env overrides go through the same constraints as YAML values.
    return ProfileConfig.model_validate(
        {
            **cfg.model_dump(),
            "data": data.model_dump(),
            "clustering": clustering.model_dump(),
        }
    )


def resolve_repo_path(repo_relative: str) -> Path:
    p = Path(repo_relative)
    if p.is_absolute():
        return p
    # Allow both "data/..." and "/data/..." inputs (normalize to repo-relative).
    rel = (repo_relative or "").lstrip("/")
    return _repo_root() / rel


def listings_path() -> Path | None:
    raw = get_settings().data.listingsPath
    if not raw:
        return None
    return resolve_repo_path(raw)


def clear_settings_cache() -> None:
    """
    Drop cached profiles/settings so YAML or env changes are picked up without a restart.
    """
    try:
        get_registry.cache_clear()
        get_settings.cache_clear()
    except Exception:
        pass


def _env_str(name: str) -> str | None:
    v = (os.getenv(name) or "").strip()
    return v or None


def _env_engine() -> str | None:
    v = _env_str("RENTMAP_ENGINE")
    if v is None:
        return None
    n = v.lower()
    return n if n in {"duckdb", "in_memory"} else "in_memory"


def _env_number(name: str, cast):
    v = _env_str(name)
    if v is None:
        return None
    try:
        return cast(v)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {v!r}") from None
