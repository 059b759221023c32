from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from trajmem_core.logging import get_logger

logger = get_logger("config")


def _load_toml(path: Path) -> dict:
    """Load a TOML file, returning empty dict if missing or unreadable."""
    if not path.exists():
        return {}
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", path, exc)
        return {}


def _deep_merge(base: dict, override: dict) -> dict:
    """Merge override into base (1 level deep for TOML sections)."""
    merged = dict(base)
    for key, val in override.items():
        if (
            key in merged
            and isinstance(merged[key], dict)
            and isinstance(val, dict)
        ):
            merged[key] = {**merged[key], **val}
        else:
            merged[key] = val
    return merged


@dataclass(frozen=True, slots=True)
class BackendConfig:
    tier: str = "sqlite"  # memory | sqlite
    sqlite_path: str = ".trajmem/trajmem.db"


@dataclass(frozen=True, slots=True)
class OptimizerConfig:
    target_file: str = "CLAUDE.md"
    history_limit: int = 10
    curate_min_samples: int = 3


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    level: str = "INFO"
    json: bool = False


@dataclass(frozen=True, slots=True)
class TrajmemConfig:
    """Top-level configuration, parsed from trajmem.toml."""
    backend: BackendConfig = field(default_factory=BackendConfig)
    optimizer: OptimizerConfig = field(default_factory=OptimizerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_toml(
        cls, path: Path | str = "trajmem.toml"
    ) -> TrajmemConfig:
        path = Path(path)
        raw = _load_toml(path)
        return cls._from_raw(raw)

    @classmethod
    def load(
        cls, project_dir: Path | str | None = None
    ) -> TrajmemConfig:
        """Load config with global → project layering.

        Resolution order (later wins):
        1. Built-in defaults
        2. ~/.trajmem/config.toml (global)
        3. .trajmem/config.toml or trajmem.toml (project)
        """
        global_path = Path.home() / ".trajmem" / "config.toml"

        project_dir = (
            Path.cwd() if project_dir is None else Path(project_dir)
        )

        project_path = project_dir / ".trajmem" / "config.toml"
        if not project_path.exists():
            project_path = project_dir / "trajmem.toml"

        global_raw = _load_toml(global_path)
        project_raw = _load_toml(project_path)
        merged = _deep_merge(global_raw, project_raw)

        return cls._from_raw(merged)

    @classmethod
    def _from_raw(cls, raw: dict) -> TrajmemConfig:
        """Build TrajmemConfig from a raw TOML dict."""

        def _pick(section: dict, dc: type) -> dict:
            fields = dc.__dataclass_fields__
            return {
                k: v for k, v in section.items() if k in fields
            }

        return cls(
            backend=BackendConfig(
                **_pick(raw.get("backend", {}), BackendConfig)
            ),
            optimizer=OptimizerConfig(
                **_pick(raw.get("optimizer", {}), OptimizerConfig)
            ),
            logging=LoggingConfig(
                **_pick(raw.get("logging", {}), LoggingConfig)
            ),
        )
