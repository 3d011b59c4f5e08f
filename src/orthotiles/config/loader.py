"""Configuration management with YAML and JSON support."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from orthotiles.core.models import MigrationConfig, RecordsConfig, TilingConfig

DEFAULT_CONFIG_PATH = Path("configs/pipeline.yaml")

TILE_FORMATS = ("PNG", "WEBP")
RESAMPLING_KERNELS = ("nearest", "bilinear", "cubic", "average", "lanczos")
RECORD_BACKENDS = ("json", "http")


@dataclass
class PipelineConfig:
    """Top-level configuration object for the orthotiles pipeline."""

    tile_root: Path = Path("tiles")
    source_root: Path = Path(".")
    storage_prefix: str = ""
    tiling: TilingConfig = field(default_factory=TilingConfig)
    records: RecordsConfig = field(default_factory=RecordsConfig)
    migration: MigrationConfig = field(default_factory=MigrationConfig)

    def resolve_relative_paths(self, base_dir: Path) -> None:
        """Resolve relative directories against the provided base directory."""

        if not self.tile_root.is_absolute():
            self.tile_root = base_dir / self.tile_root
        if not self.source_root.is_absolute():
            self.source_root = base_dir / self.source_root
        records_path = Path(self.records.path)
        if self.records.backend == "json" and not records_path.is_absolute():
            self.records.path = str(base_dir / records_path)


class ConfigLoader:
    """Load pipeline configuration files in YAML or JSON format."""

    def __init__(self, base_dir: Optional[Path] = None) -> None:
        self._base_dir = base_dir or Path.cwd()

    def load(self, path: Path | str) -> PipelineConfig:
        """Parse a configuration file and return a populated dataclass."""

        config_path = self._resolve_path(Path(path))
        payload = self._load_payload(config_path)
        if not isinstance(payload, dict):
            raise ValueError("configuration root must be a mapping")
        config = self._build_config(payload)
        config.resolve_relative_paths(config_path.parent)
        return config

    def load_default(self) -> PipelineConfig:
        """Load ``configs/pipeline.yaml`` when present, otherwise use defaults."""

        candidate = self._resolve_path(DEFAULT_CONFIG_PATH)
        if candidate.is_file():
            return self.load(candidate)
        config = PipelineConfig()
        config.resolve_relative_paths(self._base_dir)
        return config

    def _resolve_path(self, path: Path) -> Path:
        if path.is_absolute():
            return path
        return (self._base_dir / path).resolve()

    def _load_payload(self, path: Path) -> Dict[str, Any]:
        suffix = path.suffix.lower()
        if suffix in {".yaml", ".yml"}:
            with path.open("r", encoding="utf-8") as handle:
                return yaml.safe_load(handle) or {}
        if suffix == ".json":
            with path.open("r", encoding="utf-8") as handle:
                return json.load(handle) or {}
        raise ValueError(f"Unsupported configuration format: {suffix}")

    def _build_config(self, payload: Dict[str, Any]) -> PipelineConfig:
        tile_root = Path(payload.get("tile_root", "tiles"))
        source_root = Path(payload.get("source_root", "."))
        storage_prefix = str(payload.get("storage_prefix") or "")

        tiling_data = _section(payload, "tiling", TilingConfig)
        for key in ("tile_size", "max_zoom_cap", "min_zoom_search_depth"):
            if key in tiling_data and tiling_data[key] is not None:
                tiling_data[key] = int(tiling_data[key])
        tiling = TilingConfig(**tiling_data)
        tiling.tile_format = str(tiling.tile_format).upper()
        tiling.resampling = str(tiling.resampling).lower()
        if tiling.tile_format not in TILE_FORMATS:
            raise ValueError(f"tiling.tile_format must be one of {', '.join(TILE_FORMATS)}")
        if tiling.resampling not in RESAMPLING_KERNELS:
            raise ValueError(f"tiling.resampling must be one of {', '.join(RESAMPLING_KERNELS)}")
        if tiling.tile_size < 2 or tiling.tile_size % 2:
            raise ValueError("tiling.tile_size must be a positive even number")

        records_data = _section(payload, "records", RecordsConfig)
        if "timeout_seconds" in records_data and records_data["timeout_seconds"] is not None:
            records_data["timeout_seconds"] = int(records_data["timeout_seconds"])
        records = RecordsConfig(**records_data)
        records.backend = str(records.backend).lower()
        if records.backend not in RECORD_BACKENDS:
            raise ValueError(f"records.backend must be one of {', '.join(RECORD_BACKENDS)}")
        if records.backend == "http" and not records.api_base_url:
            raise ValueError("records.api_base_url is required for the http backend")

        migration_data = _section(payload, "migration", MigrationConfig)
        for key in ("max_workers", "default_image_id"):
            if key in migration_data and migration_data[key] is not None:
                migration_data[key] = int(migration_data[key])
        if "stale_after_minutes" in migration_data and migration_data["stale_after_minutes"] is not None:
            migration_data["stale_after_minutes"] = float(migration_data["stale_after_minutes"])
        migration = MigrationConfig(**migration_data)
        if migration.max_workers < 1:
            raise ValueError("migration.max_workers must be at least 1")

        return PipelineConfig(
            tile_root=tile_root,
            source_root=source_root,
            storage_prefix=storage_prefix,
            tiling=tiling,
            records=records,
            migration=migration,
        )


def _section(payload: Dict[str, Any], name: str, model: type) -> Dict[str, Any]:
    section = payload.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"{name} section must be a mapping")
    known = {item.name for item in fields(model)}
    unknown = set(section) - known
    if unknown:
        raise ValueError(f"Unknown {name} options: {', '.join(sorted(unknown))}")
    return dict(section)


def load_config(path: Path | str, *, base_dir: Optional[Path] = None) -> PipelineConfig:
    """Convenience wrapper around :class:`ConfigLoader`."""

    loader = ConfigLoader(base_dir=base_dir)
    return loader.load(path)
