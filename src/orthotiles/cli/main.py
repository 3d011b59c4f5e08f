"""CLI entry point for orthotiles."""

from __future__ import annotations

import argparse
import json
import os
import sys
from datetime import timedelta
from pathlib import Path
from typing import Iterable, Optional

from orthotiles.config import ConfigLoader, PipelineConfig
from orthotiles.core.errors import GatewayError, TilingError
from orthotiles.logging import configure_logging, get_logger
from orthotiles.migration import (
    MigrationOrchestrator,
    OutcomeStatus,
    import_tile_directory,
    sweep_orphaned_pyramids,
)
from orthotiles.records import build_gateway
from orthotiles.records.base import ImageRecordGateway
from orthotiles.tiling import FilesystemTileStore, TilePyramidBuilder, printing_progress
from orthotiles.tiling.base import ProgressCallback

LOGGER = get_logger(__name__)


def _load_env() -> None:
    env_path = Path.cwd() / ".env"
    if not env_path.exists():
        return
    try:
        for line in env_path.read_text(encoding="utf-8").splitlines():
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            if "=" not in stripped:
                continue
            key, value = stripped.split("=", 1)
            key = key.strip()
            value = value.strip().strip('"')
            os.environ.setdefault(key, value)
    except OSError as exc:  # pragma: no cover - filesystem errors
        LOGGER.warning("Failed to load .env file", extra={"path": str(env_path), "error": str(exc)})


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Drone orthomosaic tile pyramid tooling")
    parser.add_argument("--log-json", action="store_true", help="Emit logs in JSON format")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to pipeline configuration file (YAML or JSON; default: configs/pipeline.yaml if present)",
    )
    subcommands = parser.add_subparsers(dest="command", required=True)

    migrate_image = subcommands.add_parser("migrate-image", help="Generate tiles for a single drone image")
    migrate_image.add_argument(
        "image_id",
        type=int,
        nargs="?",
        default=None,
        help="Drone image id (defaults to migration.default_image_id)",
    )

    subcommands.add_parser("migrate-all", help="Generate tiles for every image that still needs them")

    sweep = subcommands.add_parser("sweep", help="Delete pyramids not backed by a committed record")
    sweep.add_argument("--dry-run", action="store_true", help="List orphaned pyramids without deleting them")

    subcommands.add_parser("stuck", help="List images whose tile build appears to have died")

    import_tiles = subcommands.add_parser("import-tiles", help="Register an existing z/x/y tile directory")
    import_tiles.add_argument("image_id", type=int, help="Drone image id")
    import_tiles.add_argument("source_dir", type=Path, help="Directory laid out as {z}/{x}/{y}.png")

    inspect = subcommands.add_parser("inspect", help="Print the stored pyramid metadata for an image")
    inspect.add_argument("image_id", type=int, help="Drone image id")
    return parser


def main(argv: Iterable[str] | None = None) -> int:
    _load_env()
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    configure_logging(level=args.log_level, json_logs=args.log_json)

    try:
        config = _load_pipeline_config(args.config)
    except ValueError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return 1

    if args.command == "migrate-image":
        return _handle_migrate_image(args, config)
    if args.command == "migrate-all":
        return _handle_migrate_all(config)
    if args.command == "sweep":
        return _handle_sweep(args, config)
    if args.command == "stuck":
        return _handle_stuck(config)
    if args.command == "import-tiles":
        return _handle_import_tiles(args, config)
    if args.command == "inspect":
        return _handle_inspect(args, config)
    parser.error("Unknown command")
    return 1


def migrate_image_main(argv: Optional[Iterable[str]] = None) -> int:
    """Console script: ``orthotiles-migrate-image [IMAGE_ID]``."""

    extra = list(argv) if argv is not None else sys.argv[1:]
    return main(["migrate-image", *extra])


def migrate_all_main(argv: Optional[Iterable[str]] = None) -> int:
    """Console script: ``orthotiles-migrate-all``."""

    extra = list(argv) if argv is not None else sys.argv[1:]
    return main(["migrate-all", *extra])


def _load_pipeline_config(path: Path | None) -> PipelineConfig:
    loader = ConfigLoader()
    if path is not None:
        resolved = path.resolve()
        if not resolved.exists():
            raise SystemExit(f"Configuration file not found: {resolved}")
        return loader.load(resolved)
    return loader.load_default()


def _build_store(config: PipelineConfig) -> FilesystemTileStore:
    return FilesystemTileStore(
        config.tile_root,
        extension=config.tiling.tile_format.lower(),
        storage_prefix=config.storage_prefix,
    )


def _build_orchestrator(
    config: PipelineConfig,
    gateway: ImageRecordGateway,
    store: FilesystemTileStore,
    *,
    progress: Optional[ProgressCallback] = None,
) -> MigrationOrchestrator:
    return MigrationOrchestrator(
        gateway,
        TilePyramidBuilder(store, config.tiling),
        source_root=config.source_root,
        max_workers=config.migration.max_workers,
        stale_after=timedelta(minutes=config.migration.stale_after_minutes),
        progress_factory=(lambda _image_id: progress) if progress is not None else None,
    )


def _handle_migrate_image(args: argparse.Namespace, config: PipelineConfig) -> int:
    image_id = args.image_id if args.image_id is not None else config.migration.default_image_id
    try:
        gateway = build_gateway(config.records)
        store = _build_store(config)
        orchestrator = _build_orchestrator(config, gateway, store, progress=printing_progress())
        print(f"Migrating image {image_id}...")
        outcome = orchestrator.migrate_image(image_id)
    except GatewayError as exc:
        LOGGER.error("Record store unavailable: %s", exc)
        return 1

    status = outcome.status
    if status is OutcomeStatus.MIGRATED:
        result = outcome.result
        print(f"Complete: {result.total_tiles} tiles in {outcome.duration_seconds:.1f}s")
        return 0
    if status is OutcomeStatus.SKIPPED_HAS_TILES:
        print(f"Image {image_id} already has tiles")
        return 0
    if status is OutcomeStatus.NOT_FOUND:
        print(f"Image {image_id} not found", file=sys.stderr)
        return 1
    if status is OutcomeStatus.SKIPPED_MISSING_SOURCE:
        record = gateway.get_image(image_id)
        path = orchestrator.resolve_source(record) if record is not None else "?"
        print(f"File not found: {path}", file=sys.stderr)
        return 1
    if status is OutcomeStatus.SKIPPED_IN_PROGRESS:
        print(f"Image {image_id} is already being processed", file=sys.stderr)
        return 1
    if status is OutcomeStatus.FAILED:
        print(f"Failed: {outcome.error}", file=sys.stderr)
        return 1
    raise AssertionError(f"Unhandled outcome: {status!r}")


def _handle_migrate_all(config: PipelineConfig) -> int:
    try:
        gateway = build_gateway(config.records)
        orchestrator = _build_orchestrator(config, gateway, _build_store(config))
        summary = orchestrator.migrate_all()
    except GatewayError as exc:
        LOGGER.error("Migration aborted: %s", exc)
        return 1

    for outcome in summary.outcomes:
        if outcome.status is OutcomeStatus.FAILED:
            LOGGER.warning("image failed", extra={"image_id": outcome.image_id, "error": outcome.error})
    print(
        f"Migration complete: {summary.migrated} migrated, "
        f"{summary.skipped} skipped, {summary.failed} failed"
    )
    return 0


def _handle_sweep(args: argparse.Namespace, config: PipelineConfig) -> int:
    try:
        gateway = build_gateway(config.records)
        swept = sweep_orphaned_pyramids(
            gateway,
            _build_store(config),
            dry_run=args.dry_run,
            stale_after=timedelta(minutes=config.migration.stale_after_minutes),
        )
    except GatewayError as exc:
        LOGGER.error("Sweep aborted: %s", exc)
        return 1
    except TilingError as exc:
        LOGGER.error("Sweep failed: %s", exc)
        return 1

    for image_id in swept:
        print(image_id)
    verb = "Would sweep" if args.dry_run else "Swept"
    print(f"{verb} {len(swept)} orphaned pyramid(s)")
    return 0


def _handle_stuck(config: PipelineConfig) -> int:
    try:
        gateway = build_gateway(config.records)
        orchestrator = _build_orchestrator(config, gateway, _build_store(config))
        stuck = orchestrator.find_stuck_images()
    except GatewayError as exc:
        LOGGER.error("Record store unavailable: %s", exc)
        return 1

    if not stuck:
        print("No stuck images")
        return 0
    for record in stuck:
        started = record.processing_started_at.isoformat() if record.processing_started_at else "unknown"
        print(f"{record.id}\t{record.name}\t{started}")
    return 0


def _handle_import_tiles(args: argparse.Namespace, config: PipelineConfig) -> int:
    try:
        gateway = build_gateway(config.records)
        store = _build_store(config)
        result = import_tile_directory(
            args.image_id,
            args.source_dir,
            gateway,
            store,
            extension=store.extension,
            tile_size=config.tiling.tile_size,
        )
    except (GatewayError, TilingError) as exc:
        LOGGER.error("Tile import failed: %s", exc)
        return 1

    print(f"Imported {result.total_tiles} tiles (zoom {result.min_zoom}-{result.max_zoom})")
    return 0


def _handle_inspect(args: argparse.Namespace, config: PipelineConfig) -> int:
    metadata = _build_store(config).read_metadata(args.image_id)
    if metadata is None:
        print(f"No pyramid metadata for image {args.image_id}", file=sys.stderr)
        return 1
    print(json.dumps(metadata, indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
