"""Command-line interface wiring for the laser preparation toolkit."""
from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import uuid
from concurrent.futures import ProcessPoolExecutor, as_completed
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Tuple

try:  # pragma: no cover - optional dependency
    import yaml
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    yaml = None

try:  # Optional progress bar for batch runs
    from tqdm import tqdm as _tqdm  # type: ignore
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    _tqdm = None

from .cache import EdgeMagnitudeCache
from .engrave import MATERIAL_PRESETS, PowerMapSettings, generate_power_map
from .errors import ConfigurationError
from .io_utils import load_pixels, save_power_map, write_text
from .placement import (
    GEM_SIZES,
    MODE_NAMES,
    SAMPLE_MAX_DIM,
    UNIT_TO_MM,
    GridType,
    PlacementSettings,
    place_elements,
    to_mm,
)
from .template import EXPORT_STROKE_MM, render_placement_svg

LOGGER = logging.getLogger("laser_prep")
WORKER_LOGGER = LOGGER.getChild("worker")


def _load_config_data(path: Path) -> Mapping[str, Any]:
    """Load configuration from JSON or YAML file.

    Raises:
        FileNotFoundError: If configuration file doesn't exist.
        RuntimeError: If YAML file requested but pyyaml not installed.
        ValueError: If file content is not a valid mapping.
    """
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    suffix = path.suffix.lower()
    try:
        if suffix in {".yaml", ".yml"}:
            if yaml is None:
                raise RuntimeError("YAML configuration files require the optional 'pyyaml' dependency")
            data = yaml.safe_load(path.read_text())
        else:
            data = json.loads(path.read_text())
    except RuntimeError:
        raise
    except Exception as exc:  # pragma: no cover - exact exception varies by backend
        raise ValueError(f"Unable to parse configuration file {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValueError(f"Configuration file {path} must contain a mapping of option names to values")
    return data


def _build_parser_aliases(parser: argparse.ArgumentParser) -> tuple[dict[str, argparse.Action], dict[str, str]]:
    """Map option spellings (dest, flag names) to parser actions."""

    dest_to_action: dict[str, argparse.Action] = {}
    alias_to_dest: dict[str, str] = {}
    for action in parser._actions:
        if action.dest in {argparse.SUPPRESS, "help", "config", "command", "handler"}:
            continue
        dest_to_action[action.dest] = action
        alias_to_dest[action.dest] = action.dest
        for option_string in action.option_strings:
            alias = option_string.lstrip("-").replace("-", "_")
            if alias.startswith("no_") and isinstance(action, argparse.BooleanOptionalAction):
                continue
            alias_to_dest[alias] = action.dest
    return dest_to_action, alias_to_dest


def _coerce_bool(value: Any, *, source: Path, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"Invalid boolean for '{key}' in {source}: expected true/false value, got {value!r}")


def _coerce_config_value(action: argparse.Action, value: Any, *, source: Path, key: str) -> Any:
    """Convert configuration values so they match argparse expectations."""

    if value is None:
        return None
    if isinstance(action, (argparse._StoreTrueAction, argparse._StoreFalseAction, argparse.BooleanOptionalAction)):
        return _coerce_bool(value, source=source, key=key)
    if action.nargs in ("+", "*"):
        items = value if isinstance(value, (list, tuple)) else [value]
        return [action.type(item) if action.type is not None else item for item in items]

    if action.type is not None:
        try:
            converted = action.type(value)
        except Exception as exc:  # pragma: no cover - delegated to argparse
            raise ValueError(f"Invalid value for '{key}' in {source}: {exc}") from exc
    else:
        converted = value

    if action.choices is not None and converted not in action.choices:
        raise ValueError(
            f"Invalid value for '{key}' in {source}: {converted!r} (choose from {sorted(action.choices)})"
        )
    return converted


def _apply_config_defaults(parser: argparse.ArgumentParser, config_path: Path) -> None:
    raw_config = _load_config_data(config_path)
    dest_to_action, alias_to_dest = _build_parser_aliases(parser)
    converted_defaults: dict[str, Any] = {}
    for key, value in raw_config.items():
        if not isinstance(key, str):
            raise ValueError("Configuration keys must be strings")
        dest = alias_to_dest.get(key.replace("-", "_"))
        if dest is None:
            raise ValueError(f"Unknown configuration option '{key}' in {config_path}")
        converted_defaults[dest] = _coerce_config_value(
            dest_to_action[dest], value, source=config_path, key=key
        )
    parser.set_defaults(**converted_defaults)


def parse_levels(value: Any) -> Tuple[int, ...]:
    """Parse calibration levels from ``"104, 187, 255"`` or a list of integers."""

    if isinstance(value, str):
        parts = [part.strip() for part in value.split(",") if part.strip()]
    else:
        parts = list(value)
    try:
        return tuple(int(part) for part in parts)
    except (TypeError, ValueError) as exc:
        raise argparse.ArgumentTypeError(f"Invalid gray levels {value!r}: {exc}") from exc


def _common_options() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional configuration file (JSON by default, YAML when 'pyyaml' is installed)",
    )
    common.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity",
    )
    return common


def _add_engrave_parser(subparsers, common: argparse.ArgumentParser) -> argparse.ArgumentParser:
    parser = subparsers.add_parser(
        "engrave",
        parents=[common],
        help="Convert photographs into calibrated power maps for 3D engraving",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("inputs", type=Path, nargs="+", help="Source image files")
    parser.add_argument(
        "-o",
        "--output-dir",
        type=Path,
        default=None,
        help="Folder for power maps. Defaults to the folder of each input.",
    )
    parser.add_argument("--suffix", default="_power", help="Filename suffix appended to each output stem")
    parser.add_argument("--format", default="png", choices=["png", "bmp", "tif", "jpg"], help="Output format")
    parser.add_argument(
        "--preset",
        default="plywood",
        choices=sorted(MATERIAL_PRESETS.keys()),
        help="Material preset that provides a starting point",
    )
    parser.add_argument(
        "--gray-levels",
        type=parse_levels,
        default=None,
        dest="gray_levels",
        help="Comma-separated calibration gray levels, e.g. '104,187,188,216,255'",
    )
    parser.add_argument(
        "--keep-level-order",
        action="store_true",
        help="Keep gray levels in the given order instead of sorting them (non-monotonic curves)",
    )
    parser.add_argument("--dpi", type=int, default=None, help="Driver resolution in dots per inch (1-2400)")
    parser.add_argument("--invert", action=argparse.BooleanOptionalAction, default=None, help="Invert tone")
    parser.add_argument(
        "--clahe",
        action=argparse.BooleanOptionalAction,
        default=None,
        dest="apply_clahe",
        help="Apply adaptive contrast enhancement",
    )
    parser.add_argument("--clahe-clip", type=float, default=None, dest="clahe_clip", help="CLAHE clip limit")
    parser.add_argument("--clahe-tile", type=int, default=None, dest="clahe_tile", help="CLAHE tile size in pixels")
    parser.add_argument("--sharpen", type=float, default=None, dest="sharpen_amount", help="Unsharp mask amount (0-10)")
    parser.add_argument("--sharpen-sigma", type=float, default=None, dest="sharpen_sigma", help="Unsharp mask blur sigma")
    parser.add_argument("--gamma", type=float, default=None, help="Tone gamma applied before inversion")
    parser.add_argument("--width-in", type=float, default=None, dest="target_width_in", help="Target width in inches")
    parser.add_argument("--height-in", type=float, default=None, dest="target_height_in", help="Target height in inches")
    parser.add_argument(
        "--native-size",
        action="store_true",
        help="Keep the source pixel size instead of the preset's physical target",
    )
    parser.add_argument("--overwrite", action="store_true", help="Allow overwriting existing files")
    parser.add_argument("--dry-run", action="store_true", help="Preview the work without writing any files")
    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable progress reporting (useful for minimal or non-interactive environments)",
    )
    parser.add_argument("--workers", type=int, default=1, help="Number of worker processes")
    parser.set_defaults(handler=run_engrave)
    return parser


def _add_place_parser(subparsers, common: argparse.ArgumentParser) -> argparse.ArgumentParser:
    parser = subparsers.add_parser(
        "place",
        parents=[common],
        help="Generate a gem placement template (SVG) from a photograph",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("input", type=Path, help="Source image file")
    parser.add_argument("output", type=Path, help="Destination SVG file")
    parser.add_argument("--gem", default="SS16", choices=sorted(GEM_SIZES.keys()), help="Gem size from the catalog")
    parser.add_argument("--diameter", type=float, default=None, help="Custom element diameter in mm (overrides --gem)")
    parser.add_argument("--width", type=float, default=None, help="Canvas width in --unit")
    parser.add_argument("--height", type=float, default=None, help="Canvas height in --unit")
    parser.add_argument("--unit", default="mm", choices=sorted(UNIT_TO_MM.keys()), help="Unit for width/height")
    parser.add_argument("--gap", type=float, default=0.0, help="Gap between elements as a fraction of the diameter")
    parser.add_argument("--grid", default=GridType.HEX.value, choices=[g.value for g in GridType], help="Grid type")
    parser.add_argument("--mode", default="edge", choices=list(MODE_NAMES), help="Placement mode")
    parser.add_argument(
        "--threshold",
        type=int,
        default=128,
        help="Luminance cutoff (threshold mode) or edge sensitivity (edge mode)",
    )
    parser.add_argument("--edge-width", type=float, default=2.0, dest="edge_width", help="Edge band width in element rows")
    parser.add_argument("--colorize", action="store_true", help="Stroke each element with its sampled colour")
    parser.add_argument("--stroke-width", type=float, default=EXPORT_STROKE_MM, help="Outline width in mm")
    parser.add_argument("--max-dim", type=int, default=SAMPLE_MAX_DIM, help="Cap on the sampled image's long edge")
    parser.add_argument("--overwrite", action="store_true", help="Allow overwriting an existing template")
    parser.set_defaults(handler=run_place)
    return parser


def build_parser() -> tuple[argparse.ArgumentParser, dict[str, argparse.ArgumentParser]]:
    common = _common_options()
    parser = argparse.ArgumentParser(
        prog="laser-prep",
        description="Prepare images for laser engraving and gem placement templates.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    commands = {
        "engrave": _add_engrave_parser(subparsers, common),
        "place": _add_place_parser(subparsers, common),
    }
    return parser, commands


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser, commands = build_parser()
    argv_list = list(argv) if argv is not None else None

    config_probe, _ = parser.parse_known_args(argv_list)
    if config_probe.config is not None:
        subparser = commands[config_probe.command]
        try:
            _apply_config_defaults(subparser, config_probe.config)
        except (OSError, ValueError, RuntimeError) as exc:
            subparser.error(str(exc))

    args = parser.parse_args(argv_list)
    if args.command == "engrave" and args.workers < 1:
        commands["engrave"].error("--workers must be a positive integer")
    if args.command == "place" and (args.width is None or args.height is None):
        commands["place"].error("--width and --height are required (on the command line or in --config)")
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s: %(message)s")
    return args


def build_power_map_settings(args: argparse.Namespace) -> PowerMapSettings:
    """Construct power-map settings from the preset and CLI overrides.

    Raises:
        ConfigurationError: If the combined settings are invalid.
    """
    base = MATERIAL_PRESETS[args.preset]
    overrides: dict[str, Any] = {}
    for field in dataclasses.fields(base):
        value = getattr(args, field.name, None)
        if value is not None:
            overrides[field.name] = value
    if getattr(args, "keep_level_order", False):
        overrides["sort_levels"] = False
    if getattr(args, "native_size", False):
        overrides["target_width_in"] = None
        overrides["target_height_in"] = None
    settings = dataclasses.replace(base, **overrides)
    LOGGER.debug("Using power map settings: %s", settings)
    return settings


def build_placement_settings(args: argparse.Namespace) -> PlacementSettings:
    """Construct placement settings, converting canvas dimensions to millimetres.

    Raises:
        ConfigurationError: If the settings are invalid.
    """
    diameter = args.diameter if args.diameter is not None else GEM_SIZES[args.gem]
    return PlacementSettings(
        element_diameter=diameter,
        width_mm=to_mm(args.width, args.unit),
        height_mm=to_mm(args.height, args.unit),
        gap=args.gap,
        grid_type=GridType(args.grid),
        mode=args.mode,
        threshold=args.threshold,
        edge_width_rows=args.edge_width,
    )


def _wrap_with_progress(iterable: Iterable[Any], *, total: int, description: str, enabled: bool) -> Iterable[Any]:
    """Return ``iterable`` wrapped with :mod:`tqdm` when available and enabled."""

    if not enabled:
        return iterable
    if _tqdm is None:
        LOGGER.debug("Progress helper not available; install tqdm for progress reporting.")
        return iterable
    return _tqdm(iterable, total=total, desc=description, unit="image")


def output_path_for(source: Path, output_dir: Optional[Path], suffix: str, fmt: str) -> Path:
    folder = output_dir if output_dir is not None else source.parent
    return folder / f"{source.stem}{suffix}.{fmt}"


def _engrave_worker(source: Path, destination: Path, settings: PowerMapSettings, dry_run: bool = False) -> bool:
    """Process one image; isolated so it can run in a ProcessPoolExecutor.

    Returns ``True`` when an output file was written.
    """
    WORKER_LOGGER.info("Processing %s -> %s", source, destination)
    pixels = load_pixels(source)
    result = generate_power_map(pixels, settings)
    if dry_run:
        WORKER_LOGGER.info("Dry run enabled, skipping save for %s", destination)
        return False
    save_power_map(destination, result)
    return True


def run_engrave(args: argparse.Namespace) -> int:
    """Generate power maps for every input; returns the number written."""

    run_id = uuid.uuid4().hex
    settings = build_power_map_settings(args)
    jobs = []
    for source in args.inputs:
        if not source.is_file():
            raise FileNotFoundError(f"Input image not found: {source}")
        destination = output_path_for(source, args.output_dir, args.suffix, args.format)
        if destination.exists() and not args.overwrite and not args.dry_run:
            LOGGER.warning("Skipping %s (exists, use --overwrite to replace)", destination)
            continue
        jobs.append((source, destination))

    LOGGER.info("Starting engrave run %s: %s image(s) at %s DPI", run_id, len(jobs), settings.dpi)
    processed = 0
    progress = not args.no_progress
    if args.workers <= 1:
        for source, destination in _wrap_with_progress(
            jobs, total=len(jobs), description="Generating power maps", enabled=progress
        ):
            if _engrave_worker(source, destination, settings, args.dry_run):
                processed += 1
    else:
        with ProcessPoolExecutor(max_workers=args.workers) as executor:
            futures = [
                executor.submit(_engrave_worker, source, destination, settings, args.dry_run)
                for source, destination in jobs
            ]
            for future in _wrap_with_progress(
                as_completed(futures), total=len(futures), description="Generating power maps", enabled=progress
            ):
                if future.result():
                    processed += 1

    LOGGER.info("Finished engrave run %s; wrote %s power map(s)", run_id, processed)
    return processed


def run_place(args: argparse.Namespace) -> int:
    """Generate one placement template; returns the number of placed elements."""

    settings = build_placement_settings(args)
    if args.output.exists() and not args.overwrite:
        raise FileExistsError(f"{args.output} exists, use --overwrite to replace")
    pixels = load_pixels(args.input, max_dim=args.max_dim)
    elements = place_elements(pixels, settings, cache=EdgeMagnitudeCache())
    document = render_placement_svg(
        elements,
        settings.width_mm,
        settings.height_mm,
        settings.element_diameter,
        stroke_width=args.stroke_width,
        colorize=args.colorize,
        unit=args.unit,
    )
    write_text(args.output, document)
    LOGGER.info("Placed %s element(s) of %.2f mm", len(elements), settings.element_diameter)
    return len(elements)


def main(argv: Optional[Iterable[str]] = None) -> int:
    args = parse_args(argv)
    try:
        args.handler(args)
    except ConfigurationError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return 2
    return 0


__all__ = [
    "build_parser",
    "build_placement_settings",
    "build_power_map_settings",
    "main",
    "output_path_for",
    "parse_args",
    "parse_levels",
    "run_engrave",
    "run_place",
]
