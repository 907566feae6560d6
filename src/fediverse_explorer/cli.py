"""
Command-line interface for the fediverse explorer pipeline.

This module provides the main CLI entry point with commands for:
- run: Generate and publish one snapshot set
- config: Configuration management

Environment overrides (read from the process environment or a .env file):
- EXPLORER_DUMP_DIR: directory holding the storage dump
- EXPLORER_OUTPUT_DIR: directory the artifacts are published to
- EXPLORER_OUTPUT_MAX_AGE_MS: maximum crawl age in milliseconds
"""

import argparse
import asyncio
import json
import os
import sys
from dataclasses import replace
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from . import __version__
from .audit_logger import AuditLogger
from .config import (
    DEFAULT_MAX_AGE_MS,
    ExplorerConfig,
    FilterConfig,
    LoggingConfig,
    NotificationConfig,
    OutputConfig,
    StorageConfig,
)
from .exceptions import ConfigError, ExplorerError
from .notifications import RunNotifier
from .orchestrator import SnapshotOrchestrator
from .snapshot_writer import SnapshotWriter
from .storage import JsonDumpStorage

DEFAULT_CONFIG_PATH = Path("explorer.json")

ENV_DUMP_DIR = "EXPLORER_DUMP_DIR"
ENV_OUTPUT_DIR = "EXPLORER_OUTPUT_DIR"
ENV_MAX_AGE = "EXPLORER_OUTPUT_MAX_AGE_MS"


def create_default_config(
    dump_directory: Optional[Path] = None,
    output_directory: Optional[Path] = None,
) -> ExplorerConfig:
    """
    Create a default configuration.

    Args:
        dump_directory: Directory holding the storage dump
        output_directory: Directory artifacts are published to

    Returns:
        ExplorerConfig with default settings
    """
    return ExplorerConfig(
        storage=StorageConfig(dump_directory=dump_directory or Path("data")),
        output=OutputConfig(directory=output_directory or Path("public")),
        filters=FilterConfig(max_age_ms=DEFAULT_MAX_AGE_MS),
        notifications=NotificationConfig(),
        logging=LoggingConfig(level="info", output_format="text"),
    )


def validate_config(config: ExplorerConfig) -> None:
    """
    Check configuration values.

    Raises:
        ConfigError: If a value is out of range
    """
    if config.filters.max_age_ms <= 0:
        raise ConfigError(
            code="invalid_value",
            message="filters.max_age_ms must be positive",
            details={"max_age_ms": config.filters.max_age_ms},
        )
    if config.logging.level not in ("debug", "info", "warn", "error"):
        raise ConfigError(
            code="invalid_value",
            message=f"Unknown log level: {config.logging.level}",
            details={"level": config.logging.level},
        )
    if config.logging.output_format not in ("json", "text", "both"):
        raise ConfigError(
            code="invalid_value",
            message=f"Unknown log output format: {config.logging.output_format}",
            details={"output_format": config.logging.output_format},
        )
    if config.output.indent is not None and config.output.indent < 0:
        raise ConfigError(
            code="invalid_value",
            message="output.indent must not be negative",
            details={"indent": config.output.indent},
        )


def load_config_from_file(config_path: Path) -> Optional[ExplorerConfig]:
    """
    Read and validate a JSON config file.

    Sections or keys missing from the file take their default values.

    Returns:
        The configuration, or None when no file exists at config_path

    Raises:
        ConfigError: If the file is unreadable, malformed, or out of range
    """
    if not config_path.exists():
        return None

    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ConfigError(
            code="parse_error",
            message=f"Cannot read config file {config_path}: {e}",
            details={"file_path": str(config_path)},
        )

    try:
        config = ExplorerConfig.from_dict(raw, defaults=create_default_config())
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigError(
            code="invalid_config",
            message=f"Malformed config file {config_path}: {e}",
            details={"file_path": str(config_path)},
        )

    validate_config(config)
    return config


def save_config_to_file(config: ExplorerConfig, config_path: Path) -> bool:
    """
    Write a configuration as indented JSON, creating parent directories.

    Returns:
        Whether the file was written
    """
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(
            json.dumps(config.to_dict(), indent=2, ensure_ascii=False) + "\n",
            encoding="utf-8",
        )
    except OSError as e:
        print(f"Error: cannot write {config_path}: {e}", file=sys.stderr)
        return False
    return True


def apply_env_overrides(
    config: ExplorerConfig,
    environ: Optional[Mapping[str, str]] = None,
) -> ExplorerConfig:
    """
    Apply EXPLORER_* environment variables on top of a configuration.

    Raises:
        ConfigError: If EXPLORER_OUTPUT_MAX_AGE_MS is not an integer
    """
    env = os.environ if environ is None else environ

    if env.get(ENV_DUMP_DIR):
        config = replace(config, storage=StorageConfig(dump_directory=Path(env[ENV_DUMP_DIR])))

    if env.get(ENV_OUTPUT_DIR):
        config = replace(config, output=replace(config.output, directory=Path(env[ENV_OUTPUT_DIR])))

    if env.get(ENV_MAX_AGE):
        try:
            max_age_ms = int(env[ENV_MAX_AGE])
        except ValueError:
            raise ConfigError(
                code="invalid_value",
                message=f"{ENV_MAX_AGE} must be an integer number of milliseconds",
                details={"value": env[ENV_MAX_AGE]},
            )
        config = replace(config, filters=FilterConfig(max_age_ms=max_age_ms))

    validate_config(config)
    return config


def resolve_config(config_path: Optional[str]) -> ExplorerConfig:
    """Load the config file (or defaults) and apply environment overrides."""
    load_dotenv()
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    config = load_config_from_file(path)
    if config is None:
        if config_path:
            raise ConfigError(
                code="missing_config",
                message=f"Config file not found: {config_path}",
                details={"file_path": config_path},
            )
        config = create_default_config()
    return apply_env_overrides(config)


def create_logger(config: ExplorerConfig, verbose: bool = False) -> AuditLogger:
    level = "debug" if verbose else config.logging.level
    return AuditLogger.from_level_name(level, output_format=config.logging.output_format)


async def run_pipeline(config: ExplorerConfig, logger: Optional[AuditLogger] = None) -> int:
    """
    Run the pipeline once with the given configuration.

    Returns:
        Exit code (0 on success, 1 on failure)
    """
    notifier = None
    if config.notifications.webhook:
        notifier = RunNotifier.from_webhook_config(config.notifications.webhook, logger)

    async with SnapshotOrchestrator(
        storage=JsonDumpStorage(config.storage.dump_directory),
        writer=SnapshotWriter(
            output_dir=config.output.directory,
            atomic_publish=config.output.atomic_publish,
            indent=config.output.indent,
            logger=logger,
        ),
        max_age_ms=config.filters.max_age_ms,
        logger=logger,
        notifier=notifier,
    ) as orchestrator:
        try:
            report = await orchestrator.run()
        except ExplorerError as e:
            print(f"Error: {e.message}", file=sys.stderr)
            return 1

    print(
        f"Published {report.instances} instances, {report.communities} communities, "
        f"{report.fediverse} fediverse servers to {config.output.directory}"
    )
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    """Handle the 'run' command."""
    try:
        config = resolve_config(args.config)
    except ConfigError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    logger = create_logger(config, verbose=args.verbose)
    return asyncio.run(run_pipeline(config, logger))


def _load_for_command(config_path: Path) -> Optional[ExplorerConfig]:
    try:
        config = load_config_from_file(config_path)
    except ConfigError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return None
    if config is None:
        print(f"Error: {config_path} does not exist (create it with 'config init')", file=sys.stderr)
    return config


def _show_config(config_path: Path, args: argparse.Namespace) -> int:
    config = _load_for_command(config_path)
    if config is None:
        return 1

    webhook = config.notifications.webhook
    rows = [
        ("dump directory", config.storage.dump_directory),
        ("output directory", config.output.directory),
        ("publish mode", "staged" if config.output.atomic_publish else "direct"),
        ("max crawl age", f"{config.filters.max_age_ms} ms"),
        ("webhook", webhook.url if webhook else "off"),
        ("logging", f"{config.logging.level} ({config.logging.output_format})"),
    ]
    print(config_path)
    for label, value in rows:
        print(f"  {label:<17} {value}")
    return 0


def _init_config(config_path: Path, args: argparse.Namespace) -> int:
    if config_path.exists() and not args.force:
        print(f"{config_path} already exists; pass --force to replace it")
        return 1
    if not save_config_to_file(create_default_config(), config_path):
        return 1
    print(f"Wrote default configuration to {config_path}")
    return 0


def _validate_config(config_path: Path, args: argparse.Namespace) -> int:
    if _load_for_command(config_path) is None:
        return 1
    print(f"{config_path}: OK")
    return 0


CONFIG_ACTIONS = {
    "show": _show_config,
    "init": _init_config,
    "validate": _validate_config,
}


def cmd_config(args: argparse.Namespace) -> int:
    """Handle the 'config' command."""
    config_path = Path(args.path) if args.path else DEFAULT_CONFIG_PATH
    return CONFIG_ACTIONS[args.action](config_path, args)


def create_parser() -> argparse.ArgumentParser:
    """Build the argument parser with its 'run' and 'config' subcommands."""
    parser = argparse.ArgumentParser(
        prog="fediverse-explorer",
        description="Generate the published snapshots of the fediverse explorer",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    run_parser = subparsers.add_parser("run", help="Generate and publish one snapshot set")
    run_parser.add_argument("-c", "--config", metavar="FILE", help="JSON config file (default: explorer.json if present)")
    run_parser.add_argument("-v", "--verbose", action="store_true", help="Log at debug level")
    run_parser.set_defaults(func=cmd_run)

    config_parser = subparsers.add_parser("config", help="Inspect or create the config file")
    config_parser.add_argument("action", choices=sorted(CONFIG_ACTIONS), help="What to do with the config file")
    config_parser.add_argument("-p", "--path", metavar="FILE", help="Config file (default: explorer.json)")
    config_parser.add_argument("-f", "--force", action="store_true", help="Replace an existing file on init")
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Entry point of the fediverse-explorer command.

    Returns:
        Process exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
