"""Command-line interface for the device fleet."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import click
from loguru import logger

from duco_fleet import __version__


def find_config_file() -> Optional[Path]:
    """
    Find the configuration file in common locations.

    Returns:
        Path to config file or None.
    """
    search_paths = [
        Path("config.yaml"),
        Path("config.yml"),
        Path.home() / ".config" / "duco-fleet" / "config.yaml",
        Path("/etc/duco-fleet/config.yaml"),
    ]

    if sys.platform == "win32":
        search_paths.append(
            Path.home() / "AppData" / "Local" / "duco-fleet" / "config.yaml"
        )

    for path in search_paths:
        if path.exists():
            return path

    return None


def _parse_pool_option(ctx, param, value: Optional[str]):
    """Click callback turning --pool host:port into a PoolAddress."""
    if value is None:
        return None
    from duco_fleet.config.models import parse_pool_address

    try:
        return parse_pool_address(value)
    except ValueError as e:
        raise click.BadParameter(str(e))


@click.group()
@click.version_option(version=__version__, prog_name="duco-fleet")
def main():
    """Emulated DUCO mining device fleet."""
    pass


@main.command()
@click.option(
    "-o",
    "--output",
    "output_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=Path("config.yaml"),
    show_default=True,
    help="Where to write the roster",
)
@click.option("-u", "--username", default="my_username", show_default=True, help="Pool account name")
@click.option("--device-count", type=click.IntRange(min=1), default=16, show_default=True, help="Number of devices")
@click.option("--device-name-prefix", default="avr-", show_default=True, help="Device name prefix")
@click.option("--device-type", default="AVR", show_default=True, help="Device type tag")
@click.option("--firmware", default="Official AVR Miner v2.6", show_default=True, help="Firmware label")
@click.option("--target-rate", type=click.IntRange(min=1), default=190, show_default=True, help="Target hash rate per device (H/s)")
@click.option("-f", "--force", is_flag=True, help="Overwrite an existing file")
def generate(
    output_path: Path,
    username: str,
    device_count: int,
    device_name_prefix: str,
    device_type: str,
    firmware: str,
    target_rate: int,
    force: bool,
):
    """Generate a device roster."""
    from duco_fleet.config.loader import ConfigError, generate_config, write_config

    if output_path.exists() and not force:
        if not click.confirm(f"{output_path} already exists. Overwrite?"):
            click.echo("Skipping roster creation.")
            return

    try:
        config = generate_config(
            username=username,
            device_count=device_count,
            device_name_prefix=device_name_prefix,
            device_type=device_type,
            firmware=firmware,
            target_rate=target_rate,
        )
        write_config(config, output_path)
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Created {output_path} with {device_count} devices")


@main.command()
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.option(
    "-p",
    "--pool",
    callback=_parse_pool_option,
    default=None,
    help="Pool address (host:port), overrides the configuration",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Override log level from config",
)
def run(config_path: Optional[Path], pool, log_level: Optional[str]):
    """Run the fleet in the foreground."""
    from duco_fleet.config.loader import ConfigError, load_config
    from duco_fleet.runner import FleetApp

    if config_path is None:
        config_path = find_config_file()
        if config_path is None:
            click.echo("Error: No configuration file found", err=True)
            click.echo("Generate one with 'duco-fleet generate' or pass -c/--config", err=True)
            sys.exit(1)

    click.echo(f"Using configuration: {config_path}")

    try:
        config = load_config(config_path)
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)

    if log_level:
        config.logging.level = log_level.upper()

    try:
        FleetApp(config, pool=pool).run()
    except KeyboardInterrupt:
        click.echo("\nShutdown requested...")
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)


@main.command()
@click.argument("config_path", type=click.Path(exists=True, path_type=Path))
def validate(config_path: Path):
    """Validate a configuration file."""
    from duco_fleet.config.loader import load_config, validate_config

    is_valid, message = validate_config(config_path)

    if not is_valid:
        click.echo(f"✗ {message}", err=True)
        sys.exit(1)

    click.echo(f"✓ {message}")

    config = load_config(config_path)

    click.echo("\nDevices:")
    for device in config.devices:
        pool = f" pool={device.pool}" if device.pool else ""
        click.echo(
            f"  - {device.device_name}: {device.device_type} {device.target_rate} H/s "
            f"({device.username}, {device.chip_id}){pool}"
        )

    pool_address = config.pool.pool_address
    if pool_address:
        click.echo(f"\nPool: {pool_address}")
    else:
        click.echo(f"\nPool: resolved via {config.pool.resolver_url} (fallback {config.pool.fallback_address})")


if __name__ == "__main__":
    main()
