"""
CLI interface for the block device tag cache.

Usage:
    blkcache find UUID=1234-abcd
    blkcache find LABEL "my disk"
    blkcache tags /dev/sda1
    blkcache parse 'LABEL="my disk"'
"""

import json
import os
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .cache import Cache
from .config import build_cache, get_config_dir, load_or_create_config
from .errors import BlkidError, FormatError
from .logging_config import configure_quiet_mode, enable_debug_mode
from .resolve import get_devname, get_tag_value
from .tag import parse_tag_string, tag_iterate_begin

# Exit status when a lookup finds nothing
EXIT_NOT_FOUND = 2


# Configure quiet mode by default
# Set BLKCACHE_VERBOSE=1 to enable debug mode via environment
if os.environ.get("BLKCACHE_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"blkcache {version('blkcache')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_config_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _config_callback(value: Optional[Path]):
    global _config_override
    if value is not None:
        _config_override = value


app = typer.Typer(
    name="blkcache",
    help="Query block device tags (TYPE, LABEL, UUID, ...).",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    config: Annotated[Optional[Path], typer.Option(
        "--config", "-c",
        envvar="BLKCACHE_CONFIG_DIR",
        help="Path to the config directory",
        callback=_config_callback,
        is_eager=True,
    )] = None,
):
    """Query block device tags (TYPE, LABEL, UUID, ...)."""


def _get_cache() -> Cache:
    """Build a cache from the config, handling errors gracefully."""
    config_dir = _config_override if _config_override is not None else get_config_dir()
    try:
        config = load_or_create_config(config_dir)
        return build_cache(config)
    except (OSError, ValueError, RuntimeError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def _probe(cache: Cache) -> None:
    """Make sure the full inventory is in the cache before listing it."""
    if not cache.probed and cache.prober is not None:
        cache.prober.probe_all(cache)


def _format_tags(devname: str, pairs: list[tuple[str, str]]) -> str:
    body = " ".join(f'{name}="{value}"' for name, value in pairs)
    return f"{devname}: {body}" if body else f"{devname}:"


def _device_pairs(cache: Cache, devname: str) -> Optional[list[tuple[str, str]]]:
    dev = cache.get_dev(devname)
    if dev is None:
        return None
    with tag_iterate_begin(dev) as it:
        return list(it)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command()
def parse(
    token: Annotated[str, typer.Argument(help="Tag string, e.g. LABEL=\"my disk\"")],
):
    """
    Parse a NAME=value tag string.

    \b
    Examples:
        blkcache parse UUID=1234-abcd
        blkcache parse 'LABEL="my disk"'
    """
    try:
        name, value = parse_tag_string(token)
    except FormatError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    if _get_json_output():
        typer.echo(json.dumps({"name": name, "value": value}))
    else:
        typer.echo(f"{name}\t{value}")


@app.command()
def find(
    token: Annotated[str, typer.Argument(help="NAME=value, a tag name, or a device name")],
    value: Annotated[Optional[str], typer.Argument(help="Tag value when TOKEN is a tag name")] = None,
):
    """
    Print the device carrying a tag, preferring the highest priority.

    \b
    Examples:
        blkcache find UUID=1234-abcd
        blkcache find LABEL "my disk"
    """
    cache = _get_cache()
    try:
        devname = get_devname(cache, token, value)
    except BlkidError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    if devname is None:
        raise typer.Exit(EXIT_NOT_FOUND)
    if _get_json_output():
        typer.echo(json.dumps({"device": devname}))
    else:
        typer.echo(devname)


@app.command()
def tags(
    devname: Annotated[str, typer.Argument(help="Device name, e.g. /dev/sda1")],
):
    """Print every tag of a device."""
    cache = _get_cache()
    _probe(cache)
    pairs = _device_pairs(cache, devname)
    if pairs is None:
        raise typer.Exit(EXIT_NOT_FOUND)
    if _get_json_output():
        typer.echo(json.dumps({"device": devname, "tags": pairs}))
    else:
        typer.echo(_format_tags(devname, pairs))


@app.command("value")
def tag_value(
    name: Annotated[str, typer.Argument(help="Tag name, e.g. TYPE")],
    devname: Annotated[str, typer.Argument(help="Device name, e.g. /dev/sda1")],
):
    """Print the value of one tag on a device."""
    cache = _get_cache()
    _probe(cache)
    try:
        result = get_tag_value(cache, name, devname)
    except BlkidError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    if result is None:
        raise typer.Exit(EXIT_NOT_FOUND)
    typer.echo(result)


@app.command("list")
def list_devices():
    """List all devices and their tags."""
    cache = _get_cache()
    _probe(cache)
    devices = list(cache.iter_devices())
    if _get_json_output():
        typer.echo(json.dumps([d.as_dict() for d in devices], indent=2))
        return
    if not devices:
        typer.echo("No devices.")
        return
    for dev in devices:
        typer.echo(str(dev))


@app.command()
def check():
    """Probe the inventory and verify the tag index is consistent."""
    cache = _get_cache()
    _probe(cache)
    problems = cache.index_problems()
    if _get_json_output():
        typer.echo(json.dumps({"ok": not problems, "problems": problems}))
    elif problems:
        for p in problems:
            typer.echo(p)
    else:
        typer.echo(f"OK: {len(cache.devices)} devices, {len(cache.heads)} tag types")
    if problems:
        raise typer.Exit(1)


def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="blkcache CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
