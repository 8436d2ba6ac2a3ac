"""
Command-line interface for throttlekit

Provides CLI commands for:
- Showing configuration: throttlekit config --show
- Inspecting shared context entries: throttlekit contexts
- Removing entries of dead contexts: throttlekit sweep
"""

import json
import logging

import click
import yaml

from . import __version__
from .concurrency import read_entries, sweep_stale_entries
from .config import ThrottleSettings, get_config, set_config
from .stores import StoreError, build_store
from .timers import epoch_ms


@click.group()
@click.version_option(version=__version__, prog_name="throttlekit")
@click.option(
    "--config-file",
    type=click.Path(),
    default=None,
    help="YAML settings file (default: throttlekit.yml)",
)
def cli(config_file):
    """throttlekit - client-side admission control for outbound requests"""
    if config_file:
        set_config(ThrottleSettings.load_from_file(config_file))

    level = getattr(logging, get_config().log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level, format="%(asctime)s %(levelname)s %(name)s %(message)s"
    )


@cli.command()
@click.option("--show", is_flag=True, help="Show current configuration")
@click.option(
    "--format", type=click.Choice(["yaml", "json"]), default="yaml", help="Output format"
)
def config(show: bool, format: str):
    """Manage throttlekit configuration"""
    if not show:
        click.echo("Use --show to display current configuration")
        click.echo("Available options:")
        click.echo("  --show          Show current configuration")
        click.echo("  --format yaml   Output in YAML format (default)")
        click.echo("  --format json   Output in JSON format")
        return

    config_dict = get_config().model_dump()
    if config_dict["store"].get("password"):
        config_dict["store"]["password"] = "********"

    click.echo("Current throttlekit configuration")
    click.echo("=" * 40)
    if format == "yaml":
        click.echo(yaml.safe_dump(config_dict, default_flow_style=False, indent=2))
    else:
        click.echo(json.dumps(config_dict, indent=2))


@cli.command()
@click.option("--prefix", default=None, help="Context key prefix (default: from config)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def contexts(prefix, as_json: bool):
    """List context entries in the shared store"""
    settings = get_config()
    prefix = prefix or settings.throttle.context_id_prefix
    expire = settings.throttle.context_expire

    try:
        store = build_store(settings.store)
        entries = read_entries(store, prefix)
    except StoreError as e:
        raise click.ClickException(f"Store unavailable: {e}") from e

    now = epoch_ms()
    rows = []
    total = 0
    for key, entry in sorted(entries.items()):
        if entry is None:
            rows.append({"key": key, "status": "malformed"})
            continue
        stale = entry.is_stale(now, expire)
        if not stale:
            total += entry.current_count
        rows.append(
            {
                "key": key,
                "status": "stale" if stale else "live",
                "current_count": entry.current_count,
                "idle_ms": int(now - entry.last_action_at),
            }
        )

    if as_json:
        click.echo(json.dumps({"contexts": rows, "aggregate": total}, indent=2))
        return

    if not rows:
        click.echo(f"No context entries under '{prefix}'")
        return

    for row in rows:
        if row["status"] == "malformed":
            click.echo(f"  {row['key']}  malformed")
        else:
            click.echo(
                f"  {row['key']}  {row['status']:<5}  in-flight={row['current_count']}"
                f"  idle={row['idle_ms']}ms"
            )
    click.echo(f"Aggregate concurrency: {total}")


@cli.command()
@click.option("--prefix", default=None, help="Context key prefix (default: from config)")
@click.option(
    "--expire", type=click.IntRange(min=1), default=None, help="Staleness threshold in ms"
)
def sweep(prefix, expire):
    """Remove stale and malformed context entries from the shared store"""
    settings = get_config()
    prefix = prefix or settings.throttle.context_id_prefix
    expire = expire or settings.throttle.context_expire

    try:
        store = build_store(settings.store)
        removed = sweep_stale_entries(store, prefix, expire, epoch_ms())
    except StoreError as e:
        raise click.ClickException(f"Store unavailable: {e}") from e

    for key in removed:
        click.echo(f"  removed {key}")
    click.echo(f"Removed {len(removed)} stale context entries")


def main():
    """Entry point for the CLI"""
    cli()


if __name__ == "__main__":
    main()
