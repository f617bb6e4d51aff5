"""CLI entry point for dutywatch."""

import asyncio
import json
import logging
import sys
from typing import Awaitable, Callable, Optional, TypeVar

import click

from .beacon import BeaconError
from .config import Config
from .display import countdown_rows
from .store import KEY_BEACON_URL
from .validators import RegistryError

T = TypeVar("T")


def setup_logging(level: str) -> None:
    """Set up logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    if level.upper() != "DEBUG":
        logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


def _make_app(ctx: click.Context):
    from .app import TrackerApp
    from .store import Store

    config: Config = ctx.obj
    store = Store(config.data_dir)
    if not ctx.meta.get("beacon_url_explicit"):
        stored = store.get(KEY_BEACON_URL)
        if stored:
            config = config.merged({"beacon_url": stored})
    return TrackerApp(config, store=store)


def _with_app(ctx: click.Context, fn: Callable[..., Awaitable[T]]) -> T:
    """Run ``fn(app)`` on a one-shot TrackerApp and close it afterwards."""

    async def main() -> T:
        app = _make_app(ctx)
        try:
            return await fn(app)
        finally:
            await app.close()

    try:
        return asyncio.run(main())
    except RegistryError as e:
        raise click.ClickException(str(e)) from e
    except BeaconError as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.version_option(package_name="dutywatch")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="YAML config file; command line options take precedence",
    envvar="DUTYWATCH_CONFIG",
)
@click.option(
    "--beacon-url",
    help="Beacon node REST API URL (default: last used, or http://localhost:5052)",
    envvar="DUTYWATCH_BEACON_URL",
)
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False),
    help="Directory for the tracker database",
    envvar="DUTYWATCH_DATA_DIR",
)
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level",
    envvar="DUTYWATCH_LOG_LEVEL",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], beacon_url: Optional[str], data_dir: Optional[str], log_level: str):
    """Dutywatch - Ethereum validator duty tracker and notifier."""
    setup_logging(log_level)

    config = Config.from_yaml(config_path) if config_path else Config()
    overrides = {"log_level": log_level}
    if beacon_url:
        overrides["beacon_url"] = beacon_url
    if data_dir:
        overrides["data_dir"] = data_dir
    ctx.obj = config.merged(overrides)
    ctx.meta["beacon_url_explicit"] = bool(beacon_url) or config.beacon_url != Config.beacon_url


@cli.command()
@click.option(
    "--metrics-port",
    type=int,
    help="Port for the Prometheus metrics server (0 disables it)",
    envvar="DUTYWATCH_METRICS_PORT",
)
@click.option(
    "--genesis-time",
    type=int,
    help="Chain genesis time, used when the beacon node cannot be asked",
    envvar="DUTYWATCH_GENESIS_TIME",
)
@click.option(
    "--telegram-token",
    help="Telegram bot token",
    envvar="DUTYWATCH_TELEGRAM_TOKEN",
)
@click.option(
    "--telegram-chat-id",
    help="Telegram chat to notify",
    envvar="DUTYWATCH_TELEGRAM_CHAT_ID",
)
@click.option(
    "--push-url",
    help="Web push relay endpoint that receives notification JSON",
    envvar="DUTYWATCH_PUSH_URL",
)
@click.option(
    "--auto-refresh/--no-auto-refresh",
    default=None,
    help="Refetch duties every 30 seconds",
    envvar="DUTYWATCH_AUTO_REFRESH",
)
@click.pass_context
def run(
    ctx: click.Context,
    metrics_port: Optional[int],
    genesis_time: Optional[int],
    telegram_token: Optional[str],
    telegram_chat_id: Optional[str],
    push_url: Optional[str],
    auto_refresh: Optional[bool],
):
    """Run the tracker and send notifications."""
    logger = logging.getLogger(__name__)

    from .app import run_app

    overrides = {
        "metrics_port": metrics_port,
        "genesis_time": genesis_time,
        "telegram_token": telegram_token,
        "telegram_chat_id": telegram_chat_id,
        "push_url": push_url,
        "auto_refresh": auto_refresh,
    }
    config: Config = ctx.obj.merged({k: v for k, v in overrides.items() if v is not None})

    logger.info("Starting dutywatch")
    logger.info(f"  Beacon node: {config.beacon_url}")
    logger.info(f"  Data dir: {config.data_dir}")
    logger.info(f"  Metrics: {f'port {config.metrics_port}' if config.metrics_enabled else 'disabled'}")
    logger.info(f"  Telegram: {'enabled' if config.telegram_token else 'disabled'}")
    if config.push_url:
        logger.info(f"  Push relay: {config.push_url}")
    logger.info(f"  Auto refresh: {config.auto_refresh}")

    try:
        asyncio.run(run_app(config))
    except KeyboardInterrupt:
        logger.info("Shutting down")
        sys.exit(0)


@cli.command()
@click.argument("validators", nargs=-1)
@click.option(
    "--file",
    "batch_file",
    type=click.File("r"),
    help="File with comma, semicolon or newline separated validators",
)
@click.pass_context
def add(ctx: click.Context, validators: tuple[str, ...], batch_file):
    """Track validators by index or public key."""
    raws = list(validators)
    if batch_file is not None:
        from .validators import ValidatorRegistry
        raws += ValidatorRegistry.split_batch(batch_file.read())
    if not raws:
        raise click.UsageError("Give at least one validator index or public key")

    async def go(app):
        if len(raws) == 1:
            validator = await app.add_validator(raws[0])
            click.echo(f"Validator {validator.id} added")
            return
        summary = await app.registry.add_many(raws)
        for error in summary.errors:
            click.echo(f"  {error}", err=True)
        click.echo(summary.describe())

    _with_app(ctx, go)


@cli.command()
@click.argument("validator_id")
@click.pass_context
def remove(ctx: click.Context, validator_id: str):
    """Stop tracking a validator."""

    async def go(app):
        if not app.registry.remove(validator_id):
            raise click.ClickException(f"Validator {validator_id} is not tracked")
        click.echo(f"Validator {validator_id} removed")

    _with_app(ctx, go)


@cli.command()
@click.argument("validator_id")
@click.argument("text", required=False, default="")
@click.pass_context
def label(ctx: click.Context, validator_id: str, text: str):
    """Set a validator's label; omit TEXT to clear it."""

    async def go(app):
        app.registry.set_label(validator_id, text)
        click.echo(f"Validator {validator_id}: {app.registry.display_label(validator_id)}")

    _with_app(ctx, go)


@cli.command(name="list")
@click.pass_context
def list_validators(ctx: click.Context):
    """List tracked validators."""

    async def go(app):
        if not len(app.registry):
            click.echo("No validators tracked")
            return
        for validator in app.registry:
            pubkey = f"{validator.pubkey[:10]}...{validator.pubkey[-4:]}" if validator.pubkey else "-"
            click.echo(
                f"{validator.id:>8}  {app.registry.display_label(validator.id):<24} "
                f"{validator.status or 'unknown':<20} {pubkey}  {validator.color}"
            )

    _with_app(ctx, go)


@cli.command()
@click.option("--refresh", is_flag=True, help="Fetch from the beacon node even if the cache is fresh")
@click.pass_context
def duties(ctx: click.Context, refresh: bool):
    """Show upcoming and recent duties."""

    async def go(app):
        cached = None if refresh else app.cache.load()
        if cached is not None:
            app.fetcher.install(cached)
        else:
            await app.sync_genesis()
            await app.fetcher.gather()
        rows = countdown_rows(app.duties, app.registry, app.clock)
        if not rows:
            click.echo("No duties found for tracked validators")
            return
        for row in rows:
            slot = "" if row.slot is None else str(row.slot)
            click.echo(f"{row.kind.value:<9} {row.validator:<24} {slot:>10}  {row.text}")

    _with_app(ctx, go)


@cli.command()
@click.option("--proposer/--no-proposer", default=None, help="Notify block proposals")
@click.option("--attester/--no-attester", default=None, help="Notify attestations")
@click.option("--sync/--no-sync", default=None, help="Notify sync committee membership")
@click.option("--missed/--no-missed", default=None, help="Notify missed attestations")
@click.option("--lead-minutes", type=click.IntRange(min=1), help="Minutes before a duty to notify")
@click.option("--telegram-chat-id", help="Telegram chat to notify (empty clears it)")
@click.pass_context
def settings(ctx: click.Context, **changes):
    """Show or change notification settings."""
    from .notify import NotificationSettings

    async def go(app):
        current = NotificationSettings.load(app.store)
        updated = False
        for name, value in changes.items():
            if value is None:
                continue
            if name == "telegram_chat_id":
                value = value or None
            setattr(current, name, value)
            updated = True
        if updated:
            current.save(app.store)
        for name, value in vars(current).items():
            click.echo(f"{name}: {value}")

    _with_app(ctx, go)


@cli.command(name="clear-cache")
@click.option("--ledger", is_flag=True, help="Also forget which duties were notified")
@click.option("--blocks", is_flag=True, help="Also forget confirmed block details")
@click.pass_context
def clear_cache(ctx: click.Context, ledger: bool, blocks: bool):
    """Clear cached duties."""

    async def go(app):
        app.clear_cache()
        if ledger:
            app.ledger.clear()
        if blocks:
            app.proposals.clear_block_details()
        click.echo("Cache cleared")

    _with_app(ctx, go)


@cli.command()
@click.argument("output", type=click.File("w"), default="-")
@click.pass_context
def export(ctx: click.Context, output):
    """Export validators and settings as JSON."""
    from .notify import NotificationSettings
    from .validators.portability import export_document

    async def go(app):
        if not len(app.registry):
            raise click.ClickException("No validators to export")
        document = export_document(
            app.registry,
            NotificationSettings.load(app.store),
            app.client.base_url,
            app.config.auto_refresh,
        )
        json.dump(document, output, indent=2)
        output.write("\n")
        click.echo(f"Exported {len(app.registry)} validator(s) with settings", err=True)

    _with_app(ctx, go)


@cli.command(name="import")
@click.argument("source", type=click.File("r"))
@click.pass_context
def import_(ctx: click.Context, source):
    """Import validators and settings from an export file."""
    from .validators.portability import ImportFormatError, import_document

    try:
        document = json.load(source)
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Failed to import file: {e}") from e

    async def go(app):
        try:
            result = await import_document(document, app.registry)
        except ImportFormatError as e:
            raise click.ClickException(str(e)) from e
        for error in result.errors:
            click.echo(f"  {error}", err=True)
        click.echo(result.describe())

    _with_app(ctx, go)


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
