"""Keygate CLI - Main Entry Point.

The `kg` command drives a key service built from the layered config.

Commands:
    publish  - Mint a new API key
    validate - Validate (and consume one use of) an API key
    revoke   - Expire a key immediately
    list     - List keys for an item
    stats    - Per-key or overall statistics
    sweep    - Delete expired keys
    health   - Check the store and cache
    config   - Show the effective configuration

Results are printed as the JSON response envelope. A failed operation
exits with status 1.
"""

import asyncio
import json
import logging
import sys
from typing import Any, Awaitable, Callable, Optional

import click

from .. import __version__
from ..config import KeygateConfig, load_config
from ..faults import ConfigFault, Outcome
from ..service import KeyService
from . import __cli_name__
from .utils.colors import _CHECK, _CROSS, banner, error, kv, success, warning

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class KeygateGroup(click.Group):
    """Click group subclass with branded help output."""

    def format_help(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        if ctx.parent is None:
            banner("Keygate", subtitle=f"v{__version__}  {_CHECK}  credential issuance service")
            click.echo()
        super().format_help(ctx, formatter)


def _emit(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


def _run(ctx: click.Context, operation: Callable[[KeyService], Awaitable[Any]]) -> Any:
    """Run one operation against a freshly initialized service."""
    config: KeygateConfig = ctx.obj["config"]

    async def _main():
        service = KeyService.from_config(config)
        await service.initialize(start_sweeper=False)
        try:
            return await operation(service)
        finally:
            await service.shutdown()

    try:
        return asyncio.run(_main())
    except Exception as e:
        error(f"{_CROSS} {type(e).__name__}: {e}")
        sys.exit(1)


def _finish(outcome: Outcome) -> None:
    _emit(outcome.to_dict())
    if not outcome.ok:
        sys.exit(1)


@click.group(cls=KeygateGroup)
@click.version_option(version=__version__, prog_name=__cli_name__)
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="JSON or YAML config file")
@click.option("--env-file", type=click.Path(dir_okay=False), help=".env file with KG_ settings")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx, config_path: Optional[str], env_file: Optional[str], verbose: bool):
    """Issue and validate scoped API keys.

    \b
    Quick start:
      kg publish --item-key app://users/u1 --permission read \\
                 --expires-at 2030-01-01T00:00:00Z --max-uses 10
      kg validate <api-key>
    """
    ctx.ensure_object(dict)
    try:
        config = load_config(
            paths=[config_path] if config_path else None,
            env_file=env_file,
        )
    except ConfigFault as e:
        error(f"{_CROSS} {e.message}")
        sys.exit(1)

    level = "debug" if verbose else config.log_level
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, stream=sys.stderr)
    ctx.obj["config"] = config
    ctx.obj["verbose"] = verbose


# ============================================================================
# Commands
# ============================================================================

@cli.command("publish")
@click.option("--item-key", required=True, help="Protected resource, <scheme>://<service>/<key>?<query>")
@click.option("--permission", "permissions", multiple=True, required=True, help="Capability (repeatable)")
@click.option("--expires-at", required=True, help="ISO-8601 expiry instant")
@click.option("--max-uses", type=int, required=True, help="Number of validations allowed")
@click.pass_context
def publish(ctx, item_key: str, permissions: tuple, expires_at: str, max_uses: int):
    """
    Mint a new API key. The key is shown once.

    Examples:
      kg publish --item-key app://users/u1 --permission read --expires-at 2030-01-01T00:00:00Z --max-uses 5
    """
    outcome = _run(
        ctx,
        lambda service: service.publish(item_key, list(permissions), expires_at, max_uses),
    )
    _finish(outcome)


@cli.command("validate")
@click.argument("api_key")
@click.option("--caller", default="cli", show_default=True, help="Caller identity for rate limiting")
@click.pass_context
def validate(ctx, api_key: str, caller: str):
    """Validate an API key, consuming one use."""
    _finish(_run(ctx, lambda service: service.validate(api_key, caller)))


@cli.command("revoke")
@click.argument("key_ref")
@click.pass_context
def revoke(ctx, key_ref: str):
    """Expire a key now. KEY_REF is its verifier or id."""
    _finish(_run(ctx, lambda service: service.revoke(key_ref)))


@cli.command("list")
@click.argument("item_key")
@click.pass_context
def list_keys(ctx, item_key: str):
    """List keys issued for ITEM_KEY."""
    _finish(_run(ctx, lambda service: service.admin.list_keys_by_item(item_key)))


@cli.command("stats")
@click.argument("key_ref", required=False)
@click.pass_context
def stats(ctx, key_ref: Optional[str]):
    """Statistics for one key, or for the whole store."""
    if key_ref:
        _finish(_run(ctx, lambda service: service.admin.key_stats(key_ref)))
    else:
        _finish(_run(ctx, lambda service: service.admin.overall_stats()))


@cli.command("sweep")
@click.pass_context
def sweep(ctx):
    """Delete expired keys."""
    _finish(_run(ctx, lambda service: service.admin.cleanup_expired()))


@cli.command("health")
@click.pass_context
def health(ctx):
    """Check the record store and the cache."""
    report = _run(ctx, lambda service: service.health_check())
    _emit(report)
    if report["status"] != "healthy":
        down = [name for name, state in report["services"].items() if state != "up"]
        warning(f"{_CROSS} unavailable: {', '.join(down)}")
        sys.exit(1)


@cli.command("config")
@click.pass_context
def show_config(ctx):
    """Show the effective configuration."""
    config: KeygateConfig = ctx.obj["config"]
    for key, value in config.to_dict().items():
        kv(key, value)
    success(f"{_CHECK} configuration valid")


def main():
    """Main CLI entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
