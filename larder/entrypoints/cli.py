"""Larder CLI entrypoint.

Command-line interface for the larder offline-first record cache.
"""

from __future__ import annotations

import functools
import json
import logging
import sys
import time
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

if TYPE_CHECKING:
    from larder.core.sync.coordinator import SyncCoordinator
    from larder.domain.config import LarderConfig

from larder.core.errors import LarderCliError, fetch_failed_error, workspace_not_found_error
from larder.domain.entities import FetchOutcome, Record
from larder.domain.exceptions import LarderError
from larder.version import __version__

logger = logging.getLogger(__name__)


def handle_cli_errors(command_name: str):
    """Decorator to handle common CLI errors.

    Converts domain errors to LarderCliError (keeping their hint) and wraps
    anything unexpected in a generic message, printing the traceback in
    verbose mode. Click exceptions propagate untouched.

    Args:
        command_name: Name of the command for error messages.

    Returns:
        Decorated function with error handling.
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except click.ClickException:
                # Includes LarderCliError, which formats its own hint
                raise
            except LarderError as e:
                raise LarderCliError(e.message, hint=e.hint) from e
            except RuntimeError as e:
                raise LarderCliError(
                    str(e),
                    hint="Run with --verbose for more details",
                ) from e
            except Exception as e:
                ctx = click.get_current_context()
                if ctx.obj.get("verbose", False):
                    import traceback

                    traceback.print_exc()
                raise LarderCliError(
                    f"Unexpected error in {command_name}: {e}",
                    hint="Run with --verbose for more details",
                ) from e

        return wrapper

    return decorator


def _configure_logging(verbose: bool, quiet: bool) -> None:
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING
    logging.basicConfig(
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logging.getLogger("larder").setLevel(level)


def get_workspace() -> tuple[Path, Path]:
    """Get the workspace root and .larder directory or exit with error.

    Raises:
        LarderCliError: If not in a larder workspace.
    """
    from larder.core.workspace import find_workspace

    try:
        return find_workspace()
    except RuntimeError:
        workspace_not_found_error()


def _load_config(larder_dir: Path) -> LarderConfig:
    """Load merged global and local configuration for a workspace."""
    from larder.adapters.factory import ConfigFactory

    return ConfigFactory().create_config_provider().load(larder_dir)


@contextmanager
def _open_coordinator(
    ctx: click.Context,
    larder_dir: Path,
    config: LarderConfig,
    policy_override: str | None = None,
) -> Iterator[SyncCoordinator]:
    """Wire a coordinator for the workspace and tear everything down on exit.

    An httpx.Client placed in ctx.obj["http_client"] is used for the remote
    source instead of one built from [remote].
    """
    from larder.adapters.factory import CoordinatorFactory

    factory = CoordinatorFactory(config, larder_dir, client=ctx.obj.get("http_client"))
    with ExitStack() as stack:
        store = factory.create_store()
        if hasattr(store, "close"):
            stack.callback(store.close)
        remote = stack.enter_context(factory.create_remote())
        coordinator = stack.enter_context(
            factory.create_coordinator(store=store, remote=remote, policy_override=policy_override)
        )
        yield coordinator


def _dump(value: Record | None, *, compact: bool = False) -> str:
    if value is None:
        return "null"
    if compact:
        return value.to_json()
    return json.dumps(dict(value.data), indent=2, sort_keys=True)


def _report_failure(key: str, outcome: FetchOutcome[Any]) -> None:
    error = outcome.error
    message = getattr(error, "message", None) or str(error)
    click.echo(
        f"Warning: refresh of {key!r} failed ({outcome.error_type.value}): {message}",
        err=True,
    )


@click.group()
@click.version_option(version=__version__, prog_name="larder")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose output.",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Suppress non-essential output.",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, quiet: bool) -> None:
    """Larder - Offline-first cache for remote JSON records.

    Serves records from a local SQLite cache and refreshes them from the
    remote in the background when they go stale.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    _configure_logging(verbose, quiet)


@cli.command()
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Reinitialize even if .larder/ already exists.",
)
@click.option(
    "--base-url",
    type=str,
    default=None,
    help="Remote base URL written to the new config.",
)
@click.pass_context
@handle_cli_errors("init")
def init(ctx: click.Context, force: bool, base_url: str | None) -> None:
    """Initialize a larder workspace in the current directory.

    Creates .larder/ with a commented config.toml and an empty cache.db.
    """
    from larder.adapters.factory import ConfigFactory
    from larder.core.workspace import InitRequest, InitUseCase

    use_case = InitUseCase(db_initializer=ConfigFactory().create_db_initializer())
    response = use_case.execute(InitRequest(root=Path.cwd(), force=force, base_url=base_url))
    if not response.success:
        hint = (
            "Use 'larder init --force' to reinitialize"
            if response.already_exists
            else "Check permissions and try again, or use --force to reinitialize"
        )
        raise LarderCliError(response.error or "Unknown error", hint=hint)

    if not ctx.obj.get("quiet", False):
        action = "Reinitialized" if response.was_reinitialized else "Initialized"
        click.echo(f"{action} larder workspace in {response.larder_dir}")
        click.echo(f"  Config: {response.config_path}")
        click.echo(f"  Cache:  {response.db_path}")


@cli.command()
@click.argument("key", type=str)
@click.option(
    "--policy",
    "-p",
    type=str,
    default=None,
    help="Freshness policy for this call: absent, always or stale:<seconds>.",
)
@click.option(
    "--wait/--no-wait",
    default=True,
    help="Wait for a triggered refresh before printing (default: wait).",
)
@click.pass_context
@handle_cli_errors("get")
def get(ctx: click.Context, key: str, policy: str | None, wait: bool) -> None:
    """Print the cached record for KEY, refreshing it if it is stale.

    A failed refresh is reported as a warning; the cached record is still
    printed. Fails only if nothing is cached for KEY.
    """
    _root, larder_dir = get_workspace()
    config = _load_config(larder_dir)

    with _open_coordinator(ctx, larder_dir, config, policy_override=policy) as coordinator:
        with coordinator.errors(key) as failures, coordinator.observe(key) as subscription:
            if subscription.error is not None:
                raise subscription.error

            pending = coordinator.pending(key)
            if wait and pending is not None:
                try:
                    pending.result(timeout=config.sync.refresh_timeout)
                except TimeoutError:
                    pending.cancel()
                    click.echo(
                        f"Warning: refresh of {key!r} still running after "
                        f"{config.sync.refresh_timeout}s, showing cached value",
                        err=True,
                    )

            if failures.latest is not None:
                _report_failure(key, failures.latest)
            value = subscription.latest

    if value is None:
        raise LarderCliError(
            f"No cached value for {key!r}",
            hint="Run 'larder refresh KEY' once you are online",
        )
    click.echo(_dump(value))


@cli.command()
@click.argument("key", type=str)
@click.option(
    "--timeout",
    "-t",
    type=float,
    default=None,
    help="Seconds to wait for the remote (default: [sync] refresh_timeout).",
)
@click.pass_context
@handle_cli_errors("refresh")
def refresh(ctx: click.Context, key: str, timeout: float | None) -> None:
    """Fetch KEY from the remote now, store it and print it."""
    _root, larder_dir = get_workspace()
    config = _load_config(larder_dir)
    wait = timeout if timeout is not None else config.sync.refresh_timeout

    with _open_coordinator(ctx, larder_dir, config) as coordinator:
        try:
            outcome = coordinator.refresh_now(key, timeout=wait)
        except TimeoutError as e:
            raise LarderCliError(
                f"Timed out after {wait}s refreshing {key!r}",
                hint="Use --timeout to wait longer",
            ) from e

    if outcome.is_failed:
        fetch_failed_error(key, outcome.error, outcome.error_type)
    if not ctx.obj.get("quiet", False):
        click.echo(_dump(outcome.record))


@cli.command()
@click.argument("key", type=str)
@click.option(
    "--interval",
    "-i",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Also poll the remote every INTERVAL seconds.",
)
@click.option(
    "--count",
    "-n",
    type=click.IntRange(min=1),
    default=None,
    help="Exit after printing COUNT values.",
)
@click.option(
    "--policy",
    "-p",
    type=str,
    default=None,
    help="Freshness policy for the initial observe.",
)
@click.pass_context
@handle_cli_errors("watch")
def watch(
    ctx: click.Context,
    key: str,
    interval: float | None,
    count: int | None,
    policy: str | None,
) -> None:
    """Print KEY as one JSON line per change until interrupted.

    The first line is the cached value ("null" if absent). Refresh failures
    are reported on stderr and do not end the watch.
    """
    _root, larder_dir = get_workspace()
    config = _load_config(larder_dir)

    printed = 0
    with _open_coordinator(ctx, larder_dir, config, policy_override=policy) as coordinator:
        on_failure = functools.partial(_report_failure, key)
        with coordinator.errors(key, on_failure), coordinator.observe(key) as subscription:
            next_poll = None if interval is None else time.monotonic() + interval
            try:
                while count is None or printed < count:
                    timeout = None if next_poll is None else max(0.0, next_poll - time.monotonic())
                    try:
                        value = subscription.get(timeout=timeout)
                    except TimeoutError:
                        coordinator.refresh(key)
                        next_poll = time.monotonic() + interval
                        continue
                    click.echo(_dump(value, compact=True))
                    printed += 1
            except KeyboardInterrupt:
                logger.debug("Watch of %r interrupted after %d value(s)", key, printed)


@cli.command("ls")
@click.option(
    "--prefix",
    type=str,
    default=None,
    help="Only list keys starting with PREFIX (e.g., 'post:').",
)
@click.pass_context
@handle_cli_errors("ls")
def list_records(ctx: click.Context, prefix: str | None) -> None:
    """List cached keys, most recently written first."""
    from larder.adapters.factory import CoordinatorFactory
    from larder.adapters.sqlite.record_store import SQLiteRecordStore

    _root, larder_dir = get_workspace()
    config = _load_config(larder_dir)
    store = CoordinatorFactory(config, larder_dir).create_store()
    if not isinstance(store, SQLiteRecordStore):
        raise LarderCliError(
            "Listing needs the sqlite store backend",
            hint="Set backend = \"sqlite\" under [store]",
        )

    with store:
        summaries = store.list_records(prefix)

    if not summaries:
        if not ctx.obj.get("quiet", False):
            click.echo("No cached records")
        return
    for summary in summaries:
        updated = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(summary.updated_at))
        click.echo(f"{summary.key}\t{summary.content_hash[:12]}\t{updated}")


# Configuration commands
@cli.group()
def config() -> None:
    """Inspect larder configuration files.

    Larder uses a two-tier configuration system:
    - Local: .larder/config.toml (workspace settings)
    - Global: ~/.config/larder/config.toml (user defaults)

    Local settings override global settings. Missing values use built-in defaults.
    """
    pass


@config.command(name="show")
@click.option(
    "--global", "-g", "show_global", is_flag=True, help="Ignore the workspace config"
)
@click.pass_context
@handle_cli_errors("config show")
def config_show(ctx: click.Context, show_global: bool) -> None:
    """Print the effective configuration as TOML.

    Inside a workspace this is the merged global and local configuration;
    with --global or outside a workspace, the global file over the defaults.
    """
    from larder.core.workspace import LARDER_DIR_NAME, find_larder_root
    from larder.domain.config import LarderConfig
    from larder.shared.config_io import dump_config, get_global_config_path, load_config

    global_path = get_global_config_path()
    root = None if show_global else find_larder_root()
    if root is not None:
        larder_dir = root / LARDER_DIR_NAME
        config = _load_config(larder_dir)
        source = f"{global_path} + {larder_dir / 'config.toml'}"
    elif global_path.exists():
        config = load_config(global_path)
        source = str(global_path)
    else:
        config = LarderConfig.default()
        source = "built-in defaults"

    if not ctx.obj.get("quiet", False):
        click.echo(f"# Effective configuration ({source})")
    click.echo(dump_config(config), nl=False)


@config.command(name="path")
@click.option(
    "--global", "-g", "show_global", is_flag=True, help="Show only global config path"
)
@click.option(
    "--local", "-l", "show_local", is_flag=True, help="Show only local config path"
)
@handle_cli_errors("config path")
def config_path(show_global: bool, show_local: bool) -> None:
    """Print config file path(s) for use in scripts.

    Outputs bare paths without any decoration, suitable for piping.
    """
    from larder.core.workspace import LARDER_DIR_NAME, find_larder_root
    from larder.shared.config_io import get_global_config_path

    global_path = get_global_config_path()
    root = find_larder_root()
    local_path = None if root is None else root / LARDER_DIR_NAME / "config.toml"

    if show_global:
        click.echo(global_path)
    elif show_local:
        if local_path is not None:
            click.echo(local_path)
    else:
        click.echo(f"global:{global_path}")
        if local_path is not None:
            click.echo(f"local:{local_path}")


def main() -> int:
    """Main entrypoint for the CLI."""
    try:
        cli(obj={})
        return 0
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
