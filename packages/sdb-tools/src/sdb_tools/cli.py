"""Command-line interface for dumping, loading and inspecting SimpleDB domains.

Usage::

    sdb-tools dump users users.yaml --chunk-size 200
    sdb-tools report users.simpledb_op_status
    sdb-tools load users-copy users.yaml
"""

import asyncio
import functools
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeAlias, TypeVar

import click
import structlog

from sdb_tools.checkpoint import CheckpointStore
from sdb_tools.database import Database
from sdb_tools.errors import SdbError
from sdb_tools.log import configure_logging
from sdb_tools.metrics import log_transaction_close, set_default_on_close
from sdb_tools.providers.simpledb import SimpleDBCredentials, SimpleDBParams, SimpleDBProvider

logger = structlog.get_logger(__name__)

DatabaseAction: TypeAlias = Callable[[Database], Awaitable[None]]

F = TypeVar("F", bound=Callable[..., Any])


def remote_options(func: F) -> F:
    """Options shared by every command that talks to SimpleDB."""
    options = [
        click.option("--access-key", envvar="AWS_ACCESS_KEY_ID", help="AWS access key id"),
        click.option("--secret-key", envvar="AWS_SECRET_ACCESS_KEY", help="AWS secret access key"),
        click.option("--region", envvar="AWS_DEFAULT_REGION", default="us-east-1", show_default=True),
        click.option("--endpoint-url", default=None, help="Override the SimpleDB endpoint"),
        click.option(
            "--consistent-read", is_flag=True, default=False, help="Use consistent reads"
        ),
        click.option(
            "--metrics-depth",
            type=click.IntRange(min=0),
            default=0,
            show_default=True,
            help="Deepest metrics scope level to log",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def run_remote(action: DatabaseAction, **remote: Any) -> None:
    """Connect, run `action` against the database, and disconnect."""
    set_default_on_close(log_transaction_close(logger, remote["metrics_depth"]))
    credentials = SimpleDBCredentials(
        access_key_id=remote["access_key"],
        secret_access_key=remote["secret_key"],
        region=remote["region"],
        endpoint_url=remote["endpoint_url"],
    )
    params = SimpleDBParams(consistent_read=remote["consistent_read"])

    async def main() -> None:
        provider = await SimpleDBProvider.connect(credentials, params)
        try:
            await action(Database(provider))
        finally:
            await provider.disconnect()

    try:
        asyncio.run(main())
    except SdbError as e:
        raise click.ClickException(f"{e.kind}: {e.message}") from e
    finally:
        set_default_on_close(None)


def handle_errors(func: F) -> F:
    """Report `SdbError`s as clean command failures."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except SdbError as e:
            raise click.ClickException(f"{e.kind}: {e.message}") from e

    return wrapper  # type: ignore[return-value]


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
)
@click.option("--json-logs", is_flag=True, default=False, help="Emit logs as JSON lines")
def cli(log_level: str, json_logs: bool) -> None:
    """Bulk export, import and inspection of SimpleDB domains."""
    configure_logging(log_level, json=json_logs)


@cli.command()
@remote_options
def domains(**remote: Any) -> None:
    """List every domain."""

    async def action(db: Database) -> None:
        for name in await db.domains():
            click.echo(name)

    run_remote(action, **remote)


@cli.command()
@click.argument("domain")
@click.option("--conditions", default="", help="WHERE clause predicate")
@remote_options
def count(domain: str, conditions: str, **remote: Any) -> None:
    """Count the items of DOMAIN matching the conditions."""

    async def action(db: Database) -> None:
        click.echo(await db.domain(domain).selection(conditions=conditions).count())

    run_remote(action, **remote)


@cli.command()
@click.argument("domain")
@click.argument("file", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--chunk-size", type=int, default=100, show_default=True)
@click.option("--worker-id", default=None, help="Worker identity (random by default)")
@remote_options
def dump(domain: str, file: Path, chunk_size: int, worker_id: str | None, **remote: Any) -> None:
    """Dump DOMAIN to FILE, resuming from its status file if present."""

    async def action(db: Database) -> None:
        engine = db.make_dump(domain, file, chunk_size=chunk_size, worker_id=worker_id)
        await engine.start()
        click.echo(engine.report().summary())

    run_remote(action, **remote)


@cli.command()
@click.argument("domain")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--chunk-size", type=int, default=100, show_default=True)
@click.option("--worker-id", default=None, help="Worker identity (random by default)")
@remote_options
def load(domain: str, file: Path, chunk_size: int, worker_id: str | None, **remote: Any) -> None:
    """Load FILE into DOMAIN, resuming from its status file if present."""

    async def action(db: Database) -> None:
        engine = db.make_load(domain, file, chunk_size=chunk_size, worker_id=worker_id)
        await engine.start()
        click.echo(engine.report().summary())

    run_remote(action, **remote)


@cli.command()
@click.argument("status_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@handle_errors
def report(status_file: Path) -> None:
    """Summarize the progress recorded in STATUS_FILE."""
    click.echo(CheckpointStore(status_file).report().summary())


@cli.command()
@click.argument("status_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@handle_errors
def failures(status_file: Path) -> None:
    """List the failed items recorded in STATUS_FILE."""
    for item_name, info in CheckpointStore(status_file).failed_items().items():
        click.echo(f"{item_name}: {info}")


if __name__ == "__main__":
    cli()
