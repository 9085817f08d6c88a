"""CLI interface for resumable multipart uploads."""

import logging
import sys
import threading
import uuid
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)
from rich.table import Table

from ..core.exceptions import ConfigurationError, RemoteNotFoundError
from ..core.models import S3Config, TransportConfig, TransportSession, TransportState
from ..core.s3_client import S3StorageClient
from ..core.transport import ResumableTransport

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] %(levelname)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)

# Rich console for pretty output
console = Console()

EXIT_CODES = {
    TransportState.FINISHED: 0,
    TransportState.ERRORED: 1,
    TransportState.PAUSED: 130,
}


def build_storage_client(ctx) -> S3StorageClient:
    """Create the S3 client from global CLI options."""
    try:
        config = S3Config(
            access_key=ctx.obj["access_key"],
            secret_key=ctx.obj["secret_key"],
            region=ctx.obj["region"],
            endpoint_url=ctx.obj["endpoint_url"],
            max_retries=ctx.obj["max_retries"],
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid S3 settings: {e}") from e
    return S3StorageClient.from_config(config)


@click.group()
@click.option("--access-key", envvar="TRANSPORT_S3_ACCESS_KEY", help="S3 access key")
@click.option("--secret-key", envvar="TRANSPORT_S3_SECRET_KEY", help="S3 secret key")
@click.option("--region", envvar="TRANSPORT_S3_REGION", help="S3 region")
@click.option(
    "--endpoint-url",
    envvar="TRANSPORT_S3_ENDPOINT_URL",
    help="S3 endpoint URL (for S3-compatible services)",
)
@click.option("--max-retries", type=int, default=5, show_default=True)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx, access_key, secret_key, region, endpoint_url, max_retries, verbose):
    """Resumable multipart uploads to S3-compatible storage."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    ctx.ensure_object(dict)
    ctx.obj.update(
        access_key=access_key,
        secret_key=secret_key,
        region=region,
        endpoint_url=endpoint_url,
        max_retries=max_retries,
    )


@cli.command()
@click.argument("local_path", type=click.Path(exists=True, dir_okay=False))
@click.argument("bucket")
@click.argument("key", required=False)
@click.option("--upload-id", help="Resume this multipart upload instead of starting a new one")
@click.option("--session-id", help="Correlation id reported in events (default: random)")
@click.option(
    "--part-size",
    type=int,
    default=None,
    help="Baseline part size in bytes (default: 20 MiB)",
)
@click.option(
    "--idle-timeout",
    type=float,
    default=None,
    help="Seconds without progress before a part is aborted (default: 10)",
)
@click.pass_context
def upload(ctx, local_path, bucket, key, upload_id, session_id, part_size, idle_timeout):
    """Upload LOCAL_PATH to BUCKET/KEY. Press Ctrl-C to pause."""
    try:
        overrides = {}
        if part_size is not None:
            overrides["part_size"] = part_size
        if idle_timeout is not None:
            overrides["idle_timeout"] = idle_timeout
        try:
            config = TransportConfig(**overrides)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid transport settings: {e}") from e

        session = TransportSession(
            id=session_id or uuid.uuid4().hex,
            bucket=bucket,
            object_key=key or Path(local_path).name,
            local_path=str(local_path),
            upload_session_id=upload_id,
        )
        transport = ResumableTransport(build_storage_client(ctx), session, config)
        total = Path(local_path).stat().st_size

        console.print(
            f"Uploading [cyan]{local_path}[/cyan] to "
            f"[green]{bucket}/{session.object_key}[/green]"
        )
        with Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
            console=console,
        ) as progress:
            task = progress.add_task("Uploading", total=total)

            transport.on(
                "start",
                lambda e: console.print(f"Multipart upload id: [cyan]{e.upload_session_id}[/cyan]"),
            )
            transport.on(
                "progress",
                lambda e: progress.update(task, completed=e.bytes_written),
            )
            transport.on(
                "error",
                lambda e: console.print(f"[red]Error: {escape(e.error)}[/red]"),
            )

            worker = threading.Thread(target=transport.start, daemon=True)
            worker.start()
            try:
                while worker.is_alive():
                    worker.join(0.2)
            except KeyboardInterrupt:
                console.print("[yellow]Pausing...[/yellow]")
                transport.pause()
                worker.join()

        state = transport.state
        if state == TransportState.FINISHED:
            console.print("[green]✓[/green] Upload completed successfully!")
        elif state == TransportState.PAUSED:
            console.print("[yellow]Upload paused.[/yellow]")
            if transport.upload_session_id:
                console.print(
                    f"Resume with: [green]--upload-id {transport.upload_session_id}[/green]"
                )
        else:
            console.print("[red]Upload failed.[/red]")
        sys.exit(EXIT_CODES.get(state, 1))

    except ConfigurationError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)


@cli.command()
@click.argument("bucket")
@click.argument("key")
@click.pass_context
def status(ctx, bucket, key):
    """Show the transport metadata of BUCKET/KEY."""
    try:
        client = build_storage_client(ctx)
        try:
            meta = client.get_object_metadata(bucket, key)
        except RemoteNotFoundError:
            console.print(f"[yellow]{bucket}/{key} not found[/yellow]")
            return

        table = Table(title=f"{bucket}/{key}")
        table.add_column("Field", style="cyan")
        table.add_column("Value", style="white")
        table.add_row("Size", f"{meta.size:,} bytes")
        table.add_row("Origin", meta.origin or "-")
        table.add_row("Modified time (ms)", str(meta.modified_time or "-"))
        table.add_row("MD5", meta.md5 or "-")
        console.print(table)

    except Exception as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
