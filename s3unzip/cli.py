"""CLI interface for s3unzip."""

import json as jsonlib
import logging
from typing import Any, Optional

import click
from rich.console import Console
from rich.table import Table

from .api import StorageClient
from .config import config
from .exceptions import S3UnzipError
from .models import PackageRequest, ReconcileResult
from .sync import Reconciler
from .sync.encoding import ContentEncoding
from .utils import format_size

logger = logging.getLogger(__name__)

ENCODING_CHOICE = click.Choice([e.value for e in ContentEncoding], case_sensitive=False)


def _build_reconciler(ctx: Any) -> Reconciler:
    storage = StorageClient(region=ctx.obj["region"])
    return Reconciler(storage, manifest_bucket=ctx.obj["manifest_bucket"])


def _report(
    ctx: Any, action: str, request: PackageRequest, result: ReconcileResult
) -> None:
    """Print a reconciliation result and exit with 1 on failure."""
    console: Console = ctx.obj["console"]

    if ctx.obj["json"]:
        payload: dict[str, Any] = {
            "action": action,
            "request": request.to_properties(),
            "ok": result.ok,
            "stats": result.stats.to_dict(),
        }
        if result.ok and result.response is not None:
            payload["physical_resource_id"] = result.response.physical_resource_id
            payload["attributes"] = result.response.attributes
        else:
            payload["error"] = str(result.error)
        click.echo(jsonlib.dumps(payload, indent=2))
    elif not result.ok:
        console.print(f"[red]Error:[/red] {result.error}")
    elif not ctx.obj["quiet"]:
        table = Table(title=f"{action.capitalize()} complete")
        table.add_column("Uploaded", justify="right")
        table.add_column("Skipped", justify="right")
        table.add_column("Deleted", justify="right")
        table.add_column("Size", justify="right")
        stats = result.stats
        table.add_row(
            str(stats.uploaded),
            str(stats.skipped),
            str(stats.deleted),
            format_size(stats.bytes_uploaded),
        )
        console.print(table)
        if result.response is not None and "Url" in result.response.attributes:
            console.print(f"Destination: {result.response.attributes['Url']}")

    if not result.ok:
        ctx.exit(1)


@click.group()
@click.option(
    "--manifest-bucket",
    "-m",
    envvar="S3UNZIP_MANIFEST_BUCKET",
    help="Bucket holding package manifests",
)
@click.option("--region", "-r", default=None, help="AWS region")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="s3unzip")
@click.pass_context
def main(
    ctx: Any,
    manifest_bucket: Optional[str],
    region: Optional[str],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """s3unzip - Unzip packages into S3 buckets and keep them in sync."""
    ctx.ensure_object(dict)
    ctx.obj["manifest_bucket"] = manifest_bucket or config.manifest_bucket
    ctx.obj["region"] = region
    ctx.obj["quiet"] = quiet
    ctx.obj["json"] = json
    ctx.obj["console"] = Console()

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("s3unzip").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.argument("source_bucket")
@click.argument("source_key")
@click.argument("destination_bucket")
@click.argument("destination_key")
@click.option("--encoding", "-e", type=ENCODING_CHOICE, help="Content encoding")
@click.pass_context
def create(
    ctx: Any,
    source_bucket: str,
    source_key: str,
    destination_bucket: str,
    destination_key: str,
    encoding: Optional[str],
) -> None:
    """Unzip SOURCE_KEY into DESTINATION_BUCKET under DESTINATION_KEY."""
    request = PackageRequest(
        source_bucket=source_bucket,
        source_key=source_key,
        destination_bucket=destination_bucket,
        destination_key=destination_key,
        encoding=encoding,
    )
    try:
        reconciler = _build_reconciler(ctx)
    except S3UnzipError as e:
        raise click.ClickException(str(e)) from e
    _report(ctx, "create", request, reconciler.create(request))


@main.command()
@click.argument("source_bucket")
@click.argument("source_key")
@click.argument("destination_bucket")
@click.argument("destination_key")
@click.option("--encoding", "-e", type=ENCODING_CHOICE, help="Content encoding")
@click.option("--old-source-bucket", help="Previous source bucket")
@click.option("--old-source-key", help="Previous source key")
@click.option("--old-destination-bucket", help="Previous destination bucket")
@click.option("--old-destination-key", help="Previous destination key")
@click.option("--old-encoding", type=ENCODING_CHOICE, help="Previous encoding")
@click.pass_context
def update(
    ctx: Any,
    source_bucket: str,
    source_key: str,
    destination_bucket: str,
    destination_key: str,
    encoding: Optional[str],
    old_source_bucket: Optional[str],
    old_source_key: Optional[str],
    old_destination_bucket: Optional[str],
    old_destination_key: Optional[str],
    old_encoding: Optional[str],
) -> None:
    """Update an unzipped package, uploading only changed entries.

    Previous values default to the new ones when not given.
    """
    request = PackageRequest(
        source_bucket=source_bucket,
        source_key=source_key,
        destination_bucket=destination_bucket,
        destination_key=destination_key,
        encoding=encoding,
    )
    old_request = PackageRequest(
        source_bucket=old_source_bucket or source_bucket,
        source_key=old_source_key or source_key,
        destination_bucket=old_destination_bucket or destination_bucket,
        destination_key=old_destination_key or destination_key,
        encoding=old_encoding or encoding,
    )
    try:
        reconciler = _build_reconciler(ctx)
    except S3UnzipError as e:
        raise click.ClickException(str(e)) from e
    _report(ctx, "update", request, reconciler.update(old_request, request))


@main.command()
@click.argument("source_key")
@click.argument("destination_bucket")
@click.argument("destination_key")
@click.pass_context
def delete(
    ctx: Any,
    source_key: str,
    destination_bucket: str,
    destination_key: str,
) -> None:
    """Delete every object recorded in the manifest of a package."""
    request = PackageRequest(
        source_key=source_key,
        destination_bucket=destination_bucket,
        destination_key=destination_key,
    )
    try:
        reconciler = _build_reconciler(ctx)
    except S3UnzipError as e:
        raise click.ClickException(str(e)) from e
    _report(ctx, "delete", request, reconciler.delete(request))


@main.command("show-manifest")
@click.argument("destination_bucket")
@click.argument("source_key")
@click.pass_context
def show_manifest(ctx: Any, destination_bucket: str, source_key: str) -> None:
    """Show the manifest recorded for DESTINATION_BUCKET and SOURCE_KEY."""
    console: Console = ctx.obj["console"]
    request = PackageRequest(destination_bucket=destination_bucket, source_key=source_key)
    try:
        reconciler = _build_reconciler(ctx)
        manifest = reconciler.manifests.read_manifest(request)
    except S3UnzipError as e:
        raise click.ClickException(str(e)) from e

    if manifest is None:
        console.print(f"[red]Error:[/red] No manifest found for {request.manifest_key}")
        ctx.exit(1)
        return

    if ctx.obj["json"]:
        click.echo(jsonlib.dumps(dict(manifest), indent=2))
        return

    table = Table(title=f"Manifest {request.manifest_key}")
    table.add_column("Path")
    table.add_column("Fingerprint")
    for path, fingerprint in manifest.items():
        table.add_row(path, fingerprint)
    console.print(table)
    if not ctx.obj["quiet"]:
        console.print(f"{len(manifest)} entries")


if __name__ == "__main__":
    main()
