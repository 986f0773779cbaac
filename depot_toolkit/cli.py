"""Depot Toolkit CLI."""

import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional

import click

from . import __version__
from .formats.keys import KeyField

logger = logging.getLogger(__name__)


def depot_options(func):
    """Options shared by every command that loads a depot version."""
    options = [
        click.option(
            "--keyfile",
            type=click.Path(path_type=Path),
            default="depotkeys.json",
            show_default=True,
            help="Path to depot keys file",
        ),
        click.option(
            "--manifestdir",
            type=click.Path(file_okay=False, path_type=Path),
            default="manifests",
            show_default=True,
            help="Directory holding {depot}_{version}.manifest files",
        ),
        click.option(
            "--storagedir",
            type=click.Path(file_okay=False, path_type=Path),
            default="storages",
            show_default=True,
            help="Directory holding {depot}.index and {depot}.data files",
        ),
        click.option("--depot", type=int, required=True, help="Depot id"),
        click.option("--version", "depot_version", type=int, required=True, help="Depot version"),
        click.option(
            "--key-field",
            type=click.Choice([f.value for f in KeyField]),
            default=KeyField.DEPOT_ID.value,
            show_default=True,
            help="Manifest field used to look up the depot key",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def open_depot(keyfile: Path, manifestdir: Path, storagedir: Path, depot: int, depot_version: int, key_field: str):
    from .depot import DepotReader

    if not keyfile.exists():
        logger.warning("Key file %s not found, encrypted files will fail", keyfile)
        keyfile = None

    return DepotReader(
        manifestdir,
        storagedir,
        depot,
        depot_version,
        key_file=keyfile,
        key_field=KeyField(key_field),
    )


def write_output(text: str, output: Optional[Path]) -> None:
    """Write ``text`` to ``output``, or stdout when not given."""
    if output is None:
        click.echo(text, nl=False)
    else:
        output.write_text(text, encoding="utf-8")


@click.group()
@click.version_option(version=__version__)
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging")
def main(verbose: bool):
    """Depot Toolkit - Decode game content depots into plain files.

    A depot version is stored as three files:

    \b
    manifests/{depot}_{version}.manifest  file and directory tree
    storages/{depot}.index                chunk table per file
    storages/{depot}.data                 chunk bytes
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )


@main.command()
@depot_options
@click.option(
    "-o",
    "--output",
    type=click.Path(file_okay=False, path_type=Path),
    help="Output directory (default: <depot>_<version>)",
)
@click.option(
    "--workers",
    type=click.IntRange(min=1),
    default=os.cpu_count() or 1,
    show_default=True,
    help="Number of extraction workers",
)
@click.option(
    "--fail-fast/--keep-going",
    default=True,
    help="Stop at the first failed file, or extract the rest and report all failures",
)
def extract(
    keyfile: Path,
    manifestdir: Path,
    storagedir: Path,
    depot: int,
    depot_version: int,
    key_field: str,
    output: Optional[Path],
    workers: int,
    fail_fast: bool,
):
    """Extract a depot version into a directory tree."""
    click.echo(f"Depot {depot} Version {depot_version}")

    try:
        with open_depot(keyfile, manifestdir, storagedir, depot, depot_version, key_field) as reader:
            if output is None:
                output = Path(f"{depot}_{depot_version}")

            click.echo(f"Output:  {output}")
            click.echo(f"Workers: {workers}")
            click.echo()

            total = sum(1 for _ in reader.manifest.files())
            with click.progressbar(length=total, label="Extracting") as bar:
                report = reader.extract(
                    output,
                    workers=workers,
                    fail_fast=fail_fast,
                    progress_callback=lambda done, count, path: bar.update(1),
                )

            click.echo()
            click.echo(f"Directories: {report.directories}")
            click.echo(f"Extracted:   {len(report.succeeded)} files")

            if report.failed:
                click.echo(f"Failed:      {len(report.failed)} files", err=True)
                for result in report.failed:
                    click.echo(f"  {result.path}: {result.error}", err=True)
                sys.exit(1)

    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command()
@depot_options
@click.option("-o", "--output", type=click.Path(dir_okay=False, path_type=Path), help="Output file (default: stdout)")
def filelist(
    keyfile: Path,
    manifestdir: Path,
    storagedir: Path,
    depot: int,
    depot_version: int,
    key_field: str,
    output: Optional[Path],
):
    """List every item path in a depot version."""
    try:
        with open_depot(keyfile, manifestdir, storagedir, depot, depot_version, key_field) as reader:
            lines = [path + "\n" for _, _, path in reader.items() if path]
            write_output("".join(lines), output)

    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command("manifest-json")
@depot_options
@click.option("-o", "--output", type=click.Path(dir_okay=False, path_type=Path), help="Output file (default: stdout)")
def manifest_json(
    keyfile: Path,
    manifestdir: Path,
    storagedir: Path,
    depot: int,
    depot_version: int,
    key_field: str,
    output: Optional[Path],
):
    """Dump the parsed manifest as JSON."""
    try:
        with open_depot(keyfile, manifestdir, storagedir, depot, depot_version, key_field) as reader:
            write_output(json.dumps(reader.manifest.to_dict(), indent=2, ensure_ascii=False) + "\n", output)

    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command("index-json")
@depot_options
@click.option("-o", "--output", type=click.Path(dir_okay=False, path_type=Path), help="Output file (default: stdout)")
def index_json(
    keyfile: Path,
    manifestdir: Path,
    storagedir: Path,
    depot: int,
    depot_version: int,
    key_field: str,
    output: Optional[Path],
):
    """Dump the parsed index as JSON."""
    try:
        with open_depot(keyfile, manifestdir, storagedir, depot, depot_version, key_field) as reader:
            write_output(json.dumps(reader.index.to_dict(), indent=2) + "\n", output)

    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
