from __future__ import annotations

import argparse
import shutil
import sys
from contextlib import closing
from pathlib import Path
from typing import Optional

from rich.console import Console

from .core.config import Settings, get_settings
from .core.errors import MediaIngestError
from .core.hooks import WILDCARD, Hooks
from .core.logging import configure_logging, level_from_name
from .core.storage import get_storage
from .schemas import AssetRecord
from .services.files import Files

console = Console()

CONFIG_OPTIONS = {
    "storage_backend": "MEDIAINGEST_STORAGE_BACKEND",
    "storage_root": "MEDIAINGEST_STORAGE_ROOT",
    "thumbnail_size": "MEDIAINGEST_THUMBNAIL_SIZE",
    "thumbnail_quality": "MEDIAINGEST_THUMBNAIL_QUALITY",
    "thumbnail_crop_enabled": "MEDIAINGEST_THUMBNAIL_CROP_ENABLED",
    "file_naming": "MEDIAINGEST_FILE_NAMING",
    "youtube_api_key": "MEDIAINGEST_YOUTUBE_API_KEY",
}


def main(argv: Optional[list[str]] = None) -> None:
    """The main entry point for the CLI.

    Args:
        argv: The command-line arguments.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if getattr(args, "check", False):
        _run_environment_check()
        return

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except MediaIngestError as exc:
        console.print(f"[red]{exc}[/]")
        sys.exit(2)


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI.

    Returns:
        The argument parser.
    """
    parser = argparse.ArgumentParser(description="Media ingestion developer CLI")
    parser.add_argument("--check", action="store_true", help="Validate presence of libmagic/pdftoppm dependencies")
    parser.add_argument("-v", "--verbose", action="store_true", help="Print storage hook notifications")

    subparsers = parser.add_subparsers(dest="command")

    upload_parser = subparsers.add_parser("upload", help="Ingest a local file and print its asset record")
    upload_parser.add_argument("--file", required=True, help="Path to the source file")
    upload_parser.add_argument("--name", help="Desired storage name (defaults to the file name)")
    upload_parser.set_defaults(func=_cmd_upload)

    data_parser = subparsers.add_parser("save-data", help="Ingest a data URL or raw payload read from a file")
    data_parser.add_argument("--file", required=True, help="File holding a data URL or raw bytes")
    data_parser.add_argument("--name", required=True, help="Desired storage name")
    data_parser.set_defaults(func=_cmd_save_data)

    link_parser = subparsers.add_parser("link", help="Resolve a remote link and print the partial record")
    link_parser.add_argument("--url", required=True, help="YouTube, Vimeo or any other URL")
    link_parser.add_argument("--save", action="store_true", help="Store the link (embed preview or fetched file)")
    link_parser.set_defaults(func=_cmd_link)

    delete_parser = subparsers.add_parser("delete", help="Delete a stored asset and its thumbnail")
    delete_parser.add_argument("--name", required=True, help="Storage name of the asset")
    delete_parser.set_defaults(func=_cmd_delete)

    thumbs_parser = subparsers.add_parser("thumbs", help="Generate thumbnails missing from storage")
    thumbs_parser.set_defaults(func=_cmd_thumbs)

    config_parser = subparsers.add_parser("config", help="Write a .env file with pipeline settings")
    config_parser.add_argument("--output", default=".env", help="Target env file (default .env)")
    config_parser.add_argument("--force", action="store_true", help="Overwrite an existing file")
    config_parser.add_argument("--storage-backend", choices=("local", "memory"))
    config_parser.add_argument("--storage-root")
    config_parser.add_argument("--thumbnail-size", type=int)
    config_parser.add_argument("--thumbnail-quality", type=int)
    config_parser.add_argument("--thumbnail-crop-enabled", choices=("true", "false"))
    config_parser.add_argument("--file-naming", choices=("original", "hash"))
    config_parser.add_argument("--youtube-api-key")
    config_parser.set_defaults(func=_cmd_config)
    return parser


def _build_files(args: argparse.Namespace, settings: Optional[Settings] = None) -> Files:
    """Wire the files service from the environment settings.

    Args:
        args: The command-line arguments.
        settings: Optional settings override.

    Returns:
        The files service.
    """
    settings = settings or get_settings()
    configure_logging(
        level=level_from_name(settings.log_level),
        log_format=settings.log_format,
        app=settings.app_name,
        environment=settings.environment_lower,
    )
    hooks = Hooks()
    if getattr(args, "verbose", False):
        hooks.subscribe(WILDCARD, lambda event, payload: console.print(f"[dim]{event}[/] {dict(payload)}"))
    return Files(settings, get_storage(settings), hooks=hooks)


def _print_record(record: AssetRecord) -> None:
    console.print_json(data=record.to_dict())


def _cmd_upload(args: argparse.Namespace) -> None:
    source = Path(args.file).expanduser()
    with closing(_build_files(args)) as files:
        _print_record(files.upload_file(source, args.name or source.name))


def _cmd_save_data(args: argparse.Namespace) -> None:
    source = Path(args.file).expanduser()
    if not source.exists():
        console.print(f"[red]File not found: {source}[/]")
        sys.exit(2)
    payload = source.read_bytes()
    with closing(_build_files(args)) as files:
        _print_record(files.save_inline_data(payload, args.name))


def _cmd_link(args: argparse.Namespace) -> None:
    with closing(_build_files(args)) as files:
        result = files.get_link(args.url)
        if not result:
            console.print(f"[yellow]No data retrieved for {args.url}: {result.reason}[/]")
            sys.exit(3)
        if not args.save:
            _print_record(result)
        elif result.is_embed:
            _print_record(files.save_embed(result))
        else:
            _print_record(files.save_inline_data(result.data or "", result.name))


def _cmd_delete(args: argparse.Namespace) -> None:
    with closing(_build_files(args)) as files:
        deleted = files.delete({"name": args.name})
    if not deleted:
        console.print(f"[yellow]Nothing stored under {args.name}[/]")
        return
    for key in deleted:
        console.print(f"[green]Deleted {key}[/]")


def _cmd_thumbs(args: argparse.Namespace) -> None:
    """Generate missing thumbnails and print statistics.

    Args:
        args: The command-line arguments.
    """
    with closing(_build_files(args)) as files:
        statistics = files.generate_missing_thumbnails()
    console.rule("[bold]Statistics")
    for label, value in statistics.items():
        console.print(f"[bold]{label}[/]: {value}")


def _cmd_config(args: argparse.Namespace) -> None:
    """Write the selected options to an env file.

    Args:
        args: The command-line arguments.
    """
    target = Path(args.output).expanduser()
    if target.exists() and not args.force:
        console.print(f"[red]{target} already exists; pass --force to overwrite[/]")
        sys.exit(1)

    lines = []
    for option, env_name in CONFIG_OPTIONS.items():
        value = getattr(args, option, None)
        if value is not None:
            lines.append(f"{env_name}={value}")
    target.write_text("\n".join(lines) + "\n", encoding="utf-8")
    console.print(f"[green]Configuration written to {target}[/]")


def _run_environment_check() -> None:
    """Check for the presence of required external dependencies."""
    results = {"pdftoppm": shutil.which("pdftoppm") is not None}
    try:
        import magic

        magic.from_buffer(b"%PDF-1.4", mime=True)
        results["libmagic"] = True
    except (ImportError, OSError):
        results["libmagic"] = False

    console.rule("[bold]Environment Check")
    for label, ok in results.items():
        console.print(f"[bold]{label}[/]: {'✅' if ok else '❌'}")

    if not results["libmagic"]:
        console.print("[red]libmagic is required for content type detection.[/]")
        sys.exit(1)
    if not results["pdftoppm"]:
        console.print("[yellow]pdftoppm missing: PDF uploads will be stored without thumbnails.[/]")
    console.print("[green]Environment looks good![/]")


if __name__ == "__main__":
    main()
