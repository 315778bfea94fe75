"""Command-line interface for jsonframe."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import NoReturn

from .codec import DEFAULT_DOCUMENT_SIZE_LENGTH
from .exceptions import JsonFrameError
from .models import AccessMode, StreamInfo
from .stream import JsonStream


def collect_info(
    file_path: str | Path, document_size_length: int = DEFAULT_DOCUMENT_SIZE_LENGTH
) -> StreamInfo:
    """Scan a framed file and summarize its documents.

    Raises:
        FileNotFoundError: If the file does not exist
        InvalidDocumentSizeLengthError: If a size descriptor is corrupt
        InvalidJsonDocumentError: If a payload is truncated
    """
    path = Path(file_path).resolve()
    count = 0
    payload_bytes = 0
    with JsonStream.open(path, AccessMode.READ_ONLY, document_size_length) as stream:
        for payload in stream.iter_bytes():
            count += 1
            payload_bytes += len(payload)

    return StreamInfo(
        file_path=str(path),
        file_size=path.stat().st_size,
        document_count=count,
        payload_bytes=payload_bytes,
        document_size_length=document_size_length,
    )


def cmd_info(args: argparse.Namespace) -> int:
    """Handle the 'info' subcommand."""
    try:
        info = collect_info(args.file, args.width)
    except (FileNotFoundError, JsonFrameError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(
            json.dumps(
                {
                    "file": info.file_path,
                    "documents": info.document_count,
                    "payload_bytes": info.payload_bytes,
                    "size_bytes": info.file_size,
                    "document_size_length": info.document_size_length,
                },
                indent=2,
            )
        )
    else:
        print(f"File: {info.file_path}")
        print(f"Documents: {info.document_count:,}")
        print(f"Payload: {_format_size(info.payload_bytes)}")
        print(f"Size: {_format_size(info.file_size)}")

    return 0


def cmd_cat(args: argparse.Namespace) -> int:
    """Handle the 'cat' subcommand."""
    try:
        stream = JsonStream.open(args.file, AccessMode.READ_ONLY, args.width)
    except (FileNotFoundError, JsonFrameError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    printed = 0
    with stream:
        try:
            for document in stream.iter_objects():
                if args.limit is not None and printed >= args.limit:
                    break
                if args.pretty:
                    print(json.dumps(document, indent=2, ensure_ascii=False))
                else:
                    print(json.dumps(document, ensure_ascii=False))
                printed += 1
        except JsonFrameError as e:
            print(f"Error: {e} (after {printed} documents)", file=sys.stderr)
            return 1
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            print(f"Error: Invalid JSON in document {printed}: {e}", file=sys.stderr)
            return 1

    return 0


def cmd_append(args: argparse.Namespace) -> int:
    """Handle the 'append' subcommand."""
    if args.input:
        try:
            lines = Path(args.input).read_text(encoding="utf-8").splitlines()
        except FileNotFoundError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
    else:
        lines = sys.stdin.read().splitlines()

    try:
        stream = JsonStream.open(args.file, AccessMode.WRITE_ONLY, args.width)
    except (FileNotFoundError, JsonFrameError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    written = 0
    with stream:
        for line_num, line in enumerate(lines):
            if not line.strip():
                continue
            try:
                stream.write_string(line, validate=not args.no_validate)
            except json.JSONDecodeError as e:
                print(f"Error: Invalid JSON at input line {line_num}: {e}", file=sys.stderr)
                return 1
            except JsonFrameError as e:
                print(f"Error: {e}", file=sys.stderr)
                return 1
            written += 1

    print(f"Appended {written} documents")
    return 0


def _format_size(size_bytes: int) -> str:
    """Format byte size in human-readable form."""
    size: float = float(size_bytes)
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if size < 1024:
            if unit == "B":
                return f"{int(size)} {unit}"
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} PB"


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="jsonframe",
        description="Inspect and append to length-prefixed JSON document files",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("file", help="Path to framed file")
    common.add_argument(
        "--width",
        type=int,
        default=DEFAULT_DOCUMENT_SIZE_LENGTH,
        help=f"Size descriptor width in bytes (default: {DEFAULT_DOCUMENT_SIZE_LENGTH})",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # info subcommand
    info_parser = subparsers.add_parser(
        "info",
        parents=[common],
        help="Show file information",
        description="Display document count, payload size, and file size",
    )
    info_parser.add_argument(
        "--json", action="store_true", help="Output as JSON for scripting"
    )
    info_parser.set_defaults(func=cmd_info)

    # cat subcommand
    cat_parser = subparsers.add_parser(
        "cat",
        parents=[common],
        help="Print documents",
        description="Print every document in order, one JSON value per line",
    )
    cat_parser.add_argument(
        "--limit", type=int, help="Stop after this many documents"
    )
    cat_parser.add_argument(
        "--pretty", action="store_true", help="Pretty-print JSON output"
    )
    cat_parser.set_defaults(func=cmd_cat)

    # append subcommand
    append_parser = subparsers.add_parser(
        "append",
        parents=[common],
        help="Append JSON lines as documents",
        description="Read JSON lines from stdin (or --input) and append each as a document",
    )
    append_parser.add_argument("--input", help="Read JSON lines from this file")
    append_parser.add_argument(
        "--no-validate", action="store_true", help="Skip JSON validation"
    )
    append_parser.set_defaults(func=cmd_append)

    return parser


def main(argv: list[str] | None = None) -> NoReturn:
    """Main entry point for CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
