import argparse
import getpass
import json
import sys
from pathlib import Path
from typing import Any, Dict

from pydantic import ValidationError

from trackdiff import __version__
from trackdiff.errors import TrackDiffError
from trackdiff.models import Options
from trackdiff.redline.engine import DEFAULT_AUTHOR, diff_docx_tracked


def _read_docx_bytes(path: Path) -> bytes:
    if not path.exists():
        print(f"Error: File not found: {path}", file=sys.stderr)
        sys.exit(1)
    with open(path, "rb") as f:
        return f.read()


def _load_options(args: argparse.Namespace) -> Options:
    data: Dict[str, Any] = {}
    if args.options:
        try:
            with open(args.options, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            print(f"Error reading options file: {e}", file=sys.stderr)
            sys.exit(1)

    # Explicit flags win over the options file.
    if args.granularity:
        data["granularity"] = args.granularity
    if args.no_suppress_whitespace:
        data["suppress_whitespace_only"] = False
    if args.fail_on_tracked:
        data["existing_tracked_revisions"] = "fail"

    try:
        return Options.model_validate(data)
    except ValidationError as e:
        print(f"Error: Invalid options: {e}", file=sys.stderr)
        sys.exit(1)


def handle_diff(args: argparse.Namespace):
    base = _read_docx_bytes(args.base)
    revised = _read_docx_bytes(args.revised)
    options = _load_options(args)

    try:
        result = diff_docx_tracked(base, revised, author=args.author, options=options)
    except TrackDiffError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    output_path = args.output or args.revised.with_name(f"{args.revised.stem}_diff.docx")
    with open(output_path, "wb") as f:
        f.write(result.content)

    for warning in result.warnings:
        print(f"⚠️  {warning}", file=sys.stderr)
    print(f"✅ Saved to {output_path}", file=sys.stderr)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trackdiff", description="Compare two DOCX files and write the differences as Track Changes"
    )
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("base", type=Path, help="Base (original) DOCX")
    parser.add_argument("revised", type=Path, help="Revised DOCX")
    parser.add_argument("-o", "--output", type=Path, help="Output DOCX path (default: <revised>_diff.docx)")

    try:
        default_author = getpass.getuser()
    except Exception:
        default_author = DEFAULT_AUTHOR

    parser.add_argument(
        "--author",
        type=str,
        default=default_author,
        help=f"Author name for Track Changes (default: '{default_author}')",
    )
    parser.add_argument("--granularity", choices=["word", "char"], help="Diff unit (default: word)")
    parser.add_argument(
        "--no-suppress-whitespace",
        action="store_true",
        help="Also mark paragraphs that differ only in whitespace",
    )
    parser.add_argument(
        "--fail-on-tracked",
        action="store_true",
        help="Refuse a revised document that already contains tracked changes",
    )
    parser.add_argument("--options", type=Path, help="JSON file with Options (camelCase or snake_case keys)")
    parser.set_defaults(func=handle_diff)
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
