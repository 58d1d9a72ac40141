import logging
import sys
from pathlib import Path
from typing import Optional

import structlog
from mcp.server.fastmcp import FastMCP

from trackdiff.archive import open_package
from trackdiff.errors import TrackDiffError
from trackdiff.models import Options
from trackdiff.package import DOCUMENT_PATH
from trackdiff.redline.engine import DEFAULT_AUTHOR, diff_docx_tracked
from trackdiff.redline.stripper import has_tracked_changes
from trackdiff.utils.xml import parse_part

# --- LOGGING CONFIGURATION ---
# MCP communicates over stdio.
# CRITICAL: All logs must go to stderr. Any print to stdout will break the JSON-RPC protocol.
logging.basicConfig(stream=sys.stderr, level=logging.INFO, force=True)

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
)

mcp = FastMCP("TrackDiff Comparison Service")


def _read_file_bytes(path: str) -> bytes:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"File not found: {path}")
    with open(p, "rb") as f:
        return f.read()


@mcp.tool()
def compare_docx_tracked(
    base_path: str,
    revised_path: str,
    author_name: str = DEFAULT_AUTHOR,
    output_path: Optional[str] = None,
    granularity: str = "word",
    suppress_whitespace_only: bool = True,
    existing_tracked_revisions: str = "ignore",
) -> str:
    """
    Compares two DOCX files and writes a new DOCX in which every text difference
    is a tracked insertion or deletion (Word's 'Compare Documents' output).

    Args:
        base_path: Absolute path to the original DOCX.
        revised_path: Absolute path to the revised DOCX.
        author_name: Name to appear in Track Changes.
        output_path: Optional. Defaults to '<revised>_diff.docx' next to the revised file.
        granularity: 'word' (default) or 'char'.
        suppress_whitespace_only: If True, paragraphs differing only in whitespace are left unmarked.
        existing_tracked_revisions: 'ignore' (default) or 'fail' if the revised file already has Track Changes.
    """
    try:
        options = Options(
            granularity=granularity,
            suppress_whitespace_only=suppress_whitespace_only,
            existing_tracked_revisions=existing_tracked_revisions,
        )
        result = diff_docx_tracked(
            _read_file_bytes(base_path),
            _read_file_bytes(revised_path),
            author=author_name,
            options=options,
        )

        if not output_path:
            p = Path(revised_path)
            output_path = str(p.parent / f"{p.stem}_diff{p.suffix}")

        with open(output_path, "wb") as f:
            f.write(result.content)

        lines = [f"Saved tracked-changes comparison to: {output_path}"]
        lines.extend(f"Warning: {w}" for w in result.warnings)
        return "\n".join(lines)

    except (TrackDiffError, FileNotFoundError, ValueError) as e:
        return f"Error comparing documents: {str(e)}"


@mcp.tool()
def has_tracked_revisions(docx_path: str) -> str:
    """
    Reports whether a DOCX body already contains Track Changes (insertions, deletions or moves).
    """
    try:
        with open_package(_read_file_bytes(docx_path)) as package:
            xml = package.read_part(DOCUMENT_PATH)
        if xml is None:
            return f"Error: {DOCUMENT_PATH} not found in {docx_path}"
        if has_tracked_changes(parse_part(xml)):
            return "The document contains tracked revisions."
        return "The document contains no tracked revisions."
    except (TrackDiffError, FileNotFoundError) as e:
        return f"Error reading file: {str(e)}"


def main():
    mcp.run()


if __name__ == "__main__":
    main()
