from copy import deepcopy
from itertools import islice
from typing import List, Optional

import structlog

from trackdiff.archive import open_package
from trackdiff.diff import diff_tokens
from trackdiff.errors import ArchiveError, MissingPartError, PartParseError, PolicyViolationError
from trackdiff.models import DiffResult, Options, RevisionsPolicy
from trackdiff.package import DOCUMENT_PATH, assemble_package
from trackdiff.redline.aligner import AlignedPair, AlignmentKind, align_paragraphs
from trackdiff.redline.runs import (
    RevisionIds,
    build_deletion,
    build_insertion,
    create_track_change_tag,
    now_timestamp,
    synthesize_runs,
)
from trackdiff.redline.stripper import has_tracked_changes, strip_tracked_changes
from trackdiff.tokens import tokenize
from trackdiff.utils.docx import (
    RUN_CONTAINERS,
    create_element,
    create_run,
    get_body,
    paragraphs_of,
    plain_content,
    text_of,
)
from trackdiff.utils.xml import R_NS, Element, Node, parse_part

logger = structlog.get_logger(__name__)

DEFAULT_AUTHOR = "AutoDiff"

# Children of w:pPr that must stay after w:rPr.
_PPR_TAIL = ("sectPr", "pPrChange")
# Section references to parts the output package does not contain.
_SECTION_PART_REFERENCES = ("headerReference", "footerReference")


def _normalize_whitespace(text: str) -> str:
    return " ".join(text.split())


class TrackDiffEngine:
    """
    Compares two DOCX packages and writes a third whose body shows every text
    difference as tracked changes by one author.

    An engine instance is one invocation: it owns the revision id counter, the
    timestamp stamped on every change and the warnings gathered on the way.
    """

    def __init__(self, author: str = DEFAULT_AUTHOR, options: Optional[Options] = None):
        self.author = author or DEFAULT_AUTHOR
        self.options = options or Options()
        self.timestamp = now_timestamp()
        self.ids = RevisionIds()
        self.warnings: List[str] = []

    def warn(self, message: str):
        logger.warning(message)
        self.warnings.append(message)

    def run(self, base_bytes: bytes, revised_bytes: bytes) -> DiffResult:
        base_doc = self._load_document(base_bytes, "base")
        revised_doc = self._load_document(revised_bytes, "revised")

        if self.options.existing_tracked_revisions is RevisionsPolicy.FAIL and has_tracked_changes(revised_doc):
            raise PolicyViolationError("Revised document contains tracked revisions")

        if self.options.include_headers_footers:
            self.warn("Headers and footers are not part of the output package; only the body was diffed")

        clean_base = strip_tracked_changes(base_doc)
        clean_revised = strip_tracked_changes(revised_doc)

        base_paragraphs = paragraphs_of(clean_base, self.options)
        revised_paragraphs = paragraphs_of(clean_revised, self.options)
        logger.info(
            f"Diffing {len(base_paragraphs)} base vs {len(revised_paragraphs)} revised paragraphs "
            f"(granularity={self.options.granularity.value})"
        )

        out_paragraphs = [self.diff_pair(pair) for pair in align_paragraphs(base_paragraphs, revised_paragraphs)]
        document = self._build_document(clean_revised, out_paragraphs)

        content = assemble_package(document)
        logger.info(f"Generated {self.ids.current_id} tracked changes with {len(self.warnings)} warnings")
        return DiffResult(content=content, warnings=list(self.warnings))

    # --- Loading ---

    def _load_document(self, data: bytes, label: str) -> Element:
        try:
            with open_package(data, self.options.limits) as package:
                xml = package.read_part(DOCUMENT_PATH)
        except ArchiveError as e:
            raise ArchiveError(f"Failed to read {label} DOCX: {e}") from e

        if xml is None:
            raise MissingPartError(f"Missing {DOCUMENT_PATH} in the {label} DOCX")

        try:
            return parse_part(xml)
        except PartParseError as e:
            self.warn(f"Malformed {DOCUMENT_PATH} in the {label} DOCX; used empty fallback ({e})")
            return create_element("document", children=[create_element("body")])

    # --- Paragraphs ---

    def diff_pair(self, pair: AlignedPair) -> Element:
        if pair.kind is AlignmentKind.BASE_ONLY:
            return self._whole_paragraph(pair.base, "del")
        if pair.kind is AlignmentKind.REVISED_ONLY:
            return self._whole_paragraph(pair.revised, "ins")
        return self.diff_paragraph(pair.base, pair.revised, pair.index)

    def diff_paragraph(self, base_p: Element, revised_p: Element, index: int = 0) -> Element:
        base_text = text_of(base_p)
        revised_text = text_of(revised_p)

        if self.options.suppress_whitespace_only and _normalize_whitespace(base_text) == _normalize_whitespace(
            revised_text
        ):
            return self._live_copy(revised_p)

        cap = self.options.limits.max_tokens_per_paragraph
        granularity = self.options.granularity
        base_tokens = list(islice(tokenize(base_text, granularity), cap + 1))
        revised_tokens = list(islice(tokenize(revised_text, granularity), cap + 1))

        if len(base_tokens) > cap or len(revised_tokens) > cap:
            self.warn(f"Paragraph {index + 1} exceeds {cap} tokens; diffed as a single unit")
            runs = self._opaque_runs(base_text, revised_text)
        else:
            ops = diff_tokens(base_tokens, revised_tokens)
            runs = synthesize_runs(ops, self.author, self.ids, self.timestamp)

        return self._rebuild_paragraph(revised_p, runs)

    def _opaque_runs(self, base_text: str, revised_text: str) -> List[Element]:
        if base_text == revised_text:
            return [create_run(revised_text)] if revised_text else []
        runs = []
        if base_text:
            runs.append(build_deletion(base_text, self.author, self.ids, self.timestamp))
        if revised_text:
            runs.append(build_insertion(revised_text, self.author, self.ids, self.timestamp))
        return runs

    def _rebuild_paragraph(self, template: Element, runs: List[Element]) -> Element:
        """
        Keeps the template's other children (properties, bookmarks) in place and puts
        the new runs where its first run or run container was. The diffed text already
        covers everything inside those containers, so they are not copied.
        """
        children: List[Node] = []
        placed = False
        for child in template.children:
            if isinstance(child, Element) and (child.tag == "r" or child.tag in RUN_CONTAINERS):
                if not placed:
                    children.extend(runs)
                    placed = True
                continue
            children.append(deepcopy(child))

        if not placed:
            ppr_index = next(
                (i for i, c in enumerate(children) if isinstance(c, Element) and c.tag == "pPr"),
                -1,
            )
            children[ppr_index + 1 : ppr_index + 1] = runs
        return template.with_children(children)

    def _live_copy(self, paragraph: Element) -> Element:
        """Copy of a stripped paragraph whose runs keep only their properties and live text."""
        return plain_content(paragraph)

    def _whole_paragraph(self, source: Element, tag_name: str) -> Element:
        """A paragraph wholly marked as inserted or deleted, paragraph mark included."""
        text = text_of(source)
        source_ppr = source.find("pPr")
        ppr = deepcopy(source_ppr) if source_ppr is not None else create_element("pPr")
        self._mark_paragraph_mark(ppr, tag_name)

        children: List[Node] = [ppr]
        if text:
            build = build_deletion if tag_name == "del" else build_insertion
            children.append(build(text, self.author, self.ids, self.timestamp))
        return create_element("p", children=children)

    def _mark_paragraph_mark(self, ppr: Element, tag_name: str):
        rpr = ppr.find("rPr")
        if rpr is None:
            rpr = create_element("rPr")
            tail_index = next(
                (i for i, c in enumerate(ppr.children) if isinstance(c, Element) and c.tag in _PPR_TAIL),
                len(ppr.children),
            )
            ppr.children.insert(tail_index, rpr)
        rpr.children.insert(0, create_track_change_tag(tag_name, self.author, self.ids, self.timestamp))

    # --- Output document ---

    def _build_document(self, revised_root: Element, paragraphs: List[Element]) -> Element:
        body = get_body(revised_root)
        sect_pr = body.find("sectPr") if body is not None else None
        body_children: List[Node] = list(paragraphs)
        body_children.append(deepcopy(sect_pr) if sect_pr is not None else create_element("sectPr"))

        new_body = _drop_part_references(create_element("body", children=body_children))
        if revised_root.tag == "document":
            return revised_root.with_children([new_body])
        return create_element("document", children=[new_body])


def _drop_part_references(element: Element) -> Element:
    """Removes references into parts the output package does not carry."""
    children: List[Node] = []
    for child in element.children:
        if isinstance(child, Element):
            if child.tag in _SECTION_PART_REFERENCES:
                continue
            child = _drop_part_references(child)
        children.append(child)
    cleaned = element.with_children(children)
    for name in [name for name, ns in cleaned.attr_ns.items() if ns == R_NS]:
        del cleaned.attrs[name]
        del cleaned.attr_ns[name]
    return cleaned


def diff_docx_tracked(
    base: bytes,
    revised: bytes,
    author: str = DEFAULT_AUTHOR,
    options: Optional[Options] = None,
) -> DiffResult:
    """
    Returns a DOCX whose body is the revised text, with every difference from the
    base shown as a tracked insertion or deletion by `author`.
    """
    return TrackDiffEngine(author=author, options=options).run(base, revised)
