"""
WordprocessingML helpers over the part codec tree: element builders and the
paragraph model (which paragraphs take part in the diff, and their text).
"""

from copy import deepcopy
from typing import Dict, Iterator, List, Optional

import structlog

from trackdiff.models import Options
from trackdiff.utils.xml import W_NS, XML_NS, Element, Node

logger = structlog.get_logger(__name__)

RUN_TEXT_TAGS = frozenset({"t", "tab", "br", "cr"})
# Inline elements that hold runs inside a paragraph; sdtPr is not descended.
RUN_CONTAINERS = frozenset({"hyperlink", "smartTag", "sdt", "sdtContent", "fldSimple", "customXml", "dir", "bdo"})


def create_element(tag: str, attrs: Optional[Dict[str, str]] = None, children: Optional[List[Node]] = None) -> Element:
    """Creates a w:-namespaced element whose attributes are w:-qualified too."""
    attrs = attrs or {}
    return Element(tag, attrs, children, ns=W_NS, attr_ns={name: W_NS for name in attrs})


def create_attribute(element: Element, name: str, value: str, ns: str = W_NS):
    element.attrs[name] = value
    element.attr_ns[name] = ns


def create_text_element(tag: str, text: str) -> Element:
    element = create_element(tag, children=[text] if text else [])
    if text.strip() != text:
        create_attribute(element, "space", "preserve", ns=XML_NS)
    return element


def create_run(text: str, text_tag: str = "t", rpr: Optional[Element] = None) -> Element:
    """
    Builds a w:r for text, mapping tabs to w:tab and line breaks to w:br.
    text_tag is 't' for live text and 'delText' inside a deletion.
    """
    children: List[Node] = [rpr] if rpr is not None else []
    buffer = ""
    for char in text:
        if char in "\t\n":
            if buffer:
                children.append(create_text_element(text_tag, buffer))
                buffer = ""
            children.append(create_element("tab" if char == "\t" else "br"))
        else:
            buffer += char
    if buffer:
        children.append(create_text_element(text_tag, buffer))
    return create_element("r", children=children)


def iter_elements(element: Element) -> Iterator[Element]:
    """Depth-first, document-order walk over element and all its descendants."""
    yield element
    for child in element.elements():
        yield from iter_elements(child)


def get_run_text(run: Element) -> str:
    """
    Plain text of a run. w:delText is not live text and is skipped;
    w:tab becomes a tab character, w:br and w:cr a newline.
    """
    text = ""
    for child in run.elements():
        if child.tag == "t":
            text += child.text
        elif child.tag == "tab":
            text += "\t"
        elif child.tag in ("br", "cr"):
            text += "\n"
    return text


def plain_run(run: Element) -> Optional[Element]:
    """
    Copy of a run reduced to its properties and live text. Drawings, field codes and
    references are dropped; None when no live text is left or the run was deleted.
    """
    if run.find("delText") is not None:
        return None
    kept = [deepcopy(child) for child in run.elements() if child.tag == "rPr" or child.tag in RUN_TEXT_TAGS]
    if not any(child.tag in RUN_TEXT_TAGS for child in kept):
        return None
    return run.with_children(kept)


def iter_runs(container: Element) -> Iterator[Element]:
    """Runs of a paragraph in document order, including those nested in inline containers."""
    for child in container.elements():
        if child.tag == "r":
            yield child
        elif child.tag in RUN_CONTAINERS:
            yield from iter_runs(child)


def plain_content(container: Element) -> Element:
    """
    Copy of a paragraph (or inline container) whose runs, at every depth, are reduced
    by plain_run. Runs that only carried deleted text disappear.
    """
    children: List[Node] = []
    for child in container.children:
        if isinstance(child, Element) and child.tag == "r":
            run = plain_run(child)
            if run is not None:
                children.append(run)
        elif isinstance(child, Element) and child.tag in RUN_CONTAINERS:
            children.append(plain_content(child))
        else:
            children.append(deepcopy(child))
    return container.with_children(children)


def text_of(paragraph: Element) -> str:
    return "".join(get_run_text(run) for run in iter_runs(paragraph))


def is_list_paragraph(paragraph: Element) -> bool:
    ppr = paragraph.find("pPr")
    return ppr is not None and ppr.find("numPr") is not None


def get_body(document: Element) -> Optional[Element]:
    if document.tag == "body":
        return document
    return document.find("body")


def paragraphs_of(document: Element, options: Optional[Options] = None) -> List[Element]:
    """
    Returns the paragraphs that take part in the diff, in document order.
    Accepts the w:document root or a w:body element; a document without a body yields [].
    """
    options = options or Options()
    body = get_body(document)
    if body is None:
        return []
    return list(_iter_block_paragraphs(body, options))


def _iter_block_paragraphs(container: Element, options: Options) -> Iterator[Element]:
    for child in container.elements():
        if child.tag == "p":
            if options.include_lists or not is_list_paragraph(child):
                yield child
            if options.include_text_boxes:
                yield from _iter_text_box_paragraphs(child, options)
        elif child.tag == "tbl" and options.include_tables:
            for row in child.findall("tr"):
                for cell in row.findall("tc"):
                    yield from _iter_block_paragraphs(cell, options)
        elif child.tag == "sdt":
            content = child.find("sdtContent")
            if content is not None:
                yield from _iter_block_paragraphs(content, options)


def _iter_text_box_paragraphs(paragraph: Element, options: Options) -> Iterator[Element]:
    for run in iter_runs(paragraph):
        for text_box in _find_text_boxes(run):
            yield from _iter_block_paragraphs(text_box, options)


def _find_text_boxes(node: Element) -> Iterator[Element]:
    for child in node.elements():
        if child.tag == "txbxContent":
            yield child
        # mc:Fallback repeats the mc:Choice text box as VML
        elif child.tag != "Fallback":
            yield from _find_text_boxes(child)
