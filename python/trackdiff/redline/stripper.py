"""
Removes tracked-change markup from a part tree so the differ sees one
unambiguous text per paragraph, whatever revision state a document arrived in.
"""

from typing import List

import structlog

from trackdiff.utils.docx import iter_elements
from trackdiff.utils.xml import Element, Node

logger = structlog.get_logger(__name__)

# Wrappers whose content is promoted into the parent.
REVISION_WRAPPERS = frozenset({"ins", "del", "moveFrom", "moveTo"})

# Revision records carrying old formatting or move bookkeeping; dropped outright.
REVISION_RECORDS = frozenset(
    {
        "rPrChange",
        "pPrChange",
        "sectPrChange",
        "tblPrChange",
        "trPrChange",
        "tcPrChange",
        "tblGridChange",
        "numberingChange",
        "moveFromRangeStart",
        "moveFromRangeEnd",
        "moveToRangeStart",
        "moveToRangeEnd",
    }
)


def strip_tracked_changes(element: Element) -> Element:
    """
    Pure rewrite: returns a new tree in which every ins/del/moveFrom/moveTo wrapper
    is replaced by its own children, in place and in order.

    Deleted runs keep their w:delText, which the paragraph model does not read as
    live text, so a stripped document reads like its "accept all" view.
    """
    return element.with_children(_strip_children(element.children))


def _strip_children(children: List[Node]) -> List[Node]:
    result: List[Node] = []
    for child in children:
        if isinstance(child, str):
            result.append(child)
        elif child.tag in REVISION_WRAPPERS:
            result.extend(_strip_children(child.children))
        elif child.tag in REVISION_RECORDS:
            continue
        else:
            result.append(strip_tracked_changes(child))
    return result


def has_tracked_changes(element: Element) -> bool:
    for node in iter_elements(element):
        if node.tag in REVISION_WRAPPERS:
            logger.debug(f"Found tracked change wrapper w:{node.tag} (id={node.get('id')})")
            return True
    return False
