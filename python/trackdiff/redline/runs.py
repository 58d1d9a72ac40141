import datetime
from typing import List, Optional, Sequence

import structlog

from trackdiff.models import EditKind, EditOp
from trackdiff.utils.docx import create_element, create_run
from trackdiff.utils.xml import Element

logger = structlog.get_logger(__name__)


def now_timestamp() -> str:
    return datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0).strftime("%Y-%m-%dT%H:%M:%SZ")


class RevisionIds:
    """Document-wide source of w:id values for w:ins / w:del."""

    def __init__(self, start: int = 0):
        self.current_id = start

    def next_id(self) -> str:
        self.current_id += 1
        return str(self.current_id)


def create_track_change_tag(tag_name: str, author: str, ids: RevisionIds, timestamp: str) -> Element:
    return create_element(tag_name, {"id": ids.next_id(), "author": author, "date": timestamp})


def build_insertion(text: str, author: str, ids: RevisionIds, timestamp: str, rpr: Optional[Element] = None) -> Element:
    ins = create_track_change_tag("ins", author, ids, timestamp)
    ins.children.append(create_run(text, "t", rpr))
    return ins


def build_deletion(text: str, author: str, ids: RevisionIds, timestamp: str, rpr: Optional[Element] = None) -> Element:
    deletion = create_track_change_tag("del", author, ids, timestamp)
    deletion.children.append(create_run(text, "delText", rpr))
    return deletion


def synthesize_runs(
    ops: Sequence[EditOp],
    author: str,
    ids: RevisionIds,
    timestamp: Optional[str] = None,
) -> List[Element]:
    """
    Turns an edit script into paragraph content.

    Each maximal span of equal tokens becomes one plain run. Changed tokens between
    two equal spans are buffered and flushed as one deletion followed by one
    insertion, so a replacement reads "old, then new".
    """
    timestamp = timestamp or now_timestamp()
    runs: List[Element] = []
    equal_buf = ""
    ins_buf = ""
    del_buf = ""

    def flush_changes():
        nonlocal ins_buf, del_buf
        if del_buf:
            runs.append(build_deletion(del_buf, author, ids, timestamp))
            del_buf = ""
        if ins_buf:
            runs.append(build_insertion(ins_buf, author, ids, timestamp))
            ins_buf = ""

    def flush_equal():
        nonlocal equal_buf
        if equal_buf:
            runs.append(create_run(equal_buf))
            equal_buf = ""

    for op in ops:
        if op.kind is EditKind.EQUAL:
            flush_changes()
            equal_buf += op.token
        else:
            flush_equal()
            if op.kind is EditKind.INSERT:
                ins_buf += op.token
            else:
                del_buf += op.token

    flush_equal()
    flush_changes()
    return runs
