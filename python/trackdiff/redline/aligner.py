from enum import Enum
from itertools import zip_longest
from typing import Iterator, NamedTuple, Optional, Sequence

from trackdiff.utils.xml import Element


class AlignmentKind(str, Enum):
    BOTH = "both"
    BASE_ONLY = "base_only"
    REVISED_ONLY = "revised_only"


class AlignedPair(NamedTuple):
    index: int
    kind: AlignmentKind
    base: Optional[Element]
    revised: Optional[Element]


def align_paragraphs(base: Sequence[Element], revised: Sequence[Element]) -> Iterator[AlignedPair]:
    """Pairs paragraphs strictly by position. No move detection, no content matching."""
    for index, (base_p, revised_p) in enumerate(zip_longest(base, revised)):
        if base_p is not None and revised_p is not None:
            kind = AlignmentKind.BOTH
        elif base_p is not None:
            kind = AlignmentKind.BASE_ONLY
        else:
            kind = AlignmentKind.REVISED_ONLY
        yield AlignedPair(index, kind, base_p, revised_p)
