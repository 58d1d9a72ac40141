import re
from typing import Iterator, Union

from trackdiff.models import Granularity

# Whitespace runs, word runs, punctuation runs. Together they cover every character.
_WORD_PATTERN = re.compile(r"\s+|\w+|[^\w\s]+")


def tokenize(text: str, granularity: Union[Granularity, str] = Granularity.WORD) -> Iterator[str]:
    """
    Lazily splits text into diff tokens. Joining the tokens gives back the exact text,
    whitespace included.
    """
    if Granularity(granularity) is Granularity.CHAR:
        yield from text
        return

    for match in _WORD_PATTERN.finditer(text):
        yield match.group(0)
