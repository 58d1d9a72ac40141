"""
Exact longest-common-subsequence alignment of two token sequences.

The table is O(len(a) * len(b)) in time and memory, which is why callers diff
one paragraph at a time and cap the token count per paragraph.
"""

from typing import List, Sequence

import structlog

from trackdiff.models import EditKind, EditOp

logger = structlog.get_logger(__name__)


def _lcs_table(a: Sequence[str], b: Sequence[str]) -> List[List[int]]:
    """dp[i][j] is the LCS length of a[i:] and b[j:]."""
    m, n = len(a), len(b)
    dp = [[0] * (n + 1) for _ in range(m + 1)]
    for i in range(m - 1, -1, -1):
        row, below = dp[i], dp[i + 1]
        a_i = a[i]
        for j in range(n - 1, -1, -1):
            if a_i == b[j]:
                row[j] = below[j + 1] + 1
            else:
                row[j] = below[j] if below[j] >= row[j + 1] else row[j + 1]
    return dp


def lcs_length(a: Sequence[str], b: Sequence[str]) -> int:
    return _lcs_table(a, b)[0][0]


def diff_tokens(a: Sequence[str], b: Sequence[str]) -> List[EditOp]:
    """
    Returns an edit script turning a into b.

    Ties between skipping a token of a and skipping a token of b resolve to a
    delete, so a replaced span always reads "delete old, then insert new".
    """
    dp = _lcs_table(a, b)
    m, n = len(a), len(b)
    ops: List[EditOp] = []
    i = j = 0

    while i < m and j < n:
        if a[i] == b[j]:
            ops.append(EditOp(EditKind.EQUAL, a[i]))
            i += 1
            j += 1
        elif dp[i + 1][j] >= dp[i][j + 1]:
            ops.append(EditOp(EditKind.DELETE, a[i]))
            i += 1
        else:
            ops.append(EditOp(EditKind.INSERT, b[j]))
            j += 1

    ops.extend(EditOp(EditKind.DELETE, token) for token in a[i:])
    ops.extend(EditOp(EditKind.INSERT, token) for token in b[j:])

    logger.debug(f"Diffed {m} vs {n} tokens: {dp[0][0]} equal")
    return ops
