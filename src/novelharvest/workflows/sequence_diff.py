"""Shortest edit scripts over sequences of chapter names (Myers' O(ND) diff).

The same script serves as a distance metric (number of insertions plus
deletions) and as an alignment for merging two catalogues.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Sequence, TypeVar

T = TypeVar("T")

__all__ = [
    "EditOp",
    "shortest_edit_script",
    "edit_distance",
    "integrate",
    "intersect",
]


class EditOp(Enum):
    KEEP = "keep"
    INSERT = "insert"
    DELETE = "delete"


def _goes_down(v: Dict[int, int], k: int, d: int) -> bool:
    return k == -d or (k != d and v[k - 1] < v[k + 1])


def shortest_edit_script(src: Sequence[T], dst: Sequence[T]) -> List[EditOp]:
    """Minimal list of operations turning ``src`` into ``dst``.

    ``DELETE`` consumes one item of ``src``, ``INSERT`` one item of ``dst``
    and ``KEEP`` one item of each.
    """

    n, m = len(src), len(dst)
    v: Dict[int, int] = {1: 0}
    trace: List[Dict[int, int]] = []
    for d in range(n + m + 1):
        trace.append(dict(v))
        done = False
        for k in range(-d, d + 1, 2):
            x = v[k + 1] if _goes_down(v, k, d) else v[k - 1] + 1
            y = x - k
            while x < n and y < m and src[x] == dst[y]:
                x, y = x + 1, y + 1
            v[k] = x
            if x >= n and y >= m:
                done = True
                break
        if done:
            break

    script: List[EditOp] = []
    x, y = n, m
    for d in range(len(trace) - 1, -1, -1):
        snapshot = trace[d]
        k = x - y
        prev_k = k + 1 if _goes_down(snapshot, k, d) else k - 1
        prev_x = snapshot[prev_k]
        prev_y = prev_x - prev_k
        while x > prev_x and y > prev_y:
            script.append(EditOp.KEEP)
            x, y = x - 1, y - 1
        if d > 0:
            script.append(EditOp.INSERT if x == prev_x else EditOp.DELETE)
        x, y = prev_x, prev_y
    script.reverse()
    return script


def edit_distance(src: Sequence[T], dst: Sequence[T]) -> int:
    """Insertions plus deletions needed to turn ``src`` into ``dst``."""

    return sum(1 for op in shortest_edit_script(src, dst) if op is not EditOp.KEEP)


def integrate(src: Sequence[T], dst: Sequence[T]) -> List[T]:
    """Union of both sequences in alignment order (shared items appear once)."""

    merged: List[T] = []
    i = j = 0
    for op in shortest_edit_script(src, dst):
        if op is EditOp.INSERT:
            merged.append(dst[j])
            j += 1
        elif op is EditOp.DELETE:
            merged.append(src[i])
            i += 1
        else:
            merged.append(src[i])
            i += 1
            j += 1
    return merged


def intersect(src: Sequence[T], dst: Sequence[T]) -> List[T]:
    """Items aligned between both sequences, in order."""

    common: List[T] = []
    i = 0
    for op in shortest_edit_script(src, dst):
        if op is EditOp.DELETE:
            i += 1
        elif op is EditOp.KEEP:
            common.append(src[i])
            i += 1
    return common
