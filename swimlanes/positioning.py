"""Gap-based integer positions for ordering sibling columns and cards.

Siblings carry integer positions spaced ``GAP`` apart. Moving an item takes
the midpoint of its new neighbours, so a reorder writes a single row. When two
neighbours are adjacent integers there is no midpoint left; that is a
collision, and the caller rebalances the whole sibling list back to
``GAP, 2*GAP, ...`` before retrying.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Optional, Protocol

from .errors import PositionCollision

GAP = 1000
MIN_GAP = 1
REBALANCE_THRESHOLD = 10


class Positioned(Protocol):
    id: int
    position: int


@dataclass(frozen=True)
class PositionedItem:
    id: int
    position: int


def append_position(siblings: Sequence[Positioned]) -> int:
    """Position for a new item placed after every existing sibling."""
    if not siblings:
        return GAP
    return max(item.position for item in siblings) + GAP


def _index_of(siblings: Sequence[Positioned], item_id: int) -> Optional[int]:
    for index, item in enumerate(siblings):
        if item.id == item_id:
            return index
    return None


def midpoint(lower: Optional[int], upper: Optional[int]) -> int:
    """Return an integer strictly between ``lower`` and ``upper``.

    ``None`` means unbounded on that side. The lower bound is never below
    zero, so "before the first item" steps ``GAP`` down while that stays
    positive and otherwise halves the distance to zero. Raises
    :class:`PositionCollision` when no such integer exists.
    """
    if upper is None:
        return GAP if lower is None else lower + GAP
    if lower is None:
        if upper - GAP > 0:
            return upper - GAP
        lower_bound = 0
    else:
        lower_bound = lower
    mid = (lower_bound + upper) // 2
    if not lower_bound < mid < upper:
        raise PositionCollision(lower, upper)
    return mid


def reorder_position(
    siblings: Sequence[Positioned],
    moved: Positioned,
    target_index: int,
) -> int:
    """Position that puts ``moved`` at ``target_index`` of ``siblings``.

    ``siblings`` is the current order. When it contains ``moved``, the index
    is where the item should end up in that same list, and moving an item onto
    its own slot returns its current position untouched. When it does not
    (a card entering another column), the index is an insertion point in
    ``0..len(siblings)``.
    """
    current_index = _index_of(siblings, moved.id)
    if current_index is not None:
        target_index = max(0, min(target_index, len(siblings) - 1))
        if current_index == target_index:
            return moved.position
        others = [item for item in siblings if item.id != moved.id]
    else:
        target_index = max(0, min(target_index, len(siblings)))
        others = list(siblings)

    if not others:
        return GAP

    lower = others[target_index - 1].position if target_index > 0 else None
    upper = others[target_index].position if target_index < len(others) else None
    return midpoint(lower, upper)


def rebalance_positions(siblings: Sequence[Positioned]) -> list[tuple[int, int]]:
    """Evenly spaced ``(id, position)`` pairs preserving the current order."""
    return [(item.id, (index + 1) * GAP) for index, item in enumerate(siblings)]


def needs_rebalance(siblings: Sequence[Positioned], threshold: int = REBALANCE_THRESHOLD) -> bool:
    """True when any gap, including the one above zero, is below ``threshold``."""
    if not siblings:
        return False
    threshold = max(threshold, MIN_GAP)
    previous = 0
    for item in siblings:
        if item.position - previous < threshold:
            return True
        previous = item.position
    return False
