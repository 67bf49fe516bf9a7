import itertools

import pytest

from swimlanes.errors import PositionCollision
from swimlanes.positioning import (
    GAP,
    PositionedItem,
    append_position,
    needs_rebalance,
    rebalance_positions,
    reorder_position,
)


def items(*positions):
    return [PositionedItem(id=i + 1, position=p) for i, p in enumerate(positions)]


def move(siblings, moved_id, index):
    """Apply one reorder the way storage does, rebalancing on collision."""
    moved = next(item for item in siblings if item.id == moved_id)
    try:
        position = reorder_position(siblings, moved, index)
    except PositionCollision:
        balanced = dict(rebalance_positions(siblings))
        siblings = [PositionedItem(item.id, balanced[item.id]) for item in siblings]
        moved = next(item for item in siblings if item.id == moved_id)
        position = reorder_position(siblings, moved, index)
    updated = [
        PositionedItem(item.id, position if item.id == moved_id else item.position)
        for item in siblings
    ]
    return sorted(updated, key=lambda item: item.position)


# === append ===


def test_append_to_empty_list():
    assert append_position([]) == 1000


def test_append_after_existing_cards():
    assert append_position(items(1000, 2000)) == 3000


def test_append_uses_max_position():
    assert append_position(items(500, 5000)) == 6000


def test_append_is_monotonic():
    siblings = []
    for n in range(5):
        siblings.append(PositionedItem(id=n, position=append_position(siblings)))
    assert [item.position for item in siblings] == [GAP * k for k in range(1, 6)]


# === reorder ===


def test_move_to_last_slot():
    siblings = items(1000, 2000, 3000)
    assert reorder_position(siblings, siblings[0], 2) == 4000


def test_move_between_two_items():
    siblings = items(1000, 2000, 3000)
    assert reorder_position(siblings, siblings[2], 1) == 1500


def test_midpoint_is_floored():
    siblings = items(1000, 2001, 3000)
    assert reorder_position(siblings, siblings[2], 1) == 1500


def test_move_toward_end_lands_after_target_item():
    siblings = items(1000, 2000, 3000, 4000)
    assert reorder_position(siblings, siblings[0], 2) == 3500


def test_move_to_front_halves_distance_to_zero():
    # 1000 - GAP would be 0, so the item goes halfway between 0 and 1000.
    siblings = items(1000, 2000, 3000)
    assert reorder_position(siblings, siblings[1], 0) == 500


def test_move_to_front_steps_down_by_gap_when_room():
    siblings = items(3000, 5000)
    assert reorder_position(siblings, siblings[1], 0) == 2000


def test_move_to_front_collides_when_first_is_one():
    siblings = items(1, 1000)
    with pytest.raises(PositionCollision):
        reorder_position(siblings, siblings[1], 0)


def test_adjacent_integers_collide():
    siblings = items(5, 6, 100)
    with pytest.raises(PositionCollision) as exc:
        reorder_position(siblings, siblings[2], 1)
    assert (exc.value.lower, exc.value.upper) == (5, 6)


def test_move_onto_own_slot_is_noop():
    siblings = items(1000, 2000, 3000)
    assert reorder_position(siblings, siblings[1], 1) == 2000


def test_move_only_item_is_noop():
    siblings = items(1700)
    assert reorder_position(siblings, siblings[0], 0) == 1700
    assert reorder_position(siblings, siblings[0], 4) == 1700


def test_target_index_past_end_is_clamped():
    siblings = items(1000, 2000, 3000)
    assert reorder_position(siblings, siblings[2], 9) == 3000
    assert reorder_position(siblings, siblings[0], 9) == 4000


def test_insert_item_from_another_list():
    siblings = items(1000, 2000)
    incoming = PositionedItem(id=99, position=50)
    assert reorder_position(siblings, incoming, 0) == 500
    assert reorder_position(siblings, incoming, 1) == 1500
    assert reorder_position(siblings, incoming, 2) == 3000
    assert reorder_position([], incoming, 0) == GAP


def test_collision_then_rebalance_then_retry():
    siblings = items(1000, 1001, 3000)
    with pytest.raises(PositionCollision):
        reorder_position(siblings, siblings[2], 1)

    result = move(siblings, 3, 1)

    assert [(item.id, item.position) for item in result] == [(1, 1000), (3, 1500), (2, 2000)]


def test_every_move_preserves_intended_order():
    start = items(1000, 1001, 1002, 5000, 5001)
    ids = [item.id for item in start]
    for moved_id, index in itertools.product(ids, range(len(ids))):
        expected = [i for i in ids if i != moved_id]
        expected.insert(index, moved_id)

        result = move(start, moved_id, index)

        assert [item.id for item in result] == expected
        positions = [item.position for item in result]
        assert len(set(positions)) == len(positions)
        assert min(positions) > 0


def test_repeated_front_inserts_stay_unique_and_positive():
    siblings = items(1000, 2000, 3000, 4000)
    for _ in range(40):
        last = siblings[-1]
        siblings = move(siblings, last.id, 0)
        positions = [item.position for item in siblings]
        assert len(set(positions)) == len(positions)
        assert positions[0] > 0


# === rebalance ===


def test_rebalance_spaces_by_gap_in_order():
    assert rebalance_positions(items(5, 6, 100)) == [(1, 1000), (2, 2000), (3, 3000)]


def test_rebalance_is_idempotent():
    siblings = items(1000, 2000, 3000)
    assert rebalance_positions(siblings) == [(item.id, item.position) for item in siblings]


def test_rebalance_empty_list():
    assert rebalance_positions([]) == []


def test_needs_rebalance():
    assert not needs_rebalance([])
    assert not needs_rebalance(items(1000, 2000))
    assert needs_rebalance(items(1000, 1005))
    assert needs_rebalance(items(5, 1000))
    assert needs_rebalance(items(1000, 1000), threshold=0)
    assert not needs_rebalance(items(1000, 1005), threshold=0)
