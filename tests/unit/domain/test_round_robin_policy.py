"""Tests for RoundRobinPolicy."""

import pytest

from lead_router.domain.entities.rotation_cursor import RotationCursor
from lead_router.domain.policies.round_robin import advance, pick_next, start_position


def _cycle(pool, picks, exclude=(), at_quota=()):
    cursor = RotationCursor(key="k")
    chosen = []
    for _ in range(picks):
        index = pick_next(pool, cursor, exclude, at_quota)
        chosen.append(pool[index])
        cursor = advance(cursor, pool, index)
    return chosen, cursor


def test_pick_single_candidate():
    chosen, cursor = _cycle(["u1"], 3)
    assert chosen == ["u1", "u1", "u1"]
    assert cursor.version == 3


def test_pick_three_candidates_cycles():
    chosen, _ = _cycle(["u1", "u2", "u3"], 6)
    assert chosen == ["u1", "u2", "u3", "u1", "u2", "u3"]


@pytest.mark.parametrize("n,k", [(7, 3), (10, 4), (12, 3), (1, 5)])
def test_fairness_counts_differ_by_at_most_one(n, k):
    pool = [f"u{i}" for i in range(k)]
    chosen, _ = _cycle(pool, n)
    counts = [chosen.count(u) for u in pool]
    assert max(counts) - min(counts) <= 1
    assert min(counts) == n // k


def test_empty_pool_raises():
    with pytest.raises(ValueError):
        pick_next([], RotationCursor(key="k"))


def test_excluded_users_are_skipped():
    chosen, _ = _cycle(["u1", "u2", "u3"], 4, exclude={"u2"})
    assert chosen == ["u1", "u3", "u1", "u3"]


def test_all_excluded_returns_none():
    assert pick_next(["u1"], RotationCursor(key="k"), exclude={"u1"}) is None


def test_users_at_quota_are_passed_over():
    chosen, _ = _cycle(["u1", "u2", "u3"], 3, at_quota={"u1"})
    assert chosen == ["u2", "u3", "u2"]


def test_all_at_quota_falls_back_to_plain_round_robin():
    pool = ["u1", "u2"]
    chosen, _ = _cycle(pool, 4, at_quota=set(pool))
    assert chosen == ["u1", "u2", "u1", "u2"]


def test_cycle_follows_last_user_when_pool_changes():
    cursor = RotationCursor(key="k", last_assigned_index=1, last_assigned_user_id="u2")
    # u0 was inserted in front; the cycle continues after u2, not after index 1
    pool = ["u0", "u1", "u2", "u3"]
    assert start_position(pool, cursor) == 2
    assert pool[pick_next(pool, cursor)] == "u3"


def test_removed_last_user_falls_back_to_index():
    cursor = RotationCursor(key="k", last_assigned_index=0, last_assigned_user_id="gone")
    assert pick_next(["u1", "u2"], cursor) == 1
