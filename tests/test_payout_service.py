import pytest

from services.payout_service import (
    calculate_pot,
    compute_defaulters,
    is_round_complete,
    next_deadline,
    select_recipient,
)

MEMBERS = ["alice", "bob", "carol"]


@pytest.mark.parametrize("round_number,expected", [
    (0, "alice"),
    (1, "bob"),
    (2, "carol"),
    (3, "alice"),
    (2 ** 32 - 1, MEMBERS[(2 ** 32 - 1) % 3]),
])
def test_select_recipient(round_number, expected):
    assert select_recipient(MEMBERS, round_number) == expected


def test_select_recipient_requires_members():
    with pytest.raises(ValueError):
        select_recipient([], 0)


def test_pot_uses_actual_payers():
    assert calculate_pot(100, 3) == 300
    assert calculate_pot(100, 1) == 100


def test_compute_defaulters_keeps_member_order():
    assert compute_defaulters(MEMBERS, ["carol", "alice"]) == ["bob"]
    assert compute_defaulters(MEMBERS, []) == MEMBERS
    assert compute_defaulters(MEMBERS, MEMBERS) == []


def test_round_completion():
    assert is_round_complete(MEMBERS, ["bob", "alice", "carol"])
    assert not is_round_complete(MEMBERS, ["bob"])


def test_next_deadline_counts_from_now():
    assert next_deadline(3601, 3600) == 7201
