"""Tests for diamond_hands.vault.lock_state: advisory transition checks."""

import pytest
from solders.pubkey import Pubkey

from diamond_hands.errors import (
    AlreadyLocked,
    InsufficientBalance,
    NotAdmin,
    NotInitialized,
    StillLocked,
)
from diamond_hands.vault.lock_state import (
    LockState,
    Operation,
    check_can_empty,
    check_can_lock,
    check_transition,
    lock_state,
)
from diamond_hands.vault.state import Vault

ADMIN = Pubkey.new_unique()


def make_vault(start_slot=100, slots_locked=50):
    return Vault(
        bump=255,
        admin=ADMIN,
        mint=Pubkey.new_unique(),
        mint_decimals=6,
        vault_token=Pubkey.new_unique(),
        start_slot=start_slot,
        slots_locked=slots_locked,
    )


class TestLockState:
    def test_missing(self):
        assert lock_state(None, 0) == LockState.UNINITIALIZED

    def test_locked_until_unlock_slot(self):
        vault = make_vault()
        assert lock_state(vault, 149) == LockState.LOCKED
        assert lock_state(vault, 150) == LockState.UNLOCKABLE


class TestTransitions:
    @pytest.mark.parametrize(
        "state,op,target",
        [
            (LockState.UNINITIALIZED, Operation.LOCK, LockState.LOCKED),
            (LockState.CLOSED, Operation.LOCK, LockState.LOCKED),
            (LockState.UNLOCKABLE, Operation.EMPTY, LockState.CLOSED),
        ],
    )
    def test_allowed(self, state, op, target):
        assert check_transition(state, op) == target

    @pytest.mark.parametrize("state", [LockState.LOCKED, LockState.UNLOCKABLE])
    def test_lock_over_existing(self, state):
        with pytest.raises(AlreadyLocked):
            check_transition(state, Operation.LOCK)

    def test_empty_while_locked(self):
        with pytest.raises(StillLocked) as exc:
            check_transition(LockState.LOCKED, Operation.EMPTY, make_vault(), 120)
        assert exc.value.slots_remaining == 30
        assert exc.value.unlock_slot == 150

    @pytest.mark.parametrize("state", [LockState.UNINITIALIZED, LockState.CLOSED])
    def test_empty_without_vault(self, state):
        with pytest.raises(NotInitialized):
            check_transition(state, Operation.EMPTY)


class TestCheckCanLock:
    def test_explicit_amount(self):
        assert check_can_lock(None, 1_000, 400) == 400

    def test_sweeps_balance(self):
        assert check_can_lock(None, 1_000) == 1_000

    def test_exceeds_balance(self):
        with pytest.raises(InsufficientBalance) as exc:
            check_can_lock(None, 100, 101)
        assert exc.value.requested == 101
        assert exc.value.available == 100

    def test_empty_balance(self):
        with pytest.raises(InsufficientBalance):
            check_can_lock(None, 0)

    def test_existing_vault(self):
        with pytest.raises(AlreadyLocked):
            check_can_lock(make_vault(), 1_000, 1, current_slot=10_000)


class TestCheckCanEmpty:
    def test_unlockable(self):
        check_can_empty(make_vault(), ADMIN, 150)

    def test_still_locked(self):
        with pytest.raises(StillLocked):
            check_can_empty(make_vault(), ADMIN, 149)

    def test_not_admin(self):
        with pytest.raises(NotAdmin):
            check_can_empty(make_vault(), Pubkey.new_unique(), 150)

    def test_missing(self):
        with pytest.raises(NotInitialized):
            check_can_empty(None, ADMIN, 150)
