"""
Client-side mirror of the vault's lock state machine.

    UNINITIALIZED --lock--> LOCKED --(slots pass)--> UNLOCKABLE --empty--> CLOSED

The on-chain program is the source of truth and re-checks everything. These
checks only exist to fail locally, with a precise error, before a
transaction that is bound to be rejected spends a network round trip.
UNLOCKABLE is never stored on chain; it is derived from the current slot.
"""

from enum import Enum
from typing import Optional

from solders.pubkey import Pubkey

from diamond_hands.errors import (
    AlreadyLocked,
    InsufficientBalance,
    NotAdmin,
    NotInitialized,
    StillLocked,
)
from diamond_hands.vault.state import Vault


class LockState(Enum):
    UNINITIALIZED = "uninitialized"
    LOCKED = "locked"
    UNLOCKABLE = "unlockable"
    CLOSED = "closed"


class Operation(Enum):
    LOCK = "lock"
    EMPTY = "empty"


TRANSITIONS = {
    (LockState.UNINITIALIZED, Operation.LOCK): LockState.LOCKED,
    (LockState.CLOSED, Operation.LOCK): LockState.LOCKED,
    (LockState.UNLOCKABLE, Operation.EMPTY): LockState.CLOSED,
}


def lock_state(vault: Optional[Vault], current_slot: int) -> LockState:
    # a closed vault has no account left, so it reads the same as a fresh one
    if vault is None or not vault.is_initialized:
        return LockState.UNINITIALIZED
    if vault.is_unlockable(current_slot):
        return LockState.UNLOCKABLE
    return LockState.LOCKED


def check_transition(
    state: LockState,
    op: Operation,
    vault: Optional[Vault] = None,
    current_slot: Optional[int] = None,
) -> LockState:
    try:
        return TRANSITIONS[(state, op)]
    except KeyError:
        pass

    if op == Operation.LOCK:
        raise AlreadyLocked(f"A vault already exists ({state.value})")
    if state == LockState.LOCKED:
        if vault is not None and current_slot is not None:
            raise StillLocked(vault.slots_remaining(current_slot), vault.unlock_slot)
        raise StillLocked()
    raise NotInitialized(f"No vault to empty ({state.value})")


def check_can_lock(
    existing: Optional[Vault],
    admin_balance: int,
    tokens_to_lock: Optional[int] = None,
    current_slot: int = 0,
) -> int:
    """
    Validates a lock request against the current vault and the admin's token
    balance.
    Returns:
        The amount that will be moved into the vault. With no explicit amount
        the whole balance is swept.
    """
    check_transition(lock_state(existing, current_slot), Operation.LOCK)

    amount = admin_balance if tokens_to_lock is None else tokens_to_lock
    # the program accepts an empty lock, but it would only burn rent
    if amount == 0 or amount > admin_balance:
        raise InsufficientBalance(amount, admin_balance)
    return amount


def check_can_empty(vault: Optional[Vault], caller: Pubkey, current_slot: int) -> None:
    state = lock_state(vault, current_slot)
    if state in (LockState.LOCKED, LockState.UNLOCKABLE) and vault.admin != caller:
        raise NotAdmin(f"Vault admin does not match {vault.admin} != {caller}")
    check_transition(state, Operation.EMPTY, vault, current_slot)
