"""
Error kinds raised by the vault client.

Decode and derivation errors are local and fail fast. Transport errors are
retryable up to a bounded number of attempts. Rejections by the on-chain
program are terminal and carry the raw error as reported by the cluster.
"""

from enum import IntEnum
from typing import Any, Optional


class VaultProgramError(IntEnum):
    """Custom error codes returned by the vault program."""

    INVALID_INSTRUCTION = 0
    INVALID_INSTRUCTION_DATA = 1
    ARITHMETIC_OVERFLOW = 2
    ARITHMETIC_UNDERFLOW = 3
    VAULT_LOCKED = 4


class VaultError(Exception):
    retryable = False


class InvalidAddress(VaultError, ValueError):
    def __init__(self, field: str, value: Any):
        super().__init__(f"Invalid {field} address: {value!r}")
        self.field = field
        self.value = value


class AddressDerivationError(VaultError):
    """No off-curve bump exists for the seeds. Never retried."""


class DecodeError(VaultError):
    pass


class NotInitialized(DecodeError):
    pass


class TruncatedAccount(DecodeError):
    def __init__(self, expected: int, actual: int):
        super().__init__(f"Account data is truncated: expected {expected} bytes, got {actual}")
        self.expected = expected
        self.actual = actual


class AccountSizeMismatch(DecodeError):
    def __init__(self, expected: int, actual: int):
        super().__init__(f"Account data has the wrong size: expected {expected} bytes, got {actual}")
        self.expected = expected
        self.actual = actual


class AlreadyLocked(VaultError):
    pass


class StillLocked(VaultError):
    def __init__(self, slots_remaining: Optional[int] = None, unlock_slot: Optional[int] = None):
        if slots_remaining is None:
            super().__init__("Vault is still locked")
        else:
            super().__init__(
                f"Vault will unlock in {slots_remaining} slots (at slot {unlock_slot})"
            )
        self.slots_remaining = slots_remaining
        self.unlock_slot = unlock_slot


class NotAdmin(VaultError):
    pass


class InsufficientBalance(VaultError):
    def __init__(self, requested: int, available: int):
        if requested == 0:
            super().__init__(f"Nothing to lock: requested 0 of {available} available tokens")
        else:
            super().__init__(
                f"Tokens to lock exceed the available tokens {requested} > {available}"
            )
        self.requested = requested
        self.available = available


class StaleCheckpoint(VaultError):
    """The recent blockhash expired before the transaction landed."""

    retryable = True


class TransportFailure(VaultError):
    retryable = True


class RpcErrorResponse(TransportFailure):
    """The node answered the call with a JSON-RPC error."""

    retryable = False

    def __init__(self, method: str, error: Any):
        super().__init__(f"RPC call {method} returned an error: {error}")
        self.method = method


class ConfirmationTimeout(TransportFailure):
    """
    Confirmation was not observed in time. The transaction may still land, so
    callers must re-read account state instead of resubmitting.
    """

    retryable = False

    def __init__(self, signature: Any, timeout: float):
        super().__init__(f"Transaction {signature} not confirmed after {timeout:.1f}s")
        self.signature = signature
        self.timeout = timeout


class RejectedByVerifier(VaultError):
    def __init__(self, error: Any, signature: Any = None, instruction_index: Optional[int] = None):
        super().__init__(f"Transaction rejected: {error}")
        self.error = error
        self.signature = signature
        self.instruction_index = instruction_index

    @property
    def custom_code(self) -> Optional[int]:
        inner = getattr(self.error, "err", None)
        code = getattr(inner, "code", None)
        return code if isinstance(code, int) else None

    @property
    def program_error(self) -> Optional[VaultProgramError]:
        code = self.custom_code
        if code is None:
            return None
        try:
            return VaultProgramError(code)
        except ValueError:
            return None
