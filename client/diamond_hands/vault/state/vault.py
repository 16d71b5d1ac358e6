from dataclasses import dataclass
from typing import Any, Dict, Optional, Type

from podite import FixedLenArray, U8, U64, pod
from solders.pubkey import Pubkey

from diamond_hands.errors import AccountSizeMismatch, NotInitialized, TruncatedAccount
from diamond_hands.vault.state.common import (
    RESERVED_LEN,
    SLOTS_PER_EPOCH,
    VAULT_DISCRIMINATOR,
    SchemaRevision,
)

U64_MAX = (1 << 64) - 1


@pod
class VaultLayoutV1:
    has_discriminator: U8
    discriminator: U8
    bump: U8
    admin: FixedLenArray[U8, 32]
    mint: FixedLenArray[U8, 32]
    mint_decimals: U8
    vault_token: FixedLenArray[U8, 32]
    start_slot: U64
    slots_locked: U64
    reserved: FixedLenArray[U8, 32]


@pod
class VaultLayoutV2:
    has_discriminator: U8
    discriminator: U8
    bump: U8
    admin: FixedLenArray[U8, 32]
    mint: FixedLenArray[U8, 32]
    mint_decimals: U8
    vault_token: FixedLenArray[U8, 32]
    start_slot: U64
    slots_locked: U64
    tokens_locked: U64
    reserved: FixedLenArray[U8, 32]


LAYOUTS: Dict[SchemaRevision, Type] = {
    SchemaRevision.V1: VaultLayoutV1,
    SchemaRevision.V2: VaultLayoutV2,
}

# offset of the admin key, used to filter program accounts by owner
ADMIN_OFFSET = 3


def vault_size(revision: SchemaRevision = SchemaRevision.V1) -> int:
    return LAYOUTS[SchemaRevision(revision)].calc_size()


@dataclass
class Vault:
    """
    A decoded vault account. Only live vaults decode: the presence byte must
    be set and the discriminator must be the vault tag.
    """

    bump: int
    admin: Pubkey
    mint: Pubkey
    mint_decimals: int
    vault_token: Pubkey
    start_slot: int
    slots_locked: int
    tokens_locked: Optional[int] = None
    reserved: bytes = bytes(RESERVED_LEN)
    has_discriminator: bool = True
    discriminator: int = VAULT_DISCRIMINATOR
    revision: SchemaRevision = SchemaRevision.V1

    @property
    def is_initialized(self) -> bool:
        return self.has_discriminator and self.discriminator == VAULT_DISCRIMINATOR

    @property
    def unlock_slot(self) -> int:
        return self.start_slot + self.slots_locked

    def slots_remaining(self, current_slot: int) -> int:
        # the program saturates instead of underflowing
        slots_elapsed = max(current_slot - self.start_slot, 0)
        return max(self.slots_locked - slots_elapsed, 0)

    def is_unlockable(self, current_slot: int) -> bool:
        return self.slots_remaining(current_slot) == 0

    @classmethod
    def from_bytes(cls, raw: bytes, revision: SchemaRevision = SchemaRevision.V1) -> "Vault":
        revision = SchemaRevision(revision)
        layout = LAYOUTS[revision]
        size = layout.calc_size()
        raw = bytes(raw)
        if len(raw) < size:
            raise TruncatedAccount(size, len(raw))
        if len(raw) > size:
            raise AccountSizeMismatch(size, len(raw))

        obj = layout.from_bytes(raw)
        if obj.has_discriminator != 1 or obj.discriminator != VAULT_DISCRIMINATOR:
            raise NotInitialized(
                f"Account is not an initialized vault "
                f"(presence={obj.has_discriminator}, discriminator={obj.discriminator})"
            )

        return cls(
            bump=obj.bump,
            admin=Pubkey.from_bytes(bytes(obj.admin)),
            mint=Pubkey.from_bytes(bytes(obj.mint)),
            mint_decimals=obj.mint_decimals,
            vault_token=Pubkey.from_bytes(bytes(obj.vault_token)),
            start_slot=obj.start_slot,
            slots_locked=obj.slots_locked,
            tokens_locked=obj.tokens_locked if revision == SchemaRevision.V2 else None,
            reserved=bytes(obj.reserved),
            has_discriminator=True,
            discriminator=obj.discriminator,
            revision=revision,
        )

    def to_bytes(self) -> bytes:
        layout = LAYOUTS[self.revision]
        self._check_tokens_locked()
        if len(self.reserved) != RESERVED_LEN:
            raise ValueError(f"reserved must be {RESERVED_LEN} bytes, got {len(self.reserved)}")
        for name in ("start_slot", "slots_locked"):
            _check_u64(name, getattr(self, name))

        kwargs = dict(
            has_discriminator=int(self.has_discriminator),
            discriminator=self.discriminator,
            bump=self.bump,
            admin=bytes(self.admin),
            mint=bytes(self.mint),
            mint_decimals=self.mint_decimals,
            vault_token=bytes(self.vault_token),
            start_slot=self.start_slot,
            slots_locked=self.slots_locked,
            reserved=bytes(self.reserved),
        )
        if self.revision == SchemaRevision.V2:
            _check_u64("tokens_locked", self.tokens_locked)
            kwargs["tokens_locked"] = self.tokens_locked
        return layout.to_bytes(layout(**kwargs))

    def to_json(self) -> Dict[str, Any]:
        """Transport record shared with the browser client; u64 values are decimal strings."""
        self._check_tokens_locked()
        return {
            "revision": int(self.revision),
            "hasDiscriminator": self.has_discriminator,
            "discriminator": self.discriminator,
            "bump": self.bump,
            "admin": str(self.admin),
            "mint": str(self.mint),
            "mintDecimals": self.mint_decimals,
            "vaultToken": str(self.vault_token),
            "startSlot": str(self.start_slot),
            "slotsLocked": str(self.slots_locked),
            "tokensLocked": None if self.tokens_locked is None else str(self.tokens_locked),
            "reserved": list(self.reserved),
        }

    @classmethod
    def from_json(cls, obj: Dict[str, Any]) -> "Vault":
        tokens_locked = obj.get("tokensLocked")
        vault = cls(
            bump=int(obj["bump"]),
            admin=Pubkey.from_string(obj["admin"]),
            mint=Pubkey.from_string(obj["mint"]),
            mint_decimals=int(obj["mintDecimals"]),
            vault_token=Pubkey.from_string(obj["vaultToken"]),
            start_slot=int(obj["startSlot"]),
            slots_locked=int(obj["slotsLocked"]),
            tokens_locked=None if tokens_locked is None else int(tokens_locked),
            reserved=bytes(obj["reserved"]),
            has_discriminator=bool(obj.get("hasDiscriminator", True)),
            discriminator=int(obj["discriminator"]),
            revision=SchemaRevision(int(obj.get("revision", SchemaRevision.V1))),
        )
        vault._check_tokens_locked()
        return vault

    def _check_tokens_locked(self):
        # only revision 2 accounts store the locked amount
        if self.revision == SchemaRevision.V2 and self.tokens_locked is None:
            raise ValueError("tokens_locked is required for a revision 2 vault")
        if self.revision == SchemaRevision.V1 and self.tokens_locked is not None:
            raise ValueError("tokens_locked is not stored by a revision 1 vault")

    def __str__(self) -> str:
        lines = [
            "Vault Account:",
            f"├─ Discriminator: {self.discriminator if self.has_discriminator else 'None'}",
            f"├─ Bump: {self.bump}",
            f"├─ Admin: {self.admin}",
            f"├─ Mint: {self.mint} ({self.mint_decimals} decimals)",
            f"├─ Vault Token Account: {self.vault_token}",
            f"├─ Start Slot: {self.start_slot}",
        ]
        if self.tokens_locked is not None:
            lines.append(f"├─ Tokens Locked: {self.tokens_locked}")
        lines.append(
            f"└─ Slots Locked: {self.slots_locked} ({self.slots_locked / SLOTS_PER_EPOCH:.3f} epochs)"
        )
        return "\n".join(lines)


def _check_u64(name: str, value: int):
    if not 0 <= value <= U64_MAX:
        raise ValueError(f"{name} does not fit in a u64: {value}")
