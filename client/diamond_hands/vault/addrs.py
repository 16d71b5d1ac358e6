from typing import Tuple, Union

from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from diamond_hands import program_ids as pids
from diamond_hands.errors import AddressDerivationError, InvalidAddress
from diamond_hands.vault.state.common import VAULT_SEED


def parse_pubkey(value: Union[str, bytes, Pubkey], field: str = "account") -> Pubkey:
    if isinstance(value, Pubkey):
        return value
    try:
        if isinstance(value, (bytes, bytearray)):
            if len(value) != 32:
                raise ValueError(f"expected 32 bytes, got {len(value)}")
            return Pubkey.from_bytes(bytes(value))
        return Pubkey.from_string(value.strip())
    except (ValueError, TypeError, AttributeError) as e:
        raise InvalidAddress(field, value) from e


def vault_seeds(admin: Pubkey, mint: Pubkey):
    return [VAULT_SEED, bytes(admin), bytes(mint)]


def get_vault_addr(
    admin: Pubkey,
    mint: Pubkey,
    program_id: Pubkey = pids.VAULT_PROGRAM_ID,
) -> Tuple[Pubkey, int]:
    """
    One vault exists per (admin, mint) pair: the account lives at the PDA of
    ``["VAULT", admin, mint]`` under the vault program.
    Returns:
        The vault address and the bump that moves it off curve.
    """
    try:
        return Pubkey.find_program_address(vault_seeds(admin, mint), program_id)
    except BaseException as e:
        # solders reports bump exhaustion as pyo3's PanicException, a BaseException
        if type(e).__name__ != "PanicException":
            raise
        raise AddressDerivationError(
            f"Unable to find a viable program address bump seed for {program_id}"
        ) from e


def verify_vault_addr(
    address: Pubkey,
    admin: Pubkey,
    mint: Pubkey,
    bump: int,
    program_id: Pubkey = pids.VAULT_PROGRAM_ID,
) -> None:
    expected, expected_bump = get_vault_addr(admin, mint, program_id)
    if address != expected or bump != expected_bump:
        raise InvalidAddress(
            "vault",
            f"{address} (bump {bump}) != {expected} (bump {expected_bump})",
        )


def get_admin_token_addr(
    admin: Pubkey,
    mint: Pubkey,
    token_program_id: Pubkey = pids.SPL_TOKEN_PROGRAM_ID,
) -> Pubkey:
    return get_associated_token_address(admin, mint, token_program_id)


def get_vault_token_addr(
    vault: Pubkey,
    mint: Pubkey,
    token_program_id: Pubkey = pids.SPL_TOKEN_PROGRAM_ID,
) -> Pubkey:
    # the vault is a PDA, so its token account has an off-curve owner
    return get_associated_token_address(vault, mint, token_program_id)
