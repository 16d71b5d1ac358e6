import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from solana.rpc.types import MemcmpOpts
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from spl.token.instructions import create_idempotent_associated_token_account

from diamond_hands.config import VaultConfig
from diamond_hands.errors import ConfirmationTimeout, DecodeError, RejectedByVerifier
from diamond_hands.utils.solana import TransactionGateway
from diamond_hands.vault import addrs
from diamond_hands.vault.instructions import empty_vault_ix, lock_vault_ix
from diamond_hands.vault.lock_state import check_can_empty, check_can_lock
from diamond_hands.vault.state import ADMIN_OFFSET, Vault, account_parser, vault_size

logger = logging.getLogger(__name__)


def lock_vault_ixs(
    admin: Pubkey,
    mint: Pubkey,
    slots_to_lock: int,
    tokens_to_lock: Optional[int] = None,
    *,
    config: Optional[VaultConfig] = None,
    create_vault_token: bool = True,
) -> List[Instruction]:
    """
    Builds the instructions that open a vault for ``(admin, mint)``.

    The vault token account is created idempotently first, so the list is safe
    to submit whether or not it already exists. Callers that created it
    themselves can pass ``create_vault_token=False``. With no
    ``tokens_to_lock`` the program moves the admin's whole balance.
    """
    config = config or VaultConfig()
    vault, bump = addrs.get_vault_addr(admin, mint, config.program_id)
    admin_token = addrs.get_admin_token_addr(admin, mint, config.token_program_id)
    vault_token = addrs.get_vault_token_addr(vault, mint, config.token_program_id)

    ixs = []
    if create_vault_token:
        ixs.append(
            create_idempotent_associated_token_account(
                payer=admin,
                owner=vault,
                mint=mint,
                token_program_id=config.token_program_id,
            )
        )
    ixs.append(
        lock_vault_ix(
            vault=vault,
            admin=admin,
            mint=mint,
            admin_token=admin_token,
            vault_token=vault_token,
            vault_bump=bump,
            slots_to_lock=slots_to_lock,
            tokens_to_lock=tokens_to_lock,
            revision=config.revision,
            program_id=config.program_id,
            token_program=config.token_program_id,
            system_program=config.system_program_id,
        )
    )
    return ixs


def empty_vault_ixs(
    admin: Pubkey,
    mint: Pubkey,
    *,
    config: Optional[VaultConfig] = None,
    ensure_admin_token: bool = False,
) -> List[Instruction]:
    config = config or VaultConfig()
    vault, _ = addrs.get_vault_addr(admin, mint, config.program_id)
    admin_token = addrs.get_admin_token_addr(admin, mint, config.token_program_id)
    vault_token = addrs.get_vault_token_addr(vault, mint, config.token_program_id)

    ixs = []
    # the admin may have closed their token account while the vault was locked
    if ensure_admin_token:
        ixs.append(
            create_idempotent_associated_token_account(
                payer=admin,
                owner=admin,
                mint=mint,
                token_program_id=config.token_program_id,
            )
        )
    ixs.append(
        empty_vault_ix(
            vault=vault,
            admin=admin,
            mint=mint,
            admin_token=admin_token,
            vault_token=vault_token,
            program_id=config.program_id,
            token_program=config.token_program_id,
            system_program=config.system_program_id,
        )
    )
    return ixs


@dataclass
class LockResult:
    signature: Signature
    vault: Pubkey
    tokens_locked: int
    unlock_slot: int


class VaultClient:
    """
    Runs lock, empty and view against a cluster: derive the vault, read and
    decode its account, validate the transition locally, then build, sign and
    submit through the gateway.
    """

    def __init__(self, gateway: TransactionGateway, config: Optional[VaultConfig] = None):
        self.gateway = gateway
        self.config = config or gateway.config

    def get_vault_addr(self, admin: Pubkey, mint: Pubkey) -> Tuple[Pubkey, int]:
        return addrs.get_vault_addr(admin, mint, self.config.program_id)

    async def get_vault(self, admin: Pubkey, mint: Pubkey) -> Optional[Vault]:
        address, _ = self.get_vault_addr(admin, mint)
        data = await self.gateway.get_account_data(address)
        vault = account_parser(data, self.config.revision)
        if vault is not None:
            addrs.verify_vault_addr(address, vault.admin, vault.mint, vault.bump, self.config.program_id)
        return vault

    async def view_vaults(self, wallet: Pubkey) -> List[Tuple[Pubkey, Vault]]:
        filters = [
            vault_size(self.config.revision),
            MemcmpOpts(offset=ADMIN_OFFSET, bytes=str(wallet)),
        ]
        accounts = await self.gateway.get_program_accounts(self.config.program_id, filters)

        vaults = []
        for address, data in accounts:
            try:
                vault = Vault.from_bytes(data, self.config.revision)
            except DecodeError as e:
                logger.warning("vault_skipped address=%s error=%s", address, e)
                continue
            vaults.append((address, vault))
        vaults.sort(key=lambda item: (item[1].start_slot, str(item[0])))
        return vaults

    async def lock(
        self,
        keypair: Keypair,
        mint: Pubkey,
        slots_to_lock: int,
        tokens_to_lock: Optional[int] = None,
    ) -> LockResult:
        admin = keypair.pubkey()
        address, _ = self.get_vault_addr(admin, mint)
        admin_token = addrs.get_admin_token_addr(admin, mint, self.config.token_program_id)

        existing = await self.get_vault(admin, mint)
        slot = await self.gateway.get_slot()
        balance = await self.gateway.get_token_balance(admin_token)
        amount = check_can_lock(existing, balance, tokens_to_lock, slot)

        ixs = lock_vault_ixs(admin, mint, slots_to_lock, tokens_to_lock, config=self.config)
        logger.info(
            "vault_lock vault=%s mint=%s slots=%s tokens=%s", address, mint, slots_to_lock, amount
        )
        try:
            signature = await self._send(ixs, keypair)
        except ConfirmationTimeout as e:
            vault = await self.get_vault(admin, mint)
            if vault is None:
                raise
            logger.warning("vault_lock_landed_late vault=%s signature=%s", address, e.signature)
            return LockResult(e.signature, address, amount, vault.unlock_slot)

        vault = await self.get_vault(admin, mint)
        unlock_slot = vault.unlock_slot if vault is not None else slot + slots_to_lock
        return LockResult(signature, address, amount, unlock_slot)

    async def empty(self, keypair: Keypair, mint: Pubkey, ensure_admin_token: bool = False) -> Signature:
        admin = keypair.pubkey()
        address, _ = self.get_vault_addr(admin, mint)

        vault = await self.get_vault(admin, mint)
        slot = await self.gateway.get_slot()
        check_can_empty(vault, admin, slot)

        ixs = empty_vault_ixs(admin, mint, config=self.config, ensure_admin_token=ensure_admin_token)
        logger.info("vault_empty vault=%s mint=%s slot=%s", address, mint, slot)
        try:
            return await self._send(ixs, keypair)
        except ConfirmationTimeout as e:
            if await self.get_vault(admin, mint) is not None:
                raise
            logger.warning("vault_empty_landed_late vault=%s signature=%s", address, e.signature)
            return e.signature

    async def _send(self, ixs: List[Instruction], keypair: Keypair) -> Signature:
        try:
            return await self.gateway.send_instructions(ixs, keypair)
        except RejectedByVerifier as e:
            logger.error(
                "tx_rejected instruction=%s program_error=%s error=%s",
                e.instruction_index,
                e.program_error.name if e.program_error is not None else None,
                e.error,
            )
            raise
