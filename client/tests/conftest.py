"""
In-memory ledger standing in for an RPC node.

``FakeRpc`` answers the subset of ``AsyncClient`` calls the gateway makes and
executes submitted transactions against a dict of accounts: idempotent
associated token account creation, vault lock and vault empty, applied
atomically per transaction.
"""

import struct
from types import SimpleNamespace

import httpx
import pytest
from base58 import b58decode
from solana.exceptions import SolanaRpcException
from solana.rpc.core import RPCException
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.rpc.requests import SendRawTransaction
from solders.transaction import Transaction
from solders.transaction_status import TransactionConfirmationStatus

from diamond_hands import program_ids as pids
from diamond_hands.config import VaultConfig
from diamond_hands.errors import VaultProgramError
from diamond_hands.utils.solana import TransactionGateway
from diamond_hands.vault.actions import VaultClient
from diamond_hands.vault.addrs import get_admin_token_addr
from diamond_hands.vault.instructions import decode_empty_vault_data, decode_lock_vault_data
from diamond_hands.vault.instructions.common import InstructionCode, decode_instruction_code
from diamond_hands.vault.state import (
    MINT_LEN,
    TOKEN_ACCOUNT_LEN,
    SchemaRevision,
    Vault,
    parse_token_amount,
)
from diamond_hands.vault.state.common import VAULT_SEED

BLOCKHASH_VALIDITY = 150


def mint_data(decimals: int = 9) -> bytes:
    data = bytes(44) + bytes([decimals, 1])
    return data + bytes(MINT_LEN - len(data))


def token_account_data(mint: Pubkey, owner: Pubkey, amount: int) -> bytes:
    data = bytes(mint) + bytes(owner) + struct.pack("<Q", amount)
    return data + bytes(TOKEN_ACCOUNT_LEN - len(data))


class InstructionFailed(Exception):
    def __init__(self, err):
        super().__init__(err)
        self.err = err


def _custom(code):
    return SimpleNamespace(code=int(code))


def create_program_address(seeds, program_id):
    try:
        return Pubkey.create_program_address(seeds, program_id)
    except BaseException as e:
        # an on-curve result panics inside solders
        if not isinstance(e, Exception) and type(e).__name__ != "PanicException":
            raise
        raise InstructionFailed("InvalidSeeds") from e


class FakeRpc:
    def __init__(self, revision=SchemaRevision.V1, program_id=pids.VAULT_PROGRAM_ID):
        self.revision = revision
        self.program_id = program_id
        self.accounts = {}
        self.slot = 1_000
        self.block_height = 500
        self.blockhashes = {}
        self.statuses = {}
        self.sent = []
        self.closed = False

        # failure injection
        self.transport_failures = 0
        self.stale_sends = 0
        self.withhold_status = False
        self.expire_unconfirmed = 0
        self.drop_sends = False

    # ledger helpers
    def warp(self, slot):
        self.slot = slot

    def add_mint(self, mint, decimals=9):
        self.accounts[mint] = mint_data(decimals)

    def add_token_account(self, address, mint, owner, amount):
        self.accounts[address] = token_account_data(mint, owner, amount)

    def fund(self, admin, mint, amount):
        address = get_admin_token_addr(admin, mint)
        self.add_token_account(address, mint, admin, amount)
        return address

    def balance(self, address):
        data = self.accounts.get(address)
        return None if data is None else parse_token_amount(data)

    # rpc surface
    async def close(self):
        self.closed = True

    async def get_slot(self, commitment=None):
        return SimpleNamespace(value=self.slot)

    async def get_block_height(self, commitment=None):
        return SimpleNamespace(value=self.block_height)

    async def get_account_info(self, pubkey, commitment=None, **kwargs):
        data = self.accounts.get(pubkey)
        if data is None:
            return SimpleNamespace(value=None)
        return SimpleNamespace(value=SimpleNamespace(data=data))

    async def get_program_accounts(self, program_id, commitment=None, encoding=None, filters=None, **kwargs):
        self.last_filters = filters
        results = []
        for address, data in self.accounts.items():
            if not self._matches(data, filters or []):
                continue
            results.append(SimpleNamespace(pubkey=address, account=SimpleNamespace(data=data)))
        return SimpleNamespace(value=results)

    @staticmethod
    def _matches(data, filters):
        for f in filters:
            if isinstance(f, int):
                if len(data) != f:
                    return False
            else:
                needle = b58decode(f.bytes)
                if data[f.offset:f.offset + len(needle)] != needle:
                    return False
        return True

    async def get_latest_blockhash(self, commitment=None):
        blockhash = Hash.new_unique()
        self.blockhashes[blockhash] = self.block_height + BLOCKHASH_VALIDITY
        return SimpleNamespace(
            value=SimpleNamespace(
                blockhash=blockhash,
                last_valid_block_height=self.block_height + BLOCKHASH_VALIDITY,
            )
        )

    async def send_raw_transaction(self, raw, opts=None):
        if self.transport_failures:
            self.transport_failures -= 1
            raise SolanaRpcException(
                httpx.ConnectError("connection reset by peer"),
                FakeRpc.send_raw_transaction,
                self,
                SendRawTransaction(raw),
            )
        if self.stale_sends:
            self.stale_sends -= 1
            raise RPCException("Transaction simulation failed: Blockhash not found")

        tx = Transaction.from_bytes(bytes(raw))
        signature = tx.signatures[0]
        self.sent.append(tx)
        if signature in self.statuses:
            return SimpleNamespace(value=signature)
        if tx.message.recent_blockhash not in self.blockhashes:
            raise RPCException("Transaction simulation failed: Blockhash not found")
        if self.expire_unconfirmed:
            # accepted but never lands before its blockhash expires
            self.expire_unconfirmed -= 1
            self.block_height += BLOCKHASH_VALIDITY + 1
            return SimpleNamespace(value=signature)
        if self.drop_sends:
            return SimpleNamespace(value=signature)

        err = self.execute(tx)
        if not self.withhold_status:
            self.statuses[signature] = SimpleNamespace(
                err=err,
                confirmation_status=TransactionConfirmationStatus.Confirmed,
            )
        return SimpleNamespace(value=signature)

    async def get_signature_statuses(self, signatures, search_transaction_history=False):
        return SimpleNamespace(value=[self.statuses.get(sig) for sig in signatures])

    # execution
    def execute(self, tx):
        message = tx.message
        keys = list(message.account_keys)
        working = dict(self.accounts)
        for index, ix in enumerate(message.instructions):
            program = keys[ix.program_id_index]
            accounts = [keys[i] for i in bytes(ix.accounts)]
            data = bytes(ix.data)
            try:
                if program == pids.SPL_ASSOCIATED_TOKEN_PROGRAM_ID:
                    self._create_ata(working, accounts)
                elif program == self.program_id:
                    self._run_vault(working, accounts, data)
                else:
                    raise InstructionFailed("IncorrectProgramId")
            except InstructionFailed as e:
                return SimpleNamespace(index=index, err=e.err)
        self.accounts = working
        return None

    @staticmethod
    def _create_ata(working, accounts):
        _payer, ata, owner, mint = accounts[:4]
        if ata in working:
            return
        working[ata] = token_account_data(mint, owner, 0)

    def _run_vault(self, working, accounts, data):
        if len(accounts) < 7:
            raise InstructionFailed("NotEnoughAccountKeys")
        try:
            code = decode_instruction_code(data)
        except ValueError:
            raise InstructionFailed(_custom(VaultProgramError.INVALID_INSTRUCTION))
        if code == InstructionCode.LOCK_VAULT:
            self._lock(working, accounts, data)
        else:
            self._empty(working, accounts, data)

    def _lock(self, working, accounts, data):
        vault, admin, mint, admin_token, vault_token = accounts[:5]
        try:
            args = decode_lock_vault_data(data, self.revision)
        except ValueError:
            raise InstructionFailed(_custom(VaultProgramError.INVALID_INSTRUCTION_DATA))
        if vault in working:
            raise InstructionFailed("InvalidAccountOwner")
        seeds = [VAULT_SEED, bytes(admin), bytes(mint), bytes([args.vault_bump])]
        if create_program_address(seeds, self.program_id) != vault:
            raise InstructionFailed("InvalidAccountData")
        if vault_token not in working or admin_token not in working:
            raise InstructionFailed("UninitializedAccount")
        if working[vault_token][32:64] != bytes(vault) or working[admin_token][32:64] != bytes(admin):
            raise InstructionFailed("InvalidAccountData")

        available = parse_token_amount(working[admin_token])
        amount = available if args.tokens_to_lock is None else args.tokens_to_lock
        if amount > available:
            raise InstructionFailed("InvalidArgument")

        record = Vault(
            bump=args.vault_bump,
            admin=admin,
            mint=mint,
            mint_decimals=working[mint][44],
            vault_token=vault_token,
            start_slot=self.slot,
            slots_locked=args.slots_to_lock,
            tokens_locked=amount if self.revision == SchemaRevision.V2 else None,
            revision=self.revision,
        )
        working[vault] = record.to_bytes()
        working[admin_token] = token_account_data(mint, admin, available - amount)
        working[vault_token] = token_account_data(
            mint, vault, parse_token_amount(working[vault_token]) + amount
        )

    def _empty(self, working, accounts, data):
        vault, admin, mint, admin_token, vault_token = accounts[:5]
        try:
            decode_empty_vault_data(data)
        except ValueError:
            raise InstructionFailed(_custom(VaultProgramError.INVALID_INSTRUCTION_DATA))
        if vault not in working:
            raise InstructionFailed("UninitializedAccount")
        record = Vault.from_bytes(working[vault], self.revision)
        if record.admin != admin:
            raise InstructionFailed("IncorrectAuthority")
        elapsed = max(self.slot - record.start_slot, 0)
        if elapsed < record.slots_locked:
            raise InstructionFailed(_custom(VaultProgramError.VAULT_LOCKED))
        if admin_token not in working:
            raise InstructionFailed("UninitializedAccount")

        locked = parse_token_amount(working[vault_token])
        returned = parse_token_amount(working[admin_token]) + locked
        working[admin_token] = token_account_data(mint, admin, returned)
        del working[vault_token]
        del working[vault]


@pytest.fixture
def config():
    return VaultConfig(
        rpc_url="http://read.invalid",
        submit_rpc_url="http://secret-submit.invalid/key=hunter2",
        confirm_timeout=0.05,
        poll_interval=0.01,
        retry_backoff=0.0,
        max_retries=2,
        max_blockhash_retries=2,
    )


@pytest.fixture
def ledger():
    return FakeRpc()


@pytest.fixture
def gateway(config, ledger):
    return TransactionGateway(config, client=ledger, submit_client=ledger)


@pytest.fixture
def client(gateway, config):
    return VaultClient(gateway, config)


@pytest.fixture
def admin():
    return Keypair()


@pytest.fixture
def mint(ledger):
    mint = Pubkey.new_unique()
    ledger.add_mint(mint, decimals=9)
    return mint
