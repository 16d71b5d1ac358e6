import asyncio
import logging
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.core import RPCException
from solana.rpc.types import MemcmpOpts, TxOpts
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction
from solders.transaction_status import TransactionConfirmationStatus

from diamond_hands.config import VaultConfig
from diamond_hands.errors import (
    ConfirmationTimeout,
    NotInitialized,
    RejectedByVerifier,
    RpcErrorResponse,
    StaleCheckpoint,
    TransportFailure,
)
from diamond_hands.vault.state import parse_mint_decimals, parse_token_amount

logger = logging.getLogger(__name__)

STALE_BLOCKHASH_MARKERS = (
    "Blockhash not found",
    "BlockhashNotFound",
    "block height exceeded",
)
CONFIRMED_STATUSES = (
    TransactionConfirmationStatus.Confirmed,
    TransactionConfirmationStatus.Finalized,
)

ProgramAccountFilter = Union[int, MemcmpOpts]


class VaultReader:
    """
    Read-only access to the cluster. Safe to point at a public endpoint.
    """

    def __init__(self, config: VaultConfig, client: Optional[AsyncClient] = None):
        self.config = config
        self.client = client if client is not None else AsyncClient(config.rpc_url, commitment=Confirmed)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def close(self):
        await self.client.close()

    async def _call(self, name, fn, *args, private=False, classify=None, **kwargs):
        attempt = 0
        while True:
            try:
                return await fn(*args, **kwargs)
            except RPCException as e:
                # the node answered, so the same request would fail again
                if classify is not None:
                    raise classify(e) from None
                failure = RpcErrorResponse(name, e)
                if private:
                    raise failure from None
                raise failure from e
            except SolanaRpcException as e:
                if attempt >= self.config.max_retries:
                    failure = TransportFailure(f"RPC call {name} failed after {attempt + 1} attempts")
                    if private:
                        # the underlying error names the submission endpoint
                        raise failure from None
                    raise failure from e
                delay = self.config.retry_backoff * (2 ** attempt)
                logger.warning(
                    "rpc_retry method=%s attempt=%s delay=%.2f error=%s",
                    name, attempt + 1, delay, type(e).__name__,
                )
                await asyncio.sleep(delay)
                attempt += 1

    async def get_slot(self) -> int:
        resp = await self._call("get_slot", self.client.get_slot, Confirmed)
        return resp.value

    async def get_account_data(self, pubkey: Pubkey) -> Optional[bytes]:
        resp = await self._call(
            "get_account_info", self.client.get_account_info, pubkey, commitment=Confirmed
        )
        if resp.value is None:
            return None
        return bytes(resp.value.data)

    async def get_token_balance(self, token_account: Pubkey) -> int:
        data = await self.get_account_data(token_account)
        if data is None:
            return 0
        return parse_token_amount(data)

    async def get_mint_decimals(self, mint: Pubkey) -> int:
        data = await self.get_account_data(mint)
        if data is None:
            raise NotInitialized(f"Mint account {mint} does not exist")
        return parse_mint_decimals(data)

    async def get_program_accounts(
        self,
        program_id: Pubkey,
        filters: Optional[Sequence[ProgramAccountFilter]] = None,
    ) -> List[Tuple[Pubkey, bytes]]:
        resp = await self._call(
            "get_program_accounts",
            self.client.get_program_accounts,
            program_id,
            commitment=Confirmed,
            encoding="base64",
            filters=filters,
        )
        return [(keyed.pubkey, bytes(keyed.account.data)) for keyed in resp.value]


class TransactionGateway(VaultReader):
    """
    Signs, submits and confirms transactions. Holds the private submission
    endpoint, so it must only ever run server side; the endpoint is kept out
    of reprs, logs and raised errors.
    """

    def __init__(
        self,
        config: VaultConfig,
        client: Optional[AsyncClient] = None,
        submit_client: Optional[AsyncClient] = None,
    ):
        super().__init__(config, client)
        if submit_client is not None:
            self._submit_client = submit_client
        elif config.submit_rpc_url is None:
            self._submit_client = self.client
        else:
            self._submit_client = AsyncClient(config.submit_url, commitment=Confirmed)

    def __repr__(self) -> str:
        return f"TransactionGateway(rpc_url={self.config.rpc_url!r}, submit_url=<redacted>)"

    async def close(self):
        await super().close()
        if self._submit_client is not self.client:
            await self._submit_client.close()

    async def get_latest_blockhash(self) -> Tuple[Hash, int]:
        resp = await self._call(
            "get_latest_blockhash",
            self._submit_client.get_latest_blockhash,
            Confirmed,
            private=True,
        )
        return resp.value.blockhash, resp.value.last_valid_block_height

    async def get_block_height(self) -> int:
        resp = await self._call(
            "get_block_height", self._submit_client.get_block_height, Confirmed, private=True
        )
        return resp.value

    @staticmethod
    def sign(
        ixs: Sequence[Instruction],
        payer: Keypair,
        signers: Iterable[Keypair],
        recent_blockhash: Hash,
    ) -> Transaction:
        # filtering signers so each key signs once and the fee payer comes first
        keypairs = {payer.pubkey(): payer}
        for signer in signers:
            keypairs.setdefault(signer.pubkey(), signer)
        return Transaction.new_signed_with_payer(
            list(ixs), payer.pubkey(), list(keypairs.values()), recent_blockhash
        )

    async def submit(self, raw: bytes) -> Signature:
        opts = TxOpts(
            skip_preflight=self.config.skip_preflight,
            skip_confirmation=True,
            preflight_commitment=Confirmed,
        )
        # resubmitting identical bytes is safe, the signature dedupes it
        resp = await self._call(
            "send_raw_transaction",
            self._submit_client.send_raw_transaction,
            raw,
            opts=opts,
            private=True,
            classify=classify_rpc_error,
        )
        return resp.value

    async def confirm(self, signature: Signature, last_valid_block_height: Optional[int] = None):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.confirm_timeout
        while True:
            resp = await self._call(
                "get_signature_statuses",
                self._submit_client.get_signature_statuses,
                [signature],
                private=True,
            )
            status = resp.value[0]
            if status is not None:
                if status.err is not None:
                    raise RejectedByVerifier(
                        status.err, signature, getattr(status.err, "index", None)
                    )
                if status.confirmation_status in CONFIRMED_STATUSES:
                    return status
            elif last_valid_block_height is not None:
                if await self.get_block_height() > last_valid_block_height:
                    raise StaleCheckpoint(f"Blockhash expired before {signature} landed")

            if loop.time() >= deadline:
                raise ConfirmationTimeout(signature, self.config.confirm_timeout)
            await asyncio.sleep(self.config.poll_interval)

    async def send_instructions(
        self,
        ixs: Sequence[Instruction],
        payer: Keypair,
        *signers: Keypair,
    ) -> Signature:
        """
        Signs with a fresh blockhash, submits and waits for confirmation. An
        expired blockhash means the transaction can no longer land, so it is
        re-signed and resubmitted up to ``max_blockhash_retries`` times.
        """
        last_error = None
        for attempt in range(self.config.max_blockhash_retries + 1):
            blockhash, last_valid_block_height = await self.get_latest_blockhash()
            tx = self.sign(ixs, payer, signers, blockhash)
            try:
                signature = await self.submit(bytes(tx))
                logger.info("tx_submitted signature=%s attempt=%s", signature, attempt + 1)
                await self.confirm(signature, last_valid_block_height)
            except StaleCheckpoint as e:
                logger.warning("tx_stale_blockhash attempt=%s error=%s", attempt + 1, e)
                last_error = e
                continue
            logger.info("tx_confirmed signature=%s", signature)
            return signature
        raise last_error

    async def submit_signed(self, raw: bytes) -> Signature:
        """
        Submits a transaction signed elsewhere (e.g. by a browser wallet). It
        cannot be re-signed here, so a stale blockhash is surfaced as is.
        """
        signature = await self.submit(raw)
        logger.info("tx_submitted signature=%s external=true", signature)
        await self.confirm(signature)
        return signature


def classify_rpc_error(e: RPCException) -> Union[StaleCheckpoint, RejectedByVerifier]:
    message = str(e)
    if any(marker in message for marker in STALE_BLOCKHASH_MARKERS):
        return StaleCheckpoint(message)

    detail = e.args[0] if e.args else message
    # preflight failures carry the transaction error under .data.err
    err = getattr(getattr(detail, "data", None), "err", None) or detail
    return RejectedByVerifier(err, instruction_index=getattr(err, "index", None))
