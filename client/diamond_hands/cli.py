import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import find_dotenv, load_dotenv
from solders.keypair import Keypair

from diamond_hands.config import VaultConfig
from diamond_hands.errors import InvalidAddress, VaultError
from diamond_hands.utils.solana import TransactionGateway
from diamond_hands.vault.actions import VaultClient
from diamond_hands.vault.addrs import parse_pubkey
from diamond_hands.vault.lock_state import lock_state
from diamond_hands.vault.state import SchemaRevision

logger = logging.getLogger(__name__)

DEFAULT_KEYPAIR = "~/.config/solana/id.json"


def read_keypair(path) -> Keypair:
    with open(Path(path).expanduser(), "r") as f:
        secret = json.load(f)
    return Keypair.from_bytes(bytes(secret))


def make_gateway(config: VaultConfig) -> TransactionGateway:
    return TransactionGateway(config)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="diamond-hands", description="Diamond Hands vault CLI")
    ap.add_argument("-r", "--rpc", default=None, help="RPC address to read from (env RPC)")
    ap.add_argument(
        "--revision",
        type=int,
        choices=[int(r) for r in SchemaRevision],
        default=None,
        help="vault schema revision (env SCHEMA_REVISION)",
    )
    ap.add_argument("-v", "--verbose", action="store_true")
    sub = ap.add_subparsers(dest="command", required=True)

    view = sub.add_parser("view", help="view all vaults for a wallet")
    view.add_argument("-w", "--wallet", default=os.environ.get("WALLET"))

    lock = sub.add_parser("lock", help="lock tokens in a vault")
    lock.add_argument("-k", "--keypair", default=os.environ.get("KEYPAIR", DEFAULT_KEYPAIR))
    lock.add_argument("-m", "--mint", default=None)
    lock.add_argument("-s", "--slots-to-lock", type=int, required=True)
    lock.add_argument(
        "-t", "--tokens-to-lock", type=int, default=None,
        help="amount in base units; locks the whole balance if omitted",
    )

    empty = sub.add_parser("empty", help="empty a vault and withdraw all tokens")
    empty.add_argument("-k", "--keypair", default=os.environ.get("KEYPAIR", DEFAULT_KEYPAIR))
    empty.add_argument("-m", "--mint", default=None)
    empty.add_argument("--ensure-admin-token", action="store_true")
    return ap


def _mint(args, config: VaultConfig):
    if args.mint is not None:
        return parse_pubkey(args.mint, "mint")
    if config.default_mint is None:
        raise InvalidAddress("mint", None)
    return config.default_mint


async def run(args, config: VaultConfig) -> int:
    print(f"RPC address: {config.rpc_url}")
    async with make_gateway(config) as gateway:
        client = VaultClient(gateway, config)

        if args.command == "view":
            if args.wallet is None:
                raise InvalidAddress("wallet", None)
            wallet = parse_pubkey(args.wallet, "wallet")
            print(f"\n=== Viewing vaults for wallet: {wallet} ===")
            vaults = await client.view_vaults(wallet)
            if not vaults:
                print("No vaults found")
                return 0
            slot = await gateway.get_slot()
            for address, vault in vaults:
                print(f"\n{address}")
                print(vault)
                print(f"State: {lock_state(vault, slot).value} ({vault.slots_remaining(slot)} slots remaining)\n")
            return 0

        keypair = read_keypair(args.keypair)
        mint = _mint(args, config)
        if args.command == "lock":
            print("\n=== Locking vault ===")
            print(f"Mint: {mint}")
            print(f"Tokens to lock: {'All' if args.tokens_to_lock is None else args.tokens_to_lock}")
            print(f"Slots to lock: {args.slots_to_lock}")
            result = await client.lock(keypair, mint, args.slots_to_lock, args.tokens_to_lock)
            print(f"Locked {result.tokens_locked} tokens in {result.vault} until slot {result.unlock_slot}")
            print(f"Signature: {result.signature}")
        else:
            print("\n=== Emptying vault ===")
            print(f"Mint: {mint}")
            signature = await client.empty(keypair, mint, ensure_admin_token=args.ensure_admin_token)
            print(f"Signature: {signature}")
    return 0


def main(argv=None) -> int:
    load_dotenv(find_dotenv(usecwd=True))
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    revision = None if args.revision is None else SchemaRevision(args.revision)
    try:
        config = VaultConfig.from_env(rpc_url=args.rpc, revision=revision)
        logger.debug("config program_id=%s revision=%s", config.program_id, int(config.revision))
        return asyncio.run(run(args, config))
    # OSError and ValueError cover an unreadable keypair file or a malformed env value
    except (VaultError, OSError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
