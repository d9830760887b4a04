"""
Offline multisig wrap/unwrap round.

Each signer runs `sign` with the agreed parameters (same blockhash, same
accounts, same amount) and their own keypair, producing a JSON payload.
Whoever holds all payloads runs `combine` to merge and optionally submit.

    python scripts/multisig_wrap.py sign wrap --params round.json --keypair signer_a.json --out a.json
    python scripts/multisig_wrap.py combine a.json b.json --params round.json --submit
"""
import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

from solders.pubkey import Pubkey

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from token_wrap.errors import ConfigError, TokenWrapClientError  # noqa: E402
from token_wrap.flows import multisig_offline_sign_unwrap, multisig_offline_sign_wrap  # noqa: E402
from token_wrap.multisig import MultisigCoordinator  # noqa: E402
from token_wrap.rpc import TokenWrapRpc  # noqa: E402
from token_wrap.settings import Settings, configure_logging, get_settings  # noqa: E402
from token_wrap.signers import Placeholder, load_keypair  # noqa: E402
from token_wrap.transaction import (  # noqa: E402
    FullySignedTransaction,
    PartiallySignedTransaction,
    RecencyAnchor,
)

WRAP_KEYS = [
    "unwrapped_token_account",
    "wrapped_token_program",
    "wrapped_mint",
    "wrapped_mint_authority",
    "transfer_authority",
    "unwrapped_mint",
    "recipient_wrapped_token_account",
    "unwrapped_token_program",
]
UNWRAP_KEYS = [
    "unwrapped_escrow",
    "wrapped_token_account",
    "wrapped_mint",
    "wrapped_mint_authority",
    "unwrapped_mint",
    "recipient_unwrapped_token",
    "unwrapped_token_program",
    "wrapped_token_program",
    "transfer_authority",
]


def load_params(path: str) -> dict:
    with open(path, "r", encoding="utf-8") as fh:
        return json.load(fh)


def anchor_from_params(params: dict) -> RecencyAnchor:
    return RecencyAnchor.from_strings(params["blockhash"], params["last_valid_block_height"])


def sign(args, settings: Optional[Settings] = None) -> PartiallySignedTransaction:
    settings = settings or get_settings()
    keypair_path = args.keypair or settings.fee_payer_keypair_path
    if not keypair_path:
        raise ConfigError("Pass --keypair or set FEE_PAYER_KEYPAIR_PATH")
    params = load_params(args.params)
    keypair = load_keypair(keypair_path)
    fee_payer = Pubkey.from_string(params["fee_payer"])
    payer = keypair if keypair.pubkey() == fee_payer else Placeholder(fee_payer)

    multi_signers = []
    for raw in params["multi_signers"]:
        addr = Pubkey.from_string(raw)
        multi_signers.append(keypair if addr == keypair.pubkey() else Placeholder(addr))

    keys = WRAP_KEYS if args.kind == "wrap" else UNWRAP_KEYS
    accounts = {k: Pubkey.from_string(params[k]) for k in keys}
    build = multisig_offline_sign_wrap if args.kind == "wrap" else multisig_offline_sign_unwrap
    ptx = build(
        payer=payer,
        anchor=anchor_from_params(params),
        amount=int(params["amount"]),
        multi_signers=multi_signers,
        program_id=settings.program_pubkey,
        **accounts,
    )

    Path(args.out).write_text(ptx.to_json(), encoding="utf-8")
    print(f"Signed as {keypair.pubkey()}; wrote {args.out}")
    for pair in ptx.signer_pairs():
        print(f"  {pair}")
    missing = ptx.missing_signers()
    if missing:
        print(f"Still missing: {', '.join(str(m) for m in missing)}")
    return ptx


async def combine(args, rpc=None) -> FullySignedTransaction:
    partials: List[PartiallySignedTransaction] = [
        PartiallySignedTransaction.from_json(Path(p).read_text(encoding="utf-8")) for p in args.payloads
    ]
    lifetime = anchor_from_params(load_params(args.params)) if args.params else None
    coordinator = MultisigCoordinator(partials, verify_signatures=not args.no_verify)
    fst = coordinator.combine(lifetime)
    print(f"Combined {len(partials)} payloads; transaction signature {fst.signature}")
    if not args.submit:
        return fst
    if rpc is not None:
        sig = await coordinator.submit(rpc)
    else:
        async with TokenWrapRpc.from_settings() as client:
            sig = await coordinator.submit(client)
    print(f"Submitted: {sig}")
    return fst


def main():
    parser = argparse.ArgumentParser(description="Collect and combine offline signatures for a multisig wrap or unwrap.")
    parser.add_argument("--log-level", type=str, default=None, help="Overrides LOG_LEVEL from the environment.")
    sub = parser.add_subparsers(dest="command", required=True)

    sign_parser = sub.add_parser("sign", help="Build the shared template and sign it with one keypair.")
    sign_parser.add_argument("kind", choices=["wrap", "unwrap"])
    sign_parser.add_argument("--params", required=True, help="JSON file with the agreed round parameters.")
    sign_parser.add_argument(
        "--keypair", default=None, help="Signer keypair file (solana-keygen format). Defaults to FEE_PAYER_KEYPAIR_PATH."
    )
    sign_parser.add_argument("--out", required=True, help="Where to write the partially signed payload.")

    combine_parser = sub.add_parser("combine", help="Merge signed payloads into one transaction.")
    combine_parser.add_argument("payloads", nargs="+")
    combine_parser.add_argument(
        "--params", default=None, help="Round parameters; their block height bounds confirmation on submit."
    )
    combine_parser.add_argument("--submit", action="store_true", help="Send the combined transaction to the configured RPC.")
    combine_parser.add_argument("--no-verify", action="store_true", help="Skip signature verification before merging.")
    args = parser.parse_args()

    configure_logging(args.log_level)
    try:
        if args.command == "sign":
            sign(args)
        else:
            asyncio.run(combine(args))
    except TokenWrapClientError as exc:
        print(f"[error] {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()
