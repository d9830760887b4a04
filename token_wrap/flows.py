"""
High-level wrap/unwrap flows.

These sequence the pieces in this package: derive addresses, resolve whatever
the caller left out, fund rent where needed and emit instruction lists. The
single-signer variants talk to the network through a `TokenWrapRpc`-shaped
object. The multisig variants are pure template builders: every account and
the recency anchor are given explicitly so each party compiles the same bytes.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

from solders.instruction import Instruction
from solders.pubkey import Pubkey
from solders.signature import Signature

from .accounts import lamports_to_fund, resolve_owning_program, resolve_unwrap_accounts, resolve_wrap_accounts
from .constants import BACKPOINTER_SIZE, MINT_SIZE, TOKEN_WRAP_PROGRAM_ID, is_token_program
from .errors import InvalidInstructionArgs
from .pdas import (
    associated_token_address,
    backpointer_pda,
    wrapped_mint_authority_pda,
    wrapped_mint_pda,
)
from .signers import SignerLike, as_signer
from .transaction import (
    PartiallySignedTransaction,
    RecencyAnchor,
    assert_fully_signed,
    build_transaction,
)
from .tx_builder import (
    build_create_associated_token_account_ix,
    build_create_mint_ix,
    build_system_transfer_ix,
    build_unwrap_ix,
    build_wrap_ix,
)

logger = logging.getLogger("token_wrap.flows")


def _check_token_program(name: str, program_id: Pubkey) -> None:
    if not is_token_program(program_id):
        raise InvalidInstructionArgs(f"{name} {program_id} is not a supported token program")


@dataclass(frozen=True)
class CreateMintResult:
    wrapped_mint: Pubkey
    backpointer: Pubkey
    instructions: List[Instruction]
    funded_wrapped_mint_lamports: int
    funded_backpointer_lamports: int


async def create_mint(
    rpc,
    unwrapped_mint: Pubkey,
    wrapped_token_program: Pubkey,
    payer: SignerLike,
    idempotent: bool = False,
    program_id: Pubkey = TOKEN_WRAP_PROGRAM_ID,
) -> CreateMintResult:
    """
    Instructions that create the wrapped mint for `unwrapped_mint`.

    CreateMint does not move lamports itself, so the wrapped mint and the
    backpointer are topped up to their rent-exempt minimum first, and only by
    the shortfall.
    """
    _check_token_program("wrapped_token_program", wrapped_token_program)
    payer_address = as_signer(payer).address
    wrapped_mint = wrapped_mint_pda(unwrapped_mint, wrapped_token_program, program_id)
    backpointer = backpointer_pda(wrapped_mint, program_id)

    mint_shortfall, backpointer_shortfall = await asyncio.gather(
        lamports_to_fund(rpc, wrapped_mint, MINT_SIZE),
        lamports_to_fund(rpc, backpointer, BACKPOINTER_SIZE),
    )

    instructions: List[Instruction] = []
    if mint_shortfall:
        instructions.append(build_system_transfer_ix(payer_address, wrapped_mint, mint_shortfall))
    if backpointer_shortfall:
        instructions.append(build_system_transfer_ix(payer_address, backpointer, backpointer_shortfall))
    instructions.append(
        build_create_mint_ix(
            wrapped_mint=wrapped_mint,
            backpointer=backpointer,
            unwrapped_mint=unwrapped_mint,
            wrapped_token_program=wrapped_token_program,
            idempotent=idempotent,
            program_id=program_id,
        )
    )
    logger.info(
        "create_mint_prepared unwrapped_mint=%s wrapped_mint=%s funded_mint=%s funded_backpointer=%s",
        unwrapped_mint,
        wrapped_mint,
        mint_shortfall,
        backpointer_shortfall,
    )
    return CreateMintResult(
        wrapped_mint=wrapped_mint,
        backpointer=backpointer,
        instructions=instructions,
        funded_wrapped_mint_lamports=mint_shortfall,
        funded_backpointer_lamports=backpointer_shortfall,
    )


@dataclass(frozen=True)
class TokenAccountResult:
    kind: str  # "exists" or "instructions_to_create"
    address: Pubkey
    instructions: List[Instruction] = field(default_factory=list)


async def _associated_account(
    rpc, payer: SignerLike, owner: Pubkey, mint: Pubkey, token_program: Pubkey, label: str
) -> TokenAccountResult:
    address = associated_token_address(owner, mint, token_program)
    if await rpc.get_account_info(address) is not None:
        logger.info("%s_exists address=%s", label, address)
        return TokenAccountResult(kind="exists", address=address)
    ix = build_create_associated_token_account_ix(
        payer=as_signer(payer).address,
        owner=owner,
        mint=mint,
        token_program=token_program,
    )
    logger.info("%s_create_prepared address=%s owner=%s", label, address, owner)
    return TokenAccountResult(kind="instructions_to_create", address=address, instructions=[ix])


async def create_escrow_account(
    rpc,
    payer: SignerLike,
    unwrapped_mint: Pubkey,
    wrapped_token_program: Pubkey,
    unwrapped_token_program: Optional[Pubkey] = None,
    program_id: Pubkey = TOKEN_WRAP_PROGRAM_ID,
) -> TokenAccountResult:
    if unwrapped_token_program is None:
        unwrapped_token_program = await resolve_owning_program(rpc, unwrapped_mint)
    _check_token_program("unwrapped_token_program", unwrapped_token_program)
    authority = wrapped_mint_authority_pda(wrapped_mint_pda(unwrapped_mint, wrapped_token_program, program_id), program_id)
    return await _associated_account(rpc, payer, authority, unwrapped_mint, unwrapped_token_program, "escrow")


async def create_token_account(
    rpc,
    payer: SignerLike,
    mint: Pubkey,
    owner: Optional[Pubkey] = None,
    token_program: Optional[Pubkey] = None,
) -> TokenAccountResult:
    """
    Associated token account of `owner` (default: the payer) for `mint`.

    Used to give a wrap its recipient, typically the wrapped mint under the
    wrapped token program. The token program is read from the mint when not
    given.
    """
    if owner is None:
        owner = as_signer(payer).address
    if token_program is None:
        token_program = await resolve_owning_program(rpc, mint)
    _check_token_program("token_program", token_program)
    return await _associated_account(rpc, payer, owner, mint, token_program, "token_account")


@dataclass(frozen=True)
class SingleSignerWrapResult:
    instructions: List[Instruction]
    recipient_wrapped_token_account: Pubkey
    escrow_account: Pubkey
    amount: int


async def single_signer_wrap(
    rpc,
    payer: SignerLike,
    unwrapped_token_account: Pubkey,
    wrapped_token_program: Pubkey,
    amount: int,
    transfer_authority: Optional[SignerLike] = None,
    unwrapped_mint: Optional[Pubkey] = None,
    recipient_wrapped_token_account: Optional[Pubkey] = None,
    unwrapped_token_program: Optional[Pubkey] = None,
    program_id: Pubkey = TOKEN_WRAP_PROGRAM_ID,
) -> SingleSignerWrapResult:
    accounts = await resolve_wrap_accounts(
        rpc,
        payer,
        unwrapped_token_account,
        wrapped_token_program,
        transfer_authority=transfer_authority,
        unwrapped_mint=unwrapped_mint,
        recipient_wrapped_token_account=recipient_wrapped_token_account,
        unwrapped_token_program=unwrapped_token_program,
        program_id=program_id,
    )
    ix = accounts.instruction(amount)
    logger.info(
        "wrap_prepared amount=%s from=%s to=%s escrow=%s",
        amount,
        unwrapped_token_account,
        accounts.recipient_wrapped_token_account,
        accounts.unwrapped_escrow,
    )
    return SingleSignerWrapResult(
        instructions=[ix],
        recipient_wrapped_token_account=accounts.recipient_wrapped_token_account,
        escrow_account=accounts.unwrapped_escrow,
        amount=amount,
    )


@dataclass(frozen=True)
class SingleSignerUnwrapResult:
    instructions: List[Instruction]
    recipient_unwrapped_token: Pubkey
    amount: int


async def single_signer_unwrap(
    rpc,
    payer: SignerLike,
    wrapped_token_account: Pubkey,
    unwrapped_escrow: Pubkey,
    recipient_unwrapped_token: Pubkey,
    amount: int,
    transfer_authority: Optional[SignerLike] = None,
    unwrapped_mint: Optional[Pubkey] = None,
    wrapped_token_program: Optional[Pubkey] = None,
    unwrapped_token_program: Optional[Pubkey] = None,
    program_id: Pubkey = TOKEN_WRAP_PROGRAM_ID,
) -> SingleSignerUnwrapResult:
    accounts = await resolve_unwrap_accounts(
        rpc,
        payer,
        wrapped_token_account,
        unwrapped_escrow,
        recipient_unwrapped_token,
        transfer_authority=transfer_authority,
        unwrapped_mint=unwrapped_mint,
        wrapped_token_program=wrapped_token_program,
        unwrapped_token_program=unwrapped_token_program,
        program_id=program_id,
    )
    ix = accounts.instruction(amount)
    logger.info(
        "unwrap_prepared amount=%s from=%s to=%s",
        amount,
        wrapped_token_account,
        recipient_unwrapped_token,
    )
    return SingleSignerUnwrapResult(
        instructions=[ix],
        recipient_unwrapped_token=recipient_unwrapped_token,
        amount=amount,
    )


def multisig_offline_sign_wrap(
    payer: SignerLike,
    anchor: RecencyAnchor,
    unwrapped_token_account: Pubkey,
    wrapped_token_program: Pubkey,
    amount: int,
    wrapped_mint: Pubkey,
    wrapped_mint_authority: Pubkey,
    transfer_authority: Pubkey,
    unwrapped_mint: Pubkey,
    recipient_wrapped_token_account: Pubkey,
    unwrapped_token_program: Pubkey,
    multi_signers: Sequence[SignerLike],
    program_id: Pubkey = TOKEN_WRAP_PROGRAM_ID,
) -> PartiallySignedTransaction:
    """Compile the shared wrap template and sign it with whichever signers are local."""
    signers = [as_signer(s) for s in multi_signers]
    ix = build_wrap_ix(
        recipient_wrapped_token_account=recipient_wrapped_token_account,
        wrapped_mint=wrapped_mint,
        wrapped_mint_authority=wrapped_mint_authority,
        unwrapped_token_program=unwrapped_token_program,
        wrapped_token_program=wrapped_token_program,
        unwrapped_token_account=unwrapped_token_account,
        unwrapped_mint=unwrapped_mint,
        unwrapped_escrow=associated_token_address(wrapped_mint_authority, unwrapped_mint, unwrapped_token_program),
        transfer_authority=transfer_authority,
        amount=amount,
        multi_signers=[s.address for s in signers],
        program_id=program_id,
    )
    ptx = build_transaction(payer, anchor, [ix], signers=signers)
    logger.info(
        "multisig_wrap_template amount=%s authority=%s signed=%s missing=%s",
        amount,
        transfer_authority,
        len(ptx.signatures) - len(ptx.missing_signers()),
        len(ptx.missing_signers()),
    )
    return ptx


def multisig_offline_sign_unwrap(
    payer: SignerLike,
    anchor: RecencyAnchor,
    unwrapped_escrow: Pubkey,
    wrapped_token_account: Pubkey,
    amount: int,
    wrapped_mint: Pubkey,
    wrapped_mint_authority: Pubkey,
    unwrapped_mint: Pubkey,
    recipient_unwrapped_token: Pubkey,
    unwrapped_token_program: Pubkey,
    wrapped_token_program: Pubkey,
    transfer_authority: Pubkey,
    multi_signers: Sequence[SignerLike],
    program_id: Pubkey = TOKEN_WRAP_PROGRAM_ID,
) -> PartiallySignedTransaction:
    signers = [as_signer(s) for s in multi_signers]
    ix = build_unwrap_ix(
        unwrapped_escrow=unwrapped_escrow,
        recipient_unwrapped_token=recipient_unwrapped_token,
        wrapped_mint_authority=wrapped_mint_authority,
        unwrapped_mint=unwrapped_mint,
        wrapped_token_program=wrapped_token_program,
        unwrapped_token_program=unwrapped_token_program,
        wrapped_token_account=wrapped_token_account,
        wrapped_mint=wrapped_mint,
        transfer_authority=transfer_authority,
        amount=amount,
        multi_signers=[s.address for s in signers],
        program_id=program_id,
    )
    ptx = build_transaction(payer, anchor, [ix], signers=signers)
    logger.info(
        "multisig_unwrap_template amount=%s authority=%s signed=%s missing=%s",
        amount,
        transfer_authority,
        len(ptx.signatures) - len(ptx.missing_signers()),
        len(ptx.missing_signers()),
    )
    return ptx


async def execute(
    rpc,
    ptx: PartiallySignedTransaction,
    lifetime: Optional[RecencyAnchor] = None,
    commitment: Optional[str] = None,
) -> Signature:
    fst = assert_fully_signed(ptx, lifetime)
    return await rpc.submit_and_confirm(fst, commitment=commitment)


async def execute_instructions(
    rpc,
    payer: SignerLike,
    instructions: Sequence[Instruction],
    signers: Sequence[SignerLike] = (),
    commitment: Optional[str] = None,
    version: Union[int, str] = 0,
) -> Signature:
    """Compile against a fresh blockhash, sign with local keys and submit."""
    anchor = await rpc.get_latest_blockhash()
    ptx = build_transaction(payer, anchor, instructions, signers=signers, version=version)
    signature = await execute(rpc, ptx, anchor, commitment)
    logger.info("instructions_executed count=%s sig=%s", len(instructions), signature)
    return signature
