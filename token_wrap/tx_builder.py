import base64
from enum import IntEnum
from typing import List, Optional, Sequence

from borsh_construct import Bool, CStruct, U64
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from spl.token.instructions import create_associated_token_account, create_idempotent_associated_token_account

from .constants import (
    SYS_PROGRAM_ID,
    TOKEN_2022_PROGRAM_ID,
    TOKEN_WRAP_PROGRAM_ID,
    U64_MAX,
)
from .errors import InvalidInstructionArgs


class TokenWrapInstruction(IntEnum):
    CreateMint = 0
    Wrap = 1
    Unwrap = 2
    CloseStuckEscrow = 3


CreateMintLayout = CStruct("idempotent" / Bool)
AmountLayout = CStruct("amount" / U64)


def check_amount(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidInstructionArgs(f"Amount must be an integer, got {type(amount).__name__}")
    if amount < 0:
        raise InvalidInstructionArgs(f"Amount must not be negative: {amount}")
    if amount > U64_MAX:
        raise InvalidInstructionArgs(f"Amount does not fit in u64: {amount}")
    return amount


def encode_create_mint(idempotent: bool) -> bytes:
    return bytes([TokenWrapInstruction.CreateMint]) + CreateMintLayout.build({"idempotent": bool(idempotent)})


def encode_wrap(amount: int) -> bytes:
    return bytes([TokenWrapInstruction.Wrap]) + AmountLayout.build({"amount": check_amount(amount)})


def encode_unwrap(amount: int) -> bytes:
    return bytes([TokenWrapInstruction.Unwrap]) + AmountLayout.build({"amount": check_amount(amount)})


def encode_close_stuck_escrow() -> bytes:
    return bytes([TokenWrapInstruction.CloseStuckEscrow])


def decode_instruction_data(data: bytes) -> dict:
    """Inverse of the encoders above, for inspecting a compiled template before signing it."""
    if not data:
        raise InvalidInstructionArgs("Instruction data is empty")
    tag, rest = data[0], bytes(data[1:])
    try:
        kind = TokenWrapInstruction(tag)
    except ValueError as exc:
        raise InvalidInstructionArgs(f"Unknown instruction discriminator {tag}") from exc
    if kind is TokenWrapInstruction.CreateMint:
        if len(rest) != 1:
            raise InvalidInstructionArgs("CreateMint expects exactly one argument byte")
        return {"instruction": kind.name, "idempotent": rest[0] != 0}
    if kind is TokenWrapInstruction.CloseStuckEscrow:
        if rest:
            raise InvalidInstructionArgs("CloseStuckEscrow takes no arguments")
        return {"instruction": kind.name}
    if len(rest) != 8:
        raise InvalidInstructionArgs(f"{kind.name} expects an 8-byte amount, got {len(rest)} bytes")
    return {"instruction": kind.name, "amount": AmountLayout.parse(rest).amount}


def multisig_metas(multi_signers: Optional[Sequence[Pubkey]]) -> List[AccountMeta]:
    return [AccountMeta(pubkey=signer, is_signer=True, is_writable=False) for signer in multi_signers or []]


def authority_signs_itself(multi_signers: Optional[Sequence[Pubkey]], override: Optional[bool]) -> bool:
    # A multisig account has no key of its own; its members sign instead.
    if override is not None:
        return override
    return not multi_signers


def build_create_mint_ix(
    wrapped_mint: Pubkey,
    backpointer: Pubkey,
    unwrapped_mint: Pubkey,
    wrapped_token_program: Pubkey,
    idempotent: bool = False,
    system_program: Pubkey = SYS_PROGRAM_ID,
    program_id: Pubkey = TOKEN_WRAP_PROGRAM_ID,
) -> Instruction:
    accounts = [
        AccountMeta(pubkey=wrapped_mint, is_signer=False, is_writable=True),
        AccountMeta(pubkey=backpointer, is_signer=False, is_writable=True),
        AccountMeta(pubkey=unwrapped_mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=system_program, is_signer=False, is_writable=False),
        AccountMeta(pubkey=wrapped_token_program, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id=program_id, data=encode_create_mint(idempotent), accounts=accounts)


def build_wrap_ix(
    recipient_wrapped_token_account: Pubkey,
    wrapped_mint: Pubkey,
    wrapped_mint_authority: Pubkey,
    unwrapped_token_program: Pubkey,
    wrapped_token_program: Pubkey,
    unwrapped_token_account: Pubkey,
    unwrapped_mint: Pubkey,
    unwrapped_escrow: Pubkey,
    transfer_authority: Pubkey,
    amount: int,
    multi_signers: Optional[Sequence[Pubkey]] = None,
    transfer_authority_is_signer: Optional[bool] = None,
    program_id: Pubkey = TOKEN_WRAP_PROGRAM_ID,
) -> Instruction:
    data = encode_wrap(amount)
    authority_signs = authority_signs_itself(multi_signers, transfer_authority_is_signer)
    # Positional order is what the program reads; multisig members trail the authority.
    accounts = [
        AccountMeta(pubkey=recipient_wrapped_token_account, is_signer=False, is_writable=True),
        AccountMeta(pubkey=wrapped_mint, is_signer=False, is_writable=True),
        AccountMeta(pubkey=wrapped_mint_authority, is_signer=False, is_writable=False),
        AccountMeta(pubkey=unwrapped_token_program, is_signer=False, is_writable=False),
        AccountMeta(pubkey=wrapped_token_program, is_signer=False, is_writable=False),
        AccountMeta(pubkey=unwrapped_token_account, is_signer=False, is_writable=True),
        AccountMeta(pubkey=unwrapped_mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=unwrapped_escrow, is_signer=False, is_writable=True),
        AccountMeta(pubkey=transfer_authority, is_signer=authority_signs, is_writable=False),
    ]
    accounts.extend(multisig_metas(multi_signers))
    return Instruction(program_id=program_id, data=data, accounts=accounts)


def build_unwrap_ix(
    unwrapped_escrow: Pubkey,
    recipient_unwrapped_token: Pubkey,
    wrapped_mint_authority: Pubkey,
    unwrapped_mint: Pubkey,
    wrapped_token_program: Pubkey,
    unwrapped_token_program: Pubkey,
    wrapped_token_account: Pubkey,
    wrapped_mint: Pubkey,
    transfer_authority: Pubkey,
    amount: int,
    multi_signers: Optional[Sequence[Pubkey]] = None,
    transfer_authority_is_signer: Optional[bool] = None,
    program_id: Pubkey = TOKEN_WRAP_PROGRAM_ID,
) -> Instruction:
    data = encode_unwrap(amount)
    authority_signs = authority_signs_itself(multi_signers, transfer_authority_is_signer)
    accounts = [
        AccountMeta(pubkey=unwrapped_escrow, is_signer=False, is_writable=True),
        AccountMeta(pubkey=recipient_unwrapped_token, is_signer=False, is_writable=True),
        AccountMeta(pubkey=wrapped_mint_authority, is_signer=False, is_writable=False),
        AccountMeta(pubkey=unwrapped_mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=wrapped_token_program, is_signer=False, is_writable=False),
        AccountMeta(pubkey=unwrapped_token_program, is_signer=False, is_writable=False),
        AccountMeta(pubkey=wrapped_token_account, is_signer=False, is_writable=True),
        AccountMeta(pubkey=wrapped_mint, is_signer=False, is_writable=True),
        AccountMeta(pubkey=transfer_authority, is_signer=authority_signs, is_writable=False),
    ]
    accounts.extend(multisig_metas(multi_signers))
    return Instruction(program_id=program_id, data=data, accounts=accounts)


def build_close_stuck_escrow_ix(
    escrow: Pubkey,
    destination: Pubkey,
    unwrapped_mint: Pubkey,
    wrapped_mint: Pubkey,
    wrapped_mint_authority: Pubkey,
    program_id: Pubkey = TOKEN_WRAP_PROGRAM_ID,
) -> Instruction:
    # Only token-2022 escrows can get stuck (extensions added after creation).
    accounts = [
        AccountMeta(pubkey=escrow, is_signer=False, is_writable=True),
        AccountMeta(pubkey=destination, is_signer=False, is_writable=True),
        AccountMeta(pubkey=unwrapped_mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=wrapped_mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=wrapped_mint_authority, is_signer=False, is_writable=False),
        AccountMeta(pubkey=TOKEN_2022_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id=program_id, data=encode_close_stuck_escrow(), accounts=accounts)


def build_system_transfer_ix(sender: Pubkey, recipient: Pubkey, lamports: int) -> Instruction:
    # SystemProgram transfer: instruction = 2 (u32 LE) + lamports (u64 LE)
    data = (2).to_bytes(4, "little") + check_amount(lamports).to_bytes(8, "little")
    accounts = [
        AccountMeta(pubkey=sender, is_signer=True, is_writable=True),
        AccountMeta(pubkey=recipient, is_signer=False, is_writable=True),
    ]
    return Instruction(program_id=SYS_PROGRAM_ID, data=data, accounts=accounts)


def build_create_associated_token_account_ix(
    payer: Pubkey,
    owner: Pubkey,
    mint: Pubkey,
    token_program: Pubkey,
    idempotent: bool = True,
) -> Instruction:
    try:
        if idempotent:
            return create_idempotent_associated_token_account(payer, owner, mint, token_program)
        return create_associated_token_account(payer=payer, owner=owner, mint=mint, token_program_id=token_program)
    except ValueError as exc:
        raise InvalidInstructionArgs(str(exc)) from exc


def instruction_to_dict(ix: Instruction) -> dict:
    return {
        "program_id": str(ix.program_id),
        "keys": [
            {
                "pubkey": str(k.pubkey),
                "is_signer": k.is_signer,
                "is_writable": k.is_writable,
            }
            for k in ix.accounts
        ],
        "data": base64.b64encode(ix.data).decode(),
    }
