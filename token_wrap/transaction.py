"""
Transaction templates for offline signing.

A template is compiled from (version, fee payer, recency anchor, instructions)
and nothing else, so every party that builds it from the same inputs gets the
same message bytes. Signatures are kept in a map keyed by the message's
required signers, in the order the compiled message lists them.
"""
from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel
from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import Message, MessageV0, from_bytes_versioned, to_bytes_versioned
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from .errors import InvalidSignature, MissingSignatures, PayloadError, SignerNotRequired
from .signers import Concrete, SignerLike, as_signer, parse_signer_pair

logger = logging.getLogger("token_wrap.transaction")

SignatureMap = Dict[Pubkey, Optional[Signature]]
CompiledMessage = Union[MessageV0, Message]


@dataclass(frozen=True)
class RecencyAnchor:
    blockhash: Hash
    last_valid_block_height: int

    @classmethod
    def from_strings(cls, blockhash: str, last_valid_block_height: int) -> "RecencyAnchor":
        return cls(Hash.from_string(blockhash), int(last_valid_block_height))


def compile_message(
    fee_payer: Pubkey,
    anchor: RecencyAnchor,
    instructions: Sequence[Instruction],
    version: Union[int, str] = 0,
) -> CompiledMessage:
    if version == 0:
        return MessageV0.try_compile(fee_payer, list(instructions), [], anchor.blockhash)
    if version == "legacy":
        return Message.new_with_blockhash(list(instructions), fee_payer, anchor.blockhash)
    raise ValueError(f"Unsupported message version {version!r}")


def message_to_bytes(message: CompiledMessage) -> bytes:
    return to_bytes_versioned(message)


def required_signers(message: CompiledMessage) -> List[Pubkey]:
    return list(message.account_keys[: message.header.num_required_signatures])


@dataclass(frozen=True)
class PartiallySignedTransaction:
    message_bytes: bytes
    signatures: SignatureMap

    def __post_init__(self):
        try:
            expected = required_signers(self.message)
        except Exception as exc:  # noqa: BLE001
            raise PayloadError(f"Unreadable transaction message: {exc}") from exc
        if list(self.signatures) != expected:
            raise PayloadError("Signature map does not match the message's required signers")

    @property
    def message(self) -> CompiledMessage:
        return from_bytes_versioned(self.message_bytes)

    @property
    def required_signers(self) -> List[Pubkey]:
        return list(self.signatures)

    def missing_signers(self) -> List[Pubkey]:
        return [addr for addr, sig in self.signatures.items() if sig is None]

    @property
    def is_fully_signed(self) -> bool:
        return not self.missing_signers()

    def signer_pairs(self) -> List[str]:
        return [f"{addr}={sig}" for addr, sig in self.signatures.items() if sig is not None]

    def with_signatures(self, updates: Dict[Pubkey, Signature]) -> "PartiallySignedTransaction":
        merged = dict(self.signatures)
        for addr, sig in updates.items():
            if addr not in merged:
                raise SignerNotRequired(addr)
            merged[addr] = sig
        return PartiallySignedTransaction(self.message_bytes, merged)

    def to_versioned_transaction(self) -> VersionedTransaction:
        sigs = [sig if sig is not None else Signature.default() for sig in self.signatures.values()]
        return VersionedTransaction.populate(self.message, sigs)

    @classmethod
    def from_versioned_transaction(cls, tx: VersionedTransaction) -> "PartiallySignedTransaction":
        message = tx.message
        keys = required_signers(message)
        sigs = list(tx.signatures)
        if len(sigs) != len(keys):
            raise PayloadError(f"Transaction carries {len(sigs)} signatures for {len(keys)} signers")
        default = Signature.default()
        return cls(
            message_to_bytes(message),
            {addr: (None if sig == default else sig) for addr, sig in zip(keys, sigs)},
        )

    def to_payload(self) -> "TransactionPayload":
        return TransactionPayload(
            message=base64.b64encode(self.message_bytes).decode(),
            signatures=[
                SignatureEntry(pubkey=str(addr), signature=None if sig is None else str(sig))
                for addr, sig in self.signatures.items()
            ],
        )

    @classmethod
    def from_payload(cls, payload: "TransactionPayload") -> "PartiallySignedTransaction":
        try:
            raw = base64.b64decode(payload.message, validate=True)
            message = from_bytes_versioned(raw)
        except Exception as exc:  # noqa: BLE001
            raise PayloadError(f"Unreadable transaction message: {exc}") from exc
        try:
            entries: List[Tuple[Pubkey, Optional[Signature]]] = [
                (
                    Pubkey.from_string(entry.pubkey),
                    None if entry.signature is None else Signature.from_string(entry.signature),
                )
                for entry in payload.signatures
            ]
        except Exception as exc:  # noqa: BLE001
            raise PayloadError(f"Unreadable signature entry: {exc}") from exc
        if len({addr for addr, _ in entries}) != len(entries):
            raise PayloadError("Signature map lists a signer more than once")
        return cls(raw, dict(entries))

    def to_json(self) -> str:
        return self.to_payload().model_dump_json()

    @classmethod
    def from_json(cls, raw: Union[str, bytes]) -> "PartiallySignedTransaction":
        try:
            payload = TransactionPayload.model_validate_json(raw)
        except Exception as exc:  # noqa: BLE001
            raise PayloadError(f"Invalid transaction payload: {exc}") from exc
        return cls.from_payload(payload)


@dataclass(frozen=True)
class FullySignedTransaction:
    message_bytes: bytes
    signatures: Dict[Pubkey, Signature]
    lifetime: Optional[RecencyAnchor] = None

    @property
    def message(self) -> CompiledMessage:
        return from_bytes_versioned(self.message_bytes)

    @property
    def signature(self) -> Signature:
        # The fee payer's signature identifies the transaction.
        return next(iter(self.signatures.values()))

    def to_versioned_transaction(self) -> VersionedTransaction:
        return VersionedTransaction.populate(self.message, list(self.signatures.values()))

    def to_bytes(self) -> bytes:
        return bytes(self.to_versioned_transaction())


class SignatureEntry(BaseModel):
    pubkey: str
    signature: Optional[str] = None


class TransactionPayload(BaseModel):
    """Wire form exchanged between offline signers."""

    message: str
    signatures: List[SignatureEntry]


def build_transaction(
    fee_payer: SignerLike,
    anchor: RecencyAnchor,
    instructions: Sequence[Instruction],
    signers: Iterable[SignerLike] = (),
    version: Union[int, str] = 0,
) -> PartiallySignedTransaction:
    """
    Compile a message and sign it with whichever concrete signers are present.

    Placeholders only contribute their address; their slots stay empty until
    the owner's signature is merged in.
    """
    payer = as_signer(fee_payer)
    message = compile_message(payer.address, anchor, instructions, version)
    raw = message_to_bytes(message)
    required = required_signers(message)

    available: Dict[Pubkey, Concrete] = {}
    for signer in [payer, *(as_signer(s) for s in signers)]:
        if signer.address not in required:
            raise SignerNotRequired(signer.address)
        if isinstance(signer, Concrete):
            available.setdefault(signer.address, signer)

    signatures: SignatureMap = {}
    for addr in required:
        signer = available.get(addr)
        signatures[addr] = signer.sign(raw) if signer is not None else None

    ptx = PartiallySignedTransaction(raw, signatures)
    logger.debug(
        "transaction_built payer=%s required=%s signed=%s",
        payer.address,
        len(required),
        len(required) - len(ptx.missing_signers()),
    )
    return ptx


def apply_signatures(
    ptx: PartiallySignedTransaction,
    pairs: Iterable[Union[str, Tuple[Pubkey, Signature]]],
) -> PartiallySignedTransaction:
    """Attach signatures produced elsewhere (`PUBKEY=SIGNATURE` strings or pairs), verifying each."""
    updates: Dict[Pubkey, Signature] = {}
    for pair in pairs:
        addr, sig = parse_signer_pair(pair) if isinstance(pair, str) else pair
        if addr not in ptx.signatures:
            raise SignerNotRequired(addr)
        if not sig.verify(addr, ptx.message_bytes):
            raise InvalidSignature(addr)
        updates[addr] = sig
    return ptx.with_signatures(updates)


def assert_fully_signed(
    ptx: PartiallySignedTransaction, lifetime: Optional[RecencyAnchor] = None
) -> FullySignedTransaction:
    message = ptx.message
    if lifetime is not None and lifetime.blockhash != message.recent_blockhash:
        raise PayloadError(f"Lifetime blockhash {lifetime.blockhash} is not the message's {message.recent_blockhash}")
    # The map can be mutated after construction; the message decides who must sign.
    required = required_signers(message)
    missing = [addr for addr in required if ptx.signatures.get(addr) is None]
    if missing:
        raise MissingSignatures(missing)
    if list(ptx.signatures) != required:
        raise PayloadError("Signature map does not match the message's required signers")
    return FullySignedTransaction(
        ptx.message_bytes,
        {addr: ptx.signatures[addr] for addr in required},
        lifetime,
    )
