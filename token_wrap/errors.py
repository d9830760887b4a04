import re
from enum import IntEnum
from typing import Optional, Sequence

from solders.pubkey import Pubkey


class TokenWrapProgramError(IntEnum):
    WrappedMintMismatch = 0
    BackpointerMismatch = 1
    ZeroWrapAmount = 2
    MintAuthorityMismatch = 3
    EscrowOwnerMismatch = 4
    InvalidWrappedMintOwner = 5
    InvalidBackpointerOwner = 6
    EscrowMismatch = 7
    EscrowInGoodState = 8
    UnwrappedMintHasNoMetadata = 9
    MetaplexMetadataMismatch = 10
    MetadataPointerMissing = 11
    MetadataPointerUnset = 12
    MetadataPointerMismatch = 13
    ExternalProgramReturnedNoData = 14
    NoSyncingToToken2022 = 15


_CUSTOM_ERROR_RE = re.compile(r"custom program error: (0x[0-9a-fA-F]+|\d+)")
_INSTRUCTION_ERROR_RE = re.compile(r"Custom\((\d+)\)")


def program_error_from_text(text: str) -> Optional[TokenWrapProgramError]:
    """Find a token wrap custom error code in RPC failure text or program logs."""
    match = _CUSTOM_ERROR_RE.search(text)
    if match:
        code = int(match.group(1), 0)
    else:
        match = _INSTRUCTION_ERROR_RE.search(text)
        if not match:
            return None
        code = int(match.group(1))
    try:
        return TokenWrapProgramError(code)
    except ValueError:
        return None


class TokenWrapClientError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(TokenWrapClientError, RuntimeError):
    pass


class SeedTooLong(TokenWrapClientError, ValueError):
    def __init__(self, message: str, index: Optional[int] = None):
        self.index = index
        super().__init__(message)


class AccountNotFound(TokenWrapClientError, LookupError):
    def __init__(self, address: Pubkey):
        self.address = address
        super().__init__(f"Account {address} not found.")


class DecodeError(TokenWrapClientError, ValueError):
    def __init__(self, address: Optional[Pubkey], reason: str):
        self.address = address
        self.reason = reason
        where = f" {address}" if address is not None else ""
        super().__init__(f"Account{where} is not a valid token account: {reason}")


class InvalidInstructionArgs(TokenWrapClientError, ValueError):
    pass


class SignerNotRequired(TokenWrapClientError, ValueError):
    def __init__(self, address: Pubkey):
        self.address = address
        super().__init__(f"Signer {address} is not required by the transaction message")


class InconsistentMessages(TokenWrapClientError):
    def __init__(self, index: int):
        self.index = index
        super().__init__(
            f"Transaction {index} was compiled from a different message than transaction 0; "
            "discard collected signatures and rebuild from an agreed template"
        )


class MissingSignatures(TokenWrapClientError):
    def __init__(self, addresses: Sequence[Pubkey]):
        self.addresses = list(addresses)
        joined = ", ".join(str(a) for a in self.addresses)
        super().__init__(f"Missing signatures for: {joined}")


class InvalidSignature(TokenWrapClientError):
    def __init__(self, address: Pubkey, index: Optional[int] = None):
        self.address = address
        self.index = index
        where = f" in transaction {index}" if index is not None else ""
        super().__init__(f"Signature for {address}{where} does not verify against the message")


class CoordinatorStateError(TokenWrapClientError, RuntimeError):
    pass


class SubmissionError(TokenWrapClientError):
    def __init__(self, message: str, program_error: Optional[TokenWrapProgramError] = None):
        self.program_error = program_error
        if program_error is not None:
            message = f"{message} ({program_error.name})"
        super().__init__(message)


class PayloadError(TokenWrapClientError, ValueError):
    pass
