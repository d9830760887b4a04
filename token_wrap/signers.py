import json
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple, Union

from solders.keypair import Keypair
from solders.presigner import Presigner
from solders.pubkey import Pubkey
from solders.signature import Signature

from .errors import ConfigError


@dataclass(frozen=True, eq=False)
class Concrete:
    """A signer that can produce a signature now (a keypair, or a signature collected earlier)."""

    key: Union[Keypair, Presigner]

    @property
    def address(self) -> Pubkey:
        return self.key.pubkey()

    def sign(self, message_bytes: bytes) -> Signature:
        return self.key.sign_message(message_bytes)


@dataclass(frozen=True)
class Placeholder:
    """Identity only; its signature is supplied later by someone else."""

    address: Pubkey


Signer = Union[Concrete, Placeholder]
SignerLike = Union[Signer, Keypair, Presigner, Pubkey]


def as_signer(value: SignerLike) -> Signer:
    if isinstance(value, (Concrete, Placeholder)):
        return value
    if isinstance(value, (Keypair, Presigner)):
        return Concrete(value)
    if isinstance(value, Pubkey):
        return Placeholder(value)
    raise TypeError(f"Cannot use {type(value).__name__} as a signer")


def load_keypair(path: Union[str, Path]) -> Keypair:
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Keypair file not found: {path}")
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:  # noqa: BLE001
        raise ConfigError(f"Failed to read keypair {path}: {exc}") from exc
    if isinstance(raw, list):
        secret = bytes(raw)
    elif isinstance(raw, dict) and "secretKey" in raw:
        secret = bytes(raw["secretKey"])
    else:
        raise ConfigError("Unsupported keypair file format")
    try:
        return Keypair.from_bytes(secret)
    except Exception as exc:  # noqa: BLE001
        raise ConfigError(f"Failed to parse keypair {path}: {exc}") from exc


def parse_signer_pair(value: str) -> Tuple[Pubkey, Signature]:
    """Parse the `PUBKEY=SIGNATURE` form printed by sign-only runs."""
    pubkey_str, sep, sig_str = value.strip().partition("=")
    if not sep:
        raise ValueError("failed to split `pubkey=signature` pair")
    try:
        pubkey = Pubkey.from_string(pubkey_str)
    except Exception as exc:  # noqa: BLE001
        raise ValueError("Failed to parse pubkey from string") from exc
    try:
        signature = Signature.from_string(sig_str)
    except Exception as exc:  # noqa: BLE001
        raise ValueError("Failed to parse signature from string") from exc
    return pubkey, signature
