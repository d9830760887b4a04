import logging
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings
from solders.pubkey import Pubkey

from .constants import TOKEN_WRAP_PROGRAM_ID
from .errors import ConfigError


class Settings(BaseSettings):
    solana_rpc: str = "https://api.devnet.solana.com"
    helius_rpc_url: str = ""
    token_wrap_program_id: str = str(TOKEN_WRAP_PROGRAM_ID)
    commitment: str = "confirmed"
    skip_preflight: bool = False
    fee_payer_keypair_path: Optional[str] = None
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def rpc_url(self) -> str:
        # Prefer Helius RPC if provided to improve reliability.
        return self.helius_rpc_url or self.solana_rpc

    @property
    def program_pubkey(self) -> Pubkey:
        return load_pubkey("TOKEN_WRAP_PROGRAM_ID", self.token_wrap_program_id)


def load_pubkey(name: str, value: Optional[str]) -> Pubkey:
    if not value:
        raise ConfigError(f"{name} must be set to a valid address")
    try:
        return Pubkey.from_string(value)
    except Exception as exc:  # noqa: BLE001
        raise ConfigError(f"{name} is not a valid pubkey: {exc}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    logging.basicConfig(level=(level or get_settings().log_level).upper())
    return logging.getLogger("token_wrap")
