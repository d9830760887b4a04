import pytest

from token_wrap.constants import TOKEN_WRAP_PROGRAM_ID
from token_wrap.errors import ConfigError
from token_wrap.settings import Settings, load_pubkey


def test_defaults(monkeypatch):
    monkeypatch.delenv("HELIUS_RPC_URL", raising=False)
    monkeypatch.delenv("TOKEN_WRAP_PROGRAM_ID", raising=False)
    settings = Settings(_env_file=None)
    assert settings.program_pubkey == TOKEN_WRAP_PROGRAM_ID
    assert settings.commitment == "confirmed"


def test_helius_url_preferred(monkeypatch):
    monkeypatch.setenv("SOLANA_RPC", "http://localhost:8899")
    monkeypatch.setenv("HELIUS_RPC_URL", "https://rpc.example")
    assert Settings(_env_file=None).rpc_url == "https://rpc.example"
    monkeypatch.setenv("HELIUS_RPC_URL", "")
    assert Settings(_env_file=None).rpc_url == "http://localhost:8899"


def test_bad_program_id(monkeypatch):
    monkeypatch.setenv("TOKEN_WRAP_PROGRAM_ID", "not-a-key")
    with pytest.raises(ConfigError):
        Settings(_env_file=None).program_pubkey


def test_load_pubkey_requires_value():
    with pytest.raises(ConfigError):
        load_pubkey("PAYER", "")
