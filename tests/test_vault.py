import base64

import pytest

from portfolio_sync.brokers.core import AuthenticationError, ConfigurationError
from portfolio_sync.security import SecretVault, generate_key


def test_encrypt_decrypt_round_trip(vault):
    blob = vault.encrypt("my-secret-token")
    assert blob != "my-secret-token"
    assert vault.decrypt(blob) == "my-secret-token"


def test_encrypt_uses_fresh_nonce(vault):
    assert vault.encrypt("same") != vault.encrypt("same")


def test_blob_layout_is_nonce_then_ciphertext(vault):
    raw = base64.b64decode(vault.encrypt("abc"))
    # 12-byte nonce + 3-byte ciphertext + 16-byte tag
    assert len(raw) == 12 + 3 + 16


def test_wrong_key_raises_authentication_error(vault):
    blob = vault.encrypt("secret")
    other = SecretVault.from_base64(generate_key())
    with pytest.raises(AuthenticationError):
        other.decrypt(blob)


def test_tampered_blob_raises_authentication_error(vault):
    raw = bytearray(base64.b64decode(vault.encrypt("secret")))
    raw[-1] ^= 0x01
    with pytest.raises(AuthenticationError):
        vault.decrypt(base64.b64encode(bytes(raw)).decode())


@pytest.mark.parametrize("blob", ["not base64 !!", base64.b64encode(b"short").decode()])
def test_malformed_blob_raises_authentication_error(vault, blob):
    with pytest.raises(AuthenticationError):
        vault.decrypt(blob)


def test_missing_key_fails_fast():
    with pytest.raises(ConfigurationError, match="ENCRYPTION_KEY not set"):
        SecretVault.from_base64(None)


def test_wrong_key_length_fails_fast():
    with pytest.raises(ConfigurationError):
        SecretVault.from_base64(base64.b64encode(b"too short").decode())


def test_from_env(monkeypatch):
    monkeypatch.setenv("ENCRYPTION_KEY", generate_key())
    vault = SecretVault.from_env()
    assert vault.decrypt(vault.encrypt("x")) == "x"


def test_generated_key_is_256_bits():
    assert len(base64.b64decode(generate_key())) == 32
