from datetime import timedelta

import pytest
from cryptography.fernet import Fernet, InvalidToken

import config
from auth.security import (
    create_access_token, decode_access_token, decrypt_data, encrypt_data,
    get_encryption_key, get_password_hash, validate_password, verify_password
)
from core.exceptions import ConfigurationError
from jose import jwt


@pytest.mark.parametrize("plaintext", ["", "Student reported exam stress.", "Zoë – 睡眠 ✓"])
def test_encrypt_round_trip(plaintext):
    ciphertext = encrypt_data(plaintext)
    assert ciphertext != plaintext or plaintext == ""
    assert decrypt_data(ciphertext) == plaintext


def test_encryption_is_not_deterministic():
    assert encrypt_data("same") != encrypt_data("same")


def test_decrypting_garbage_raises():
    with pytest.raises(InvalidToken):
        decrypt_data("not-a-fernet-token")


def test_ciphertext_from_another_key_is_rejected():
    foreign = Fernet(Fernet.generate_key()).encrypt(b"secret").decode()
    with pytest.raises(InvalidToken):
        decrypt_data(foreign)


def test_missing_encryption_key_is_fatal(monkeypatch):
    monkeypatch.setattr(config, "ENCRYPTION_KEY", None)
    with pytest.raises(ConfigurationError):
        get_encryption_key()
    with pytest.raises(ConfigurationError):
        encrypt_data("notes")


def test_fernet_key_is_used_as_is(monkeypatch):
    key = Fernet.generate_key().decode()
    monkeypatch.setattr(config, "ENCRYPTION_KEY", key)
    assert get_encryption_key() == key.encode()


@pytest.mark.parametrize("password, ok", [
    ("Passw0rdX", True),
    ("", False),
    ("Sh0rt", False),
    ("alllowercase1", False),
    ("NoNumbersHere", False),
    ("A1" + "b" * 71, False),
])
def test_validate_password(password, ok):
    is_valid, error = validate_password(password)
    assert is_valid is ok
    assert (error is None) is ok


def test_hash_and_verify():
    hashed = get_password_hash("Passw0rdX")
    assert hashed != "Passw0rdX"
    assert verify_password("Passw0rdX", hashed)
    assert not verify_password("passw0rdx", hashed)


def test_hash_rejects_more_than_72_bytes():
    with pytest.raises(ValueError):
        get_password_hash("A1" + "x" * 71)


def test_access_token_round_trip():
    token = create_access_token({"sub": "7", "role": "student"}, "k1")
    payload = decode_access_token(token, "k1")
    assert payload["sub"] == "7"
    assert payload["role"] == "student"
    assert payload["type"] == "access"


def test_token_with_wrong_secret_is_rejected():
    token = create_access_token({"sub": "7"}, "k1")
    assert decode_access_token(token, "k2") is None


def test_expired_token_is_rejected():
    token = create_access_token({"sub": "7"}, "k1", expires_delta=timedelta(seconds=-5))
    assert decode_access_token(token, "k1") is None


def test_non_access_token_is_rejected():
    token = jwt.encode({"sub": "7", "type": "refresh"}, "k1", algorithm=config.ALGORITHM)
    assert decode_access_token(token, "k1") is None


def test_over_long_password_never_verifies():
    hashed = get_password_hash("Passw0rdX")
    assert verify_password("Passw0rdX" + "x" * 80, hashed) is False
