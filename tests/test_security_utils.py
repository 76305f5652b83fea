"""Signed OAuth state and token encryption"""

import pytest
from itsdangerous import URLSafeTimedSerializer

from slotbook.security_utils import (
    OAUTH_STATE_SALT,
    decrypt_token,
    encrypt_token,
    generate_timed_token,
    verify_timed_token,
)


def test_state_round_trip():
    token = generate_timed_token({"uid": "firebase-uid-1"})

    assert verify_timed_token(token) == {"uid": "firebase-uid-1"}


def test_state_signed_with_other_key_rejected():
    forged = URLSafeTimedSerializer("another-secret").dumps({"uid": "x"}, salt=OAUTH_STATE_SALT)

    assert verify_timed_token(forged) is None


def test_expired_state_rejected():
    token = generate_timed_token({"uid": "firebase-uid-1"})

    assert verify_timed_token(token, max_age=-1) is None


def test_encrypted_token_is_not_plaintext():
    encrypted = encrypt_token("ya29.access-token")

    assert encrypted != "ya29.access-token"
    assert decrypt_token(encrypted) == "ya29.access-token"


def test_none_passes_through():
    assert encrypt_token(None) is None
    assert decrypt_token(None) is None


def test_garbage_ciphertext_raises_value_error():
    with pytest.raises(ValueError):
        decrypt_token("not-a-fernet-token")
