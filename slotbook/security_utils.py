"""
Security Utilities
Signed OAuth state values and at-rest encryption for third-party tokens
"""

import base64
import hashlib
import logging
from typing import Any, Optional

from cryptography.fernet import Fernet, InvalidToken
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from .config import SECRET_KEY

logger = logging.getLogger(__name__)

OAUTH_STATE_SALT = "calendar-oauth-state"
OAUTH_STATE_MAX_AGE = 600  # 10 minutes to complete the consent screen


# ============================================================================
# SIGNED TOKENS
# ============================================================================


def generate_timed_token(data: dict[str, Any], salt: str = OAUTH_STATE_SALT) -> str:
    """Generate a signed, time-limited token using itsdangerous"""
    serializer = URLSafeTimedSerializer(SECRET_KEY)
    return serializer.dumps(data, salt=salt)


def verify_timed_token(
    token: str, max_age: int = OAUTH_STATE_MAX_AGE, salt: str = OAUTH_STATE_SALT
) -> Optional[dict[str, Any]]:
    """
    Verify and decode a timed token

    Returns:
        Decoded data if valid, None if invalid or expired
    """
    serializer = URLSafeTimedSerializer(SECRET_KEY)
    try:
        return serializer.loads(token, salt=salt, max_age=max_age)
    except SignatureExpired:
        logger.warning("Token expired")
        return None
    except BadSignature:
        logger.warning("Invalid token signature")
        return None


# ============================================================================
# TOKEN ENCRYPTION
# ============================================================================


def _cipher() -> Fernet:
    return Fernet(_fernet_key(SECRET_KEY))


def _fernet_key(secret: str) -> bytes:
    """Fernet needs 32 url-safe base64 bytes; derive them from SECRET_KEY"""
    return base64.urlsafe_b64encode(hashlib.sha256(secret.encode()).digest())


def encrypt_token(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return _cipher().encrypt(value.encode()).decode()


def decrypt_token(value: Optional[str]) -> Optional[str]:
    """Decrypt a stored token; raises ValueError when the ciphertext is unusable"""
    if value is None:
        return None
    try:
        return _cipher().decrypt(value.encode()).decode()
    except InvalidToken as e:
        raise ValueError("Stored token could not be decrypted") from e
