"""
Security utilities for authentication and authorization.
Includes password hashing, JWT access tokens and note encryption.
"""
from datetime import timedelta
from typing import Optional, Dict, Any, Tuple
from jose import JWTError, jwt
from passlib.context import CryptContext
import bcrypt
from fastapi.security import HTTPBearer
from cryptography.fernet import Fernet, InvalidToken
import hashlib
import base64
import binascii

from core.exceptions import ConfigurationError
from core.logger import logger
from core.utils import utcnow
import config

# Password hashing
# Configure to avoid wrap bug detection issues
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__ident="2b",  # Use bcrypt 2b identifier
    bcrypt__rounds=12  # Standard rounds
)

# JWT settings
SECRET_KEY_ALGORITHM = config.ALGORITHM

# Security schemes
security = HTTPBearer()

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_BYTES = 72  # bcrypt limit


# Encryption utilities
def get_encryption_key() -> bytes:
    """
    Get the Fernet key from config.

    Accepts a urlsafe-base64 Fernet key; any other string (e.g. a hex secret)
    is stretched to 32 bytes with SHA-256.

    Raises:
        ConfigurationError: If ENCRYPTION_KEY is not set
    """
    encryption_key = getattr(config, 'ENCRYPTION_KEY', None)
    if not encryption_key:
        raise ConfigurationError("ENCRYPTION_KEY is not set; counseling notes cannot be encrypted")

    if isinstance(encryption_key, bytes):
        encryption_key = encryption_key.decode()

    try:
        key_bytes = base64.urlsafe_b64decode(encryption_key.encode())
    except (binascii.Error, ValueError):
        key_bytes = b""

    if len(key_bytes) != 32:
        key_bytes = hashlib.sha256(encryption_key.encode()).digest()

    return base64.urlsafe_b64encode(key_bytes)


def encrypt_data(data: str) -> str:
    """
    Encrypt sensitive data using Fernet symmetric encryption.

    Args:
        data: Data to encrypt

    Returns:
        Encrypted string (base64)
    """
    f = Fernet(get_encryption_key())
    return f.encrypt(data.encode("utf-8")).decode()


def decrypt_data(encrypted_data: str) -> str:
    """
    Decrypt data using Fernet symmetric encryption.

    Args:
        encrypted_data: Encrypted string (base64)

    Returns:
        Decrypted string
    """
    f = Fernet(get_encryption_key())
    try:
        decrypted = f.decrypt(encrypted_data.encode())
    except InvalidToken:
        logger.error("Decryption error: ciphertext invalid or encrypted with a different key")
        raise
    return decrypted.decode("utf-8")


# Password utilities
def validate_password(password: str) -> Tuple[bool, Optional[str]]:
    """
    Validate password strength.

    Requirements:
    - Minimum 8 characters
    - At least 1 number
    - At least 1 uppercase letter
    - Maximum 72 bytes (bcrypt limit)

    Args:
        password: Password to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not password:
        return False, "Password is required"

    if len(password) < PASSWORD_MIN_LENGTH:
        return False, f"Password must be at least {PASSWORD_MIN_LENGTH} characters long."

    if len(password.encode('utf-8')) > PASSWORD_MAX_BYTES:
        return False, "Password cannot be longer than 72 bytes. Please use a shorter password."

    if not any(char.isdigit() for char in password):
        return False, "Password must contain a number."

    if not any(char.isupper() for char in password):
        return False, "Password must contain an uppercase letter."

    return True, None


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash. Over-long passwords never match."""
    password_bytes = plain_password.encode('utf-8')
    # get_password_hash refuses these, so no stored hash can match
    if len(password_bytes) > PASSWORD_MAX_BYTES:
        return False

    try:
        # Try direct bcrypt first
        return bcrypt.checkpw(password_bytes, hashed_password.encode('utf-8'))
    except ValueError:
        # Fallback to passlib (e.g. hashes with a non-2b ident)
        return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt.

    Note: Password validation should be done before calling this function.
    Use validate_password() to check password requirements.
    """
    password_bytes = password.encode('utf-8')
    if len(password_bytes) > PASSWORD_MAX_BYTES:
        raise ValueError("Password cannot be longer than 72 bytes. Please use a shorter password.")

    # Use bcrypt directly to avoid passlib initialization issues
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(password_bytes, salt).decode('utf-8')


# JWT Token utilities
def create_access_token(
    data: Dict[str, Any],
    secret_key: str,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a JWT access token.

    Args:
        data: Data to encode in token
        secret_key: Secret key for signing
        expires_delta: Optional expiration time

    Returns:
        Encoded JWT token
    """
    to_encode = data.copy()
    now = utcnow()
    if expires_delta:
        expire = now + expires_delta
    else:
        expire = now + timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({
        "exp": expire,
        "iat": now,
        "type": "access"
    })
    return jwt.encode(to_encode, secret_key, algorithm=SECRET_KEY_ALGORITHM)


def decode_access_token(token: str, secret_key: str) -> Optional[Dict[str, Any]]:
    """
    Decode and verify a JWT access token.

    Args:
        token: JWT token string
        secret_key: Secret key for verification

    Returns:
        Decoded token data or None if invalid
    """
    try:
        payload = jwt.decode(token, secret_key, algorithms=[SECRET_KEY_ALGORITHM])
        if payload.get("type") != "access":
            return None
        return payload
    except JWTError:
        return None
