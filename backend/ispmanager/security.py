"""Password hashing and at-rest encryption of device credentials."""

from __future__ import annotations

import base64
import hashlib
import secrets
import string
from typing import Optional

import bcrypt
from cryptography.fernet import Fernet, InvalidToken
from flask import current_app

TEMP_PASSWORD_ALPHABET = string.ascii_letters + string.digits


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def generate_temp_password(length: int = 8) -> str:
    return ''.join(secrets.choice(TEMP_PASSWORD_ALPHABET) for _ in range(length))


def _fernet() -> Fernet:
    key = current_app.config.get('ENCRYPTION_KEY')
    if not key:
        # Development fallback: derive a stable key from SECRET_KEY.
        digest = hashlib.sha256(str(current_app.config['SECRET_KEY']).encode('utf-8')).digest()
        key = base64.urlsafe_b64encode(digest)
    return Fernet(key)


def encrypt_secret(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return _fernet().encrypt(str(value).encode('utf-8')).decode('utf-8')


def decrypt_secret(token: Optional[str]) -> Optional[str]:
    """Decrypt a stored credential. Raises ValueError if the key does not match."""
    if token is None:
        return None
    try:
        return _fernet().decrypt(token.encode('utf-8')).decode('utf-8')
    except InvalidToken as exc:
        raise ValueError('Stored credential cannot be decrypted with ENCRYPTION_KEY') from exc
