import logging
from typing import Optional

from pwdlib import PasswordHash
from pwdlib.exceptions import UnknownHashError
from pwdlib.hashers.bcrypt import BcryptHasher

from shortlink.config import BCRYPT_ROUNDS

logger = logging.getLogger(__name__)

_password_hash = PasswordHash((BcryptHasher(rounds=BCRYPT_ROUNDS),))


def hash_password(plaintext: str, rounds: Optional[int] = None) -> str:
    """Salted bcrypt hash; `rounds` overrides the configured cost factor"""
    if rounds is None:
        return _password_hash.hash(plaintext)
    return PasswordHash((BcryptHasher(rounds=rounds),)).hash(plaintext)


def verify_password(plaintext: str, hashed: Optional[str]) -> bool:
    """Constant-time check of a plaintext against a stored bcrypt hash"""
    if not hashed:
        logger.warning("Password check against an empty stored hash")
        return False
    try:
        return _password_hash.verify(plaintext, hashed)
    except (UnknownHashError, ValueError) as e:
        logger.warning(f"Stored password hash is not a valid bcrypt hash: {e}")
        return False
