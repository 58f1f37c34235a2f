"""Utility functions for ASUSTOR NAS integration."""

from __future__ import annotations

import asyncio
import base64
import binascii
from collections.abc import Awaitable, Callable
import hashlib
import logging
from typing import Any, TypeVar

from cryptography.fernet import Fernet, InvalidToken

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")

ExecutorJob = Callable[..., Awaitable[Any]]


async def async_run_in_executor(target: Callable[..., _T], *args: Any) -> _T:
    """Run a blocking call in the default executor of the running loop."""
    return await asyncio.get_running_loop().run_in_executor(None, target, *args)


def _get_encryption_key(cloud_id: str) -> bytes:
    """Generate a consistent encryption key based on the cloud id."""
    salt = hashlib.sha256(f"asustor_nas_{cloud_id}_salt".encode()).digest()
    key_material = (cloud_id + "asustor_nas").encode() + salt
    key = hashlib.sha256(key_material).digest()
    return base64.urlsafe_b64encode(key)


def encrypt_password(password: str, cloud_id: str) -> str:
    """Encrypt password using Fernet encryption.

    Args:
        password: Plain text password
        cloud_id: NAS cloud id for key generation

    Returns:
        str: Encrypted password (base64 encoded)
    """
    if not password:
        return ""

    key = _get_encryption_key(cloud_id)
    encrypted = Fernet(key).encrypt(password.encode())
    return base64.b64encode(encrypted).decode()


def decrypt_password(encrypted_password: str, cloud_id: str) -> str:
    """Decrypt password using Fernet encryption.

    Args:
        encrypted_password: Encrypted password (base64 encoded)
        cloud_id: NAS cloud id for key generation

    Returns:
        str: Plain text password
    """
    if not encrypted_password:
        return ""

    if not is_encrypted_password(encrypted_password):
        return encrypted_password  # Assume plaintext for backward compatibility

    try:
        key = _get_encryption_key(cloud_id)
        encrypted_bytes = base64.b64decode(encrypted_password.encode())
        return Fernet(key).decrypt(encrypted_bytes).decode()
    except (ValueError, TypeError, binascii.Error, InvalidToken) as e:
        _LOGGER.warning("Failed to decrypt password, using as plaintext: %s", e)
        return encrypted_password


def is_encrypted_password(password: str) -> bool:
    """Check if password appears to be encrypted.

    Args:
        password: Password string to check

    Returns:
        bool: True if password appears encrypted
    """
    try:
        base64.b64decode(password.encode(), validate=True)
    except (ValueError, TypeError, binascii.Error):
        return False
    return len(password) > 50  # Encrypted passwords are typically longer
