"""API key helpers for resolving the acting identity.

This module provides stateless utility functions for API key generation,
hashing, and verification. Key storage lives in database.py and the request
dependency that turns a bearer key into a username lives in dependencies.py.

Key format: user_{username}_{random_hex_16}
    Example: user_justinclift_a1b2c3d4e5f6a7b8c9d0e1f2a3b4c5d6

Usernames may themselves contain underscores, so the prefix used for lookup
is everything before the final underscore-separated component.
"""

import hashlib
import secrets

import structlog

logger = structlog.get_logger(__name__)

KEY_PREFIX = "user"


def generate_api_key(username: str) -> str:
    """
    Generate a new API key for a user.

    Args:
        username: The user the key authenticates as

    Returns:
        A new API key in the format user_{username}_{random_hex}

    Example:
        >>> key = generate_api_key("alice")
        >>> key.startswith("user_alice_")
        True
        >>> len(key.split("_")[-1]) == 32  # 16 bytes = 32 hex chars
        True
    """
    random_hex = secrets.token_hex(16)
    api_key = f"{KEY_PREFIX}_{username}_{random_hex}"

    logger.info(
        "generated_api_key",
        username=username,
        key_prefix=get_key_prefix(api_key),
    )

    return api_key


def hash_key(key: str) -> str:
    """
    Hash an API key using SHA256.

    Never store raw API keys; compare with verify_key_hash().

    Example:
        >>> len(hash_key("user_alice_a1b2c3d4")) == 64
        True
    """
    return hashlib.sha256(key.encode()).hexdigest()


def get_key_prefix(key: str) -> str:
    """
    Extract a safe prefix from an API key for logging and lookup.

    Returns the part of the key before the random component, which is safe
    to log without exposing the secret.

    Example:
        >>> get_key_prefix("user_alice_a1b2c3d4e5f6a7b8")
        'user_alice_...'
        >>> get_key_prefix("user_bob_smith_a1b2c3d4e5f6a7b8")
        'user_bob_smith_...'
    """
    head, sep, _ = key.rpartition("_")
    if sep and head.startswith(f"{KEY_PREFIX}_") and len(head) > len(KEY_PREFIX) + 1:
        return f"{head}_..."

    # Malformed or short keys
    return key[:20] + "..." if len(key) > 20 else key + "..."


def username_from_key(key: str) -> str | None:
    """Return the username embedded in a well-formed key, else None."""
    head, sep, random_part = key.rpartition("_")
    if not sep or not random_part or not head.startswith(f"{KEY_PREFIX}_"):
        return None
    username = head[len(KEY_PREFIX) + 1:]
    return username or None


def verify_key_hash(key: str, key_hash: str) -> bool:
    """
    Verify that a raw API key matches its stored hash.

    Uses a constant-time comparison.

    Example:
        >>> key = "user_alice_a1b2c3d4e5f6a7b8"
        >>> verify_key_hash(key, hash_key(key))
        True
        >>> verify_key_hash("wrong_key", hash_key(key))
        False
    """
    computed_hash = hash_key(key)
    result = secrets.compare_digest(computed_hash, key_hash)

    logger.debug(
        "key_verification",
        key_prefix=get_key_prefix(key),
        verified=result,
    )

    return result
