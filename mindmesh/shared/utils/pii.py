"""PII handling for pipeline logs.

User identifiers and message text never appear raw in log records.
Every component logs ``user_id_hash`` produced here instead.
"""
import hashlib
import logging
from typing import Optional

logger = logging.getLogger(__name__)


# Loaded from PII_HASH_SALT by the pipeline wiring at startup
_PII_SALT: Optional[str] = None


def configure_pii_salt(salt: str) -> None:
    """Configure the salt used for hashing user identifiers.

    Must be called once during startup, before the first pipeline call.

    Args:
        salt: Secret salt value (at least 32 characters)

    Raises:
        ValueError: If salt is empty or too short
    """
    global _PII_SALT
    if not salt or len(salt) < 32:
        logger.critical(
            "PII_SALT_CONFIGURATION_FAILED",
            extra={"reason": "Salt too short or empty", "min_length": 32}
        )
        raise ValueError("PII salt must be at least 32 characters")

    _PII_SALT = salt
    logger.info("PII_SALT_CONFIGURED", extra={"salt_length": len(salt)})


def is_pii_salt_configured() -> bool:
    """Whether configure_pii_salt() has been called."""
    return _PII_SALT is not None


def hash_pii(value: str) -> str:
    """Hash a user identifier for safe logging.

    Uses SHA-256 with the configured salt, so the same user always maps
    to the same hash without the hash being reversible.

    Args:
        value: The identifier to hash

    Returns:
        64-char hex digest

    Raises:
        RuntimeError: If the salt has not been configured
    """
    if _PII_SALT is None:
        logger.critical(
            "PII_HASH_FAILED",
            extra={"reason": "Salt not configured", "action": "call configure_pii_salt()"}
        )
        raise RuntimeError("PII salt not configured. Call configure_pii_salt() first.")

    salted = f"{_PII_SALT}{value}"
    return hashlib.sha256(salted.encode()).hexdigest()


def hash_text_for_audit(text: str) -> str:
    """Fingerprint message text so logs can reference it without content."""
    return hashlib.sha256(text.encode()).hexdigest()
