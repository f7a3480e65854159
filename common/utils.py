"""Shared utility functions used across all apps."""

import logging
import os
import secrets
import time
import uuid
from contextlib import contextmanager

SLUG_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"

# Snowflake-style layout: 41 bits of milliseconds since the epoch below,
# followed by 22 random bits.
SNOWFLAKE_EPOCH_MS = 1_704_067_200_000  # 2024-01-01T00:00:00Z
SNOWFLAKE_RANDOM_BITS = 22


def uuid7():
    """
    Generate a time-ordered UUID (version 7, RFC 9562).

    48 bits of Unix milliseconds, then 74 random bits, with the version
    and variant fields set.
    """
    unix_ms = time.time_ns() // 1_000_000
    rand = int.from_bytes(os.urandom(10), "big")
    value = (unix_ms & 0xFFFF_FFFF_FFFF) << 80
    value |= 0x7 << 76
    value |= ((rand >> 62) & 0xFFF) << 64
    value |= 0b10 << 62
    value |= rand & 0x3FFF_FFFF_FFFF_FFFF
    return uuid.UUID(int=value)


def generate_slug(length=6):
    """
    Generate a short, URL-safe public slug.

    Args:
        length: Number of characters (lowercase letters and digits).

    Returns:
        String like "k3x9qa"
    """
    return "".join(secrets.choice(SLUG_ALPHABET) for _ in range(length))


def generate_snowflake_id():
    """
    Generate a large, roughly time-ordered numeric identifier.

    Returns:
        Decimal string like "1967250126495744311"
    """
    elapsed_ms = max(0, time.time_ns() // 1_000_000 - SNOWFLAKE_EPOCH_MS)
    value = (elapsed_ms << SNOWFLAKE_RANDOM_BITS) | secrets.randbits(
        SNOWFLAKE_RANDOM_BITS
    )
    return str(value)


@contextmanager
def safe_dispatch(operation_name, logger=None):
    """
    Context manager for operations that should never raise.

    Use around push notifications, best-effort cleanup, and other
    side-effects that must not break the main operation.

    Usage::

        with safe_dispatch("publish upload progress", logger):
            channel.publish(f"upload-{session_id}", "progress", payload)
    """
    _logger = logger or logging.getLogger("linkdrop.dispatch")
    try:
        yield
    except Exception as e:
        _logger.error("Failed to %s: %s", operation_name, e)
