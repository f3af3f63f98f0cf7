"""
Operator Keypair Loading
========================
Accepts a keypair file (Solana CLI JSON byte array, or a base58 secret on one
line) or a raw base58 secret string.
"""

import json
import os

import base58
from solders.keypair import Keypair

from kora_reclaim.shared.errors import KeypairError


def _from_secret_bytes(secret: bytes) -> Keypair:
    if len(secret) != 64:
        raise ValueError(f"expected 64 secret key bytes, got {len(secret)}")
    return Keypair.from_bytes(secret)


def load_keypair(path_or_key: str) -> Keypair:
    """
    Raises:
        KeypairError: when neither a readable file nor a valid base58 secret
    """
    if not path_or_key:
        raise KeypairError("No operator keypair configured")

    if os.path.exists(path_or_key):
        with open(path_or_key, "r", encoding="utf-8") as f:
            content = f.read().strip()
        try:
            parsed = json.loads(content)
        except ValueError:
            parsed = None
        try:
            if isinstance(parsed, list):
                return _from_secret_bytes(bytes(parsed))
            return _from_secret_bytes(base58.b58decode(content))
        except (ValueError, TypeError) as e:
            raise KeypairError(f"Invalid keypair format in file: {path_or_key}") from e

    try:
        return _from_secret_bytes(base58.b58decode(path_or_key.strip()))
    except ValueError as e:
        raise KeypairError("Invalid keypair: not a valid file path or base58 string") from e
