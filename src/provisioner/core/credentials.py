"""Random credential generation for database passwords, keys and admin logins."""

from __future__ import annotations

import base64
import secrets


def generate_credential(num_bytes: int) -> str:
    """Return ``num_bytes`` of CSPRNG output, base64-encoded.

    Same shape as ``openssl rand -base64 N``: 12 bytes give a 16-character
    password, 32 bytes a 44-character key.
    """
    if num_bytes < 1:
        raise ValueError("num_bytes must be positive")
    return base64.b64encode(secrets.token_bytes(num_bytes)).decode("ascii")
