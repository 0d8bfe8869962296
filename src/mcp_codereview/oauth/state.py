"""State parameter helpers for the OAuth 2.0 authorization-code flow.

The *state* parameter protects the user against CSRF: a random value is sent
to the authorization endpoint, the server echoes it back in the redirect, and
the local listener rejects any callback whose state differs.

The value is a hex string so it contains **no delimiters that could be
interpreted as a path or query separator** in the callback URL.

Logging
-------
The full state value is *never* written to logs; use
:func:`mcp_codereview.utils.logging.mask_sensitive` when a hint is needed.
"""

from __future__ import annotations

import hmac
import secrets
from typing import Final

# 32 random bytes -> 256 bits of entropy, 64 hex characters.
_STATE_BYTES: Final[int] = 32
_MIN_STATE_BYTES: Final[int] = 16


def generate_state(nbytes: int = _STATE_BYTES) -> str:
    """Return an unguessable, single-use state token.

    Parameters
    ----------
    nbytes:
        Number of random bytes (at least 16, i.e. 128 bits).
    """
    if nbytes < _MIN_STATE_BYTES:
        raise ValueError("state must carry at least 128 bits of entropy")
    return secrets.token_hex(nbytes)


def states_match(expected: str, received: str | None) -> bool:
    """Constant-time equality check of *received* against *expected*."""
    if not received:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))
