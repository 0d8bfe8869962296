"""Clock abstraction for testable time handling in the OAuth code.

Credential records store expiry as *milliseconds* since the UNIX epoch, so the
``Clock`` protocol here returns integer milliseconds.  All time-based
decisions inside the ``oauth`` package MUST depend on an injected ``Clock``
instead of calling ``time.time()`` directly.

Example
-------
>>> from mcp_codereview.oauth.clock import default_clock
>>> isinstance(default_clock(), int)
True
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Callable protocol returning *milliseconds* since the UNIX epoch."""

    def __call__(self) -> int: ...


def default_clock() -> int:
    """Default implementation that delegates to ``time.time()``.

    Returns
    -------
    int
        Milliseconds since the UNIX epoch.
    """
    return int(time.time() * 1000)
