"""HTTP constants shared by the taxonomy, the interpreter and the client.

Kept free of package imports so any module can depend on it.
"""

from __future__ import annotations

DEFAULT_BASE_URL = "https://api.mistral.ai/v1"

CHAT_COMPLETIONS_PATH = "/chat/completions"

# Status codes the taxonomy treats as transient server trouble.
TRANSIENT_SERVER_STATUS_CODES: frozenset[int] = frozenset({500, 502, 503, 504})


def is_success_status(status_code: int) -> bool:
    """Return True for 2xx status codes."""
    return 200 <= status_code < 300
