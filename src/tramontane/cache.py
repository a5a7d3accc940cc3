"""Cache: deterministic request fingerprints and a TTL response store."""

from __future__ import annotations

from dataclasses import dataclass
import hashlib
import json
import logging
import threading
import time
from typing import TYPE_CHECKING, Any

from tramontane.interpret import Success
from tramontane.models import content_to_wire

if TYPE_CHECKING:
    from collections.abc import Callable

    from tramontane.interpret import InterpretedResponse
    from tramontane.models import ChatRequest

log = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "tramontane:chat:"


def _key_material(request: ChatRequest) -> dict[str, Any]:
    """Return the deterministic-relevant subset of *request*.

    Message content is keyed in its wire form, so thinking segments and the
    plain/segmented distinction both count. Response format and prompt mode
    change what the model returns and are part of the key too. The random
    seed is included: two requests are only interchangeable when they pin the
    same seed (or both leave it unset).
    """
    return {
        "model": request.model,
        "messages": [
            [str(m.role), content_to_wire(m.content)] for m in request.messages
        ],
        "temperature": request.temperature,
        "top_p": request.top_p,
        "max_tokens": request.max_tokens,
        "safe_prompt": request.safe_prompt,
        "random_seed": request.random_seed,
        "response_format": (
            request.response_format.to_payload()
            if request.response_format is not None
            else None
        ),
        "prompt_mode": request.prompt_mode,
    }


def compute_cache_key(request: ChatRequest) -> str:
    """Compute a fixed-length fingerprint for *request*.

    Key = sha256(canonical JSON of the deterministic subset). The digest keeps
    keys bounded and keeps prompt text out of anything that logs keys.
    """
    canonical = json.dumps(
        _key_material(request),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return f"{CACHE_KEY_PREFIX}{digest}"


def is_cacheable(request: ChatRequest) -> bool:
    """Streaming responses are consumed incrementally and never cached."""
    return not request.stream


@dataclass
class CacheEntry:
    """A stored success payload with its expiry bookkeeping."""

    value: Success[Any]
    created_at: float
    last_access: float


class ResponseCache:
    """In-memory response cache with absolute and sliding expiry.

    An entry expires ``ttl_s`` after creation, or ``ttl_s / 2`` after it was
    last read, whichever comes first. All operations hold a lock, so the cache
    can be shared by threads and by concurrent tasks of one event loop.
    """

    def __init__(
        self,
        ttl_s: float = 300.0,
        *,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_s <= 0:
            raise ValueError("ResponseCache.ttl_s must be > 0")
        self.ttl_s = float(ttl_s)
        self.enabled = enabled
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    @property
    def sliding_s(self) -> float:
        return self.ttl_s / 2.0

    def _expired(self, entry: CacheEntry, now: float) -> bool:
        return (
            now >= entry.created_at + self.ttl_s
            or now >= entry.last_access + self.sliding_s
        )

    def get(self, key: str) -> Success[Any] | None:
        """Return the stored success for *key*, or None if absent or expired."""
        if not self.enabled:
            return None
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            now = self._clock()
            if self._expired(entry, now):
                del self._entries[key]
                log.debug("Cache entry expired")
                return None
            entry.last_access = now
            return entry.value

    def put(self, key: str, response: InterpretedResponse) -> None:
        """Store *response* under *key*; failures are ignored."""
        if not self.enabled or not isinstance(response, Success):
            return
        with self._lock:
            now = self._clock()
            self._sweep(now)
            self._entries[key] = CacheEntry(response, created_at=now, last_access=now)

    def _sweep(self, now: float) -> None:
        # Caller holds the lock.
        stale = [k for k, e in self._entries.items() if self._expired(e, now)]
        for key in stale:
            del self._entries[key]
        if stale:
            log.debug("Swept %d expired cache entries", len(stale))

    def clear(self) -> None:
        """Evict every entry unconditionally."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
