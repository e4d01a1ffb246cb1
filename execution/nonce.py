# PATH: execution/nonce.py
"""
Per-signer nonce manager.

NONCE CONTRACT:
===============
- acquire() is serialized by one asyncio.Lock per manager (one manager per
  signer), so concurrent pipelines never receive the same value.
- An acquired nonce is HELD until the caller either
    mark_sent(n)  -> the node accepted it; the chain's pending count now
                     covers it
    release(n)    -> it was never broadcast; it goes back to the pool
- Released nonces are handed out again, smallest first, before the cursor
  advances.
- The cursor is refreshed from the chain's "pending" transaction count when
  it is older than ttl_ms, or on the next acquire after invalidate().
  The chain count cannot see held nonces, so no refresh moves the cursor to
  or below a held value. A stale (TTL) refresh never moves it backwards at
  all; a forced refresh (after a nonce error or stalled confirmation) may.
- Released nonces the chain has already moved past are dropped on refresh.
===============
"""

import asyncio
from typing import Optional, Set

from chains.client import ChainClient
from core.constants import NONCE_TTL_MS
from core.context import ServiceContext


class NonceManager:
    def __init__(
        self,
        client: ChainClient,
        address: str,
        context: Optional[ServiceContext] = None,
        ttl_ms: int = NONCE_TTL_MS,
    ):
        self._client = client
        self.address = address
        self._context = context or ServiceContext.default()
        self._logger = self._context.logger("execution.nonce")
        self.ttl_ms = ttl_ms
        self._lock = asyncio.Lock()
        self._next: Optional[int] = None
        self._synced_at_ms = 0
        self._force_refresh = False
        self._held: Set[int] = set()
        self._released: Set[int] = set()
        self.refreshes = 0

    @property
    def cursor(self) -> Optional[int]:
        return self._next

    @property
    def held(self) -> Set[int]:
        return set(self._held)

    @property
    def released(self) -> Set[int]:
        return set(self._released)

    def _stale(self) -> bool:
        return self._next is None or self._context.now() - self._synced_at_ms >= self.ttl_ms

    async def _refresh(self, forced: bool) -> None:
        chain_nonce = await self._client.pending_nonce(self.address)
        previous = self._next
        floor = max(self._held) + 1 if self._held else 0
        if forced or previous is None:
            self._next = max(chain_nonce, floor)
        else:
            self._next = max(chain_nonce, previous, floor)
        self._released = {n for n in self._released if chain_nonce <= n < self._next}
        self._synced_at_ms = self._context.now()
        self.refreshes += 1
        self._logger.debug(
            "Nonce cursor refreshed",
            extra={"context": {
                "address": self.address,
                "chain_nonce": chain_nonce,
                "previous": previous,
                "cursor": self._next,
                "held": len(self._held),
                "forced": forced,
            }},
        )

    async def acquire(self, force_refresh: bool = False) -> int:
        async with self._lock:
            forced = force_refresh or self._force_refresh
            if forced or self._stale():
                await self._refresh(forced)
                self._force_refresh = False
            if self._released:
                nonce = min(self._released)
                self._released.discard(nonce)
            else:
                nonce = self._next
                self._next = nonce + 1
            self._held.add(nonce)
            return nonce

    def mark_sent(self, nonce: int) -> None:
        """The node accepted a transaction at this nonce."""
        self._held.discard(nonce)

    def invalidate(self) -> None:
        """Force a chain refresh on the next acquire."""
        self._force_refresh = True

    async def release(self, nonce: int) -> None:
        """Return a nonce that was never broadcast."""
        async with self._lock:
            if nonce not in self._held:
                return
            self._held.discard(nonce)
            if self._next is not None and nonce == self._next - 1:
                self._next = nonce
            else:
                self._released.add(nonce)
