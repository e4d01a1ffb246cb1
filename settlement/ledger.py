# PATH: settlement/ledger.py
"""
Balance ledger with staged, all-or-nothing writes.

STAGING CONTRACT:
=================
- Every settlement runs against a StagedLedger obtained from Ledger.begin().
- Reads fall through to the base ledger; writes stay in the overlay.
- Ledger.commit(staged) applies the overlay in one step. A staged ledger that
  is never committed leaves the base untouched (that is the rollback).
- A staged ledger can be committed once, and only if the base has not been
  committed to since it was opened.
- No balance ever goes negative: transfer() returns False instead.
=================
"""

from typing import Dict, Iterator, Tuple

from core.models import normalize_address

BalanceKey = Tuple[str, str]


def _key(holder: str, asset: str) -> BalanceKey:
    return normalize_address(holder), normalize_address(asset)


class Ledger:
    """Committed balances per (holder, asset)."""

    def __init__(self) -> None:
        self._balances: Dict[BalanceKey, int] = {}
        self._version = 0

    @property
    def version(self) -> int:
        return self._version

    def balance_of(self, holder: str, asset: str) -> int:
        return self._balances.get(_key(holder, asset), 0)

    def mint(self, holder: str, asset: str, amount: int) -> None:
        """Seed a balance outside any settlement (genesis, funding)."""
        if amount < 0:
            raise ValueError(f"Cannot mint negative amount {amount}")
        staged = self.begin()
        staged.credit(holder, asset, amount)
        self.commit(staged)

    def begin(self) -> "StagedLedger":
        return StagedLedger(self)

    def commit(self, staged: "StagedLedger") -> int:
        """Apply staged writes. Returns the number of balances changed."""
        if staged.base is not self:
            raise ValueError("Staged ledger belongs to another ledger")
        if staged.closed:
            raise ValueError("Staged ledger already committed")
        if staged.opened_at != self._version:
            raise ValueError("Ledger changed since staging began")
        changed = 0
        for key, value in staged.writes():
            if self._balances.get(key, 0) != value:
                changed += 1
            if value:
                self._balances[key] = value
            else:
                self._balances.pop(key, None)
        staged.closed = True
        self._version += 1
        return changed

    def balances(self) -> Dict[BalanceKey, int]:
        """Copy of every non-zero balance."""
        return dict(self._balances)


class StagedLedger:
    """Write overlay on top of a Ledger."""

    def __init__(self, base: Ledger):
        self.base = base
        self.opened_at = base.version
        self.closed = False
        self._writes: Dict[BalanceKey, int] = {}

    def balance_of(self, holder: str, asset: str) -> int:
        key = _key(holder, asset)
        if key in self._writes:
            return self._writes[key]
        return self.base.balance_of(holder, asset)

    def credit(self, holder: str, asset: str, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"Cannot credit negative amount {amount}")
        key = _key(holder, asset)
        self._writes[key] = self.balance_of(holder, asset) + amount

    def debit(self, holder: str, asset: str, amount: int) -> bool:
        if amount < 0:
            raise ValueError(f"Cannot debit negative amount {amount}")
        current = self.balance_of(holder, asset)
        if current < amount:
            return False
        self._writes[_key(holder, asset)] = current - amount
        return True

    def transfer(self, sender: str, recipient: str, asset: str, amount: int) -> bool:
        """Move amount between holders. False (and no write) when sender is short."""
        if amount < 0:
            return False
        if not self.debit(sender, asset, amount):
            return False
        self.credit(recipient, asset, amount)
        return True

    def writes(self) -> Iterator[Tuple[BalanceKey, int]]:
        return iter(self._writes.items())

    @property
    def dirty(self) -> bool:
        return bool(self._writes)
