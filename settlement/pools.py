# PATH: settlement/pools.py
"""
Liquidity pool models used by the venues.

Reserves are ledger balances of the pool address, so a swap is a pair of
staged transfers and rolls back with the rest of the settlement.

SWAP CONTRACT:
- swap() never raises for control flow; it returns SwapResult(ok=False, reason=...)
- on failure nothing has been written to the staged ledger
- the optional `callback` runs after the input is received and before the
  output is paid (token transfer hook); it may call back into the program
"""

from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from core.constants import BPS_DENOMINATOR
from core.models import normalize_address, same_address
from settlement.ledger import StagedLedger

SwapCallback = Callable[[str], None]


@dataclass(frozen=True)
class SwapResult:
    ok: bool
    amount_out: int = 0
    reason: Optional[str] = None

    @classmethod
    def failed(cls, reason: str) -> "SwapResult":
        return cls(ok=False, amount_out=0, reason=reason)


class Pool:
    """Shared swap mechanics; subclasses provide the pricing curve."""

    def __init__(self, address: str, tokens: Sequence[str], fee_bps: int):
        if not 0 <= fee_bps < BPS_DENOMINATOR:
            raise ValueError(f"fee_bps out of range: {fee_bps}")
        self.address = address
        self.tokens = tuple(tokens)
        self.fee_bps = fee_bps
        self.halted = False
        self.callback: Optional[SwapCallback] = None

    def has_token(self, token: str) -> bool:
        return any(same_address(t, token) for t in self.tokens)

    def reserve_of(self, ledger, token: str) -> int:
        return ledger.balance_of(self.address, token)

    def quote(self, ledger, token_in: str, token_out: str, amount_in: int) -> int:
        raise NotImplementedError

    def swap(
        self,
        staged: StagedLedger,
        trader: str,
        token_in: str,
        token_out: str,
        amount_in: int,
        min_out: int,
    ) -> SwapResult:
        if self.halted:
            return SwapResult.failed("pool halted")
        if amount_in <= 0:
            return SwapResult.failed("zero input amount")
        if same_address(token_in, token_out) or not (self.has_token(token_in) and self.has_token(token_out)):
            return SwapResult.failed("token pair not supported by pool")

        amount_out = self.quote(staged, token_in, token_out, amount_in)
        if amount_out <= 0:
            return SwapResult.failed("insufficient liquidity")
        if amount_out < min_out:
            return SwapResult.failed("insufficient output amount")

        if not staged.transfer(trader, self.address, token_in, amount_in):
            return SwapResult.failed("insufficient input balance")
        if self.callback is not None:
            self.callback(trader)
        if not staged.transfer(self.address, trader, token_out, amount_out):
            # Undo the input leg so the staged ledger is unchanged on failure
            staged.transfer(self.address, trader, token_in, amount_in)
            return SwapResult.failed("insufficient liquidity")
        return SwapResult(ok=True, amount_out=amount_out)


class ConstantProductPool(Pool):
    """x*y=k pool with the fee taken from the input (Uniswap v2 math)."""

    def __init__(self, address: str, token_a: str, token_b: str, fee_bps: int = 30):
        super().__init__(address, (token_a, token_b), fee_bps)

    def quote(self, ledger, token_in: str, token_out: str, amount_in: int) -> int:
        reserve_in = self.reserve_of(ledger, token_in)
        reserve_out = self.reserve_of(ledger, token_out)
        if reserve_in <= 0 or reserve_out <= 0:
            return 0
        amount_in_with_fee = amount_in * (BPS_DENOMINATOR - self.fee_bps)
        numerator = amount_in_with_fee * reserve_out
        denominator = reserve_in * BPS_DENOMINATOR + amount_in_with_fee
        return numerator // denominator


class StableSwapPool(Pool):
    """
    Constant-sum pool for pegged assets, fee on output, bounded by reserves.

    Tokens are addressed by index (Curve-style i, j). Amounts are rescaled
    between token decimals so 1 USDC (6) swaps for 1 DAI (18).
    """

    def __init__(
        self,
        address: str,
        tokens: Sequence[str],
        fee_bps: int = 4,
        decimals: Optional[Sequence[int]] = None,
    ):
        if len(tokens) < 2:
            raise ValueError("StableSwapPool needs at least two tokens")
        if decimals is not None and len(decimals) != len(tokens):
            raise ValueError("decimals must list one entry per token")
        super().__init__(address, tokens, fee_bps)
        self.decimals = tuple(decimals) if decimals is not None else (18,) * len(self.tokens)

    def index_of(self, token: str) -> int:
        target = normalize_address(token)
        for index, candidate in enumerate(self.tokens):
            if normalize_address(candidate) == target:
                return index
        return -1

    def quote(self, ledger, token_in: str, token_out: str, amount_in: int) -> int:
        i, j = self.index_of(token_in), self.index_of(token_out)
        if i < 0 or j < 0:
            return 0
        scaled = amount_in * 10 ** self.decimals[j] // 10 ** self.decimals[i]
        amount_out = scaled * (BPS_DENOMINATOR - self.fee_bps) // BPS_DENOMINATOR
        if amount_out > self.reserve_of(ledger, token_out):
            return 0
        return amount_out
