# PATH: settlement/lender.py
"""
Flash lender: uncollateralized loans that must be repaid inside the same
staged settlement.

The lender's liquidity is its own ledger balance. lend() and collect() only
ever touch a StagedLedger, so an aborted settlement never net-disburses.
"""

from core.constants import DEFAULT_FLASH_LOAN_FEE_BPS
from core.math import bps_of
from settlement.ledger import StagedLedger


class FlashLender:
    """Lending pool holding liquidity at `address`."""

    def __init__(self, address: str, fee_bps: int = DEFAULT_FLASH_LOAN_FEE_BPS):
        if fee_bps < 0:
            raise ValueError(f"fee_bps must be non-negative, got {fee_bps}")
        self.address = address
        self.fee_bps = fee_bps

    def flash_fee(self, amount: int) -> int:
        return bps_of(amount, self.fee_bps)

    def available(self, ledger, asset: str) -> int:
        return ledger.balance_of(self.address, asset)

    def lend(self, staged: StagedLedger, borrower: str, asset: str, amount: int) -> bool:
        return staged.transfer(self.address, borrower, asset, amount)

    def collect(self, staged: StagedLedger, borrower: str, asset: str, amount: int) -> bool:
        """Pull principal plus fee back from the borrower."""
        return staged.transfer(borrower, self.address, asset, amount)
