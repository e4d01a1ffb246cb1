# PATH: tests/unit/test_imports_contract.py
"""
Import contract smoke tests.

PURPOSE: Catch ImportError regressions EARLY.
RUN FIRST: python -m pytest tests/unit/test_imports_contract.py -v

CRITICAL CONTRACTS (DO NOT WEAKEN):
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
- VenueKind wire ids are fixed (routes already encoded must still decode)
- ErrorCode covers every failure class the orchestrator reports
- Package roots re-export the names run_orchestrator.py builds from
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
"""

import unittest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent))


class TestCoreConstantsImports(unittest.TestCase):
    def test_venue_wire_ids(self):
        """CRITICAL: venue ids are part of the route encoding."""
        from core.constants import VenueKind

        self.assertEqual(
            {v.label: int(v) for v in VenueKind},
            {"uniswap_v3": 1, "sushiswap": 2, "curve": 3, "balancer": 4, "oneinch": 5},
        )

    def test_error_codes(self):
        from core.constants import ErrorCode

        for name in (
            "ROUTE_INVALID",
            "STALE_OPPORTUNITY",
            "RISK_DISALLOWED",
            "BREAKER_TRIPPED",
            "SIMULATION_REVERT",
            "NONCE_CONFLICT",
            "REPLACEMENT_UNDERPRICED",
            "TRANSPORT_TIMEOUT",
            "RETRY_EXHAUSTED",
            "CONFIRMATION_TIMEOUT",
            "ON_CHAIN_REVERT",
            "UNKNOWN",
        ):
            self.assertEqual(ErrorCode[name].value, name)

    def test_gas_strategies(self):
        from core.constants import GasStrategy

        self.assertEqual(
            [s.value for s in GasStrategy],
            ["aggressive", "normal", "conservative", "adaptive"],
        )


class TestPackageRoots(unittest.TestCase):
    def test_core(self):
        from core import ArbitrageOpportunity, EventChannel, ExecutionResult, ServiceContext  # noqa: F401

    def test_settlement(self):
        from settlement import Ledger, SettlementProgram, decode_call, encode_call  # noqa: F401

    def test_chains(self):
        from chains import ChainClient, LocalChain, RPCChainClient, TransactionSigner  # noqa: F401

    def test_risk(self):
        from risk import DailyLossBreaker, RiskGate, RiskGateState  # noqa: F401

    def test_execution(self):
        from execution import (  # noqa: F401
            GasPricer,
            NonceManager,
            RetryPolicy,
            RouteEncoder,
            StatusUpdate,
            TransactionOrchestrator,
        )

    def test_entrypoint(self):
        import run_orchestrator

        self.assertTrue(callable(run_orchestrator.main))


if __name__ == "__main__":
    unittest.main()
