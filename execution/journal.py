# PATH: execution/journal.py
"""
Execution journal: persistence sink for ExecutionResult records.

Every result is kept in memory with running totals and, when a path is
configured, appended as one JSON line. Amounts are written as strings.
Profit totals are kept per borrowed asset; gas cost is always in the gas
asset and is totalled on its own.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.models import ExecutionResult, normalize_address


class ExecutionJournal:
    """Append-only record of execution results."""

    def __init__(self, path: Optional[Path] = None):
        self._path = Path(path) if path else None
        self._records: List[ExecutionResult] = []
        self._realized_by_asset: Dict[str, int] = {}
        self._net_by_asset: Dict[str, int] = {}
        self._total_gas_cost = 0
        self._successes = 0

    @property
    def path(self) -> Optional[Path]:
        return self._path

    @property
    def records(self) -> List[ExecutionResult]:
        return list(self._records)

    @property
    def count(self) -> int:
        return len(self._records)

    @property
    def total_gas_cost(self) -> int:
        return self._total_gas_cost

    def net_profit(self, asset: str) -> int:
        return self._net_by_asset.get(normalize_address(asset), 0)

    def record(self, result: ExecutionResult) -> None:
        self._records.append(result)
        asset = normalize_address(result.opportunity.asset)
        if result.success:
            self._successes += 1
            self._realized_by_asset[asset] = self._realized_by_asset.get(asset, 0) + result.realized_profit
        self._net_by_asset[asset] = self._net_by_asset.get(asset, 0) + result.net_profit
        self._total_gas_cost += result.gas_cost

        if self._path is not None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "a", encoding="utf-8") as f:
                f.write(json.dumps(result.to_dict()) + "\n")

    def summary(self) -> Dict[str, Any]:
        return {
            "executions": self.count,
            "successes": self._successes,
            "failures": self.count - self._successes,
            "realized_profit_by_asset": {a: str(v) for a, v in self._realized_by_asset.items()},
            "net_profit_by_asset": {a: str(v) for a, v in self._net_by_asset.items()},
            "total_gas_cost": str(self._total_gas_cost),
        }

    @staticmethod
    def load(path: Path) -> List[Dict[str, Any]]:
        """Read back a JSON-lines journal as dicts."""
        with open(path, "r", encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]
