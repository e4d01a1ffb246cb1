# PATH: config/settings.py
"""
Typed settings for the orchestrator.

load_settings() reads config/orchestrator.yaml (or a given path), fills
defaults for anything missing, then applies secrets and deployment values
from the environment (a .env file is loaded first when present):

    FLASHARB_PRIVATE_KEY          signer key (live mode)
    FLASHARB_RPC_URLS             comma-separated endpoints
    FLASHARB_SETTLEMENT_ADDRESS   deployed settlement program
    FLASHARB_CHAIN_ID             chain id

Fees in the YAML are in gwei; amounts are integers in the asset's smallest
unit.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from dotenv import load_dotenv

from config import load_yaml
from core.constants import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_CONFIRMATION_TIMEOUT_S,
    DEFAULT_CONFIRMATIONS,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_CONCURRENT,
    DEFAULT_MAX_RETRY_DELAY_S,
    DEFAULT_MIN_PROFIT_BPS,
    DEFAULT_POLL_INTERVAL_S,
    DEFAULT_RETRY_DELAY_S,
    FALLBACK_BASE_FEE,
    FALLBACK_PRIORITY_FEE,
    GAS_CACHE_TTL_MS,
    GAS_LIMIT_SAFETY_MARGIN_BPS,
    GWEI,
    MAX_GAS_PRICE,
    NONCE_TTL_MS,
    GasStrategy,
)
from core.exceptions import ValidationError
from execution.gas import GasPricerConfig
from execution.retry import RetryPolicy

DEFAULT_CONFIG_FILE = "orchestrator.yaml"
MODES = ("paper", "live")


@dataclass
class RetrySettings:
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay_s: float = DEFAULT_RETRY_DELAY_S
    multiplier: float = DEFAULT_BACKOFF_MULTIPLIER
    max_delay_s: float = DEFAULT_MAX_RETRY_DELAY_S

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay_s=self.base_delay_s,
            multiplier=self.multiplier,
            max_delay_s=self.max_delay_s,
        )


@dataclass
class GasSettings:
    strategy: GasStrategy = GasStrategy.ADAPTIVE
    max_gas_price: int = MAX_GAS_PRICE
    cache_ttl_ms: int = GAS_CACHE_TTL_MS
    fallback_base_fee: int = FALLBACK_BASE_FEE
    fallback_priority_fee: int = FALLBACK_PRIORITY_FEE
    safety_margin_bps: int = GAS_LIMIT_SAFETY_MARGIN_BPS

    def to_pricer_config(self) -> GasPricerConfig:
        return GasPricerConfig(
            strategy=self.strategy,
            max_gas_price=self.max_gas_price,
            cache_ttl_ms=self.cache_ttl_ms,
            fallback_base_fee=self.fallback_base_fee,
            fallback_priority_fee=self.fallback_priority_fee,
        )


@dataclass
class NonceSettings:
    ttl_ms: int = NONCE_TTL_MS


@dataclass
class RiskSettings:
    max_network_fee: int = MAX_GAS_PRICE
    max_slippage_bps: int = 10_000
    min_expected_profit: int = 0
    daily_loss_ceiling: int = 0
    # asset (symbol in paper mode, address in live mode) -> max loan
    max_loan: Dict[str, int] = field(default_factory=dict)
    gas_asset: Optional[str] = None


@dataclass
class OrchestratorSettings:
    mode: str = "paper"
    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    confirmations: int = DEFAULT_CONFIRMATIONS
    confirmation_timeout_s: float = DEFAULT_CONFIRMATION_TIMEOUT_S
    poll_interval_s: float = DEFAULT_POLL_INTERVAL_S
    min_profit_bps: int = DEFAULT_MIN_PROFIT_BPS
    journal_path: Optional[str] = None


@dataclass
class SettlementSettings:
    chain_id: int = 31337
    address: Optional[str] = None
    rpc_urls: List[str] = field(default_factory=list)
    rpc_timeout_seconds: float = 10.0
    private_key: Optional[str] = field(default=None, repr=False)
    market_file: str = "paper_market.yaml"


@dataclass
class Settings:
    orchestrator: OrchestratorSettings = field(default_factory=OrchestratorSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    gas: GasSettings = field(default_factory=GasSettings)
    nonce: NonceSettings = field(default_factory=NonceSettings)
    risk: RiskSettings = field(default_factory=RiskSettings)
    settlement: SettlementSettings = field(default_factory=SettlementSettings)

    def validate(self) -> None:
        if self.orchestrator.mode not in MODES:
            raise ValidationError(f"Unknown mode: {self.orchestrator.mode}", {"modes": list(MODES)})
        if self.orchestrator.max_concurrent < 1:
            raise ValidationError("max_concurrent must be >= 1")
        if self.orchestrator.mode == "live":
            missing = [
                name for name, value in (
                    ("FLASHARB_PRIVATE_KEY", self.settlement.private_key),
                    ("FLASHARB_SETTLEMENT_ADDRESS", self.settlement.address),
                    ("FLASHARB_RPC_URLS", self.settlement.rpc_urls),
                ) if not value
            ]
            if missing:
                raise ValidationError("Live mode requires settings", {"missing": missing})


def _gwei(value: Any, default: int) -> int:
    if value is None:
        return default
    return int(value) * GWEI


def _section(data: Mapping[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValidationError(f"Config section '{name}' must be a mapping")
    return section


def settings_from_dict(data: Mapping[str, Any]) -> Settings:
    orch = _section(data, "orchestrator")
    retry = _section(data, "retry")
    gas = _section(data, "gas")
    nonce = _section(data, "nonce")
    risk = _section(data, "risk")
    settlement = _section(data, "settlement")

    try:
        strategy = GasStrategy(str(gas.get("strategy", GasStrategy.ADAPTIVE.value)).lower())
    except ValueError:
        raise ValidationError(f"Unknown gas strategy: {gas.get('strategy')}")

    return Settings(
        orchestrator=OrchestratorSettings(
            mode=str(orch.get("mode", "paper")),
            max_concurrent=int(orch.get("max_concurrent", DEFAULT_MAX_CONCURRENT)),
            confirmations=int(orch.get("confirmations", DEFAULT_CONFIRMATIONS)),
            confirmation_timeout_s=float(orch.get("confirmation_timeout_s", DEFAULT_CONFIRMATION_TIMEOUT_S)),
            poll_interval_s=float(orch.get("poll_interval_s", DEFAULT_POLL_INTERVAL_S)),
            min_profit_bps=int(orch.get("min_profit_bps", DEFAULT_MIN_PROFIT_BPS)),
            journal_path=orch.get("journal_path"),
        ),
        retry=RetrySettings(
            max_attempts=int(retry.get("max_attempts", DEFAULT_MAX_ATTEMPTS)),
            base_delay_s=float(retry.get("base_delay_s", DEFAULT_RETRY_DELAY_S)),
            multiplier=float(retry.get("multiplier", DEFAULT_BACKOFF_MULTIPLIER)),
            max_delay_s=float(retry.get("max_delay_s", DEFAULT_MAX_RETRY_DELAY_S)),
        ),
        gas=GasSettings(
            strategy=strategy,
            max_gas_price=_gwei(gas.get("max_gas_price_gwei"), MAX_GAS_PRICE),
            cache_ttl_ms=int(gas.get("cache_ttl_ms", GAS_CACHE_TTL_MS)),
            fallback_base_fee=_gwei(gas.get("fallback_base_fee_gwei"), FALLBACK_BASE_FEE),
            fallback_priority_fee=_gwei(gas.get("fallback_priority_fee_gwei"), FALLBACK_PRIORITY_FEE),
            safety_margin_bps=int(gas.get("safety_margin_bps", GAS_LIMIT_SAFETY_MARGIN_BPS)),
        ),
        nonce=NonceSettings(ttl_ms=int(nonce.get("ttl_ms", NONCE_TTL_MS))),
        risk=RiskSettings(
            max_network_fee=_gwei(risk.get("max_network_fee_gwei"), MAX_GAS_PRICE),
            max_slippage_bps=int(risk.get("max_slippage_bps", 10_000)),
            min_expected_profit=int(risk.get("min_expected_profit", 0)),
            daily_loss_ceiling=int(risk.get("daily_loss_ceiling", 0)),
            max_loan={str(k): int(v) for k, v in (risk.get("max_loan") or {}).items()},
            gas_asset=risk.get("gas_asset"),
        ),
        settlement=SettlementSettings(
            chain_id=int(settlement.get("chain_id", 31337)),
            address=settlement.get("address"),
            rpc_urls=list(settlement.get("rpc_urls") or []),
            rpc_timeout_seconds=float(settlement.get("rpc_timeout_seconds", 10.0)),
            market_file=str(settlement.get("market_file", "paper_market.yaml")),
        ),
    )


def apply_environment(settings: Settings, environ: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if environ is None else environ
    if env.get("FLASHARB_PRIVATE_KEY"):
        settings.settlement.private_key = env["FLASHARB_PRIVATE_KEY"]
    if env.get("FLASHARB_RPC_URLS"):
        settings.settlement.rpc_urls = [u.strip() for u in env["FLASHARB_RPC_URLS"].split(",") if u.strip()]
    if env.get("FLASHARB_SETTLEMENT_ADDRESS"):
        settings.settlement.address = env["FLASHARB_SETTLEMENT_ADDRESS"]
    if env.get("FLASHARB_CHAIN_ID"):
        settings.settlement.chain_id = int(env["FLASHARB_CHAIN_ID"])
    return settings


def load_settings(
    path: Optional[Union[str, Path]] = None,
    env_file: Optional[Union[str, Path]] = None,
    validate: bool = True,
) -> Settings:
    """Callers that override fields afterwards pass validate=False and validate themselves."""
    load_dotenv(env_file)
    data = load_yaml(path or DEFAULT_CONFIG_FILE)
    settings = apply_environment(settings_from_dict(data))
    if validate:
        settings.validate()
    return settings
