#!/usr/bin/env python3
"""
run_orchestrator.py - CLI entrypoint for the flash-loan transaction orchestrator.

Usage:
    python run_orchestrator.py                                  # paper mode, demo market
    python run_orchestrator.py --opportunities opps.yaml
    python run_orchestrator.py --mode live --opportunities opps.json --json-logs

Paper mode runs against an in-process LocalChain wrapping a SettlementProgram
built from config/paper_market.yaml. Live mode talks JSON-RPC to the
endpoints in FLASHARB_RPC_URLS with the key in FLASHARB_PRIVATE_KEY.

Opportunity files are JSON or YAML lists. Entries either carry full hops
(ArbitrageOpportunity.to_dict() shape) or, in paper mode, a `path` of
[pool name, token out] legs priced against the demo market.
"""

import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import click
import yaml

from chains.client import ChainClient
from chains.local import LocalChain
from chains.providers import RPCProvider
from chains.rpc_client import RPCChainClient
from chains.signer import TransactionSigner
from config import load_yaml
from config.settings import Settings, load_settings
from core.constants import OPPORTUNITY_DEADLINE_MS, GasStrategy
from core.context import ServiceContext
from core.exceptions import FlashArbError
from core.logging import get_logger, setup_logging
from core.models import ArbitrageOpportunity, normalize_address
from execution.encoding import RouteEncoder
from execution.gas import GasPricer
from execution.journal import ExecutionJournal
from execution.nonce import NonceManager
from execution.orchestrator import OrchestratorConfig, TransactionOrchestrator
from execution.simulator import SimulatorConfig, TransactionSimulator
from risk.breaker import DailyLossBreaker
from risk.gate import RiskGate, RiskGateState
from settlement.market import Market, build_market

logger = get_logger("orchestrator.cli")


def load_opportunity_file(path: str) -> List[Dict[str, Any]]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or []
    if isinstance(data, dict):
        data = data.get("opportunities", [])
    if not isinstance(data, list):
        raise click.BadParameter(f"{path} must contain a list of opportunities")
    return data


def to_opportunity(
    entry: Dict[str, Any],
    market: Optional[Market],
    now_ms: int,
) -> ArbitrageOpportunity:
    if "path" in entry:
        if market is None:
            raise FlashArbError("Path-style opportunities need the paper market")
        asset = entry["asset"]
        return market.opportunity(
            opportunity_id=str(entry["id"]),
            asset=asset,
            amount=market.amount(asset, entry["amount"]),
            path=[tuple(leg) for leg in entry["path"]],
            now_ms=now_ms,
            deadline_ms=int(entry.get("deadline_ms", OPPORTUNITY_DEADLINE_MS)),
            slippage_bps=int(entry.get("slippage_bps", 0)),
            gas_estimate=int(entry.get("gas_estimate", 0)),
        )
    data = dict(entry)
    data.setdefault("deadline_ms", now_ms + OPPORTUNITY_DEADLINE_MS)
    return ArbitrageOpportunity.from_dict(data)


def build_risk_gate(settings: Settings, signer: TransactionSigner, market: Optional[Market], context: ServiceContext) -> RiskGate:
    risk = settings.risk

    def resolve(ref: str) -> str:
        return market.token(ref) if market is not None else normalize_address(ref)

    state = RiskGateState(
        breaker=DailyLossBreaker(risk.daily_loss_ceiling, clock_ms=context.clock_ms),
        authorized={signer.address},
        max_loan={resolve(asset): cap for asset, cap in risk.max_loan.items()},
        max_network_fee=risk.max_network_fee,
        max_slippage_bps=risk.max_slippage_bps,
        min_expected_profit=risk.min_expected_profit,
        gas_asset=resolve(risk.gas_asset) if risk.gas_asset else None,
    )
    return RiskGate(state, context)


def build_chain(settings: Settings, context: ServiceContext) -> Tuple[ChainClient, TransactionSigner, str, Optional[Market]]:
    cfg = settings.settlement
    if settings.orchestrator.mode == "paper":
        market = build_market(load_yaml(cfg.market_file), context)
        if cfg.private_key:
            signer = TransactionSigner.from_key(cfg.private_key, cfg.chain_id)
        else:
            signer = TransactionSigner.random(cfg.chain_id)
        market.program.set_executor(market.program.owner, signer.address, True)
        client = LocalChain(market.program, chain_id=cfg.chain_id, context=context)
        return client, signer, market.program.address, market

    provider = RPCProvider(cfg.chain_id, cfg.rpc_urls, timeout_seconds=cfg.rpc_timeout_seconds)
    signer = TransactionSigner.from_key(cfg.private_key, cfg.chain_id)
    return RPCChainClient(provider), signer, cfg.address, None


def build_orchestrator(
    settings: Settings,
    client: ChainClient,
    signer: TransactionSigner,
    settlement_address: str,
    risk_gate: RiskGate,
    context: ServiceContext,
) -> TransactionOrchestrator:
    orch = settings.orchestrator
    config = OrchestratorConfig(
        strategy=settings.gas.strategy,
        max_concurrent=orch.max_concurrent,
        retry=settings.retry.to_policy(),
        confirmations=orch.confirmations,
        confirmation_timeout_s=orch.confirmation_timeout_s,
        poll_interval_s=orch.poll_interval_s,
        gas_margin_bps=settings.gas.safety_margin_bps,
    )
    return TransactionOrchestrator(
        client=client,
        signer=signer,
        encoder=RouteEncoder(settlement_address, min_profit_bps=orch.min_profit_bps),
        risk_gate=risk_gate,
        context=context,
        config=config,
        simulator=TransactionSimulator(
            client, SimulatorConfig(safety_margin_bps=settings.gas.safety_margin_bps)
        ),
        gas_pricer=GasPricer(client, settings.gas.to_pricer_config(), context),
        nonce_manager=NonceManager(client, signer.address, context, ttl_ms=settings.nonce.ttl_ms),
        journal=ExecutionJournal(Path(orch.journal_path) if orch.journal_path else None),
    )


async def feed(opportunities: List[ArbitrageOpportunity]) -> AsyncIterator[ArbitrageOpportunity]:
    for opportunity in opportunities:
        yield opportunity


async def run_session(settings: Settings, opportunities_path: Optional[str]) -> Dict[str, Any]:
    context = ServiceContext.default()
    client, signer, settlement_address, market = build_chain(settings, context)
    try:
        risk_gate = build_risk_gate(settings, signer, market, context)
        orchestrator = build_orchestrator(settings, client, signer, settlement_address, risk_gate, context)

        def handle_shutdown(signum: int, frame: object) -> None:
            logger.info("Shutdown requested", extra={"context": {"signal": signum}})
            orchestrator.stop()

        if opportunities_path:
            entries = load_opportunity_file(opportunities_path)
        elif market is not None:
            entries = load_yaml(settings.settlement.market_file).get("opportunities", [])
        else:
            raise click.UsageError("--opportunities is required in live mode")

        now = context.now()
        opportunities = [to_opportunity(entry, market, now) for entry in entries]
        logger.info(
            "Starting orchestrator session",
            extra={"context": {
                "mode": settings.orchestrator.mode,
                "signer": signer.address,
                "settlement": settlement_address,
                "opportunities": len(opportunities),
                "strategy": settings.gas.strategy.value,
            }},
        )

        previous_handlers = {
            sig: signal.signal(sig, handle_shutdown) for sig in (signal.SIGINT, signal.SIGTERM)
        }
        try:
            results = await orchestrator.run(feed(opportunities))
        finally:
            for sig, handler in previous_handlers.items():
                signal.signal(sig, handler)
        return {
            "mode": settings.orchestrator.mode,
            "signer": signer.address,
            "journal": orchestrator.journal.summary(),
            "metrics": orchestrator.metrics.to_dict(),
            "risk": risk_gate.snapshot(),
            "results": [
                {
                    "opportunity_id": r.opportunity.opportunity_id,
                    "success": r.success,
                    "error_code": r.error_code.value if r.error_code else None,
                    "failure_reason": r.failure_reason,
                    "net_profit": str(r.net_profit),
                    "tx_hash": r.tx_hash,
                    "attempts": r.attempts,
                }
                for r in results
            ],
        }
    finally:
        await client.close()


@click.command()
@click.option(
    "--config",
    "-c",
    "config_path",
    default="orchestrator.yaml",
    help="Orchestrator config (file in config/ or a path)",
)
@click.option(
    "--opportunities",
    "-o",
    "opportunities_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="JSON/YAML list of opportunities",
)
@click.option(
    "--mode",
    "-m",
    default=None,
    type=click.Choice(["paper", "live"]),
    help="Override the configured mode",
)
@click.option(
    "--strategy",
    "-s",
    default=None,
    type=click.Choice([s.value for s in GasStrategy]),
    help="Override the configured gas strategy",
)
@click.option(
    "--log-level",
    "-l",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Log level",
)
@click.option(
    "--json-logs/--no-json-logs",
    default=True,
    help="Use JSON log format",
)
@click.option(
    "--log-file",
    default=None,
    help="Also write JSON logs to this file",
)
@click.option(
    "--env-file",
    default=None,
    help="Path to a .env file with FLASHARB_* variables",
)
def main(
    config_path: str,
    opportunities_path: Optional[str],
    mode: Optional[str],
    strategy: Optional[str],
    log_level: str,
    json_logs: bool,
    log_file: Optional[str],
    env_file: Optional[str],
) -> None:
    """
    FLASHARB transaction orchestrator.

    Executes flash-loan arbitrage opportunities through the settlement program.
    """
    setup_logging(level=log_level, log_file=log_file, json_format=json_logs)

    try:
        settings = load_settings(config_path, env_file, validate=False)
        if mode:
            settings.orchestrator.mode = mode
        if strategy:
            settings.gas.strategy = GasStrategy(strategy)
        settings.validate()
        summary = asyncio.run(run_session(settings, opportunities_path))
    except (FlashArbError, FileNotFoundError) as e:
        logger.error(
            f"Orchestrator error: {e}",
            extra={"context": {"error": str(e)}},
        )
        sys.exit(1)

    click.echo(json.dumps(summary, indent=2))


if __name__ == "__main__":
    main()
