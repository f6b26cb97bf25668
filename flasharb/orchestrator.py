"""
Flash-Arb Orchestrator — wires every component together and owns the lifecycle.

This is the main entry point for the arbitrage bot.
It loads settings, builds the chain/relay adapters and the
discover → gate → execute pipeline, runs the scanner, and logs status.

Usage:
    python -m flasharb [--config path/to/arbitrage.yaml] [--log-level DEBUG]
"""
import asyncio
import logging
import signal as sig
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from eth_account import Account
from web3 import Web3

from .amm.liquidity import LiquidityGuard
from .amm.slippage import SlippageModel
from .chain.client import ChainClient
from .chain.contracts import ArbitrageContract
from .chain.oracle import PoolOracle
from .chain.relay import FlashbotsRelay
from .costs.gas import CostEstimator
from .detector.discovery import RouteDiscovery
from .detector.scanner import OpportunityScanner
from .errors import ConfigurationError, FlashArbError
from .execution.engine import BundleExecutor
from .execution.ledger import ExecutionLedger
from .risk.gate import ProfitabilityGate
from .settings import DEFAULT_CONFIG_PATH, Settings, load_settings

logger = logging.getLogger("arb.orchestrator")

LOG_FORMAT = '%(asctime)s | %(name)-20s | %(levelname)-5s | %(message)s'


def setup_logging(level: str = "INFO", log_file: Optional[str] = None):
    arb_logger = logging.getLogger("arb")
    arb_logger.setLevel(getattr(logging, level, logging.INFO))

    if arb_logger.handlers:
        return

    # Console handler
    ch = logging.StreamHandler()
    ch.setLevel(getattr(logging, level, logging.INFO))
    ch.setFormatter(logging.Formatter(LOG_FORMAT, datefmt='%H:%M:%S'))
    arb_logger.addHandler(ch)

    # File handler
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_path)
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
        arb_logger.addHandler(fh)


class ArbitrageOrchestrator:
    """
    Builds the pipeline from Settings and manages its lifecycle.
    Components receive their configuration explicitly; nothing reads globals.
    """

    def __init__(self, settings: Settings, chain: Optional[ChainClient] = None,
                 relay: Optional[FlashbotsRelay] = None):
        self.settings = settings
        self.shutdown_event = asyncio.Event()

        self.wallet = Account.from_key(settings.private_key)
        if settings.relay_signing_key:
            self.relay_identity = Account.from_key(settings.relay_signing_key)
        else:
            # Identity key only affects relay reputation, never funds
            self.relay_identity = Account.create()
            logger.info(f"No relay signing key configured — using ephemeral identity "
                        f"{self.relay_identity.address}")

        self.chain = chain or ChainClient.from_url(settings.rpc_url,
                                                   request_timeout=settings.rpc_timeout_sec)
        self.relay = relay or FlashbotsRelay(
            endpoint=settings.relay_url,
            auth_account=self.relay_identity,
            chain=self.chain,
            timeout=settings.relay_timeout_sec,
            receipt_poll_interval=settings.receipt_poll_interval_sec,
        )

        # Pipeline
        self.contract = ArbitrageContract(self.chain.web3, settings.contract_address)
        self.oracle = PoolOracle(self.chain)
        self.liquidity = LiquidityGuard()
        self.slippage = SlippageModel(settings.max_slippage, settings.slippage_tolerance_bps)
        self.costs = CostEstimator(self.chain, settings.gas_limit_buffer_bps)
        self.gate = ProfitabilityGate(
            self.oracle, self.liquidity, self.slippage, self.costs,
            self.contract, sender=self.wallet.address,
        )
        self.ledger = ExecutionLedger()
        self.discovery = RouteDiscovery(
            self.oracle, self.slippage,
            tokens=settings.tokens,
            dex_addresses=settings.dex_addresses,
            trade_amount=settings.trade_amount,
            min_profit=settings.min_profit,
            fee_bps=settings.fee_bps,
            max_candidates=settings.max_candidates,
            chain=self.chain,
        )

        # chain_id is confirmed against the node in start()
        self.executor: Optional[BundleExecutor] = None
        self.scanner: Optional[OpportunityScanner] = None

        self._running = False
        self._stopped = False
        self._start_time: Optional[datetime] = None
        self._tasks: List[asyncio.Task] = []

    async def _connect(self) -> int:
        chain_id = await self.chain.get_chain_id()
        block = await self.chain.get_block_number()
        if self.settings.chain_id is not None and self.settings.chain_id != chain_id:
            raise ConfigurationError(
                f"node reports chain id {chain_id}, config expects {self.settings.chain_id}"
            )
        logger.info(f"Connected: chain id {chain_id}, block {block}")
        return chain_id

    def _build_executor(self, chain_id: int):
        self.executor = BundleExecutor(
            self.chain, self.relay, self.wallet, self.contract, self.ledger,
            chain_id=chain_id,
            inclusion_timeout=self.settings.inclusion_timeout_sec,
            shutdown_event=self.shutdown_event,
        )
        self.scanner = OpportunityScanner(
            self.discovery, self.gate, self.executor,
            scan_interval=self.settings.scan_interval_sec,
            shutdown_event=self.shutdown_event,
        )

    async def start(self):
        """Connect, launch the scanner and status tasks, run until stopped."""
        self._running = True
        self._start_time = datetime.now(timezone.utc)

        logger.info("=" * 60)
        logger.info("  FLASH-LOAN ARBITRAGE BOT")
        logger.info(f"  Wallet {self.wallet.address} | contract {self.settings.contract_address}")
        logger.info(f"  {len(self.settings.tokens)} tokens | {len(self.settings.dex_addresses)} DEXes | "
                    f"trade {Web3.from_wei(self.settings.trade_amount, 'ether')} | "
                    f"min profit {Web3.from_wei(self.settings.min_profit, 'ether')} ETH")
        logger.info("=" * 60)

        try:
            chain_id = await self._connect()
            self._build_executor(chain_id)

            self._tasks = [
                asyncio.create_task(self.scanner.run(), name="scanner"),
                asyncio.create_task(self._run_monitoring(), name="monitoring"),
            ]
            logger.info(f"All {len(self._tasks)} subsystems launched")
            await asyncio.gather(*self._tasks, return_exceptions=True)
        except asyncio.CancelledError:
            logger.info("Orchestrator shutting down...")
        finally:
            await self.stop()

    async def stop(self):
        if self._stopped:
            return
        self._stopped = True
        self._running = False
        self.shutdown_event.set()

        # Scanner exits on its own; the in-flight bundle finishes or is abandoned
        for task in self._tasks:
            if task is asyncio.current_task():
                continue
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout=self.settings.inclusion_timeout_sec)
            except asyncio.TimeoutError:
                logger.warning(f"Task {task.get_name()} did not stop in time — cancelling")
                task.cancel()
            except Exception as e:
                logger.error(f"Task {task.get_name()} ended with error: {e}")

        await self.relay.close()
        logger.info("Arbitrage bot stopped")
        self._log_final_summary()

    # --- Subsystem runners ---

    async def _run_monitoring(self):
        """Periodic status logging."""
        while not self.shutdown_event.is_set():
            try:
                await asyncio.wait_for(self.shutdown_event.wait(),
                                       timeout=self.settings.status_interval_sec)
            except asyncio.TimeoutError:
                pass
            if self.shutdown_event.is_set():
                break
            try:
                self._log_status()
            except Exception as e:
                logger.debug(f"Monitoring error: {e}")

    # --- Reporting ---

    def get_full_status(self) -> dict:
        uptime = (datetime.now(timezone.utc) - self._start_time).total_seconds() if self._start_time else 0
        return {
            "running": self._running,
            "uptime_seconds": round(uptime, 1),
            "chain": self.chain.get_stats(),
            "oracle": self.oracle.get_stats(),
            "discovery": self.discovery.get_stats(),
            "gate": self.gate.get_stats(),
            "costs": self.costs.get_stats(),
            "relay": self.relay.get_stats(),
            "ledger": self.ledger.get_stats(),
            "scanner": self.scanner.get_stats() if self.scanner else {},
            "executor": self.executor.get_stats() if self.executor else {},
        }

    def _log_status(self):
        status = self.get_full_status()
        scanner = status["scanner"]
        gate = status["gate"]
        executor = status["executor"]
        relay = status["relay"]

        logger.info("")
        logger.info("=" * 60)
        logger.info(f"  ARBITRAGE STATUS — Uptime: {status['uptime_seconds'] / 60:.0f}min")
        logger.info("=" * 60)
        logger.info(f"  Scanner: {scanner.get('ticks', 0)} ticks | "
                    f"{scanner.get('candidates_seen', 0)} candidates | "
                    f"{scanner.get('candidate_errors', 0)} dropped | "
                    f"{scanner.get('tick_failures', 0)} failed ticks")
        logger.info(f"  Gate: {gate['evaluated']} evaluated | {gate['accepted']} accepted | "
                    + " ".join(f"{k}={v}" for k, v in gate['rejects'].items()))
        if executor:
            logger.info(f"  Executor: {executor['executions']} bundles | "
                        f"{executor['duplicates']} duplicates | "
                        f"inclusion {executor['inclusion_rate'] * 100:.0f}%")
        logger.info(f"  Relay: {relay['simulations']} sims ({relay['simulation_failures']} failed) | "
                    f"{relay['submissions']} submitted | {relay['errors']} errors")
        logger.info(f"  Gas: avg cost {status['costs']['avg_cost_wei']} wei | "
                    f"{status['costs']['failures']} estimation failures")
        logger.info("=" * 60)

    def _log_final_summary(self):
        executor = self.executor.get_stats() if self.executor else {}
        outcomes = executor.get("outcomes", {})
        logger.info("")
        logger.info("=" * 60)
        logger.info("  FINAL SESSION SUMMARY")
        logger.info("=" * 60)
        if self._start_time:
            hours = (datetime.now(timezone.utc) - self._start_time).total_seconds() / 3600
            logger.info(f"  Runtime: {hours:.1f} hours")
        logger.info(f"  Opportunities evaluated: {self.gate.get_stats()['evaluated']}")
        logger.info(f"  Bundles built: {executor.get('executions', 0)}")
        for outcome, count in outcomes.items():
            if count:
                logger.info(f"  {outcome}: {count}")
        in_flight = self.ledger.in_flight()
        if in_flight:
            logger.warning(f"  {len(in_flight)} bundle(s) left without a final outcome")
        logger.info("=" * 60)


async def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the arbitrage bot."""
    import argparse
    parser = argparse.ArgumentParser(description="Flash-loan DEX arbitrage bot")
    parser.add_argument('--config', default=DEFAULT_CONFIG_PATH, help='Config file path')
    parser.add_argument('--log-level', default=None, help='Override logging.level from config')
    args = parser.parse_args(argv)

    load_dotenv()
    try:
        settings = load_settings(args.config)
    except ConfigurationError as e:
        print(f"configuration error: {e}", file=sys.stderr)
        return 2

    setup_logging(args.log_level.upper() if args.log_level else settings.log_level, settings.log_file)
    orchestrator = ArbitrageOrchestrator(settings)

    # Handle shutdown signals
    loop = asyncio.get_running_loop()
    for s in (sig.SIGINT, sig.SIGTERM):
        loop.add_signal_handler(s, orchestrator.shutdown_event.set)

    try:
        await orchestrator.start()
    except FlashArbError as e:
        logger.critical(f"Fatal: {type(e).__name__}: {e}")
        return 2 if isinstance(e, ConfigurationError) else 1
    return 0


def run():
    """Console-script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
