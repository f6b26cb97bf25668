"""
flasharb — Atomic DEX Arbitrage over a Private Bundle Relay

Pipeline:
1. Discovery: cyclic routes across constant-product pools
2. Profitability gate: liquidity → slippage → gas → net profit
3. Execution: build → simulate → submit → await inclusion

Nothing touches the public mempool. A bundle that fails simulation never exists on-chain.
"""
__version__ = "1.0.0"
