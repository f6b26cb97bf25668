"""
Route Discovery — finds cyclic routes whose pools are out of line.

Produces Opportunity objects for the profitability gate.
Does NOT execute or gate anything — only reads pools and prices cycles.

Routes start and end at the base token (first configured token):
- cross-DEX pairs:   A → X on DEX i, X → A on DEX j   (i ≠ j)
- single-DEX cycles: A → X → Y → A on one DEX
Gross profit uses the tolerance-adjusted output of the last hop, so it is
what the route returns in the worst case the tolerance still allows.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from itertools import permutations
from typing import Dict, List, Optional, Sequence, Tuple

from ..amm import uint256 as u
from ..amm.pool import Pool
from ..amm.slippage import SlippageModel
from ..chain.client import ChainClient
from ..chain.oracle import PoolOracle
from ..errors import FlashArbError

logger = logging.getLogger("arb.discovery")

Hop = Tuple[str, str, str]          # (dex, token_in, token_out)


@dataclass(frozen=True)
class Opportunity:
    token_in: str
    token_out: str
    amount_in: int
    route: Tuple[Pool, ...]
    gross_profit: int
    min_profit: int
    observed_block: Optional[int] = None
    opportunity_id: str = field(default_factory=lambda: f"arb_{uuid.uuid4().hex[:12]}")
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        u.uint256(self.amount_in)
        u.int256(self.gross_profit)
        u.uint256(self.min_profit)
        if self.amount_in == 0:
            raise ValueError("amount_in must be positive")
        if not self.route:
            raise ValueError("route must contain at least one pool")
        if self.route[0].token_in != self.token_in or self.route[-1].token_out != self.token_out:
            raise ValueError("route endpoints do not match token_in/token_out")
        for prev, nxt in zip(self.route, self.route[1:]):
            if prev.token_out != nxt.token_in:
                raise ValueError(f"route broken between {prev.token_out} and {nxt.token_in}")

    @property
    def dexes(self) -> Tuple[str, ...]:
        return tuple(p.dex for p in self.route)

    @property
    def path(self) -> Tuple[str, ...]:
        return (self.route[0].token_in,) + tuple(p.token_out for p in self.route)


class RouteDiscovery:

    def __init__(
        self,
        oracle: PoolOracle,
        slippage_model: SlippageModel,
        tokens: Sequence[str],
        dex_addresses: Sequence[str],
        trade_amount: int,
        min_profit: int,
        fee_bps: int = 30,
        max_candidates: int = 10,
        chain: Optional[ChainClient] = None,
    ):
        if len(tokens) < 2:
            raise ValueError("need a base token and at least one counter token")
        if not dex_addresses:
            raise ValueError("need at least one DEX")
        self.oracle = oracle
        self.slippage = slippage_model
        self.base_token = tokens[0]
        self.trade_amount = trade_amount
        self.min_profit = min_profit
        self.fee_bps = fee_bps
        self.max_candidates = max_candidates
        self.chain = chain
        self.routes: List[Tuple[Hop, ...]] = self._enumerate_routes(list(tokens), list(dex_addresses))

        self._scan_count = 0
        self._routes_priced = 0
        self._routes_skipped = 0
        self._opportunities_found = 0
        logger.info(f"RouteDiscovery: {len(self.routes)} routes over "
                    f"{len(tokens)} tokens / {len(dex_addresses)} DEXes")

    @staticmethod
    def _enumerate_routes(tokens: List[str], dexes: List[str]) -> List[Tuple[Hop, ...]]:
        base, others = tokens[0], tokens[1:]
        routes: List[Tuple[Hop, ...]] = []
        for x in others:
            for dex_i, dex_j in permutations(dexes, 2):
                routes.append(((dex_i, base, x), (dex_j, x, base)))
        for x, y in permutations(others, 2):
            for dex in dexes:
                routes.append(((dex, base, x), (dex, x, y), (dex, y, base)))
        return routes

    async def _read_pools(self) -> Dict[Hop, Optional[Pool]]:
        """One fresh read per distinct hop this pass. Failures map to None."""
        hops = sorted({hop for route in self.routes for hop in route})
        results = await asyncio.gather(
            *(self.oracle.get_pool(dex, t_in, t_out, self.fee_bps) for dex, t_in, t_out in hops),
            return_exceptions=True,
        )
        pools: Dict[Hop, Optional[Pool]] = {}
        for hop, result in zip(hops, results):
            if isinstance(result, Pool):
                pools[hop] = result
            elif isinstance(result, FlashArbError):
                logger.debug(f"Pool read failed {hop}: {result}")
                pools[hop] = None
            else:
                raise result
        return pools

    def price_route(self, pools: Sequence[Pool]) -> int:
        """Gross profit of pushing trade_amount around the route."""
        amount = self.trade_amount
        for pool in pools:
            amount = self.slippage.amount_out(amount, pool.reserve_in, pool.reserve_out, pool.fee_bps)
        final = self.slippage.min_amount_out(amount)
        return u.signed_sub(final, self.trade_amount)

    async def find_opportunities(self) -> List[Opportunity]:
        self._scan_count += 1
        observed_block = await self.chain.get_block_number() if self.chain else None
        pools = await self._read_pools()

        found: List[Opportunity] = []
        for route in self.routes:
            route_pools = [pools.get(hop) for hop in route]
            if any(p is None or not p.is_usable for p in route_pools):
                self._routes_skipped += 1
                continue
            try:
                gross = self.price_route(route_pools)
            except FlashArbError as e:
                self._routes_skipped += 1
                logger.debug(f"Route {route} unpriceable: {e}")
                continue
            self._routes_priced += 1
            if gross <= 0:
                continue
            found.append(Opportunity(
                token_in=self.base_token,
                token_out=self.base_token,
                amount_in=self.trade_amount,
                route=tuple(route_pools),
                gross_profit=gross,
                min_profit=self.min_profit,
                observed_block=observed_block,
            ))

        found.sort(key=lambda o: o.gross_profit, reverse=True)
        self._opportunities_found += len(found)
        if found:
            logger.info(f"Discovery pass #{self._scan_count}: {len(found)} candidate(s), "
                        f"best gross={found[0].gross_profit}")
        return found[:self.max_candidates]

    def get_stats(self) -> dict:
        return {
            "scan_count": self._scan_count,
            "routes": len(self.routes),
            "routes_priced": self._routes_priced,
            "routes_skipped": self._routes_skipped,
            "opportunities_found": self._opportunities_found,
        }
