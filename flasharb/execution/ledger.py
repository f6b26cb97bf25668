"""
Execution Ledger — which bundles has this process already built, simulated or sent?

In-memory only. A restart forgets every in-flight bundle; that is an accepted
availability gap, not something to paper over with a file.
Used by the executor to refuse a second submission of an identical bundle.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ..errors import InvalidTransition
from .bundle import BundleOutcome, can_transition

logger = logging.getLogger("arb.ledger")


@dataclass
class LedgerEntry:
    bundle_hash: str
    outcome: BundleOutcome
    target_block: Optional[int]
    updated_at: datetime


class ExecutionLedger:

    def __init__(self):
        self._entries: Dict[str, LedgerEntry] = {}

    def has(self, bundle_hash: str) -> bool:
        return bundle_hash in self._entries

    def get(self, bundle_hash: str) -> Optional[LedgerEntry]:
        return self._entries.get(bundle_hash)

    def record(self, bundle_hash: str, outcome: BundleOutcome,
               target_block: Optional[int] = None) -> LedgerEntry:
        entry = self._entries.get(bundle_hash)
        current = entry.outcome if entry else None
        if not can_transition(current, outcome):
            raise InvalidTransition(
                f"{bundle_hash}: {current.value if current else 'new'} -> {outcome.value}"
            )

        now = datetime.now(timezone.utc)
        if entry is None:
            entry = LedgerEntry(bundle_hash, outcome, target_block, now)
            self._entries[bundle_hash] = entry
        else:
            entry.outcome = outcome
            entry.updated_at = now
            if target_block is not None:
                entry.target_block = target_block

        logger.debug(f"LEDGER {bundle_hash[:12]}… -> {outcome.value}")
        return entry

    def in_flight(self) -> List[LedgerEntry]:
        return [e for e in self._entries.values() if not e.outcome.is_terminal]

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> dict:
        by_outcome = {o.value: 0 for o in BundleOutcome}
        for entry in self._entries.values():
            by_outcome[entry.outcome.value] += 1
        return {
            "entries": len(self._entries),
            "in_flight": len(self.in_flight()),
            "by_outcome": by_outcome,
        }
