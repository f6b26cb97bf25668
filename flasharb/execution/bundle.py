"""
Bundle value object and its outcome state machine.

    (new) ──build──▶ BUILT
    BUILT ──simulate──▶ SIMULATED_OK | SIMULATED_FAIL
    SIMULATED_OK ──submit──▶ SUBMITTED | SUBMISSION_ERROR
    SUBMITTED ──await inclusion──▶ INCLUDED | NOT_INCLUDED

Outcomes only move forward. SIMULATED_FAIL, SUBMISSION_ERROR, INCLUDED and
NOT_INCLUDED are terminal. Nothing exists on-chain before SUBMITTED.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from web3 import Web3

from ..amm.uint256 import UINT64_MAX


class BundleOutcome(Enum):
    BUILT = "built"
    SIMULATED_OK = "simulated_ok"
    SIMULATED_FAIL = "simulated_fail"
    SUBMITTED = "submitted"
    SUBMISSION_ERROR = "submission_error"
    INCLUDED = "included"
    NOT_INCLUDED = "not_included"

    @property
    def is_terminal(self) -> bool:
        return not TRANSITIONS.get(self)


TRANSITIONS: Dict[Optional[BundleOutcome], FrozenSet[BundleOutcome]] = {
    None: frozenset({BundleOutcome.BUILT}),
    BundleOutcome.BUILT: frozenset({BundleOutcome.SIMULATED_OK, BundleOutcome.SIMULATED_FAIL}),
    BundleOutcome.SIMULATED_OK: frozenset({BundleOutcome.SUBMITTED, BundleOutcome.SUBMISSION_ERROR}),
    BundleOutcome.SUBMITTED: frozenset({BundleOutcome.INCLUDED, BundleOutcome.NOT_INCLUDED}),
}


def can_transition(current: Optional[BundleOutcome], new: BundleOutcome) -> bool:
    return new in TRANSITIONS.get(current, frozenset())


@dataclass(frozen=True)
class Bundle:
    transactions: Tuple[bytes, ...]     # signed raw transactions, in execution order
    tx_hashes: Tuple[str, ...]
    target_block: int

    def __post_init__(self):
        if not self.transactions:
            raise ValueError("bundle needs at least one transaction")
        if len(self.transactions) != len(self.tx_hashes):
            raise ValueError("one hash per transaction")
        if not 0 < self.target_block <= UINT64_MAX:
            raise ValueError(f"target_block out of range: {self.target_block}")

    @property
    def bundle_hash(self) -> str:
        """Identity of payload + target block. Same txs aimed at a later block = new bundle."""
        payload = b"".join(self.transactions) + self.target_block.to_bytes(8, "big")
        return Web3.to_hex(Web3.keccak(payload))

    @property
    def raw_transactions(self) -> Tuple[str, ...]:
        return tuple(Web3.to_hex(tx) for tx in self.transactions)
