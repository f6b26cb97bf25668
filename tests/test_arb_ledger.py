"""
Tests for flasharb/execution/bundle.py and flasharb/execution/ledger.py

Covers:
  - Outcome state machine: forward-only, terminal states
  - Bundle validation and hash identity (payload + target block)
  - Ledger records, rejects invalid transitions, tracks in-flight bundles
  - Same hash recorded twice is one entry
"""
import pytest

from flasharb.errors import InvalidTransition
from flasharb.execution.bundle import Bundle, BundleOutcome, can_transition
from flasharb.execution.ledger import ExecutionLedger

TX = b"\x02\xf8\x70" + b"\x11" * 40
TX_HASH = "0x" + "ab" * 32


def _make_bundle(target_block=101, transactions=(TX,)):
    return Bundle(
        transactions=tuple(transactions),
        tx_hashes=tuple(TX_HASH for _ in transactions),
        target_block=target_block,
    )


class TestTransitions:
    def test_happy_path(self):
        assert can_transition(None, BundleOutcome.BUILT)
        assert can_transition(BundleOutcome.BUILT, BundleOutcome.SIMULATED_OK)
        assert can_transition(BundleOutcome.SIMULATED_OK, BundleOutcome.SUBMITTED)
        assert can_transition(BundleOutcome.SUBMITTED, BundleOutcome.INCLUDED)

    def test_cannot_submit_without_simulation(self):
        assert not can_transition(BundleOutcome.BUILT, BundleOutcome.SUBMITTED)
        assert not can_transition(BundleOutcome.SIMULATED_FAIL, BundleOutcome.SUBMITTED)

    def test_no_backwards(self):
        assert not can_transition(BundleOutcome.SUBMITTED, BundleOutcome.BUILT)
        assert not can_transition(BundleOutcome.INCLUDED, BundleOutcome.NOT_INCLUDED)

    def test_terminal_states(self):
        terminal = {o for o in BundleOutcome if o.is_terminal}
        assert terminal == {
            BundleOutcome.SIMULATED_FAIL, BundleOutcome.SUBMISSION_ERROR,
            BundleOutcome.INCLUDED, BundleOutcome.NOT_INCLUDED,
        }


class TestBundle:
    def test_hash_is_deterministic(self):
        assert _make_bundle().bundle_hash == _make_bundle().bundle_hash
        assert len(_make_bundle().bundle_hash) == 66

    def test_later_target_block_is_new_bundle(self):
        assert _make_bundle(101).bundle_hash != _make_bundle(102).bundle_hash

    def test_different_payload_is_new_bundle(self):
        other = TX[:-1] + b"\x12"
        assert _make_bundle().bundle_hash != _make_bundle(transactions=(other,)).bundle_hash

    def test_raw_transactions_hex(self):
        assert _make_bundle().raw_transactions[0].startswith("0x02f870")

    def test_empty_rejected(self):
        with pytest.raises(ValueError):
            Bundle(transactions=(), tx_hashes=(), target_block=1)

    def test_target_block_range(self):
        with pytest.raises(ValueError):
            _make_bundle(target_block=0)
        with pytest.raises(ValueError):
            _make_bundle(target_block=2 ** 64)


class TestExecutionLedger:
    @pytest.fixture
    def ledger(self):
        return ExecutionLedger()

    def test_record_lifecycle(self, ledger):
        h = _make_bundle().bundle_hash
        ledger.record(h, BundleOutcome.BUILT, 101)
        ledger.record(h, BundleOutcome.SIMULATED_OK)
        ledger.record(h, BundleOutcome.SUBMITTED)
        entry = ledger.record(h, BundleOutcome.INCLUDED)
        assert entry.outcome == BundleOutcome.INCLUDED
        assert entry.target_block == 101
        assert len(ledger) == 1

    def test_invalid_transition_raises(self, ledger):
        h = _make_bundle().bundle_hash
        ledger.record(h, BundleOutcome.BUILT)
        with pytest.raises(InvalidTransition):
            ledger.record(h, BundleOutcome.SUBMITTED)

    def test_cannot_rebuild_known_hash(self, ledger):
        h = _make_bundle().bundle_hash
        ledger.record(h, BundleOutcome.BUILT)
        with pytest.raises(InvalidTransition):
            ledger.record(h, BundleOutcome.BUILT)
        assert len(ledger) == 1

    def test_first_record_must_be_built(self, ledger):
        with pytest.raises(InvalidTransition):
            ledger.record("0xdead", BundleOutcome.SIMULATED_OK)
        assert not ledger.has("0xdead")

    def test_in_flight(self, ledger):
        a, b = _make_bundle(101).bundle_hash, _make_bundle(102).bundle_hash
        ledger.record(a, BundleOutcome.BUILT)
        ledger.record(a, BundleOutcome.SIMULATED_FAIL)
        ledger.record(b, BundleOutcome.BUILT)
        ledger.record(b, BundleOutcome.SIMULATED_OK)
        ledger.record(b, BundleOutcome.SUBMITTED)
        assert [e.bundle_hash for e in ledger.in_flight()] == [b]

    def test_stats(self, ledger):
        h = _make_bundle().bundle_hash
        ledger.record(h, BundleOutcome.BUILT)
        stats = ledger.get_stats()
        assert stats["entries"] == 1
        assert stats["in_flight"] == 1
        assert stats["by_outcome"]["built"] == 1
