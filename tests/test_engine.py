"""
Unit tests for signals/engine.py.

Functions tested:
  create_signal
  risk_multiple
  apply_status      (at-most-once flags, journal records, closing policy)
  ClosingPolicy
  generate_signal_id
"""
import math

import pytest

from signals.engine import (
    ClosingPolicy,
    apply_status,
    create_signal,
    generate_signal_id,
    risk_multiple,
)
from signals.errors import AlreadyRecorded, InvalidFormat
from signals.parsing import parse_signal_command
from signals.records import Direction, StatusKind


def _xau_buy():
    return create_signal(
        Direction.BUY, "xauusd", 4118, 4115, [4120, 4122, 4124, 4126, 4128]
    )


# ── create_signal ─────────────────────────────────────────────────────────────

class TestCreateSignal:

    def test_all_flags_start_false(self):
        sig = _xau_buy()
        assert sig.symbol == "XAUUSD"
        assert sig.direction is Direction.BUY
        assert sig.entry_hit is False
        assert sig.stop_loss_hit is False
        assert sig.take_profit_hit == [False] * 5
        assert sig.posted is None
        assert sig.created_at

    def test_symbol_whitespace_removed(self):
        sig = create_signal(Direction.SELL, " eur usd ", 1.08, 1.09)
        assert sig.symbol == "EURUSD"
        assert sig.take_profits == []
        assert sig.take_profit_hit == []

    def test_sparse_take_profits_kept(self):
        sig = create_signal(Direction.BUY, "XAUUSD", 4118, 4115, [4120, None, 4124])
        assert sig.take_profits == [4120.0, None, 4124.0]
        assert sig.take_profit_hit == [False, False, False]

    @pytest.mark.parametrize("symbol,entry,stop", [
        ("",        100.0,        95.0),
        ("   ",     100.0,        95.0),
        ("XAUUSD",  float("nan"), 95.0),
        ("XAUUSD",  100.0,        float("inf")),
        ("XAUUSD",  "abc",        95.0),
    ])
    def test_invalid_input_raises(self, symbol, entry, stop):
        with pytest.raises(InvalidFormat):
            create_signal(Direction.BUY, symbol, entry, stop)

    def test_too_many_take_profits(self):
        with pytest.raises(InvalidFormat):
            create_signal(Direction.BUY, "XAUUSD", 1, 0, [2, 3, 4, 5, 6, 7])

    def test_ids_are_unique_and_alphanumeric(self):
        ids = {_xau_buy().id for _ in range(50)}
        assert len(ids) == 50
        assert all(i.isalnum() for i in ids)

    def test_generate_id_skips_existing(self):
        first = generate_signal_id()
        again = generate_signal_id(existing_ids={first})
        assert again != first


# ── risk_multiple ─────────────────────────────────────────────────────────────

class TestRiskMultiple:

    def test_buy_favourable(self):
        r, profit = risk_multiple(Direction.BUY, 100.0, 95.0, 110.0)
        assert r == pytest.approx(2.0)
        assert profit == pytest.approx(10.0)

    def test_buy_adverse(self):
        r, _ = risk_multiple(Direction.BUY, 100.0, 95.0, 90.0)
        assert r == pytest.approx(-2.0)

    def test_sell_favourable(self):
        r, profit = risk_multiple(Direction.SELL, 100.0, 105.0, 90.0)
        assert r == pytest.approx(2.0)
        assert profit == pytest.approx(10.0)

    def test_entry_equals_stop_uses_unit_risk(self):
        # risk = |100 - 100| = 0 → 1.0, never a ZeroDivisionError
        r, _ = risk_multiple(Direction.BUY, 100.0, 100.0, 103.0)
        assert r == pytest.approx(3.0)
        assert math.isfinite(r)

    def test_sign_follows_direction_not_flag(self):
        # trailing stop filled above entry on a buy → positive R
        r, _ = risk_multiple(Direction.BUY, 100.0, 95.0, 101.0)
        assert r > 0


# ── apply_status ──────────────────────────────────────────────────────────────

class TestApplyStatus:

    def test_second_application_raises_and_leaves_signal(self):
        sig = _xau_buy()
        apply_status(sig, StatusKind.take_profit(2), 4122)
        before = (sig.entry_hit, sig.stop_loss_hit, list(sig.take_profit_hit))

        with pytest.raises(AlreadyRecorded):
            apply_status(sig, StatusKind.take_profit(2), 4122)
        assert (sig.entry_hit, sig.stop_loss_hit, list(sig.take_profit_hit)) == before

    @pytest.mark.parametrize("kind", [
        StatusKind.hit(),
        StatusKind.stop_loss(),
        StatusKind.take_profit(1),
        StatusKind.take_profit(5),
    ])
    def test_every_kind_is_at_most_once(self, kind):
        sig = _xau_buy()
        apply_status(sig, kind)
        with pytest.raises(AlreadyRecorded):
            apply_status(sig, kind)

    def test_without_price_no_record(self):
        sig = _xau_buy()
        outcome = apply_status(sig, StatusKind.hit())
        assert sig.entry_hit is True
        assert outcome.record is None
        assert outcome.price is None

    def test_with_price_builds_record(self):
        sig = _xau_buy()
        outcome = apply_status(sig, StatusKind.take_profit(1), 4120)
        rec = outcome.record
        assert rec.signal_id == sig.id
        assert rec.action == "tp1"
        assert rec.symbol == "XAUUSD"
        assert rec.price == pytest.approx(4120.0)
        assert rec.risk_multiple == pytest.approx(2 / 3)
        assert rec.profit == pytest.approx(2.0)

    def test_cancel_never_records(self):
        sig = _xau_buy()
        apply_status(sig, StatusKind.hit())
        apply_status(sig, StatusKind.stop_loss())
        outcome = apply_status(sig, StatusKind.cancel(), 4100)
        assert outcome.closes is True
        assert outcome.record is None

    def test_unconfigured_tp_slot_rejected(self):
        sig = create_signal(Direction.BUY, "XAUUSD", 4118, 4115, [4120, 4122])
        with pytest.raises(InvalidFormat):
            apply_status(sig, StatusKind.take_profit(3), 4124)
        assert sig.take_profit_hit == [False, False]

    def test_non_finite_price_rejected_before_mutation(self):
        sig = _xau_buy()
        with pytest.raises(InvalidFormat):
            apply_status(sig, StatusKind.stop_loss(), float("nan"))
        assert sig.stop_loss_hit is False

    def test_xauusd_scenario(self):
        sig = _xau_buy()

        tp1 = apply_status(sig, StatusKind.take_profit(1), 4120)
        assert tp1.record.risk_multiple == pytest.approx(0.667, abs=1e-3)
        assert tp1.closes is False

        sl = apply_status(sig, StatusKind.stop_loss(), 4115)
        assert sl.record.risk_multiple == pytest.approx(-1.0)
        assert sl.closes is True


# ── ClosingPolicy ─────────────────────────────────────────────────────────────

class TestClosingPolicy:

    def test_default_closes_hit_sl_and_final_tp(self):
        policy = ClosingPolicy()
        sig = _xau_buy()
        assert policy.closes(sig, StatusKind.hit())
        assert policy.closes(sig, StatusKind.stop_loss())
        assert policy.closes(sig, StatusKind.take_profit(5))
        assert not policy.closes(sig, StatusKind.take_profit(4))

    def test_final_tp_follows_configured_slots(self):
        sig = create_signal(Direction.SELL, "GBPUSD", 1.30, 1.31, [1.29, 1.28])
        assert ClosingPolicy().closes(sig, StatusKind.take_profit(2))
        assert not ClosingPolicy().closes(sig, StatusKind.take_profit(1))

    def test_final_tp_skips_blank_trailing_slots(self):
        # "/buy XAUUSD,4118,4115,4120," leaves a blank Tp 2 behind
        parsed = parse_signal_command("/buy XAUUSD,4118,4115,4120,")
        sig = create_signal(
            Direction.BUY, parsed.symbol, parsed.entry, parsed.stop_loss, parsed.take_profits
        )
        assert sig.take_profits == [4120.0, None]

        outcome = apply_status(sig, StatusKind.take_profit(1), 4120)
        assert outcome.closes is True

    def test_final_tp_ignores_blank_slots_in_the_middle(self):
        sig = create_signal(Direction.BUY, "XAUUSD", 4118, 4115, [4120, None, 4124, None])
        assert ClosingPolicy().closes(sig, StatusKind.take_profit(3))
        assert not ClosingPolicy().closes(sig, StatusKind.take_profit(4))

    def test_no_levels_means_no_final_tp(self):
        sig = create_signal(Direction.BUY, "XAUUSD", 4118, 4115, [None, None])
        assert not ClosingPolicy().closes(sig, StatusKind.take_profit(2))

    def test_cancel_always_closes(self):
        assert ClosingPolicy(frozenset()).closes(_xau_buy(), StatusKind.cancel())

    def test_explicit_levels(self):
        policy = ClosingPolicy.from_keys(["SL", "tp2"])
        sig = _xau_buy()
        assert policy.closes(sig, StatusKind.take_profit(2))
        assert not policy.closes(sig, StatusKind.take_profit(5))
        assert not policy.closes(sig, StatusKind.hit())

    def test_unknown_key_raises(self):
        with pytest.raises(ValueError):
            ClosingPolicy.from_keys(["tp6"])

    def test_policy_drives_outcome(self):
        sig = _xau_buy()
        outcome = apply_status(sig, StatusKind.hit(), 4118, ClosingPolicy.from_keys(["sl"]))
        assert outcome.closes is False
        assert outcome.record.risk_multiple == pytest.approx(0.0)
