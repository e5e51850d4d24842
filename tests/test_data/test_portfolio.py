"""
Tests for positions, fills and the immutable position ledger.
"""
import math

import pytest

from horizon_trader.core.exceptions import InsufficientSharesError, InvalidOrderError
from horizon_trader.data.portfolio import (
    Position,
    PositionLedger,
    PositionSide,
    apply_buy,
    apply_sell,
    mark_to_market,
    unrealized_pnl,
)


@pytest.fixture
def aapl():
    return Position(ticker="AAPL", shares=10, avg_cost=100.0)


@pytest.fixture
def ledger(aapl):
    return PositionLedger.from_positions([aapl, Position("MSFT", 5, 300.0)])


class TestApplyBuy:
    """Test weighted average cost on buys."""

    def test_new_position_uses_fill_price(self):
        position = apply_buy(None, 10, 187.5, ticker="AAPL")

        assert position == Position("AAPL", 10, 187.5)

    def test_weighted_average(self, aapl):
        position = apply_buy(aapl, 10, 110.0)

        assert position.shares == 20
        assert position.avg_cost == pytest.approx(105.0)

    def test_uneven_weights(self, aapl):
        position = apply_buy(aapl, 30, 120.0)

        assert position.avg_cost == pytest.approx((10 * 100 + 30 * 120) / 40)

    def test_original_unchanged(self, aapl):
        apply_buy(aapl, 10, 110.0)

        assert aapl.shares == 10
        assert aapl.avg_cost == 100.0

    def test_new_position_needs_ticker(self):
        with pytest.raises(InvalidOrderError):
            apply_buy(None, 10, 100.0)

    @pytest.mark.parametrize("shares, price", [(0, 100.0), (-5, 100.0), (10, -1.0), (math.nan, 100.0)])
    def test_invalid_fill(self, aapl, shares, price):
        with pytest.raises(InvalidOrderError):
            apply_buy(aapl, shares, price)


class TestApplySell:
    """Test realized P&L and position removal on sells."""

    def test_round_trip_same_price(self, aapl):
        """Buying then selling everything at the same price realizes 0 and removes the position."""
        result = apply_sell(aapl, 10, 100.0)

        assert result.realized_pnl == 0.0
        assert result.position is None

    def test_partial_sell_keeps_avg_cost(self, aapl):
        result = apply_sell(aapl, 4, 125.0)

        assert result.realized_pnl == pytest.approx(4 * 25.0)
        assert result.position.shares == 6
        assert result.position.avg_cost == 100.0

    def test_loss(self, aapl):
        assert apply_sell(aapl, 10, 90.0).realized_pnl == pytest.approx(-100.0)

    def test_oversell(self, aapl):
        with pytest.raises(InsufficientSharesError) as exc:
            apply_sell(aapl, 15, 100.0)

        assert exc.value.requested == 15
        assert exc.value.available == 10

    def test_oversell_by_a_sliver(self, aapl):
        """Any fill above the holding is rejected, however small the excess."""
        with pytest.raises(InsufficientSharesError):
            apply_sell(aapl, 10 + 5e-10, 100.0)

    def test_no_position(self):
        with pytest.raises(InsufficientSharesError):
            apply_sell(None, 1, 100.0)

    def test_float_residue_closes_position(self):
        position = apply_buy(apply_buy(None, 0.1, 10.0, ticker="X"), 0.2, 10.0)

        assert apply_sell(position, 0.3, 10.0).position is None


class TestShortPositions:
    """Test sign flip for short positions."""

    def test_short_profit_when_price_falls(self):
        short = Position("TSLA", 10, 100.0, side=PositionSide.SHORT)

        assert apply_sell(short, 10, 90.0).realized_pnl == pytest.approx(100.0)

    def test_short_unrealized(self):
        short = Position("TSLA", 10, 100.0, side=PositionSide.SHORT)

        assert unrealized_pnl(short, 110.0) == pytest.approx(-100.0)
        assert short.direction == -1


class TestUnrealized:
    def test_long(self, aapl):
        assert unrealized_pnl(aapl, 120.0) == pytest.approx(200.0)

    def test_mark_to_market(self, aapl):
        marked = mark_to_market(aapl, 95.0)

        assert marked.unrealized_pnl == pytest.approx(-50.0)
        assert aapl.unrealized_pnl == 0.0


class TestPositionLedger:
    """Test the immutable ticker -> Position mapping."""

    def test_mapping_interface(self, ledger):
        assert len(ledger) == 2
        assert set(ledger) == {"AAPL", "MSFT"}
        assert ledger["MSFT"].shares == 5
        assert ledger.get("NVDA") is None

    def test_with_position_returns_new_ledger(self, ledger):
        updated = ledger.with_position(Position("NVDA", 2, 500.0))

        assert "NVDA" in updated
        assert "NVDA" not in ledger

    def test_with_none_removes_ticker(self, ledger):
        updated = ledger.with_position(None, ticker="AAPL")

        assert set(updated) == {"MSFT"}
        assert ledger.with_position(None) == ledger

    def test_without(self, ledger):
        assert set(ledger.without("MSFT")) == {"AAPL"}
        assert ledger.without("NVDA") == ledger

    def test_cost_basis(self, ledger):
        assert ledger.cost_basis == pytest.approx(10 * 100 + 5 * 300)

    def test_market_value_falls_back_to_avg_cost(self, ledger):
        assert ledger.market_value({"AAPL": 110.0}) == pytest.approx(10 * 110 + 5 * 300)
        assert ledger.market_value() == pytest.approx(ledger.cost_basis)

    def test_unrealized(self, ledger):
        assert ledger.unrealized_pnl({"AAPL": 110.0, "MSFT": 290.0}) == pytest.approx(100 - 50)

    def test_mark_to_market(self, ledger):
        marked = ledger.mark_to_market({"AAPL": 90.0})

        assert marked["AAPL"].unrealized_pnl == pytest.approx(-100.0)
        assert marked["MSFT"].unrealized_pnl == 0.0
        assert ledger["AAPL"].unrealized_pnl == 0.0

    def test_equality(self, ledger, aapl):
        assert ledger == PositionLedger({"AAPL": aapl, "MSFT": Position("MSFT", 5, 300.0)})
        assert ledger != PositionLedger()
