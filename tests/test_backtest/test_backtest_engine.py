"""
Tests for the backtest engine and performance metrics.
"""
import math
from datetime import date

import numpy as np
import pytest

from horizon_trader.backtest.engine import END_OF_BACKTEST, BacktestEngine
from horizon_trader.backtest.metrics import (
    BacktestMetrics,
    calculate_metrics,
    max_drawdown,
    sharpe_ratio,
)
from horizon_trader.core.data_provider import PriceSeries
from horizon_trader.core.exceptions import InvalidParamsError
from horizon_trader.core.ledger_store import Transaction, TransactionType
from horizon_trader.core.trading_strategy import Signal, StrategyConfig, TradingStrategy
from horizon_trader.core.types import SignalType
from horizon_trader.indicators.technical import IndicatorSpec
from horizon_trader.strategies import create_strategy

START = date(2024, 1, 1)


class ScriptedStrategy(TradingStrategy):
    """Emits pre-scripted signals by bar index and records what it was shown."""

    def __init__(self, script):
        self.script = script        # bar index → SignalType
        self.seen_last_dates = []
        super().__init__(name="scripted")

    def build_config(self):
        return StrategyConfig(name="Scripted", indicators=(IndicatorSpec("SMA", {"window": 1}),))

    def generate_signals(self, price_data, as_of=None):
        signals = {}
        for ticker, series in price_data.items():
            self.seen_last_dates.append(series.dates[-1])
            signal_type = self.script.get(len(series) - 1, SignalType.HOLD)
            signals[ticker] = Signal(ticker, signal_type, 1.0, f"scripted {signal_type.value}")
        return signals


@pytest.fixture
def step_data():
    """Five bars at 100 then five at 110, starting 2024-01-01 (business days)."""
    return {"X": PriceSeries.from_closes("X", [100.0] * 5 + [110.0] * 5, start_date=START)}


@pytest.fixture
def free_engine():
    return BacktestEngine(initial_cash=10_000, commission_rate=0.0, slippage_rate=0.0, position_size_pct=50)


def sell(pnl, commission=0.0, slippage=0.0):
    return Transaction("u", TransactionType.SELL, 0.0, "X", 1, 1.0, realized_pnl=pnl,
                       commission=commission, slippage=slippage)


class TestBacktestEngine:
    """Test the daily simulation loop."""

    def test_scripted_round_trip(self, free_engine, step_data):
        """Buy 50 shares at 100, sell at 110: +500."""
        strategy = ScriptedStrategy({0: SignalType.BUY, 5: SignalType.SELL})
        metrics = free_engine.run_backtest(strategy, step_data, START, date(2024, 12, 31))

        trades = [t for t in free_engine.transactions if t.transaction_type is not TransactionType.DEPOSIT]
        assert [(t.transaction_type, t.quantity, t.price) for t in trades] == [
            (TransactionType.BUY, 50, 100.0),
            (TransactionType.SELL, 50, 110.0),
        ]
        assert metrics.final_value == pytest.approx(10_500)
        assert metrics.total_return == pytest.approx(5.0)
        assert metrics.total_trades == 1
        assert metrics.win_rate == 100.0
        assert math.isinf(metrics.profit_factor)
        assert metrics.max_drawdown == 0.0

    def test_open_positions_closed_at_end(self, free_engine, step_data):
        strategy = ScriptedStrategy({0: SignalType.BUY})
        free_engine.run_backtest(strategy, step_data, START, date(2024, 12, 31))

        last = free_engine.transactions[-1]
        assert last.transaction_type is TransactionType.SELL
        assert free_engine.trade_reasons[last.id] == END_OF_BACKTEST
        assert len(free_engine.ledger) == 0
        assert free_engine.daily_values[-1] == free_engine.wallet.balance == pytest.approx(10_500)

    def test_sell_without_position_ignored(self, free_engine, step_data):
        strategy = ScriptedStrategy({2: SignalType.SELL})
        metrics = free_engine.run_backtest(strategy, step_data, START, date(2024, 12, 31))

        assert len(free_engine.transactions) == 1
        assert metrics.final_value == 10_000

    def test_no_lookahead(self, free_engine, step_data):
        """The strategy only ever sees bars up to the simulated day."""
        strategy = ScriptedStrategy({})
        free_engine.run_backtest(strategy, step_data, START, date(2024, 12, 31))

        assert strategy.seen_last_dates == free_engine.daily_dates
        assert len(free_engine.daily_values) == 10

    def test_costs_reduce_quantity(self, step_data):
        engine = BacktestEngine(initial_cash=10_000, commission_rate=0.001, slippage_rate=0.0005)
        engine.run_backtest(ScriptedStrategy({0: SignalType.BUY}), step_data, START, date(2024, 12, 31))

        buy = next(t for t in engine.transactions if t.transaction_type is TransactionType.BUY)
        assert buy.quantity == math.floor(5000 / (100 * 1.0015))
        assert engine.metrics.total_costs > 0

    def test_empty_range(self, free_engine, step_data):
        metrics = free_engine.run_backtest(ScriptedStrategy({}), step_data, date(2030, 1, 1), date(2030, 12, 31))

        assert metrics == BacktestMetrics()

    def test_real_strategy_invariants(self):
        """RSI alone on a sine wave buys in the troughs and sells on the rallies."""
        closes = 100 + 10 * np.sin(np.arange(300) / 8)
        data = {"SINE": PriceSeries.from_closes("SINE", closes, start_date=START)}
        strategy = create_strategy("custom", {"indicators": [{"type": "RSI", "params": {"window": 14}}]})
        engine = BacktestEngine(initial_cash=100_000)

        metrics = engine.run_backtest(strategy, data, START, date(2025, 12, 31))

        assert metrics.total_trades > 0
        assert len(engine.ledger) == 0
        assert metrics.final_value == pytest.approx(engine.wallet.balance)
        assert engine.wallet.balance >= 0
        assert engine.transactions[0].transaction_type is TransactionType.DEPOSIT

    def test_report(self, free_engine, step_data):
        assert "error" in free_engine.generate_report()

        free_engine.run_backtest(ScriptedStrategy({0: SignalType.BUY}), step_data, START, date(2024, 12, 31))
        report = free_engine.generate_report()

        assert report["trade_count"] == 2
        assert report["trades"][0]["reason"] == "scripted buy"
        assert report["trades"][0]["date"] == "2024-01-01"
        assert report["trades"][1]["profit"] == pytest.approx(500)
        assert report["wallet_summary"]["total_value"] == pytest.approx(10_500)

    @pytest.mark.parametrize("kwargs", [{"initial_cash": 0}, {"position_size_pct": 0}, {"position_size_pct": 150}])
    def test_invalid_settings(self, kwargs):
        with pytest.raises(InvalidParamsError):
            BacktestEngine(**kwargs)


class TestMetrics:
    """Test metric helpers."""

    def test_max_drawdown(self):
        assert max_drawdown([100, 120, 90, 130]) == pytest.approx(25.0)
        assert max_drawdown([100, 110, 120]) == 0.0
        assert max_drawdown([]) == 0.0

    def test_sharpe_flat_is_zero(self):
        assert sharpe_ratio([100, 100, 100]) == 0.0
        assert sharpe_ratio([100]) == 0.0

    def test_sharpe_sign(self):
        assert sharpe_ratio([100, 102, 101, 104, 106]) > 0
        assert sharpe_ratio([100, 98, 99, 96, 94]) < 0

    def test_trade_statistics(self):
        transactions = [
            sell(100, commission=1.0, slippage=0.5),
            sell(-50),
            sell(200),
            sell(-25),
            sell(-25),
        ]
        metrics = calculate_metrics(transactions, [100_000, 100_200], 100_000, trading_days=2)

        assert metrics.total_trades == 5
        assert metrics.winning_trades == 2
        assert metrics.losing_trades == 3
        assert metrics.win_rate == pytest.approx(40.0)
        assert metrics.avg_profit == pytest.approx(150.0)
        assert metrics.avg_loss == pytest.approx(-100 / 3)
        assert metrics.profit_factor == pytest.approx(3.0)
        assert (metrics.max_consecutive_wins, metrics.max_consecutive_losses) == (1, 2)
        assert metrics.total_costs == pytest.approx(1.5)

    def test_annual_return(self):
        metrics = calculate_metrics([], [100_000, 110_000], 100_000, trading_days=252)

        assert metrics.total_return == pytest.approx(10.0)
        assert metrics.annual_return == pytest.approx(10.0)
        assert metrics.total_trades == 0

    def test_summary_contains_values(self):
        text = BacktestMetrics(total_return=12.5, total_trades=3).summary()

        assert "12.50%" in text
        assert "3" in text
