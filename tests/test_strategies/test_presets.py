"""
Tests for the strategy registry, preset strategies and the strategy advisor.
"""
import numpy as np
import pytest

from horizon_trader.core.data_provider import PriceSeries
from horizon_trader.core.exceptions import InvalidParamsError
from horizon_trader.core.trading_strategy import TradingStrategy
from horizon_trader.core.types import RebalanceFrequency, SignalType, StrategyStyle
from horizon_trader.indicators.technical import IndicatorType, SignalThresholds
from horizon_trader.strategies import STRATEGY_REGISTRY, create_strategy, list_strategies
from horizon_trader.strategies.advisor import (
    PRESET_STRATEGIES,
    StrategyComparison,
    compare_strategies,
    recommend_strategy,
)


@pytest.fixture
def price_data():
    """Two tickers with 260 bars of noisy history."""
    rng = np.random.default_rng(3)
    return {
        ticker: PriceSeries.from_closes(ticker, 100 * np.cumprod(1 + rng.normal(0.001, 0.015, 260)))
        for ticker in ("AAPL", "MSFT")
    }


class TestRegistry:
    """Test registration and lookup by name."""

    def test_presets_registered(self):
        assert set(PRESET_STRATEGIES) | {"custom"} <= set(list_strategies())

    def test_list_is_sorted(self):
        assert list_strategies() == sorted(STRATEGY_REGISTRY)

    def test_unknown_name(self):
        with pytest.raises(ValueError, match="unknown_strategy"):
            create_strategy("unknown_strategy")

    def test_create_returns_strategy(self):
        strategy = create_strategy("momentum")

        assert isinstance(strategy, TradingStrategy)
        assert str(strategy) == "Momentum Strategy (weekly rebalancing)"

    def test_thresholds_passed_through(self):
        thresholds = SignalThresholds(sma_threshold=0.05)

        assert create_strategy("conservative", thresholds=thresholds).thresholds is thresholds


class TestPresets:
    """Test preset strategy configurations."""

    @pytest.mark.parametrize("name, types, frequency, style", [
        ("trend_following", [IndicatorType.SMA, IndicatorType.SMA],
         RebalanceFrequency.WEEKLY, StrategyStyle.TREND_FOLLOWING),
        ("mean_reversion", [IndicatorType.RSI, IndicatorType.BOLLINGER],
         RebalanceFrequency.DAILY, StrategyStyle.MEAN_REVERSION),
        ("momentum", [IndicatorType.MACD, IndicatorType.EMA, IndicatorType.RSI],
         RebalanceFrequency.WEEKLY, StrategyStyle.MOMENTUM),
        ("conservative", [IndicatorType.SMA, IndicatorType.RSI, IndicatorType.BOLLINGER],
         RebalanceFrequency.MONTHLY, StrategyStyle.CONSERVATIVE),
    ])
    def test_config(self, name, types, frequency, style):
        config = create_strategy(name).config

        assert [spec.indicator_type for spec in config.indicators] == types
        assert config.rebalance_freq == frequency
        assert config.style == style

    def test_trend_following_windows(self):
        config = create_strategy("trend_following").config

        assert [spec.params["window"] for spec in config.indicators] == [50, 200]
        assert config.required_window == 200

    def test_momentum_rsi_bounds(self):
        rsi = create_strategy("momentum").config.indicators[2]

        assert (rsi.params["oversold"], rsi.params["overbought"]) == (20, 80)

    def test_params_override_defaults(self):
        strategy = create_strategy("mean_reversion", {"rsi_window": 7, "oversold": 25})
        rsi = strategy.config.indicators[0]

        assert rsi.params["window"] == 7
        assert rsi.params["oversold"] == 25
        assert rsi.params["overbought"] == 70

    def test_invalid_params_fail_at_construction(self):
        with pytest.raises(InvalidParamsError):
            create_strategy("mean_reversion", {"oversold": 80, "overbought": 20})

    def test_explain(self):
        explanation = create_strategy("mean_reversion").explain()

        assert explanation["name"] == "Mean Reversion"
        assert explanation["frequency"] == "daily"
        assert [i["type"] for i in explanation["indicators"]] == ["RSI", "BOLLINGER"]
        assert set(explanation["rules"]) == {"entry", "exit"}

    def test_signals_for_every_ticker(self, price_data):
        signals = create_strategy("conservative").generate_signals(price_data)

        assert set(signals) == {"AAPL", "MSFT"}
        for signal in signals.values():
            assert signal.signal_type in SignalType
            assert 0.0 <= signal.confidence <= 1.0

    def test_recommend_frequency_uses_style(self):
        assert create_strategy("momentum").recommend_frequency(5) == RebalanceFrequency.MONTHLY
        assert create_strategy("mean_reversion").recommend_frequency(5) == RebalanceFrequency.DAILY


class TestCustomStrategy:
    """Test the config-driven custom strategy."""

    def test_default_indicators(self):
        config = create_strategy("custom").config

        assert [s.indicator_type for s in config.indicators] == [
            IndicatorType.SMA, IndicatorType.RSI, IndicatorType.BOLLINGER,
        ]

    def test_from_params(self):
        strategy = create_strategy("custom", {
            "name": "EMA + MACD",
            "indicators": [
                {"type": "EMA", "params": {"window": 9}},
                {"type": "MACD"},
            ],
            "rebalance_freq": "daily",
            "style": "momentum",
        })

        assert strategy.config.name == "EMA + MACD"
        assert strategy.config.rebalance_freq == RebalanceFrequency.DAILY
        assert strategy.config.required_window == 34

    def test_empty_indicators_rejected(self):
        with pytest.raises(InvalidParamsError):
            create_strategy("custom", {"indicators": []})

    def test_bad_frequency_rejected(self):
        with pytest.raises(InvalidParamsError):
            create_strategy("custom", {"rebalance_freq": "hourly"})


class TestRecommendStrategy:
    """Test horizon/risk based strategy recommendation."""

    @pytest.mark.parametrize("horizon, risk, strategy, frequency", [
        (1, "high", "momentum", RebalanceFrequency.WEEKLY),
        (1, "low", "trend_following", RebalanceFrequency.WEEKLY),
        (2, "medium", "mean_reversion", RebalanceFrequency.DAILY),
        (2, "low", "conservative", RebalanceFrequency.MONTHLY),
        (5, "high", "trend_following", RebalanceFrequency.MONTHLY),
        (5, "low", "conservative", RebalanceFrequency.MONTHLY),
    ])
    def test_table(self, horizon, risk, strategy, frequency):
        rec = recommend_strategy(horizon, risk)

        assert rec.strategy == strategy
        assert rec.frequency == frequency
        assert 0 < rec.confidence <= 1

    def test_reasoning(self):
        rec = recommend_strategy(5, "low")

        assert rec.confidence == 0.9
        assert rec.reasoning.startswith("Long-term horizon favors conservative strategies. ")
        assert rec.reasoning.endswith("Conservative approach minimizes risk and volatility")

    def test_volatility_adjusts_frequency(self):
        assert recommend_strategy(5, "high", volatility=0.5).frequency == RebalanceFrequency.WEEKLY

    def test_risk_is_case_insensitive(self):
        assert recommend_strategy(1, "HIGH").strategy == "momentum"

    @pytest.mark.parametrize("horizon, risk", [(0, "low"), (-1, "medium"), (1, "extreme")])
    def test_invalid_input(self, horizon, risk):
        with pytest.raises(InvalidParamsError):
            recommend_strategy(horizon, risk)

    def test_to_dict(self):
        data = recommend_strategy(1).to_dict()

        assert data["strategy"] == "trend_following"
        assert data["frequency"] == "weekly"


class TestCompareStrategies:
    """Test signal distribution comparison."""

    def test_all_presets_by_default(self, price_data):
        comparison = compare_strategies(price_data)

        assert list(comparison) == list(PRESET_STRATEGIES)
        for result in comparison.values():
            assert result.total_signals == 2
            assert sum(result.signal_distribution.values()) == 2
            assert set(result.signal_distribution) == {"buy", "sell", "hold"}
            assert 0.0 <= result.average_confidence <= 1.0

    def test_selected_names(self, price_data):
        assert list(compare_strategies(price_data, ["momentum"])) == ["momentum"]

    def test_ratios(self):
        comparison = StrategyComparison("x", {"buy": 3, "sell": 1, "hold": 0}, 0.5, 4)

        assert comparison.buy_ratio == 0.75
        assert comparison.sell_ratio == 0.25
        assert StrategyComparison("empty").buy_ratio == 0.0
