"""Valuation engine: per-coin arithmetic, repricing and portfolio aggregation."""

from datetime import datetime

import pytest

from coinfolio.services.valuation import (
    Holding,
    PortfolioSummary,
    analyze,
    reprice,
    round_half_up,
    summarize,
    value_of,
    weighted_average,
)

NOW = datetime(2025, 1, 1, 12, 0, 0)


def _holding(symbol="BTC", quantity=1.0, buy=100.0, price=None, name=None) -> Holding:
    return Holding(
        symbol=symbol,
        name=name or symbol.title(),
        quantity=quantity,
        average_buy_price=buy,
        total_invested=quantity * buy,
        current_price=price,
    )


class TestRounding:
    def test_half_up(self):
        assert round_half_up(2.675) == 2.68
        assert round_half_up(-2.675) == -2.68
        assert round_half_up(48.8888) == 48.89

    def test_places(self):
        assert round_half_up(0.123456789, 8) == 0.12345679


class TestValueOf:
    def test_unpriced_holding_has_zero_valuation(self):
        btc = _holding(quantity=0.5, buy=45000)
        assert btc.total_invested == 22500
        valuation = value_of(btc)
        assert valuation.current_value == 0
        assert valuation.profit_loss == 0
        assert valuation.profit_loss_percentage == 0

    def test_zero_price_is_a_real_price(self):
        valuation = value_of(_holding(quantity=2, buy=10, price=0.0))
        assert valuation.current_value == 0
        assert valuation.profit_loss == -20
        assert valuation.profit_loss_percentage == -100

    @pytest.mark.parametrize("quantity,price", [(1, 1), (0.5, 67000), (3, 0.25), (10, 12.5)])
    def test_current_value_is_quantity_times_price(self, quantity, price):
        assert value_of(_holding(quantity=quantity, price=price)).current_value == quantity * price

    def test_percentage_formula(self):
        coin = _holding(quantity=4, buy=25, price=30)
        valuation = value_of(coin)
        expected = (valuation.current_value - coin.total_invested) / coin.total_invested * 100
        assert valuation.profit_loss_percentage == pytest.approx(expected, abs=0.01)

    def test_zero_invested_gives_zero_percentage(self):
        coin = Holding(symbol="AIR", name="Airdrop", quantity=10, average_buy_price=0,
                       total_invested=0, current_price=2)
        valuation = value_of(coin)
        assert valuation.current_value == 20
        assert valuation.profit_loss_percentage == 0


class TestReprice:
    def test_reprice_scenario(self):
        btc = _holding(quantity=0.5, buy=45000)
        priced = reprice(btc, 67000, now=NOW)
        assert priced.current_price == 67000
        assert priced.current_value == 33500
        assert priced.profit_loss == 11000
        assert priced.profit_loss_percentage == 48.89
        assert priced.last_price_update == NOW
        assert priced.updated_at == NOW

    def test_input_is_untouched(self):
        btc = _holding(quantity=0.5, buy=45000)
        reprice(btc, 67000, now=NOW)
        assert btc.current_price is None
        assert btc.current_value == 0
        assert btc.last_price_update is None

    def test_valuation_fields(self):
        fields = reprice(_holding(price=1), 2, now=NOW).valuation_fields()
        assert fields == {
            "current_price": 2,
            "current_value": 2,
            "profit_loss": -98,
            "profit_loss_percentage": -98,
            "last_price_update": NOW,
            "updated_at": NOW,
        }


class TestWeightedAverage:
    def test_equal_lots(self):
        assert weighted_average(1, 100, 1, 200) == 150

    def test_uneven_lots(self):
        assert weighted_average(3, 10, 1, 30) == 15

    def test_keeps_eight_places(self):
        assert weighted_average(3, 1, 0, 0) == 1
        assert weighted_average(2, 0.1, 1, 0.2) == 0.13333333

    def test_zero_total_quantity(self):
        with pytest.raises(ValueError):
            weighted_average(0, 100, 0, 200)


class TestSummarize:
    def test_empty(self):
        summary = summarize([])
        assert summary.coin_count == 0
        assert summary.total_invested == 0
        assert summary.current_value == 0
        assert summary.total_profit_loss == 0
        assert summary.total_profit_loss_percentage == 0
        assert summary.top_performer is None
        assert summary.worst_performer is None

    def test_totals(self):
        summary = summarize([
            _holding("BTC", quantity=1, buy=100, price=150),
            _holding("ETH", quantity=2, buy=50, price=25),
        ])
        assert summary.coin_count == 2
        assert summary.total_invested == 200
        assert summary.current_value == 200
        assert summary.total_profit_loss == 0
        assert summary.total_profit_loss_percentage == 0

    def test_performers(self):
        summary = summarize([
            _holding("BTC", price=150),
            _holding("ETH", price=50),
            _holding("SOL", price=110),
        ])
        assert summary.top_performer.symbol == "BTC"
        assert summary.top_performer.profit_loss_percentage == 50
        assert summary.worst_performer.symbol == "ETH"
        assert summary.worst_performer.profit_loss_percentage == -50

    def test_ties_keep_first_seen(self):
        summary = summarize([
            _holding("AAA", price=120),
            _holding("BBB", price=120),
        ])
        assert summary.top_performer.symbol == "AAA"
        assert summary.worst_performer.symbol == "AAA"

    def test_unpriced_holdings_count_their_cost(self):
        summary = summarize([_holding("BTC", quantity=0.5, buy=45000)])
        assert summary.total_invested == 22500
        assert summary.current_value == 0
        assert summary.total_profit_loss == -22500
        assert summary.total_profit_loss_percentage == -100


class TestAnalyze:
    def test_breakdown_sorted_by_value(self):
        coins = [
            _holding("ETH", quantity=1, buy=100, price=50),
            _holding("BTC", quantity=1, buy=100, price=150),
        ]
        analytics = analyze(coins, summarize(coins))
        assert [b.symbol for b in analytics.coin_breakdown] == ["BTC", "ETH"]
        assert analytics.coin_breakdown[0].allocation == 75
        assert analytics.coin_breakdown[1].allocation == 25

    def test_performance(self):
        coins = [
            _holding("BTC", quantity=2, buy=100, price=150),
            _holding("ETH", quantity=1, buy=100, price=50),
            _holding("SOL", quantity=1, buy=100, price=100),
        ]
        performance = analyze(coins, summarize(coins)).performance
        assert performance.total_coins == 3
        assert performance.profitable_coins == 1
        assert performance.losing_coins == 1
        assert performance.largest_position == 200
        assert performance.average_position == pytest.approx(133.33)

    def test_empty(self):
        analytics = analyze([], PortfolioSummary())
        assert analytics.coin_breakdown == []
        assert analytics.performance.total_coins == 0
        assert analytics.performance.largest_position == 0

    def test_allocation_zero_when_portfolio_worthless(self):
        coins = [_holding("BTC")]
        analytics = analyze(coins, summarize(coins))
        assert analytics.coin_breakdown[0].allocation == 0


class TestNonFinite:
    def test_round_rejects_infinity(self):
        with pytest.raises(ValueError):
            round_half_up(float("inf"))

    def test_overflowing_reprice_raises(self):
        with pytest.raises(ValueError):
            reprice(_holding(quantity=2), 1e308, now=NOW)
