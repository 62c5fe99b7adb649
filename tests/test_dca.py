"""Tests for the DCA ladder calculator."""

import pytest

from confluence.risk.dca import DCAOptions, calculate_dca_levels
from confluence.strategy.models import MarketConditionTag, PositionType, PriceAction


class TestPercentageLadder:
    def test_long_defaults(self):
        """100 entry, 1 % volatility → rungs at 3.45 %, 8.05 %, 13.8 % below."""
        levels = calculate_dca_levels(100.0, PositionType.LONG, 1.0, 3, 0.01)
        assert [lvl.level for lvl in levels] == [1, 2, 3]
        assert [lvl.price for lvl in levels] == [
            pytest.approx(96.55), pytest.approx(91.95), pytest.approx(86.2),
        ]
        assert [lvl.amount for lvl in levels] == [
            pytest.approx(1.0), pytest.approx(1.5), pytest.approx(2.0),
        ]
        assert all(lvl.partial_take_profit is None for lvl in levels)
        assert all(lvl.reinforcement_threshold is None for lvl in levels)

    def test_short_ladder_ascends(self):
        levels = calculate_dca_levels(100.0, "SHORT", 1.0, 3, 0.01)
        assert [lvl.price for lvl in levels] == [
            pytest.approx(103.45), pytest.approx(108.05), pytest.approx(113.8),
        ]

    def test_aligned_market_scales_amounts(self):
        levels = calculate_dca_levels(
            100.0, PositionType.LONG, 2.0, 2, 0.01, MarketConditionTag.BULLISH,
        )
        assert [lvl.amount for lvl in levels] == [pytest.approx(2.4), pytest.approx(3.6)]

    def test_volatile_market_shrinks_amounts(self):
        levels = calculate_dca_levels(
            100.0, PositionType.SHORT, 1.0, 1, 0.01, MarketConditionTag.VOLATILE,
        )
        assert levels[0].amount == pytest.approx(0.8)

    def test_at_most_five_percentage_rungs(self):
        levels = calculate_dca_levels(100.0, PositionType.LONG, 1.0, 8, 0.01)
        assert len(levels) == 5
        assert levels[-1].price == pytest.approx(100 * (1 - 0.25 * 1.15))

    def test_reinforcement_threshold(self):
        levels = calculate_dca_levels(
            100.0, PositionType.LONG, 1.0, 1, 0.01, options=DCAOptions(reinforcement=True),
        )
        assert levels[0].reinforcement_threshold == pytest.approx(96.55 * 1.02)

    def test_extreme_volatility_drops_non_positive_rungs(self):
        levels = calculate_dca_levels(100.0, PositionType.LONG, 1.0, 5, 0.5)
        assert levels
        assert all(lvl.price > 0 for lvl in levels)


class TestOptimisation:
    def test_volatile_regime_widens_spacing(self):
        opts = DCAOptions(optimization=True)
        levels = calculate_dca_levels(
            100.0, PositionType.LONG, 1.0, 1, 0.01, MarketConditionTag.VOLATILE, opts,
        )
        # 3 % × 1.5 × (1 + 0.01 × 25)
        assert levels[0].price == pytest.approx(100 * (1 - 0.03 * 1.5 * 1.25))
        assert levels[0].partial_take_profit == pytest.approx(levels[0].price * 1.03)
        assert levels[0].amount == pytest.approx(0.7)

    def test_ranging_price_action_tightens(self):
        opts = DCAOptions(optimization=True, price_action=PriceAction.RANGING)
        levels = calculate_dca_levels(100.0, PositionType.SHORT, 1.0, 1, 0.01, options=opts)
        assert levels[0].price == pytest.approx(100 * (1 + 0.03 * 0.7 * 1.25))
        assert levels[0].partial_take_profit == pytest.approx(levels[0].price * 0.97)

    def test_variable_amount_grows_with_depth(self):
        opts = DCAOptions(variable_amount=True)
        levels = calculate_dca_levels(100.0, PositionType.LONG, 1.0, 3, 0.01, options=opts)
        amounts = [lvl.amount for lvl in levels]
        assert amounts == sorted(amounts)
        assert amounts[0] == pytest.approx(1.5 ** 1.15)


class TestSupportResistance:
    def test_nearby_support_replaces_a_rung(self):
        opts = DCAOptions(adaptive_positioning=True, support_resistance=(95.0, 99.5, 110.0, 60.0))
        levels = calculate_dca_levels(100.0, PositionType.LONG, 1.0, 3, 0.01, options=opts)
        assert [lvl.price for lvl in levels] == [
            pytest.approx(96.55), pytest.approx(95.0), pytest.approx(91.95),
        ]
        assert [lvl.level for lvl in levels] == [1, 2, 3]
        support_rung = levels[1]
        assert support_rung.partial_take_profit == pytest.approx(95.0 * 1.03)

    def test_keeps_at_least_one_percentage_rung(self):
        opts = DCAOptions(adaptive_positioning=True, support_resistance=(95.0, 90.0))
        levels = calculate_dca_levels(100.0, PositionType.LONG, 1.0, 2, 0.01, options=opts)
        assert [lvl.price for lvl in levels] == [pytest.approx(96.55), pytest.approx(95.0)]

    def test_single_level_ignores_support(self):
        opts = DCAOptions(adaptive_positioning=True, support_resistance=(95.0,))
        levels = calculate_dca_levels(100.0, PositionType.LONG, 1.0, 1, 0.01, options=opts)
        assert [lvl.price for lvl in levels] == [pytest.approx(96.55)]

    def test_short_uses_resistance_above(self):
        opts = DCAOptions(adaptive_positioning=True, support_resistance=(95.0, 105.0))
        levels = calculate_dca_levels(100.0, PositionType.SHORT, 1.0, 2, 0.01, options=opts)
        assert [lvl.price for lvl in levels] == [pytest.approx(103.45), pytest.approx(105.0)]


class TestValidation:
    @pytest.mark.parametrize(
        "kwargs,match",
        [
            ({"entry_price": 0.0}, "entry_price"),
            ({"initial_size": -1.0}, "initial_size"),
            ({"levels": 0}, "levels"),
        ],
    )
    def test_rejects_bad_inputs(self, kwargs, match):
        args = {"entry_price": 100.0, "direction": "LONG", "initial_size": 1.0, "levels": 3}
        args.update(kwargs)
        with pytest.raises(ValueError, match=match):
            calculate_dca_levels(**args)

    def test_rejects_unknown_direction(self):
        with pytest.raises(ValueError):
            calculate_dca_levels(100.0, "SIDEWAYS", 1.0)
