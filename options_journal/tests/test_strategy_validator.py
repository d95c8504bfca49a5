"""
Tests for leg-structure validation.

Covers the per-strategy rules, the open-only action check, alias resolution
and the order-insensitivity of every verdict.
"""

import copy
import itertools
from datetime import date
from decimal import Decimal

import pytest

import options_journal.core.models.domain as dm
from options_journal.core.models.strategy_templates import (
    StrategyKind,
    get_all_templates,
    normalize_strategy,
    resolve_strategy,
)
from options_journal.core.validation import validate_strategy


EXP = date(2026, 3, 20)
LATER = date(2026, 4, 17)


def leg(action, option_type, strike, premium='1.00', expiration=EXP):
    return dm.Leg(
        action=action,
        option_type=option_type,
        strike=Decimal(str(strike)),
        expiration=expiration,
        premium=Decimal(premium),
    )


STO, BTO = dm.LegAction.SELL_TO_OPEN, dm.LegAction.BUY_TO_OPEN
STC, BTC = dm.LegAction.SELL_TO_CLOSE, dm.LegAction.BUY_TO_CLOSE
PUT, CALL = dm.OptionType.PUT, dm.OptionType.CALL


def good_iron_condor():
    return [
        leg(STO, PUT, 100, '1.20'),
        leg(BTO, PUT, 95, '0.60'),
        leg(STO, CALL, 110, '1.10'),
        leg(BTO, CALL, 115, '0.50'),
    ]


class TestStrategyResolution:

    def test_normalize_collapses_case_and_separators(self):
        assert normalize_strategy('  Put_Credit-Spread ') == 'put credit spread'

    @pytest.mark.parametrize('label,kind', [
        ('Put Credit Spread', StrategyKind.PUT_CREDIT_SPREAD),
        ('bull put spread', StrategyKind.PUT_CREDIT_SPREAD),
        ('PCS', StrategyKind.PUT_CREDIT_SPREAD),
        ('iron_condor', StrategyKind.IRON_CONDOR),
        ('IC', StrategyKind.IRON_CONDOR),
        ('csp', StrategyKind.CASH_SECURED_PUT),
        ('Short Strangle', StrategyKind.STRANGLE),
    ])
    def test_aliases_resolve(self, label, kind):
        """Known aliases map to one kind."""
        assert resolve_strategy(label) == kind

    @pytest.mark.parametrize('label,kind', [
        ('Short Iron Condor', StrategyKind.IRON_CONDOR),
        ('Iron Condor (weekly)', StrategyKind.IRON_CONDOR),
        ('SPY put credit spread', StrategyKind.PUT_CREDIT_SPREAD),
        ('QQQ credit spread', StrategyKind.CREDIT_SPREAD),
        ('Covered call on AAPL', StrategyKind.COVERED_CALL),
    ])
    def test_label_containing_a_known_name(self, label, kind):
        """The longest known phrase inside the label wins."""
        assert resolve_strategy(label) == kind

    @pytest.mark.parametrize('label', ['Jade Lizard', 'Custom', 'picnic', 'account hedge', ''])
    def test_short_aliases_match_whole_words_only(self, label):
        """'ic' inside 'picnic' or 'cc' inside 'account' is not a strategy."""
        assert resolve_strategy(label) is None

    @pytest.mark.parametrize('label,rule', [
        ('Short Iron Condor', 'PutSide'),
        ('Iron Condor (weekly)', 'PutSide'),
        ('SPY put credit spread', 'StrikeActionPairing'),
    ])
    def test_free_form_label_still_validated(self, label, rule):
        """Inverted put strikes are caught whatever the label decoration."""
        legs = [leg(STO, PUT, 95), leg(BTO, PUT, 100)]
        if 'condor' in label.lower():
            legs += [leg(STO, CALL, 110), leg(BTO, CALL, 115)]
        violation = validate_strategy(label, legs)
        assert violation is not None
        assert violation.rule == rule

    def test_every_kind_has_a_template(self):
        assert set(get_all_templates()) == set(StrategyKind)


class TestGenericRules:

    def test_no_legs(self):
        violation = validate_strategy('Iron Condor', [])
        assert violation.rule == 'NoLegs'

    def test_close_actions_rejected_on_open(self):
        """A new position cannot contain Buy/Sell to Close legs."""
        violation = validate_strategy('Vertical', [leg(STO, PUT, 100), leg(BTC, PUT, 95)])
        assert violation.rule == 'CloseActionNotAllowed'

    def test_close_actions_allowed_for_roll_tickets(self):
        assert validate_strategy('Custom', [leg(STC, PUT, 100), leg(BTC, PUT, 95)], allow_close_or_roll=True) is None

    def test_unknown_strategy_only_gets_generic_checks(self):
        """An unrecognized label with any open legs passes."""
        assert validate_strategy('Jade Lizard', [leg(STO, PUT, 100), leg(STO, CALL, 110), leg(BTO, CALL, 115)]) is None


class TestVerticalSpreads:

    def test_valid_put_credit_spread(self):
        assert validate_strategy('Put Credit Spread', [leg(STO, PUT, 100), leg(BTO, PUT, 95)]) is None

    def test_put_credit_spread_inverted_strikes(self):
        """Selling the lower put is a debit structure, not a put credit spread."""
        violation = validate_strategy('Put Credit Spread', [leg(STO, PUT, 95), leg(BTO, PUT, 100)])
        assert violation.rule == 'StrikeActionPairing'
        assert 'Expected:' in violation.message
        assert 'STO PUT 100 / BTO PUT 95' in violation.message

    def test_call_credit_spread_inverted_strikes(self):
        violation = validate_strategy('Call Credit Spread', [leg(STO, CALL, 110), leg(BTO, CALL, 105)])
        assert violation.rule == 'StrikeActionPairing'

    def test_valid_call_credit_spread(self):
        assert validate_strategy('bear call spread', [leg(STO, CALL, 105), leg(BTO, CALL, 110)]) is None

    def test_vertical_needs_two_legs(self):
        violation = validate_strategy('Vertical', [leg(STO, PUT, 100)])
        assert violation.rule == 'LegCount'

    def test_vertical_expiration_mismatch(self):
        violation = validate_strategy('Vertical', [leg(STO, PUT, 100), leg(BTO, PUT, 95, expiration=LATER)])
        assert violation.rule == 'ExpirationMismatch'

    def test_vertical_mixed_types(self):
        violation = validate_strategy('Credit Spread', [leg(STO, PUT, 100), leg(BTO, CALL, 105)])
        assert violation.rule == 'OptionTypeMix'


class TestIronCondor:

    def test_valid(self):
        assert validate_strategy('Iron Condor', good_iron_condor()) is None

    def test_wrong_leg_count(self):
        violation = validate_strategy('Iron Condor', good_iron_condor()[:3])
        assert violation.rule == 'LegCount'

    def test_put_side_inverted(self):
        legs = good_iron_condor()
        legs[0], legs[1] = leg(STO, PUT, 95), leg(BTO, PUT, 100)
        violation = validate_strategy('Iron Condor', legs)
        assert violation.rule == 'PutSide'
        assert 'PUT side' in violation.message

    def test_call_side_inverted(self):
        legs = good_iron_condor()
        legs[2], legs[3] = leg(STO, CALL, 115), leg(BTO, CALL, 110)
        violation = validate_strategy('Iron Condor', legs)
        assert violation.rule == 'CallSide'

    def test_three_puts_one_call(self):
        legs = good_iron_condor()
        legs[3] = leg(BTO, PUT, 90)
        violation = validate_strategy('Iron Condor', legs)
        assert violation.rule == 'OptionTypeMix'

    def test_order_insensitive(self):
        """Every permutation of a valid condor is valid; of an invalid one, fails the same rule."""
        bad = good_iron_condor()
        bad[2], bad[3] = leg(STO, CALL, 115), leg(BTO, CALL, 110)
        for perm in itertools.permutations(good_iron_condor()):
            assert validate_strategy('Iron Condor', list(perm)) is None
        for perm in itertools.permutations(bad):
            assert validate_strategy('Iron Condor', list(perm)).rule == 'CallSide'

    def test_does_not_mutate_legs(self):
        """Validation is pure: legs come back untouched and the verdict is repeatable."""
        legs = good_iron_condor()
        legs[0], legs[1] = leg(STO, PUT, 95), leg(BTO, PUT, 100)
        snapshot = copy.deepcopy(legs)
        first = validate_strategy('Iron Condor', legs)
        second = validate_strategy('Iron Condor', legs)
        assert first == second
        assert legs == snapshot


class TestVolatilityStructures:

    def test_straddle_strike_mismatch(self):
        violation = validate_strategy('Straddle', [leg(BTO, CALL, 100), leg(BTO, PUT, 105)])
        assert violation.rule == 'StrikeMismatch'
        assert violation.message == 'Straddle legs must share the same strike (got 100, 105).'

    def test_long_straddle_valid(self):
        assert validate_strategy('Long Straddle', [leg(BTO, CALL, 100), leg(BTO, PUT, 100)]) is None

    def test_straddle_mixed_direction(self):
        violation = validate_strategy('Straddle', [leg(BTO, CALL, 100), leg(STO, PUT, 100)])
        assert violation.rule == 'MixedDirection'

    def test_straddle_two_calls(self):
        violation = validate_strategy('Straddle', [leg(BTO, CALL, 100), leg(BTO, CALL, 100)])
        assert violation.rule == 'OptionTypeMix'

    def test_strangle_same_strike(self):
        violation = validate_strategy('Strangle', [leg(STO, CALL, 100), leg(STO, PUT, 100)])
        assert violation.rule == 'StrikeMismatch'
        assert violation.message == 'Strangle strikes must be different.'

    def test_strangle_expiration_mismatch(self):
        violation = validate_strategy('Strangle', [leg(STO, CALL, 110), leg(STO, PUT, 90, expiration=LATER)])
        assert violation.rule == 'ExpirationMismatch'

    def test_short_strangle_valid(self):
        assert validate_strategy('Short Strangle', [leg(STO, CALL, 110), leg(STO, PUT, 90)]) is None


class TestTimeSpreadsAndIncome:

    def test_calendar_valid(self):
        assert validate_strategy('Calendar', [leg(STO, CALL, 100), leg(BTO, CALL, 100, expiration=LATER)]) is None

    def test_calendar_needs_two_expirations(self):
        violation = validate_strategy('Calendar', [leg(STO, CALL, 100), leg(BTO, CALL, 100)])
        assert violation.rule == 'ExpirationMismatch'

    def test_diagonal_needs_different_strikes(self):
        violation = validate_strategy('Diagonal', [leg(STO, CALL, 100), leg(BTO, CALL, 100, expiration=LATER)])
        assert violation.rule == 'StrikeMismatch'

    def test_cash_secured_put_must_sell(self):
        violation = validate_strategy('CSP', [leg(BTO, PUT, 100)])
        assert violation.rule == 'OpeningActions'

    def test_covered_call_needs_short_call(self):
        violation = validate_strategy('Covered Call', [leg(BTO, CALL, 100)])
        assert violation.rule == 'OpeningActions'

    def test_butterfly_leg_count(self):
        violation = validate_strategy('Butterfly', [leg(BTO, CALL, 95), leg(STO, CALL, 100)])
        assert violation.rule == 'LegCount'

    def test_butterfly_strike_pattern_unchecked(self):
        """Three same-expiration legs pass regardless of spacing."""
        legs = [leg(BTO, CALL, 95), leg(STO, CALL, 100), leg(BTO, CALL, 130)]
        assert validate_strategy('Butterfly', legs) is None
