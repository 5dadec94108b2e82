"""得分计算测试"""
from dataclasses import replace
import random

import pytest

from dotenko.actions import Intent
from dotenko.cards import str_to_card, str_to_cards
from dotenko.config import GameRuleConfig
from dotenko.errors import StaleAction
from dotenko.phases import Phase, Outcome
from dotenko.scoring import RATE_CAP, ScoringEngine, ScoreResult


RNG = random.Random(0)
REVENGE = GameRuleConfig(allow_revenge=True)


def c(s):
    return str_to_card(s)


def settling(make_state, hands=None, field_owner="a", revenge=None, **kwargs):
    """b 宣言 (可选 revenge 再宣言) 后关闭窗口，返回 settling 状态"""
    hands = hands or {"a": "s2", "b": "s3 h4", "c": "h9"}
    state = make_state(hands, field="c7", field_owner=field_owner, **kwargs)
    state = state.with_intent(Intent.declare("b"), RNG)
    if revenge:
        state = state.with_intent(Intent.declare(revenge), RNG)
    state = state.close_revenge_window()
    assert state.phase == Phase.SETTLING
    return state


class TestSafeMultiply:
    """带上限乘法测试"""

    def test_plain(self):
        assert ScoringEngine.safe_multiply(3, 4) == 12

    def test_cap(self):
        assert ScoringEngine.safe_multiply(600_000, 2) == RATE_CAP
        assert ScoringEngine.safe_multiply(RATE_CAP, 2) == RATE_CAP

    def test_custom_cap(self):
        assert ScoringEngine.safe_multiply(10, 10, cap=50) == 50


class TestStackRate:
    """连续同数字倍率测试"""

    def test_below_threshold(self):
        up, value, count, triggered = ScoringEngine.apply_stack_rate(
            str_to_cards("s7 h7"), 1, None, 0, 3
        )
        assert (up, value, count, triggered) == (1, 7, 2, ())

    def test_reaches_threshold(self):
        up, value, count, triggered = ScoringEngine.apply_stack_rate(
            str_to_cards("d7"), 1, 7, 2, 3
        )
        assert up == 2
        assert count == 0
        assert triggered == (c("d7"),)

    def test_value_change_resets(self):
        _, value, count, _ = ScoringEngine.apply_stack_rate(
            str_to_cards("d8"), 1, 7, 2, 3
        )
        assert (value, count) == (8, 1)

    def test_count_restarts_after_trigger(self):
        up, _, count, triggered = ScoringEngine.apply_stack_rate(
            str_to_cards("s7 h7 d7 c7"), 1, None, 0, 2
        )
        assert up == 4
        assert count == 0
        assert len(triggered) == 2

    def test_no_threshold(self):
        up, _, count, triggered = ScoringEngine.apply_stack_rate(
            str_to_cards("s7 h7 d7"), 1, None, 0, None
        )
        assert up == 1
        assert count == 3
        assert triggered == ()


class TestSettlementParties:
    """结算方测试"""

    def test_dotenko_field_owner_pays(self, make_state):
        state = settling(make_state, deck_bottom="h5")
        assert ScoringEngine.settlement_parties(state) == (("b",), ("a",))

    def test_dotenko_on_starter_everyone_pays(self, make_state):
        state = settling(make_state, field_owner=None, deck_bottom="h5")
        assert ScoringEngine.settlement_parties(state) == (("b",), ("a", "c"))

    def test_revenge_overturned_pays(self, make_state):
        hands = {"a": "s2", "b": "s3 h4", "c": "h7"}
        state = settling(make_state, hands=hands, revenge="c", deck_bottom="h5", config=REVENGE)
        assert ScoringEngine.settlement_parties(state) == (("c",), ("a", "b"))

    def test_burst(self, make_state):
        state = make_state(
            {"a": "s1", "b": "s2", "c": "s4"}, field="c7", phase=Phase.SETTLING,
            outcome=Outcome.BURST, burst_player_id="b",
        )
        assert ScoringEngine.settlement_parties(state) == (("a", "c"), ("b",))

    def test_shotenko_upheld(self, make_state):
        state = make_state(
            {"a": "s3 h4", "b": "s2", "c": "s4"}, field="c7", phase=Phase.SETTLING,
            outcome=Outcome.SHOTENKO, shotenko_claimant_id="a", dotenko_winner_id="a",
        )
        assert ScoringEngine.settlement_parties(state) == (("a",), ("b", "c"))

    def test_shotenko_overturned(self, make_state):
        state = make_state(
            {"a": "s3 h4", "b": "s2 h5", "c": "s4"}, field="c7", phase=Phase.SETTLING,
            outcome=Outcome.SHOTENKO, shotenko_claimant_id="a", dotenko_winner_id="b",
            overturned_ids=("a",),
        )
        assert ScoringEngine.settlement_parties(state) == (("b", "c"), ("a",))

    def test_exhausted(self, make_state):
        state = make_state(
            {"a": "s1", "b": "s2"}, field="c7", phase=Phase.SETTLING,
            outcome=Outcome.EXHAUSTED,
        )
        assert ScoringEngine.settlement_parties(state) == ((), ())


class TestReveal:
    """结算牌测试"""

    def test_plain_bottom(self):
        card, consecutive, up = ScoringEngine.reveal(str_to_cards("s1 h5"), (), 1)
        assert card == c("h5")
        assert consecutive == ()
        assert up == 1

    def test_up_rate_bottom_with_consecutive(self):
        card, consecutive, up = ScoringEngine.reveal(str_to_cards("h9 jw s1 h2"), (), 1)
        assert card == c("h2")
        assert consecutive == (c("s1"), c("jw"))
        assert up == 8

    def test_field_fallback(self):
        field = str_to_cards("d1 s2 c7")
        card, consecutive, up = ScoringEngine.reveal((), field, 3)
        assert card == c("d1")
        # 场牌不连续翻
        assert consecutive == ()
        assert up == 6

    def test_nothing_to_reveal(self):
        assert ScoringEngine.reveal((), (), 2) == (None, (), 2)


class TestSettle:
    """结算测试"""

    def test_basic_transfer(self, make_state):
        result = ScoringEngine.settle(settling(make_state, deck_bottom="h5"))
        assert isinstance(result, ScoreResult)
        assert result.outcome == Outcome.DOTENKO
        assert result.settlement_card == c("h5")
        assert result.final_number == 5
        assert result.transfer == 5
        assert result.delta_map == {"a": -5, "b": 5, "c": 0}
        assert not result.is_reversed

    def test_base_and_up_rate(self, make_state):
        config = GameRuleConfig(base_rate=10)
        state = settling(make_state, deck_bottom="h5", config=config, up_rate=4)
        result = ScoringEngine.settle(state)
        assert result.transfer == 10 * 4 * 5
        assert result.base_rate == 10
        assert result.up_rate == 4

    def test_multiple_losers_pay_each(self, make_state):
        state = settling(make_state, field_owner=None, deck_bottom="h5")
        result = ScoringEngine.settle(state)
        assert result.delta("b") == 10
        assert result.delta("a") == -5
        assert result.delta("c") == -5

    def test_remainder_not_distributed(self, make_state):
        state = make_state(
            {"a": "s1", "b": "s2", "c": "s4"}, field="c7", deck_bottom="h5",
            phase=Phase.SETTLING, outcome=Outcome.BURST, burst_player_id="b",
        )
        result = ScoringEngine.settle(state)
        assert result.is_burst
        assert result.transfer == 5
        assert result.delta_map == {"a": 2, "b": -5, "c": 2}

    def test_black_three_reverses(self, make_state):
        result = ScoringEngine.settle(settling(make_state, deck_bottom="c3"))
        assert result.is_reversed
        assert result.winners == ("a",)
        assert result.losers == ("b",)
        assert result.delta_map == {"a": 3, "b": -3, "c": 0}

    def test_diamond_three(self, make_state):
        result = ScoringEngine.settle(settling(make_state, deck_bottom="d3"))
        assert result.final_number == 30
        assert result.transfer == 30
        assert not result.is_reversed

    def test_max_score_cap(self, make_state):
        config = GameRuleConfig(max_score=10)
        result = ScoringEngine.settle(settling(make_state, deck_bottom="hK", config=config))
        assert result.transfer == 10

    def test_unlimited_max_score(self, make_state):
        config = GameRuleConfig(max_score=None)
        state = settling(make_state, deck_bottom="hK", config=config, up_rate=1000)
        assert ScoringEngine.settle(state).transfer == 13000

    def test_unlimited_score_above_rate_cap(self, make_state):
        config = GameRuleConfig(max_score=None, base_rate=2)
        state = settling(make_state, deck_bottom="hK", config=config, up_rate=RATE_CAP)
        result = ScoringEngine.settle(state)
        assert result.transfer == RATE_CAP * 13
        assert result.delta_map == {"a": -RATE_CAP * 13, "b": RATE_CAP * 13, "c": 0}

    def test_up_rate_settlement_card(self, make_state):
        config = GameRuleConfig(joker_count=0)
        state = settling(make_state, deck_bottom="d1 h2", config=config)
        result = ScoringEngine.settle(state)
        assert result.settlement_card == c("h2")
        assert result.consecutive_cards == (c("d1"),)
        assert result.up_rate == 4
        assert result.transfer == 4 * 2

    def test_exhausted_zero(self, make_state):
        state = make_state(
            {"a": "s1", "b": "s2"}, field="c7", phase=Phase.SETTLING,
            outcome=Outcome.EXHAUSTED,
        )
        result = ScoringEngine.settle(state)
        assert result.is_exhausted
        assert result.settlement_card is None
        assert result.transfer == 0
        assert result.delta_map == {"a": 0, "b": 0}


class TestApplySettlement:
    """结算应用测试"""

    def test_scores_applied(self, make_state):
        state = settling(make_state, deck_bottom="h5")
        result = ScoringEngine.settle(state)
        final = state.with_settlement(result)

        assert final.phase == Phase.FINISHED
        assert final.score_result is result
        assert final.player("a").score == -5
        assert final.player("b").score == 5
        assert final.player("c").score == 0

    def test_scores_accumulate(self, make_state):
        state = settling(make_state, deck_bottom="h5")
        state = replace(state, players=tuple(replace(p, score=100) for p in state.players))
        final = state.with_settlement(ScoringEngine.settle(state))
        assert final.player("b").score == 105

    def test_not_settling(self, make_state):
        state = make_state({"a": "s1", "b": "s2"}, field="c7")
        with pytest.raises(StaleAction):
            state.with_settlement(ScoringEngine.settle(state))
