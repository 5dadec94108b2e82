"""BOT 决策测试"""
from dataclasses import replace
import random

import pytest

from dotenko.actions import Intent
from dotenko.cards import str_to_card, str_to_cards
from dotenko.config import GameRuleConfig
from dotenko.phases import Phase
from dotenko.state import RoundState
from bots.policy import (
    BotObservation,
    card_priority,
    playable_candidates,
    select_best,
    decide_turn,
    decide_challenge,
    decide_revenge,
    realtime_candidates,
)


RNG = random.Random(0)
REVENGE = GameRuleConfig(allow_revenge=True)


def c(s):
    return str_to_card(s)


def cs(s):
    return tuple(str_to_cards(s))


class TestCardPriority:
    """出牌优先度测试"""

    def test_value_match(self):
        # 10 + 100 + 7
        assert card_priority(cs("h7"), c("c7")) == 117

    def test_suit_match(self):
        # 10 + 50 + 2
        assert card_priority(cs("c2"), c("c7")) == 62

    def test_value_and_suit(self):
        assert card_priority(cs("c7"), c("s7")) == 117
        assert card_priority(cs("cK"), c("c7")) == 73

    def test_joker_penalty(self):
        # 10 - 10 + (-1)
        assert card_priority(cs("jw"), c("c7")) == -1

    def test_multi_card_penalty(self):
        assert card_priority(cs("s7 h7"), c("c7")) == 117 * 2 - 5


class TestSelectBest:
    """候选选择测试"""

    def test_highest_priority(self):
        candidates = [cs("c2"), cs("h7"), cs("jw")]
        assert select_best(candidates, c("c7")) == cs("h7")

    def test_prefers_stack(self):
        candidates = [cs("s7"), cs("h7"), cs("s7 h7")]
        assert select_best(candidates, c("c7")) == cs("s7 h7")

    def test_tie_first_found(self):
        candidates = [cs("h7"), cs("d7")]
        assert select_best(candidates, c("c7")) == cs("h7")


class TestObservation:
    """观测测试"""

    def test_from_state(self, make_state):
        state = make_state({"a": "c2 h9", "b": "s4"}, field="c7", current="a")
        obs = BotObservation.from_state(state, "a")
        assert obs.hand == cs("c2 h9")
        assert obs.field_top == c("c7")
        assert obs.is_my_turn
        assert not obs.has_drawn
        assert obs.deck_count == len(state.deck)
        assert obs.validate(cs("c2")) == (True, "same suit")
        assert not obs.can_declare()
        assert obs.hand_totals(obs.hand) == (11,)

    def test_other_player(self, make_state):
        state = make_state({"a": "c2", "b": "s4"}, field="c7", current="a")
        assert not BotObservation.from_state(state, "b").is_my_turn

    def test_to_dict(self, make_state):
        state = make_state({"a": "c2", "b": "s4"}, field="c7")
        d = BotObservation.from_state(state, "a").to_dict()
        assert d["hand"] == "♣2"
        assert d["phase"] == "playing"

    def test_candidates(self, make_state):
        state = make_state({"a": "s7 h7 d1", "b": "s4"}, field="c7")
        obs = BotObservation.from_state(state, "a")
        assert playable_candidates(obs) == [cs("s7"), cs("h7"), cs("s7 h7")]


class TestDecideTurn:
    """回合决策测试"""

    def test_declare_first(self, make_state):
        state = make_state({"a": "s3 h4", "b": "s2"}, field="c7", current="a")
        assert decide_turn(BotObservation.from_state(state, "a")) == Intent.declare("a")

    def test_best_play(self, make_state):
        state = make_state({"a": "c2 h7 d1", "b": "s4"}, field="c7")
        intent = decide_turn(BotObservation.from_state(state, "a"))
        assert intent == Intent.play("a", cs("h7"))

    def test_draw(self, make_state):
        state = make_state({"a": "h2 s6", "b": "s4"}, field="c7")
        assert decide_turn(BotObservation.from_state(state, "a")) == Intent.draw("a")

    def test_pass_after_draw(self, make_state):
        state = make_state({"a": "h2 s6", "b": "s4"}, field="c7", deck_top="h9")
        state = state.with_intent(Intent.draw("a"), RNG)
        assert decide_turn(BotObservation.from_state(state, "a")) == Intent.pass_turn("a")

    def test_burst_at_limit(self, make_state):
        state = make_state({"a": "s1 s2 s3 s4 s5 s6 s8", "b": "h4"}, field="c7")
        assert decide_turn(BotObservation.from_state(state, "a")) == Intent.burst("a")

    def test_three_card_total_instead_of_burst(self, make_state):
        config = GameRuleConfig(extended_plays=True)
        state = make_state({"a": "s2 h3 d4 sK hQ dJ s10", "b": "h5"}, field="c9", config=config)
        intent = decide_turn(BotObservation.from_state(state, "a"))
        assert intent == Intent.play("a", cs("s2 h3 d4"))
        assert state.with_intent(intent, RNG).phase == Phase.PLAYING

    def test_extended_candidates(self, make_state):
        config = GameRuleConfig(extended_plays=True)
        state = make_state({"a": "h3 s4 d9", "b": "s2"}, field="c7", config=config)
        intent = decide_turn(BotObservation.from_state(state, "a"))
        assert intent == Intent.play("a", cs("h3 s4"))

    @pytest.mark.parametrize("seed", range(20))
    def test_bot_intents_always_accepted(self, seed):
        """全 BOT 出牌循环中所有决策都被状态机接受"""
        rng = random.Random(seed)
        state = RoundState.initial(["a", "b", "c"]).with_dealing().with_deal(rng)

        steps = 0
        while state.phase == Phase.PLAYING and steps < 5000:
            intent = decide_turn(BotObservation.from_state(state, state.current_turn))
            state = state.with_intent(intent, rng)
            steps += 1

        assert state.phase != Phase.PLAYING


class TestDecideChallenge:
    """挑战 / リベンジ决策测试"""

    def challenge(self, make_state, deck_top):
        config = GameRuleConfig(challenge_after_dotenko=True)
        state = make_state(
            {"a": "s2", "b": "s3 h4", "c": "h9"},
            field="c7", field_owner="c", config=config, deck_top=deck_top,
        )
        return state.with_intent(Intent.declare("b"), RNG).close_revenge_window()

    def test_draw_then_declare(self, make_state):
        state = self.challenge(make_state, "d5")
        assert decide_challenge(BotObservation.from_state(state, "a")) == Intent.draw("a")
        state = state.with_intent(Intent.draw("a"), RNG)
        assert decide_challenge(BotObservation.from_state(state, "a")) == Intent.declare("a")

    def test_pass_when_drawn(self, make_state):
        state = self.challenge(make_state, "d5")
        state = state.with_intent(Intent.draw("a"), RNG)
        obs = BotObservation.from_state(state, "a")
        obs = replace(obs, can_declare=lambda: False)
        assert decide_challenge(obs) == Intent.pass_turn("a")

    def test_revenge(self, make_state):
        state = make_state(
            {"a": "s2", "b": "s3 h4", "c": "h7"}, field="c7", field_owner="a", config=REVENGE,
        )
        state = state.with_intent(Intent.declare("b"), RNG)
        assert decide_revenge(BotObservation.from_state(state, "c")) == Intent.declare("c")
        assert decide_revenge(BotObservation.from_state(state, "a")) is None

    def test_no_revenge_by_default(self, make_state):
        state = make_state({"a": "s2", "b": "s3 h4", "c": "h7"}, field="c7", field_owner="a")
        state = state.with_intent(Intent.declare("b"), RNG)
        assert decide_revenge(BotObservation.from_state(state, "c")) is None


class TestRealtimeCandidates:
    """抢先宣言扫描测试"""

    def test_bots_only_in_seat_order(self, make_state):
        state = make_state(
            {"a": "s3 h4", "b": "h7", "c": "d7", "d": "s2"},
            field="c7", humans=("a",),
        )
        assert realtime_candidates(state) == ["b", "c"]

    def test_excludes_field_owner(self, make_state):
        state = make_state({"a": "s2", "b": "h7", "c": "d7"}, field="c7", field_owner="b")
        assert realtime_candidates(state) == ["c"]

    def test_closed_phase(self, make_state):
        state = make_state({"a": "s2", "b": "h7"}, field="c7", phase=Phase.SETTLING)
        assert realtime_candidates(state) == []
