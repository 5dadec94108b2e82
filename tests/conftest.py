"""测试共用的局面构造"""
from typing import Dict, Optional

import pytest

from dotenko.cards import Deck, full_card_set, str_to_cards
from dotenko.config import GameRuleConfig
from dotenko.phases import Phase
from dotenko.state import Player, RoundState


def build_state(
    hands: Dict[str, str],
    field: str,
    deck_top: str = "",
    deck_bottom: str = "",
    rest_to: str = "deck",
    deck_cycle: int = 0,
    config: Optional[GameRuleConfig] = None,
    phase: Phase = Phase.PLAYING,
    current: Optional[str] = None,
    humans=(),
    **changes,
) -> RoundState:
    """
    按牌面字符串构造满足守恒的局面

    未指定的牌按编码顺序放入牌堆中部 (rest_to="deck")，
    或垫在场牌下面 (rest_to="field"，牌堆为 deck_top + deck_bottom)

    Args:
        hands: {player_id: "s7 h7"} (座位顺序)
        field: 场牌，最后一张为顶牌
        deck_top / deck_bottom: 牌堆顶部 / 底部的牌
        rest_to: 剩余牌放置位置
        deck_cycle: 牌堆已重洗次数
        config: 规则配置
        phase: 阶段
        current: 当前回合玩家 (默认第一位)
        humans: 人类玩家
        **changes: 其他 RoundState 字段
    """
    config = config or GameRuleConfig()
    players = tuple(
        Player(pid, is_human=pid in humans, hand=tuple(str_to_cards(cards)))
        for pid, cards in hands.items()
    )
    field_cards = tuple(str_to_cards(field))
    top = tuple(str_to_cards(deck_top))
    bottom = tuple(str_to_cards(deck_bottom))

    used = set(field_cards) | set(top) | set(bottom)
    for p in players:
        used |= set(p.hand)
    rest = tuple(c for c in full_card_set(config.joker_count) if c not in used)

    if rest_to == "deck":
        deck = Deck(top + rest + bottom, deck_cycle)
    else:
        deck = Deck(top + bottom, deck_cycle)
        field_cards = rest + field_cards

    state = RoundState(
        phase=phase,
        players=players,
        config=config,
        current_turn=current or players[0].player_id,
        field=field_cards,
        deck=deck,
        **changes,
    )
    state.check_invariants()
    return state


@pytest.fixture
def make_state():
    return build_state
