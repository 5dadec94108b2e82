"""
BOT 决策

每个决策阶段一个纯函数，输入只读观测，输出一个 Intent:
- decide_turn: 自己回合 (宣言 > 出牌 > 摸牌 > 爆牌 / 过)
- decide_challenge: 挑战阶段
- decide_revenge: リベンジ窗口
- realtime_candidates: 场牌变化时可以立即宣言的 BOT
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
import itertools

from dotenko.actions import Intent
from dotenko.cards import Card, Suit, cards_to_str
from dotenko.phases import Phase
from dotenko.rules import RuleEngine
from dotenko.state import RoundState


# 优先度权重
BASE_PRIORITY = 10
VALUE_MATCH_BONUS = 100
SUIT_MATCH_BONUS = 50
JOKER_PENALTY = 10
MULTI_CARD_PENALTY = 5


@dataclass(frozen=True)
class BotObservation:
    """
    BOT 看到的只读状态

    与人类界面看到的信息相同；规则判定通过回调完成，
    保证 BOT 与人类使用同一个规则引擎

    Attributes:
        player_id: BOT 自己
        hand: 手牌
        field_top: 场上顶牌
        deck_count: 牌堆剩余张数
        phase: 阶段
        is_my_turn: 是否轮到自己 (挑战阶段为挑战者)
        has_drawn: 本回合已摸牌
        hand_limit: 手牌上限
        validate: cards -> (是否合法, 理由)
        can_declare: () -> 能否宣言
        hand_totals: cards -> 可能的合计值
    """
    player_id: str
    hand: Tuple[Card, ...]
    field_top: Optional[Card]
    deck_count: int
    phase: Phase
    is_my_turn: bool
    has_drawn: bool
    hand_limit: int
    validate: Callable[[Sequence[Card]], Tuple[bool, str]]
    can_declare: Callable[[], bool]
    hand_totals: Callable[[Sequence[Card]], Tuple[int, ...]]

    @classmethod
    def from_state(cls, state: RoundState, player_id: str) -> 'BotObservation':
        """从回合状态构建观测"""
        player = state.player(player_id)
        field_top = state.field_top
        extended = state.config.extended_plays

        return cls(
            player_id=player_id,
            hand=player.hand,
            field_top=field_top,
            deck_count=len(state.deck),
            phase=state.phase,
            is_my_turn=state.acting_player == player_id,
            has_drawn=player.has_drawn_this_turn,
            hand_limit=state.config.hand_limit,
            validate=lambda cards: RuleEngine.can_play(cards, field_top, player.hand, extended),
            can_declare=lambda: RuleEngine.can_declare(state, player_id),
            hand_totals=RuleEngine.hand_totals,
        )

    @property
    def at_hand_limit(self) -> bool:
        return len(self.hand) >= self.hand_limit

    def to_dict(self) -> Dict[str, Any]:
        """调试输出用"""
        return {
            "player_id": self.player_id,
            "hand": cards_to_str(self.hand),
            "field_top": str(self.field_top) if self.field_top else None,
            "deck_count": self.deck_count,
            "phase": self.phase.value,
            "is_my_turn": self.is_my_turn,
            "has_drawn": self.has_drawn,
        }


def card_priority(cards: Sequence[Card], field_top: Card) -> int:
    """
    出牌候选的优先度

    每张牌: +10 基础，同数字 +100，同花色 +50，王 -10，再加牌的数字
    多张出牌整体 -5

    Args:
        cards: 候选出牌
        field_top: 场上顶牌

    Returns:
        优先度 (越大越优先)
    """
    field_value = field_top.primary_value
    priority = 0

    for card in cards:
        priority += BASE_PRIORITY
        if field_value in card.hand_value():
            priority += VALUE_MATCH_BONUS
        if card.suit == field_top.suit:
            priority += SUIT_MATCH_BONUS
        if card.suit is Suit.JOKER:
            priority -= JOKER_PENALTY
        priority += card.primary_value

    if len(cards) > 1:
        priority -= MULTI_CARD_PENALTY

    return priority


def playable_candidates(obs: BotObservation) -> List[Tuple[Card, ...]]:
    """
    枚举可出的一张 / 两张组合 (手牌顺序，先单张)

    一张 / 两张都出不了时再找三张以上的组合 (合计一致的出法)
    合法性全部交给 obs.validate 判定
    """
    if obs.field_top is None:
        return []

    hand = obs.hand
    candidates = [(card,) for card in hand]
    for i in range(len(hand)):
        for j in range(i + 1, len(hand)):
            candidates.append((hand[i], hand[j]))

    legal = [c for c in candidates if obs.validate(c)[0]]
    if legal:
        return legal

    for n in range(3, len(hand) + 1):
        legal.extend(c for c in itertools.combinations(hand, n) if obs.validate(c)[0])
    return legal


def select_best(candidates: Sequence[Tuple[Card, ...]], field_top: Card) -> Tuple[Card, ...]:
    """选择优先度最高的候选，相同时取最先找到的"""
    best = candidates[0]
    best_priority = card_priority(best, field_top)
    for cards in candidates[1:]:
        priority = card_priority(cards, field_top)
        if priority > best_priority:
            best, best_priority = cards, priority
    return best


def decide_turn(obs: BotObservation) -> Intent:
    """
    自己回合的决策

    优先级:
    1. 能宣言就立即宣言
    2. 出优先度最高的牌
    3. 未摸牌且手牌未满时摸牌
    4. 手牌已满爆牌，否则过
    """
    if obs.can_declare():
        return Intent.declare(obs.player_id)

    candidates = playable_candidates(obs)
    if candidates:
        return Intent.play(obs.player_id, select_best(candidates, obs.field_top))

    if obs.at_hand_limit:
        return Intent.burst(obs.player_id)
    if not obs.has_drawn:
        return Intent.draw(obs.player_id)
    return Intent.pass_turn(obs.player_id)


def decide_challenge(obs: BotObservation) -> Intent:
    """挑战阶段: 能宣言就宣言，否则摸牌，摸过则过"""
    if obs.can_declare():
        return Intent.declare(obs.player_id)
    if not obs.has_drawn:
        return Intent.draw(obs.player_id)
    return Intent.pass_turn(obs.player_id)


def decide_revenge(obs: BotObservation) -> Optional[Intent]:
    """リベンジ窗口: 能宣言就宣言"""
    if obs.can_declare():
        return Intent.declare(obs.player_id)
    return None


def realtime_candidates(state: RoundState) -> List[str]:
    """
    此刻可以宣言的 BOT (座位顺序)

    playing 阶段每次场牌变化后扫描；挑战阶段任何时候都可以宣言
    """
    if state.phase not in (Phase.PLAYING, Phase.DOTENKO_PROCESSING, Phase.CHALLENGE):
        return []
    return [
        p.player_id for p in state.players
        if not p.is_human and RuleEngine.can_declare(state, p.player_id)
    ]
