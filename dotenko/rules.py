"""
规则引擎 - 出牌合法性、手牌合计、どてんこ判定

所有方法都是纯函数，无状态
"""
from typing import List, Optional, Sequence, Tuple
from collections import Counter
import itertools

from .cards import Card, JOKER_VALUES
from .phases import Phase


# 判定结果: (是否允许, 理由)
Verdict = Tuple[bool, str]


class RuleEngine:
    """
    どてんこ规则引擎

    人类与 BOT 使用完全相同的判定，保证语义一致
    所有方法都是静态方法，无状态
    """

    @staticmethod
    def matches(card: Card, field_top: Card) -> bool:
        """单张是否可接在场牌上 (同数字、同花色或王)"""
        if card.is_joker:
            return True
        if field_top.primary_value in card.hand_value():
            return True
        return card.suit == field_top.suit

    @staticmethod
    def hand_totals(cards: Sequence[Card]) -> Tuple[int, ...]:
        """
        手牌所有可能的合计值

        王分别取 -1 / 0 / 1，返回去重后升序的合计值

        Args:
            cards: 手牌

        Returns:
            可能的合计值元组
        """
        jokers = [c for c in cards if c.is_joker]
        normal_sum = sum(c.primary_value for c in cards if not c.is_joker)

        if not jokers:
            return (normal_sum,)

        totals = {
            normal_sum + sum(combo)
            for combo in itertools.product(JOKER_VALUES, repeat=len(jokers))
        }
        return tuple(sorted(totals))

    @staticmethod
    def _in_hand(cards: Sequence[Card], hand: Sequence[Card]) -> bool:
        """检查牌是否全部在手牌中"""
        hand_counter = Counter(hand)
        for card, count in Counter(cards).items():
            if hand_counter.get(card, 0) < count:
                return False
        return True

    @staticmethod
    def _same_rank(cards: Sequence[Card]) -> bool:
        """非王的牌是否同一点数 (王可替代)"""
        ranks = {c.rank for c in cards if not c.is_joker}
        return len(ranks) <= 1

    @staticmethod
    def can_play(
        cards: Sequence[Card],
        field_top: Optional[Card],
        hand: Optional[Sequence[Card]] = None,
        extended: bool = False,
    ) -> Verdict:
        """
        验证出牌是否合法

        规则 (按优先级):
        1. 非空且全部来自出牌者手牌
        2. 单张: 与场牌同数字、同花色，或为王
        3. 多张: 每张都满足规则 2，且点数一致 (王可替代)
        4. extended 时追加: 首张同花色 (或王) 且其余点数一致；或合计等于场牌数字

        Args:
            cards: 要出的牌
            field_top: 场上顶牌
            hand: 出牌者手牌 (None 表示不检查持有)
            extended: 是否启用追加出法

        Returns:
            (是否合法, 理由)
        """
        if not cards:
            return False, "no cards selected"
        if len(set(cards)) != len(cards):
            return False, "duplicate cards selected"
        if hand is not None and not RuleEngine._in_hand(cards, hand):
            return False, "cards are not in hand"
        if field_top is None:
            return False, "no field card"

        if len(cards) == 1:
            card = cards[0]
            if card.is_joker:
                return True, "joker is wild"
            if field_top.primary_value in card.hand_value():
                return True, "same number"
            if card.suit == field_top.suit:
                return True, "same suit"
            return False, "card does not match field"

        if all(RuleEngine.matches(c, field_top) for c in cards) and RuleEngine._same_rank(cards):
            return True, "same-rank stack"

        if extended:
            first = cards[0]
            non_jokers = [c for c in cards if not c.is_joker]
            if (first.is_joker or first.suit == field_top.suit) and non_jokers \
                    and RuleEngine._same_rank(non_jokers):
                return True, "suit lead with same-rank stack"
            if field_top.primary_value in RuleEngine.hand_totals(cards):
                return True, "total matches field"

        return False, "card combination does not match field"

    @staticmethod
    def is_valid_play(
        cards: Sequence[Card],
        field_top: Optional[Card],
        hand: Sequence[Card],
        extended: bool = False,
    ) -> bool:
        """can_play 的布尔版本"""
        return RuleEngine.can_play(cards, field_top, hand, extended)[0]

    @staticmethod
    def legal_plays(
        hand: Sequence[Card],
        field_top: Optional[Card],
        max_cards: int = 2,
        extended: bool = False,
    ) -> List[Tuple[Card, ...]]:
        """
        枚举所有合法出牌 (按手牌顺序，先单张后多张)

        Args:
            hand: 手牌
            field_top: 场上顶牌
            max_cards: 最多同时出几张
            extended: 是否启用追加出法

        Returns:
            合法出牌列表
        """
        if field_top is None:
            return []

        result = []
        for n in range(1, min(max_cards, len(hand)) + 1):
            for combo in itertools.combinations(hand, n):
                if RuleEngine.can_play(combo, field_top, extended=extended)[0]:
                    result.append(combo)
        return result

    @staticmethod
    def has_legal_play(
        hand: Sequence[Card],
        field_top: Optional[Card],
        extended: bool = False,
    ) -> bool:
        """
        手牌中是否存在合法出牌

        同点数叠放与同花色起头的出法都包含可单独打出的牌；
        只有 extended 的 "合计一致" 可能不含，需要枚举任意张数的组合
        """
        if field_top is None:
            return False
        if any(RuleEngine.can_play((card,), field_top)[0] for card in hand):
            return True
        if not extended:
            return False
        return any(
            field_top.primary_value in RuleEngine.hand_totals(combo)
            for n in range(2, len(hand) + 1)
            for combo in itertools.combinations(hand, n)
        )

    @staticmethod
    def can_declare_dotenko(hand: Sequence[Card], field_top: Optional[Card]) -> bool:
        """
        手牌是否满足どてんこ条件

        任一可能的合计值等于场牌数字即可
        """
        if field_top is None or not hand:
            return False
        return field_top.primary_value in RuleEngine.hand_totals(hand)

    @staticmethod
    def challenge_eligible(hand: Sequence[Card], field_top: Optional[Card]) -> bool:
        """挑战参加条件: 手牌最小合计值小于场牌数字"""
        if field_top is None:
            return False
        return min(RuleEngine.hand_totals(hand)) < field_top.primary_value

    @staticmethod
    def can_declare(state, player_id: str) -> bool:
        """
        玩家此刻能否宣言 (手牌条件 + 宣言窗口)

        - playing: 任何玩家，但不能对自己打出的顶牌宣言
        - dotenko_processing: 仅リベンジ资格者
        - challenge: 非当前胜者且本局未宣言过

        Args:
            state: RoundState
            player_id: 玩家 ID

        Returns:
            是否可宣言
        """
        player = state.find_player(player_id)
        if player is None:
            return False

        if state.phase == Phase.PLAYING:
            if player_id == state.field_owner:
                return False
        elif state.phase == Phase.DOTENKO_PROCESSING:
            if player_id not in state.revenge_eligible_players:
                return False
        elif state.phase == Phase.CHALLENGE:
            if player_id == state.dotenko_winner_id or player.declared:
                return False
        else:
            return False

        return RuleEngine.can_declare_dotenko(player.hand, state.field_top)
