"""
得分计算

- 出牌中的连续同数字倍率 (apply_stack_rate)
- 结算方 (settlement_parties)
- 结算: 翻开牌堆底牌，计算转移分数 (settle)
"""
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Sequence, Tuple

from .cards import Card
from .phases import Outcome


# 倍率上限 (防止溢出)
RATE_CAP = 1_000_000

# 特殊牌倍率
SPECIAL_CARD_MULTIPLIER = 2


@dataclass(frozen=True)
class ScoreResult:
    """
    一局的结算结果 (仅供展示)

    Attributes:
        outcome: 结局
        winners: 胜者 (座位顺序)
        losers: 败者 (座位顺序)
        settlement_card: 翻开的结算牌 (牌堆底，空时为场牌底)
        consecutive_cards: 结算牌之上连续翻出的特殊牌
        rate_cards: 出牌中推高倍率的牌
        base_rate: 基础倍率
        up_rate: 最终上升倍率
        final_number: 结算数字
        transfer: 每个败者支付的分数
        deltas: 各玩家得分变化 ((player_id, delta), ...)
        is_reversed: 黑 3 逆转
    """
    outcome: Optional[Outcome]
    winners: Tuple[str, ...]
    losers: Tuple[str, ...]
    settlement_card: Optional[Card]
    consecutive_cards: Tuple[Card, ...]
    rate_cards: Tuple[Card, ...]
    base_rate: int
    up_rate: int
    final_number: int
    transfer: int
    deltas: Tuple[Tuple[str, int], ...]
    is_reversed: bool = False

    @property
    def is_shotenko(self) -> bool:
        return self.outcome == Outcome.SHOTENKO

    @property
    def is_burst(self) -> bool:
        return self.outcome == Outcome.BURST

    @property
    def is_exhausted(self) -> bool:
        return self.outcome == Outcome.EXHAUSTED

    @property
    def delta_map(self) -> Dict[str, int]:
        return dict(self.deltas)

    def delta(self, player_id: str) -> int:
        return self.delta_map.get(player_id, 0)


class ScoringEngine:
    """
    得分引擎

    所有方法都是静态方法，输入 RoundState，输出新的数值
    """

    @staticmethod
    def safe_multiply(value: int, factor: int, cap: int = RATE_CAP) -> int:
        """带上限的乘法"""
        return min(value * factor, cap)

    @staticmethod
    def apply_stack_rate(
        cards: Iterable[Card],
        up_rate: int,
        consecutive_value: Optional[int],
        consecutive_count: int,
        threshold: Optional[int],
    ) -> Tuple[int, Optional[int], int, Tuple[Card, ...]]:
        """
        按出牌顺序更新连续同数字计数

        计数达到 threshold 时倍率翻倍并清零

        Args:
            cards: 打出的牌 (按顺序)
            up_rate: 当前倍率
            consecutive_value: 上一张牌的数字
            consecutive_count: 当前连续张数
            threshold: 翻倍所需张数，None 表示不翻倍

        Returns:
            (新倍率, 新连续数字, 新连续张数, 触发翻倍的牌)
        """
        triggered = []
        for card in cards:
            value = card.primary_value
            if consecutive_value is not None and value == consecutive_value:
                consecutive_count += 1
            else:
                consecutive_value = value
                consecutive_count = 1

            if threshold is not None and consecutive_count >= threshold:
                up_rate = ScoringEngine.safe_multiply(up_rate, SPECIAL_CARD_MULTIPLIER)
                consecutive_count = 0
                triggered.append(card)

        return up_rate, consecutive_value, consecutive_count, tuple(triggered)

    @staticmethod
    def settlement_parties(state) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
        """
        确定胜者与败者 (未考虑黑 3 逆转)

        Args:
            state: RoundState

        Returns:
            (胜者, 败者)，均为座位顺序
        """
        seat_ids = [p.player_id for p in state.players]
        outcome = state.outcome
        winner = state.dotenko_winner_id

        if outcome is None or outcome == Outcome.EXHAUSTED:
            return (), ()

        if outcome == Outcome.BURST:
            burster = state.burst_player_id
            return tuple(p for p in seat_ids if p != burster), (burster,)

        if outcome == Outcome.SHOTENKO:
            claimant = state.shotenko_claimant_id
            others = tuple(p for p in seat_ids if p != claimant)
            if winner == claimant:
                return (claimant,), others
            # 被推翻: 原宣言者独负
            return others, (claimant,)

        # 普通どてんこ
        if state.field_owner is None:
            losers = {p for p in seat_ids if p != winner}
        else:
            losers = {state.field_owner, *state.overturned_ids}
            losers.discard(winner)
        return (winner,), tuple(p for p in seat_ids if p in losers)

    @staticmethod
    def reveal(
        deck_cards: Sequence[Card],
        field: Sequence[Card],
        up_rate: int,
    ) -> Tuple[Optional[Card], Tuple[Card, ...], int]:
        """
        翻开结算牌

        牌堆底为结算牌；为 1/2/王 时倍率翻倍，并继续向上翻，
        连续的特殊牌每张再翻倍。牌堆为空时使用场牌最底下一张 (不连续翻)。

        Returns:
            (结算牌, 连续特殊牌, 新倍率)
        """
        if deck_cards:
            card = deck_cards[-1]
            remaining = list(deck_cards[:-1])
        elif field:
            card = field[0]
            remaining = []
        else:
            return None, (), up_rate

        consecutive = []
        if card.is_up_rate_card():
            up_rate = ScoringEngine.safe_multiply(up_rate, SPECIAL_CARD_MULTIPLIER)
            while remaining and remaining[-1].is_up_rate_card():
                nxt = remaining.pop()
                consecutive.append(nxt)
                up_rate = ScoringEngine.safe_multiply(up_rate, SPECIAL_CARD_MULTIPLIER)

        return card, tuple(consecutive), up_rate

    @staticmethod
    def settle(state) -> ScoreResult:
        """
        结算一局

        transfer = min(base_rate * up_rate * 结算数字, max_score)
        每个败者支付 transfer，总额按座位顺序平分给胜者，余数不分配。

        Args:
            state: settling 阶段的 RoundState

        Returns:
            结算结果
        """
        config = state.config
        winners, losers = ScoringEngine.settlement_parties(state)
        seat_ids = [p.player_id for p in state.players]

        if not winners or not losers:
            return ScoreResult(
                outcome=state.outcome,
                winners=winners,
                losers=losers,
                settlement_card=None,
                consecutive_cards=(),
                rate_cards=state.rate_cards,
                base_rate=config.base_rate,
                up_rate=state.up_rate,
                final_number=0,
                transfer=0,
                deltas=tuple((pid, 0) for pid in seat_ids),
            )

        card, consecutive, up_rate = ScoringEngine.reveal(
            state.deck.cards, state.field, state.up_rate
        )

        is_reversed = card.is_reversal_card()
        if is_reversed:
            winners, losers = losers, winners

        final_number = card.final_score_num()
        # 上限只作用于倍率，得分本身只受 max_score 限制
        rate = ScoringEngine.safe_multiply(config.base_rate, up_rate)
        transfer = rate * final_number
        if config.max_score is not None:
            transfer = min(transfer, config.max_score)

        share = transfer * len(losers) // len(winners)
        deltas = []
        for pid in seat_ids:
            if pid in winners:
                deltas.append((pid, share))
            elif pid in losers:
                deltas.append((pid, -transfer))
            else:
                deltas.append((pid, 0))

        return ScoreResult(
            outcome=state.outcome,
            winners=winners,
            losers=losers,
            settlement_card=card,
            consecutive_cards=consecutive,
            rate_cards=state.rate_cards,
            base_rate=config.base_rate,
            up_rate=up_rate,
            final_number=final_number,
            transfer=transfer,
            deltas=tuple(deltas),
            is_reversed=is_reversed,
        )
