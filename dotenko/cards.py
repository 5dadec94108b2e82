"""
牌的定义、编码与牌堆

どてんこ使用 52 张普通牌 + 0~4 张王:
- 四种花色 1-13 各 1 张
- 王 (白/黑交替) 按配置张数加入
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Tuple, Optional, Sequence, Iterable
import random

import numpy as np

from .errors import EmptyDeck, CycleLimitExceeded


class Suit(Enum):
    """花色"""
    SPADE = "s"
    CLUB = "c"
    HEART = "h"
    DIAMOND = "d"
    JOKER = "j"


# 普通花色顺序 (决定牌的编码索引)
RANKED_SUITS: Tuple[Suit, ...] = (Suit.SPADE, Suit.CLUB, Suit.HEART, Suit.DIAMOND)

# 王可取的手牌值
JOKER_VALUES: Tuple[int, ...] = (-1, 0, 1)

# 王的最大张数
MAX_JOKERS = 4

# 编码向量长度: 52 张普通牌 + 4 张王
NUM_CARD_SLOTS = 52 + MAX_JOKERS

# 牌面显示
RANK_TO_STR = {
    1: "A", 2: "2", 3: "3", 4: "4", 5: "5", 6: "6", 7: "7",
    8: "8", 9: "9", 10: "10", 11: "J", 12: "Q", 13: "K",
}
STR_TO_RANK = {v: k for k, v in RANK_TO_STR.items()}
STR_TO_RANK.update({str(k): k for k in range(1, 14)})

SUIT_TO_STR = {
    Suit.SPADE: "♠", Suit.CLUB: "♣", Suit.HEART: "♥", Suit.DIAMOND: "♦",
}


@dataclass(frozen=True, order=True)
class Card:
    """
    不可变的牌

    Attributes:
        suit: 花色
        rank: 点数 1-13，王为 None
        copy: 王的序号 (0-3)，普通牌恒为 0
    """
    suit: Suit = field(compare=False)
    rank: Optional[int] = field(compare=False)
    copy: int = field(default=0, compare=False)
    # 排序/比较使用编码索引
    index: int = field(init=False, repr=False)

    def __post_init__(self):
        if self.suit is Suit.JOKER:
            if self.rank is not None:
                raise ValueError("Joker has no rank")
            if not 0 <= self.copy < MAX_JOKERS:
                raise ValueError(f"Invalid joker copy: {self.copy}")
            idx = 52 + self.copy
        else:
            if self.rank is None or not 1 <= self.rank <= 13:
                raise ValueError(f"Invalid rank: {self.rank}")
            if self.copy != 0:
                raise ValueError("Only jokers carry a copy index")
            idx = RANKED_SUITS.index(self.suit) * 13 + self.rank - 1
        object.__setattr__(self, "index", idx)

    @classmethod
    def joker(cls, copy: int = 0) -> 'Card':
        """创建王"""
        return cls(Suit.JOKER, None, copy)

    @classmethod
    def from_index(cls, idx: int) -> 'Card':
        """由编码索引还原"""
        if idx >= 52:
            return cls.joker(idx - 52)
        return cls(RANKED_SUITS[idx // 13], idx % 13 + 1)

    @property
    def is_joker(self) -> bool:
        return self.suit is Suit.JOKER

    @property
    def is_white_joker(self) -> bool:
        """偶数序号为白王，奇数为黑王"""
        return self.is_joker and self.copy % 2 == 0

    def hand_value(self) -> Tuple[int, ...]:
        """手牌中可取的值 (王: -1/0/1)"""
        if self.is_joker:
            return JOKER_VALUES
        return (self.rank,)

    @property
    def primary_value(self) -> int:
        """主值 (用于场牌比较与连续计数)"""
        return self.hand_value()[0]

    def is_up_rate_card(self) -> bool:
        """1、2、王: 开局翻出 / 结算翻出时倍率翻倍"""
        return self.is_joker or self.rank in (1, 2)

    def is_reversal_card(self) -> bool:
        """黑 3: 结算翻出时胜负逆转"""
        return self.rank == 3 and self.suit in (Suit.SPADE, Suit.CLUB)

    def final_score_num(self) -> int:
        """结算数字 (方块 3 记 30，王记 1)"""
        if self.is_joker:
            return 1
        if self.rank == 3 and self.suit is Suit.DIAMOND:
            return 30
        return self.rank

    def __str__(self) -> str:
        if self.is_joker:
            return "JW" if self.is_white_joker else "JB"
        return f"{SUIT_TO_STR[self.suit]}{RANK_TO_STR[self.rank]}"


def full_card_set(joker_count: int) -> Tuple[Card, ...]:
    """
    完整牌组 (按编码索引排序)

    Args:
        joker_count: 王的张数 (0-4)

    Returns:
        52 + joker_count 张牌
    """
    if not 0 <= joker_count <= MAX_JOKERS:
        raise ValueError(f"joker_count must be 0-{MAX_JOKERS}, got {joker_count}")
    ranked = tuple(Card(suit, rank) for suit in RANKED_SUITS for rank in range(1, 14))
    return ranked + tuple(Card.joker(i) for i in range(joker_count))


def cards_to_array(cards: Iterable[Card]) -> np.ndarray:
    """
    将牌转换为 56 维计数向量

    前 52 维为普通牌 (花色 × 点数)，后 4 维为王。
    每张牌只出现一次，正常情况下各维度为 0 或 1；
    大于 1 表示重复 (用于守恒检查)。
    """
    arr = np.zeros(NUM_CARD_SLOTS, dtype=np.int16)
    for card in cards:
        arr[card.index] += 1
    return arr


def array_to_cards(array: np.ndarray) -> List[Card]:
    """将计数向量还原为牌列表 (按索引排序)"""
    cards = []
    for idx in np.flatnonzero(array):
        cards.extend([Card.from_index(int(idx))] * int(array[idx]))
    return cards


def cards_to_str(cards: Sequence[Card]) -> str:
    """如 "♠7 ♥7 JW" """
    return " ".join(str(c) for c in cards)


def str_to_card(s: str) -> Card:
    """
    解析单张牌

    格式: 花色字母 + 点数，如 "s7", "hK", "d10", "s1"/"sA"；王为 "jw"/"jb"，可带序号 "jw2"

    Raises:
        ValueError: 花色或点数无法识别
    """
    s = s.strip()
    if not s:
        raise ValueError("Empty card string")
    head = s[0].lower()
    if head == "j" and len(s) >= 2 and s[1].lower() in ("w", "b"):
        copy = int(s[2:]) if len(s) > 2 else (0 if s[1].lower() == "w" else 1)
        return Card.joker(copy)
    suit = Suit(head)
    rank = STR_TO_RANK.get(s[1:].upper())
    if rank is None:
        raise ValueError(f"Unknown rank in card string: {s!r}")
    return Card(suit, rank)


def str_to_cards(s: str) -> List[Card]:
    """解析空格分隔的多张牌"""
    return [str_to_card(part) for part in s.split()]


@dataclass(frozen=True)
class Deck:
    """
    不可变牌堆

    Attributes:
        cards: 剩余的牌 (index 0 为顶，-1 为底)
        cycle: 本局已重洗次数
    """
    cards: Tuple[Card, ...]
    cycle: int = 0

    def __len__(self) -> int:
        return len(self.cards)

    @property
    def is_empty(self) -> bool:
        return not self.cards

    @property
    def bottom(self) -> Optional[Card]:
        return self.cards[-1] if self.cards else None

    def draw(self) -> Tuple[Card, 'Deck']:
        """
        从顶部摸一张

        Raises:
            EmptyDeck: 牌堆为空
        """
        if not self.cards:
            raise EmptyDeck("Deck is empty")
        return self.cards[0], Deck(self.cards[1:], self.cycle)

    def reshuffle(
        self,
        field_cards: Sequence[Card],
        cycle_limit: Optional[int],
        rng: random.Random,
    ) -> Tuple['Deck', Tuple[Card, ...]]:
        """
        用场上除顶牌外的牌重建牌堆

        Args:
            field_cards: 场上的牌 (最后一张为顶牌)
            cycle_limit: 重洗次数上限，None 表示无限
            rng: 随机源

        Returns:
            (新牌堆, 保留在场上的牌)

        Raises:
            CycleLimitExceeded: 已达到重洗上限
            EmptyDeck: 场上没有可回收的牌
        """
        if cycle_limit is not None and self.cycle >= cycle_limit:
            raise CycleLimitExceeded(f"Deck cycle limit {cycle_limit} reached")
        if len(field_cards) <= 1:
            raise EmptyDeck("No field cards to recycle")

        recycled = list(field_cards[:-1])
        rng.shuffle(recycled)
        return (
            Deck(self.cards + tuple(recycled), self.cycle + 1),
            (field_cards[-1],),
        )


def build_deck(joker_count: int, rng: Optional[random.Random] = None) -> Deck:
    """
    构建并洗牌

    Args:
        joker_count: 王的张数
        rng: 随机源 (None 使用全局随机)

    Returns:
        洗好的牌堆
    """
    cards = list(full_card_set(joker_count))
    (rng or random).shuffle(cards)
    return Deck(tuple(cards))
