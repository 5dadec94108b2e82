"""
玩家意图定义

人类输入与 BOT 决策都产生同一种 Intent，由回合状态机统一校验与执行
"""
from enum import IntEnum
from dataclasses import dataclass
from typing import Tuple, Sequence

from .cards import Card, cards_to_str


class IntentType(IntEnum):
    """意图类型"""
    DECLARE = 0   # どてんこ / リベンジ / 挑战中宣言
    PLAY = 1      # 出牌
    DRAW = 2      # 摸牌
    PASS = 3      # 过
    BURST = 4     # 爆牌


@dataclass(frozen=True, slots=True)
class Intent:
    """
    不可变意图

    Attributes:
        player_id: 发出意图的玩家
        intent_type: 意图类型
        cards: 出牌时的牌 (按选择顺序)
    """
    player_id: str
    intent_type: IntentType
    cards: Tuple[Card, ...] = ()

    @classmethod
    def declare(cls, player_id: str) -> 'Intent':
        return cls(player_id, IntentType.DECLARE)

    @classmethod
    def play(cls, player_id: str, cards: Sequence[Card]) -> 'Intent':
        return cls(player_id, IntentType.PLAY, tuple(cards))

    @classmethod
    def draw(cls, player_id: str) -> 'Intent':
        return cls(player_id, IntentType.DRAW)

    @classmethod
    def pass_turn(cls, player_id: str) -> 'Intent':
        return cls(player_id, IntentType.PASS)

    @classmethod
    def burst(cls, player_id: str) -> 'Intent':
        return cls(player_id, IntentType.BURST)

    @property
    def is_play(self) -> bool:
        return self.intent_type == IntentType.PLAY

    @property
    def is_declare(self) -> bool:
        return self.intent_type == IntentType.DECLARE

    def __str__(self) -> str:
        if self.is_play:
            return f"{self.player_id}:play[{cards_to_str(self.cards)}]"
        return f"{self.player_id}:{self.intent_type.name.lower()}"


# BOT 的决策结果就是一个 Intent
BotAction = Intent
