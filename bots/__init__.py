"""
Bots - BOT 决策与调度

Modules:
    policy: 纯函数决策 (宣言 > 出牌 > 摸牌 > 爆牌 / 过)
    driver: 按随机延迟调度 BOT 决策
"""
from .policy import (
    BotObservation,
    card_priority,
    playable_candidates,
    select_best,
    decide_turn,
    decide_challenge,
    decide_revenge,
    realtime_candidates,
)

from .driver import BotDriver, field_signature

__all__ = [
    # policy
    "BotObservation",
    "card_priority",
    "playable_candidates",
    "select_best",
    "decide_turn",
    "decide_challenge",
    "decide_revenge",
    "realtime_candidates",
    # driver
    "BotDriver",
    "field_signature",
]
