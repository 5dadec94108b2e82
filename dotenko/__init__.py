"""
Dotenko Core - 纯游戏逻辑 (无调度、无 I/O)

Modules:
    cards: 牌定义、编码与牌堆
    actions: 玩家意图
    rules: 规则引擎
    scoring: 倍率与结算
    state: 回合状态机
    phases: 阶段与结局
    config: 规则配置
    errors: 异常
"""
from .cards import (
    Suit,
    Card,
    Deck,
    JOKER_VALUES,
    NUM_CARD_SLOTS,
    build_deck,
    full_card_set,
    cards_to_array,
    array_to_cards,
    cards_to_str,
    str_to_card,
    str_to_cards,
)

from .actions import IntentType, Intent, BotAction

from .config import GameRuleConfig

from .errors import (
    DotenkoError,
    IllegalAction,
    StaleAction,
    EmptyDeck,
    CycleLimitExceeded,
    InvariantViolation,
)

from .phases import Phase, Outcome

from .rules import RuleEngine

from .scoring import ScoringEngine, ScoreResult, RATE_CAP

from .state import Player, RoundState, MAX_CHALLENGE_STEPS

__all__ = [
    # cards
    "Suit",
    "Card",
    "Deck",
    "JOKER_VALUES",
    "NUM_CARD_SLOTS",
    "build_deck",
    "full_card_set",
    "cards_to_array",
    "array_to_cards",
    "cards_to_str",
    "str_to_card",
    "str_to_cards",
    # actions
    "IntentType",
    "Intent",
    "BotAction",
    # config
    "GameRuleConfig",
    # errors
    "DotenkoError",
    "IllegalAction",
    "StaleAction",
    "EmptyDeck",
    "CycleLimitExceeded",
    "InvariantViolation",
    # phases
    "Phase",
    "Outcome",
    # rules
    "RuleEngine",
    # scoring
    "ScoringEngine",
    "ScoreResult",
    "RATE_CAP",
    # state
    "Player",
    "RoundState",
    "MAX_CHALLENGE_STEPS",
]
