"""
规则配置

由外部设置存储提供的一局规则，在局内不可变
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .cards import MAX_JOKERS


# 设置存储中表示 "无限制" / "无" 的写法
UNLIMITED_TOKENS = frozenset({"♾️", "なし", "unlimited", "none", "null", ""})


def _optional_int(value: Any) -> Optional[int]:
    """将设置值转换为 Optional[int]"""
    if value is None:
        return None
    if isinstance(value, str):
        if value.strip().lower() in UNLIMITED_TOKENS:
            return None
        return int(value)
    return int(value)


@dataclass(frozen=True)
class GameRuleConfig:
    """
    游戏规则配置

    Attributes:
        round_count: 一场比赛的局数
        joker_count: 王的张数 (0-4)
        base_rate: 基础倍率
        up_rate_threshold: 连续同数字多少张时倍率翻倍，None 表示不翻倍
        max_score: 单局得分上限，None 表示无上限
        deck_cycle_limit: 单局牌堆重洗上限，None 表示无限
        initial_hand_size: 每人初始手牌数
        hand_limit: 手牌上限 (达到且无牌可出时爆牌)
        extended_plays: 是否允许 "同花起头" 与 "合计一致" 的多张出法
        challenge_after_dotenko: どてんこ 后是否也进入挑战阶段
        allow_revenge: どてんこ 后是否开放リベンジ窗口 (关闭时先到的宣言即定局)
    """
    round_count: int = 5
    joker_count: int = 2
    base_rate: int = 1
    up_rate_threshold: Optional[int] = 3
    max_score: Optional[int] = 1000
    deck_cycle_limit: Optional[int] = 3

    initial_hand_size: int = 2
    hand_limit: int = 7

    extended_plays: bool = False
    challenge_after_dotenko: bool = False
    allow_revenge: bool = False

    def __post_init__(self):
        if self.round_count < 1:
            raise ValueError(f"round_count must be >= 1, got {self.round_count}")
        if not 0 <= self.joker_count <= MAX_JOKERS:
            raise ValueError(f"joker_count must be 0-{MAX_JOKERS}, got {self.joker_count}")
        if self.base_rate < 1:
            raise ValueError(f"base_rate must be >= 1, got {self.base_rate}")
        if self.up_rate_threshold is not None and self.up_rate_threshold < 2:
            raise ValueError(f"up_rate_threshold must be >= 2, got {self.up_rate_threshold}")
        if self.max_score is not None and self.max_score < 0:
            raise ValueError(f"max_score must be >= 0, got {self.max_score}")
        if self.deck_cycle_limit is not None and self.deck_cycle_limit < 0:
            raise ValueError(f"deck_cycle_limit must be >= 0, got {self.deck_cycle_limit}")
        if not 1 <= self.initial_hand_size < self.hand_limit:
            raise ValueError(
                f"initial_hand_size must be in [1, hand_limit), got {self.initial_hand_size}"
            )

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'GameRuleConfig':
        """
        从字典创建配置

        忽略未知键；可选上限字段接受 "♾️" / "なし" 等写法
        """
        valid_keys = cls.__dataclass_fields__.keys()
        filtered = {k: v for k, v in d.items() if k in valid_keys}

        for key in ("up_rate_threshold", "max_score", "deck_cycle_limit"):
            if key in filtered:
                filtered[key] = _optional_int(filtered[key])
        for key in ("round_count", "joker_count", "base_rate", "initial_hand_size", "hand_limit"):
            if key in filtered:
                filtered[key] = int(filtered[key])

        return cls(**filtered)

    def to_dict(self) -> Dict[str, Any]:
        return {k: getattr(self, k) for k in self.__dataclass_fields__}
