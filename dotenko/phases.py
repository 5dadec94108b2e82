"""阶段与结局枚举"""
from enum import Enum


class Phase(Enum):
    """回合阶段"""
    WAITING = "waiting"                        # 开局前
    DEALING = "dealing"                        # 发牌
    PLAYING = "playing"                        # 出牌循环
    DOTENKO_PROCESSING = "dotenko_processing"  # どてんこ成立，リベンジ窗口
    CHALLENGE = "challenge"                    # チャレンジゾーン
    SETTLING = "settling"                      # 结算中
    FINISHED = "finished"                      # 本局结束


class Outcome(Enum):
    """本局结局"""
    DOTENKO = "dotenko"      # 出牌中宣言
    SHOTENKO = "shotenko"    # 开局场牌即成立
    BURST = "burst"          # 爆牌
    EXHAUSTED = "exhausted"  # 牌堆耗尽，无胜者


# 拒绝一切玩家意图的阶段
CLOSED_PHASES = frozenset({Phase.WAITING, Phase.DEALING, Phase.SETTLING, Phase.FINISHED})
