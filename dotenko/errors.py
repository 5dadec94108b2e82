"""
异常定义

- IllegalAction / StaleAction: 玩家侧错误，可恢复，不改变状态
- EmptyDeck / CycleLimitExceeded: 牌堆耗尽信号，驱动无胜者结束
- InvariantViolation: 引擎缺陷，必须向上抛出
"""


class DotenkoError(Exception):
    """所有引擎异常的基类"""


class IllegalAction(DotenkoError):
    """动作不符合规则 (如出牌不合法、不满足どてんこ条件)"""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class StaleAction(DotenkoError):
    """动作到达时阶段或回合已变化"""

    def __init__(self, reason: str = "stale action"):
        super().__init__(reason)
        self.reason = reason


class EmptyDeck(DotenkoError):
    """牌堆为空且无法重洗"""


class CycleLimitExceeded(DotenkoError):
    """已达到牌堆重洗上限"""


class InvariantViolation(DotenkoError):
    """牌的守恒等不变量被破坏"""
