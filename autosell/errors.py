# autosell/errors.py
"""Auto-sell 错误类型"""


class AutoSellError(Exception):
    """所有 auto-sell 错误的基类"""


class ValidationError(AutoSellError):
    """成交记录或配置不合法, 在修改任何状态之前拒绝"""


class StaleDataError(AutoSellError):
    """推送的窗口快照已过期"""


class APIError(AutoSellError):
    """外部服务返回非 2xx"""

    def __init__(self, status: int, body: str, source: str = ""):
        self.status = status
        self.body = body
        self.source = source
        prefix = f"{source} " if source else ""
        super().__init__(f"{prefix}HTTP {status}: {body[:200]}")


class QuoteError(AutoSellError):
    """报价失败, 对该钱包是终止性的"""

    def __init__(self, message: str, status: int = 0, body: str = ""):
        self.status = status
        self.body = body
        super().__init__(message)


class NoLiquidityError(QuoteError):
    pass


class NotTradableError(QuoteError):
    pass


class SwapBuildError(AutoSellError):
    """报价成功但无法生成交易"""

    def __init__(self, message: str, status: int = 0, body: str = ""):
        self.status = status
        self.body = body
        super().__init__(message)


class PhaseTimeout(AutoSellError, TimeoutError):
    """单个阶段 (报价 / 构建 / 广播) 超时"""

    def __init__(self, phase: str, seconds: float):
        self.phase = phase
        self.seconds = seconds
        super().__init__(f"{phase} timeout after {seconds:g}s")


class BroadcastError(AutoSellError):
    """所有广播通道均失败"""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(f"Transaction broadcast failed: {' | '.join(errors)}")


class ExecutorUnavailable(AutoSellError):
    """外部执行器未配置或不可达"""
