# autosell/storage/models.py
from dataclasses import asdict, dataclass, field
from typing import Any

SIDES = ("buy", "sell")


@dataclass(frozen=True)
class Trade:
    mint: str
    timestamp: int  # ms
    side: str  # "buy" | "sell"
    usd_amount: float
    signature: str | None = None
    token_amount: float | None = None


@dataclass
class WindowSums:
    buyers_usd: float = 0.0
    sellers_usd: float = 0.0
    observed_at: int = 0  # ms
    window_seconds: int = 0
    source: str = "empty"  # "local" | "push" | "empty"

    @property
    def net(self) -> float:
        return self.buyers_usd - self.sellers_usd


@dataclass
class SellIntent:
    mint: str
    net_usd: float
    sell_fraction: float
    sell_usd: float
    sell_tokens: int  # 仅用于记录, 实际按余额百分比卖出
    percentage_of_balance: float
    slippage_bps: int
    reason: str


@dataclass
class PathAttempt:
    path: str  # "bloxroute" | "jupiter" | "rpc" ...
    status: int = 0
    error: str = ""


@dataclass
class WalletSellResult:
    wallet_address: str
    success: bool
    signature: str | None = None
    sold_amount: float | None = None  # UI 数量
    received_amount: float | None = None  # 预计收到的 SOL
    error: str | None = None
    path: str | None = None
    build_attempts: list[PathAttempt] = field(default_factory=list)
    broadcast_errors: list[str] = field(default_factory=list)
    sol_balance: float | None = None  # 卖出前的 SOL 余额

    @property
    def solscan_url(self) -> str | None:
        if not self.signature:
            return None
        return f"https://solscan.io/tx/{self.signature}"


@dataclass
class BatchSummary:
    total_wallets: int = 0
    successful: int = 0
    failed: int = 0
    total_sold_tokens: float = 0.0
    total_received_sol: float = 0.0


@dataclass
class BatchResult:
    summary: BatchSummary
    per_wallet: list[WalletSellResult]

    @property
    def success(self) -> bool:
        return self.summary.successful >= 1

    def to_dict(self) -> dict[str, Any]:
        results = []
        for r in self.per_wallet:
            item = asdict(r)
            item["solscan_url"] = r.solscan_url
            results.append(item)
        return {
            "success": self.success,
            "summary": asdict(self.summary),
            "results": results,
        }


@dataclass
class ExecutionResult:
    ok: bool
    status: int
    data: dict[str, Any]

    @property
    def successful(self) -> int:
        """成功卖出的钱包数; 外部执行器没有 summary 时按 ok 计"""
        summary = self.data.get("summary") if isinstance(self.data, dict) else None
        if isinstance(summary, dict) and "successful" in summary:
            try:
                return int(summary["successful"])
            except (TypeError, ValueError):
                return 0
        return 1 if self.ok else 0


@dataclass
class SellWave:
    id: int | None
    mint: str
    started_at: int  # ms
    reason: str
    net_usd: float
    sell_usd: float
    successful: int
    failed: int
    total_sold_tokens: float
    total_received_sol: float
