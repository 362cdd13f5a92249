"""外部服务数据模型"""

from dataclasses import dataclass
from typing import Any

SOL_MINT = "So11111111111111111111111111111111111111112"
LAMPORTS_PER_SOL = 1_000_000_000


@dataclass
class TokenBalance:
    """钱包某个 mint 的余额 (所有 token account 之和)"""

    raw_amount: int
    ui_amount: float
    decimals: int


@dataclass
class SwapBuild:
    """待签名的 swap 交易"""

    tx_base64: str
    path: str
    expected_out_raw: int = 0


def extract_base64_tx(payload: Any) -> str | None:
    """从各家 swap 接口的响应里取出 base64 交易"""
    if not payload:
        return None
    if isinstance(payload, str):
        return payload
    if not isinstance(payload, dict):
        return None

    for key in ("swapTransaction", "transaction", "tx"):
        if isinstance(payload.get(key), str):
            return payload[key]

    data = payload.get("data")
    if isinstance(data, dict) and isinstance(data.get("swapTransaction"), str):
        return data["swapTransaction"]

    txs = payload.get("transactions")
    if isinstance(txs, list) and txs:
        first = txs[0]
        if isinstance(first, str):
            return first
        if isinstance(first, dict):
            for key in ("content", "transaction", "base64"):
                if isinstance(first.get(key), str):
                    return first[key]
    return None


def extract_out_amount(payload: Any) -> int:
    """报价/构建响应中的预计输出数量, 取不到时为 0"""
    if not isinstance(payload, dict):
        return 0
    candidates = [payload.get("outAmount"), payload.get("outAmountRaw")]
    quote = payload.get("quote")
    if isinstance(quote, dict):
        candidates.append(quote.get("outAmount"))
    for value in candidates:
        if value is None:
            continue
        try:
            return int(float(value))
        except (TypeError, ValueError):
            continue
    return 0
