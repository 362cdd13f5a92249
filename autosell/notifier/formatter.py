# autosell/notifier/formatter.py
from datetime import UTC, datetime
from typing import Any

from autosell.storage.models import SellWave


def format_usd(value: float) -> str:
    if abs(value) >= 1_000_000_000:
        return f"${value / 1_000_000_000:.1f}B"
    elif abs(value) >= 1_000_000:
        return f"${value / 1_000_000:.1f}M"
    elif abs(value) >= 1_000:
        return f"${value / 1_000:.1f}K"
    else:
        return f"${value:,.2f}"


def format_usd_signed(value: float) -> str:
    sign = "+" if value >= 0 else "-"
    return f"{sign}{format_usd(abs(value))}"


def _short(address: str) -> str:
    if len(address) <= 12:
        return address
    return f"{address[:4]}...{address[-4:]}"


def _time(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, UTC).strftime("%Y-%m-%d %H:%M:%S UTC")


def format_wave_report(wave: SellWave, results: list[dict[str, Any]] | None = None) -> str:
    status = "✅" if wave.successful > 0 else "❌"
    lines = [
        f"{status} <b>自动卖出</b> {_short(wave.mint)}",
        f"⏰ {_time(wave.started_at)}",
        "",
        f"净流入: {format_usd_signed(wave.net_usd)} | 目标: {format_usd(wave.sell_usd)}",
        f"钱包: {wave.successful} 成功 / {wave.failed} 失败",
        f"卖出: {wave.total_sold_tokens:,.4f} tokens",
        f"预计收到: {wave.total_received_sol:.4f} SOL",
    ]

    failures = [r for r in results or [] if not r.get("success")]
    if failures:
        lines.append("")
        lines.append("<b>失败原因:</b>")
        for r in failures[:5]:
            lines.append(f"• {_short(str(r.get('wallet_address', '?')))}: {r.get('error')}")
        if len(failures) > 5:
            lines.append(f"• ... 另有 {len(failures) - 5} 个")

    return "\n".join(lines)


def format_status(status: dict[str, Any]) -> str:
    state = "⏸ 已暂停" if status.get("paused") else "▶️ 运行中"
    cooldown = status.get("cooldown_remaining_s", 0)

    lines = [
        f"📊 <b>Auto-sell</b> {_short(str(status.get('mint') or '-'))}",
        f"状态: {state} | 模式: {status.get('mode')}",
        "",
        f"窗口 {status.get('window_seconds')}s ({status.get('source')}):",
        f"  买入: {format_usd(status.get('buyers_usd', 0))}",
        f"  卖出: {format_usd(status.get('sellers_usd', 0))}",
        f"  净流入: {format_usd_signed(status.get('net', 0))}",
        f"  本地成交: {status.get('trades_in_window', 0)} 笔",
        f"冷却剩余: {cooldown}s" if cooldown else "冷却: 无",
    ]

    last_wave = status.get("last_wave")
    if last_wave:
        lines.append("")
        lines.append(
            f"上次卖出: {_time(last_wave['started_at'])} "
            f"({last_wave['successful']} 成功 / {last_wave['failed']} 失败)"
        )

    return "\n".join(lines)


def format_tick_result(result: dict[str, Any]) -> str:
    if result.get("error"):
        return f"❌ 执行失败: {result['error']}"
    if "reason" in result and "result" not in result:
        return f"⏭ 未触发卖出: {result['reason']}"
    summary = (result.get("result") or {}).get("summary") or {}
    return (
        f"✅ 已执行卖出: 净流入 {format_usd_signed(result.get('net', 0))}, "
        f"{summary.get('successful', 0)}/{summary.get('total_wallets', 0)} 钱包成功"
    )
