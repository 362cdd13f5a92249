# autosell/notifier/telegram.py
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from telegram import Bot, BotCommand, Update
from telegram.ext import Application, CommandHandler, ContextTypes

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = """
🔔 <b>Auto-sell</b> - 净流入触发的多钱包自动卖出

<b>功能：</b>
• 滑动窗口买卖额统计
• 净流入达到阈值后按比例卖出
• 多钱包并发执行, 多通道广播

输入 /help 查看所有命令
"""

HELP_MESSAGE = """
📖 <b>命令列表</b>

/status - 查看窗口统计与冷却状态
/pause - 暂停自动卖出
/resume - 恢复自动卖出
/sell - 立即评估一次 (仍受阈值和冷却约束)
"""

BOT_COMMANDS = [
    BotCommand("start", "开始使用"),
    BotCommand("help", "查看帮助"),
    BotCommand("status", "系统状态"),
    BotCommand("pause", "暂停自动卖出"),
    BotCommand("resume", "恢复自动卖出"),
    BotCommand("sell", "立即评估一次"),
]


class TelegramNotifier:
    def __init__(self, bot_token: str, chat_id: str):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.bot = Bot(token=bot_token)
        self.app: Application | None = None  # type: ignore[type-arg]

        # Callbacks
        self.on_status: Callable[[], Coroutine[Any, Any, str]] | None = None
        self.on_pause: Callable[[], Coroutine[Any, Any, None]] | None = None
        self.on_resume: Callable[[], Coroutine[Any, Any, None]] | None = None
        self.on_sell: Callable[[], Coroutine[Any, Any, str]] | None = None

    async def send_message(self, text: str) -> None:
        await self.bot.send_message(
            chat_id=self.chat_id,
            text=text,
            parse_mode="HTML",
        )

    async def _handle_status(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message:
            return

        if self.on_status:
            text = await self.on_status()
            await update.message.reply_text(text, parse_mode="HTML")
        else:
            await update.message.reply_text("系统运行中")

    async def _handle_pause(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message:
            return

        if self.on_pause:
            await self.on_pause()
        await update.message.reply_text("⏸ 自动卖出已暂停")

    async def _handle_resume(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message:
            return

        if self.on_resume:
            await self.on_resume()
        await update.message.reply_text("▶️ 自动卖出已恢复")

    async def _handle_sell(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message:
            return

        if self.on_sell:
            await update.message.reply_text("评估中...")
            text = await self.on_sell()
            await update.message.reply_text(text)
        else:
            await update.message.reply_text("未配置执行器")

    async def _handle_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message:
            return
        await update.message.reply_text(WELCOME_MESSAGE, parse_mode="HTML")

    async def _handle_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message:
            return
        await update.message.reply_text(HELP_MESSAGE, parse_mode="HTML")

    def setup_handlers(self, app: Application) -> None:  # type: ignore[type-arg]
        app.add_handler(CommandHandler("start", self._handle_start))
        app.add_handler(CommandHandler("help", self._handle_help))
        app.add_handler(CommandHandler("status", self._handle_status))
        app.add_handler(CommandHandler("pause", self._handle_pause))
        app.add_handler(CommandHandler("resume", self._handle_resume))
        app.add_handler(CommandHandler("sell", self._handle_sell))

    async def start_polling(self) -> None:
        self.app = Application.builder().token(self.bot_token).build()
        self.setup_handlers(self.app)
        await self.app.initialize()
        await self.app.start()

        await self.bot.set_my_commands(BOT_COMMANDS)

        if self.app.updater:
            await self.app.updater.start_polling()

    async def stop_polling(self) -> None:
        if self.app:
            if self.app.updater:
                await self.app.updater.stop()
            await self.app.stop()
            await self.app.shutdown()
