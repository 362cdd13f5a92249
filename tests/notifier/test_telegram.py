# tests/notifier/test_telegram.py
from unittest.mock import AsyncMock, MagicMock, patch


async def test_send_message():
    with patch("autosell.notifier.telegram.Bot") as MockBot:
        mock_bot = MagicMock()
        mock_bot.send_message = AsyncMock()
        MockBot.return_value = mock_bot

        from autosell.notifier.telegram import TelegramNotifier

        notifier = TelegramNotifier(bot_token="test", chat_id="123")
        await notifier.send_message("Hello")

        mock_bot.send_message.assert_called_once_with(
            chat_id="123",
            text="Hello",
            parse_mode="HTML",
        )


def make_update() -> MagicMock:
    update = MagicMock()
    update.message.reply_text = AsyncMock()
    return update


async def test_pause_and_resume_callbacks():
    with patch("autosell.notifier.telegram.Bot"):
        from autosell.notifier.telegram import TelegramNotifier

        notifier = TelegramNotifier(bot_token="test", chat_id="123")
        notifier.on_pause = AsyncMock()
        notifier.on_resume = AsyncMock()

        update = make_update()
        await notifier._handle_pause(update, MagicMock())
        notifier.on_pause.assert_awaited_once()
        assert "暂停" in update.message.reply_text.call_args.args[0]

        update = make_update()
        await notifier._handle_resume(update, MagicMock())
        notifier.on_resume.assert_awaited_once()


async def test_status_and_sell_callbacks():
    with patch("autosell.notifier.telegram.Bot"):
        from autosell.notifier.telegram import TelegramNotifier

        notifier = TelegramNotifier(bot_token="test", chat_id="123")
        notifier.on_status = AsyncMock(return_value="status text")
        notifier.on_sell = AsyncMock(return_value="sold")

        update = make_update()
        await notifier._handle_status(update, MagicMock())
        update.message.reply_text.assert_awaited_once_with("status text", parse_mode="HTML")

        update = make_update()
        await notifier._handle_sell(update, MagicMock())
        notifier.on_sell.assert_awaited_once()
        assert update.message.reply_text.call_args.args[0] == "sold"


async def test_sell_without_callback():
    with patch("autosell.notifier.telegram.Bot"):
        from autosell.notifier.telegram import TelegramNotifier

        notifier = TelegramNotifier(bot_token="test", chat_id="123")
        update = make_update()
        await notifier._handle_sell(update, MagicMock())
        update.message.reply_text.assert_awaited_once_with("未配置执行器")
