#!/usr/bin/env python3

import asyncio
import logging

import uvicorn
from telegram import BotCommand

from app import main as api
from app.database import DataManager, init_db
from app.telegram_bot import PredictionBot

# Configure logging
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=logging.INFO
)
logger = logging.getLogger(__name__)


async def api_server():
    """Serve the widget/admin API on the configured port"""
    config = uvicorn.Config(api.app, host="0.0.0.0", port=api.settings.port, log_level="info")
    server = uvicorn.Server(config)
    logger.info(f"✅ API server starting on port {api.settings.port}")
    await server.serve()


async def main_async():
    """Async main function"""
    logger.info("🎯 Prediction League starting up...")
    settings = api.settings

    db = init_db(DataManager(
        settings.data_dir,
        settings.backup_dir,
        strict=settings.strict_storage,
        correct_points=api.scoring.correct_points,
    ))
    logger.info(f"✅ Data files initialized in {settings.data_dir}")

    if not settings.bot_token:
        logger.warning("⚠️ BOT_TOKEN not set - running API only")
        await api_server()
        return

    if not settings.session_secret:
        logger.warning("⚠️ SESSION_SECRET not set - widget sessions stay anonymous")

    if not settings.telegram_channels:
        logger.warning("⚠️ TELEGRAM_CHANNELS is empty - posts will not be published anywhere")

    bot = PredictionBot(settings.bot_token, settings, db, correct_points=api.scoring.correct_points)
    api.app.state.count_listener = bot.notifier.update_button
    api.app.state.winner_notifier = bot.notifier.notify_winner

    api_task = asyncio.create_task(api_server())

    try:
        await bot.application.initialize()
        await bot.application.bot.set_my_commands([
            BotCommand("start", "🎯 Başlangıç"),
            BotCommand("help", "❓ Yardım"),
            BotCommand("stats", "📊 İstatistikler"),
            BotCommand("backup", "💾 Yedek al"),
        ])
        logger.info("✅ Bot commands set")

        logger.info("🚀 Starting bot polling...")
        await bot.application.start()
        await bot.application.updater.start_polling(
            drop_pending_updates=True,
            allowed_updates=['message']
        )

        # Runs until the API server exits or the process is interrupted
        try:
            await api_task
        finally:
            await bot.application.updater.stop()
            await bot.application.stop()
            await bot.application.shutdown()

    except Exception as e:
        logger.error(f"❌ Critical error starting bot: {e}")
        api_task.cancel()
        raise


def main():
    """Main entry point"""
    try:
        asyncio.run(main_async())
    except KeyboardInterrupt:
        logger.info("👋 Stopped by user")
    except Exception as e:
        logger.error(f"💥 Crashed with error: {e}")
        raise


if __name__ == "__main__":
    main()
