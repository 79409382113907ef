#!/usr/bin/env python3
"""
Check data files and Telegram credentials before starting the service
"""

import asyncio
import sys
from pathlib import Path

from telegram import Bot
from telegram.error import TelegramError

from app.config import Settings
from app.storage import JsonStore, StorageError


async def check_storage(settings: Settings) -> bool:
    """Every document must be absent or valid JSON"""
    store = JsonStore(settings.data_dir, strict=True)
    print(f"🔗 Checking data files in {store.data_dir}...")
    ok = True
    for name in store.names:
        path = store.path(name)
        if not path.exists():
            print(f"⚠️ {path.name} missing (will be created on startup)")
            continue
        try:
            document = await store.read(name)
            print(f"✅ {path.name}: {len(document)} records")
        except StorageError as e:
            print(f"❌ {e}")
            ok = False
    return ok


async def check_backups(settings: Settings) -> bool:
    backup_dir = Path(settings.backup_dir)
    try:
        backup_dir.mkdir(parents=True, exist_ok=True)
        probe = backup_dir / ".write-check"
        probe.write_text("ok", encoding="utf-8")
        probe.unlink()
    except OSError as e:
        print(f"❌ Backup directory {backup_dir} not writable: {e}")
        return False
    print(f"✅ Backup directory writable: {backup_dir}")
    return True


async def check_telegram(settings: Settings) -> bool:
    """Test Telegram bot token"""
    if not settings.bot_token:
        print("❌ BOT_TOKEN not found")
        return False

    print("🤖 Testing Telegram bot token...")
    try:
        async with Bot(settings.bot_token) as bot:
            me = await bot.get_me()
    except TelegramError as e:
        print(f"❌ Telegram test failed: {e}")
        return False

    print(f"✅ Telegram bot connected: {me.first_name}")
    if not settings.telegram_channels:
        print("⚠️ TELEGRAM_CHANNELS is empty")
    if not settings.admin_ids:
        print("⚠️ ADMIN_IDS is empty - nobody can publish posts")
    return True


async def main():
    settings = Settings.from_env()
    results = [
        await check_storage(settings),
        await check_backups(settings),
        await check_telegram(settings),
    ]
    print()
    if all(results):
        print("🎉 All checks passed")
        return 0
    print("⚠️ Some checks failed")
    return 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
