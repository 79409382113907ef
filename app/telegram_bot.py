import logging
from typing import Dict, List, Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Message, Update
from telegram.constants import ParseMode
from telegram.ext import Application, CommandHandler, ContextTypes, MessageHandler, filters

from app import crud
from app.config import Settings
from app.database import DataManager
from app.models import new_post

logger = logging.getLogger(__name__)


def prediction_keyboard(widget_url: str, count: int) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[InlineKeyboardButton(f"⚽ Tahmin Yap ({count})", url=widget_url)]])


def message_content(message: Message) -> Optional[Dict]:
    """Extract the publishable content of an admin message"""
    if message.photo:
        return {"type": "photo", "text": message.caption or "", "file_id": message.photo[-1].file_id}
    if message.video:
        return {"type": "video", "text": message.caption or "", "file_id": message.video.file_id}
    if message.text and not message.text.startswith("/"):
        return {"type": "text", "text": message.text, "file_id": None}
    return None


class TelegramNotifier:
    """Pushes data-layer changes back to Telegram"""

    def __init__(self, bot, settings: Settings, correct_points: int = 10):
        self.bot = bot
        self.settings = settings
        self.correct_points = correct_points

    async def update_button(self, post_id: str, post: Dict, count: int):
        """Refresh the prediction counter on the channel message"""
        if not post.get("channelId") or not post.get("messageId"):
            return
        await self.bot.edit_message_reply_markup(
            chat_id=post["channelId"],
            message_id=post["messageId"],
            reply_markup=prediction_keyboard(self.settings.widget_url(post_id), count),
        )

    async def notify_winner(self, telegram_id: str, post: Dict, result: Dict):
        title = post.get("title") or "Etkinlik"
        await self.bot.send_message(
            chat_id=int(telegram_id),
            text=(
                f"🎉 Tebrikler! \"{title}\" için {result.get('homeScore')}-{result.get('awayScore')} "
                f"tahmininiz doğru çıktı!\n\n+{self.correct_points} puan kazandınız! 🏆"
            ),
        )


class PredictionBot:
    def __init__(self, token: str, settings: Settings, db: DataManager, correct_points: int = 10):
        self.settings = settings
        self.db = db
        self.application = Application.builder().token(token).build()
        self.notifier = TelegramNotifier(self.application.bot, settings, correct_points)
        self.setup_handlers()

    def setup_handlers(self):
        """Setup command and message handlers"""
        handlers = [
            CommandHandler("start", self.start_command),
            CommandHandler("help", self.help_command),
            CommandHandler("stats", self.stats_command),
            CommandHandler("backup", self.backup_command),
            MessageHandler(
                filters.ChatType.PRIVATE & ((filters.TEXT & ~filters.COMMAND) | filters.PHOTO | filters.VIDEO),
                self.handle_message,
            ),
        ]

        for handler in handlers:
            self.application.add_handler(handler)

    def is_admin(self, user_id: int) -> bool:
        return user_id in self.settings.admin_ids

    async def _reject(self, update: Update) -> bool:
        if self.is_admin(update.effective_user.id):
            return False
        await update.message.reply_text("⛔ Bu botu kullanma yetkiniz yok.")
        return True

    def personal_link(self, telegram_id: int) -> Optional[str]:
        """Widget link that lets the web session carry this Telegram identity"""
        if not self.settings.session_secret:
            return None
        signature = crud.sign_telegram_id(self.settings.session_secret, telegram_id)
        return f"{self.settings.base_url}/widget?tg={telegram_id}&sig={signature}"

    async def start_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /start command"""
        user_id = update.effective_user.id
        if not self.is_admin(user_id):
            link = self.personal_link(user_id)
            if link is None:
                await update.message.reply_text("⛔ Bu botu kullanma yetkiniz yok.")
                return
            await update.message.reply_text(
                "🎯 Tahminlerinizin liderlik tablosunda sayılması için bu bağlantıyı açın:\n\n"
                f"{link}\n\nBağlantı size özeldir, paylaşmayın."
            )
            return
        await update.message.reply_text(
            "🎯 *Tahmin Botu*\n\n"
            "Bu bot ile tahmin etkinlikleri oluşturabilirsiniz.\n\n"
            "*Kullanım:*\n"
            "📝 Metin, fotoğraf veya video gönderin\n"
            "⏰ Mesajda tarih belirtin: \"15.03 20:30\"\n"
            "⚽ Takım isimleri: \"Galatasaray - Fenerbahçe\"\n\n"
            "*Komutlar:*\n"
            "/help - Yardım\n"
            "/stats - İstatistikler\n"
            "/backup - Yedek al",
            parse_mode=ParseMode.MARKDOWN,
        )

    async def help_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self.is_admin(update.effective_user.id):
            return
        await update.message.reply_text(
            "📖 *Yardım*\n\n"
            "1. Bota mesaj, fotoğraf veya video gönderin\n"
            "2. Otomatik olarak belirlenen kanallara paylaşılır\n"
            "3. Widget URL'i alırsınız\n\n"
            f"*Widget URL:*\n{self.settings.base_url}/widget/POST_ID",
            parse_mode=ParseMode.MARKDOWN,
        )

    async def stats_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self.is_admin(update.effective_user.id):
            return
        try:
            totals = await crud.summary(self.db)
            await update.message.reply_text(
                "📊 *İstatistikler*\n\n"
                f"📝 Toplam Etkinlik: {totals['totalPosts']}\n"
                f"⚽ Toplam Tahmin: {totals['totalPredictions']}\n"
                f"🟢 Aktif Etkinlik: {totals['activePosts']}\n"
                f"👥 Kullanıcı: {totals['totalUsers']}",
                parse_mode=ParseMode.MARKDOWN,
            )
        except Exception as e:
            logger.error(f"Error in stats_command: {e}")
            await update.message.reply_text("❌ İstatistikler alınamadı.")

    async def backup_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self.is_admin(update.effective_user.id):
            return
        try:
            path = await self.db.backups.create()
            await update.message.reply_text(f"✅ Yedek alındı: {path.name}")
        except Exception as e:
            logger.error(f"Error in backup_command: {e}")
            await update.message.reply_text("❌ Yedekleme başarısız.")

    async def handle_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Publish an admin message to every configured channel as a new post"""
        if await self._reject(update):
            return

        content = message_content(update.message)
        if not content:
            return

        try:
            created = await self.publish(content)
        except Exception as e:
            logger.error(f"Message handler error: {e}")
            await update.message.reply_text(f"❌ Bir hata oluştu: {e}")
            return

        for post in created:
            lines = [
                "✅ Etkinlik oluşturuldu!\n",
                f"📋 ID: {post['id']}",
                f"🔗 Widget URL: {self.settings.widget_url(post['id'])}",
            ]
            if post.get("deadline"):
                lines.append(f"⏰ Deadline: {post['deadline']}")
            if post.get("homeTeam") and post.get("awayTeam"):
                lines.append(f"⚽ {post['homeTeam']} - {post['awayTeam']}")
            await update.message.reply_text("\n".join(lines))

    async def publish(self, content: Dict) -> List[Dict]:
        """Send content to each channel and store one post per sent message"""
        deadline = crud.parse_deadline(content["text"], self.db.clock())
        home_team, away_team = crud.parse_teams(content["text"])
        created = []

        for channel in self.settings.telegram_channels:
            post = new_post(content["type"], content["text"], content["file_id"],
                            deadline=deadline, home_team=home_team, away_team=away_team)
            markup = prediction_keyboard(self.settings.widget_url(post["id"]), 0)
            try:
                if content["type"] == "photo":
                    sent = await self.application.bot.send_photo(
                        channel, content["file_id"], caption=content["text"], reply_markup=markup)
                elif content["type"] == "video":
                    sent = await self.application.bot.send_video(
                        channel, content["file_id"], caption=content["text"], reply_markup=markup)
                else:
                    sent = await self.application.bot.send_message(channel, content["text"], reply_markup=markup)
            except Exception as e:
                logger.error(f"Error publishing to {channel}: {e}")
                continue

            post["channelId"] = sent.chat.id
            post["messageId"] = sent.message_id
            if await self.db.posts.create(post):
                logger.info(f"✅ Post created: {post['id']} (Channel: {channel})")
                created.append(post)
            else:
                logger.error(f"Post {post['id']} was published to {channel} but could not be saved")

        return created
