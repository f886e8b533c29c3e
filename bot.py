import logging
import os
import uuid
from io import BytesIO
from dotenv import load_dotenv  # Load environment variables
from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import Application, CommandHandler, CallbackQueryHandler, ContextTypes
from database import Database
from errors import DrawCommitError, DrawUnavailable, FortuneDrawError
from fortune_draw import WinnerSelector, winning_chance
from PIL import Image, ImageDraw, ImageFont

load_dotenv()

logger = logging.getLogger(__name__)


def parse_admin_ids(value):
    return {int(item.strip()) for item in (value or '').split(',') if item.strip().isdigit()}


def parse_int_args(args, count):
    """First `count` command arguments as ints, or None if missing/invalid"""
    if len(args) < count:
        return None
    try:
        return [int(arg) for arg in args[:count]]
    except ValueError:
        return None


class FortuneDrawBot:
    def __init__(self, db=None):
        self.db = db or Database()

        self.RAFFLE_TITLE = os.getenv('RAFFLE_TITLE', 'Fortune Draw')
        self.ADMIN_IDS = parse_admin_ids(os.getenv('ADMIN_IDS', ''))

    def is_admin(self, user_id):
        return user_id in self.ADMIN_IDS

    def main_menu(self):
        keyboard = [
            [InlineKeyboardButton("Draw Events", callback_data="events")],
            [InlineKeyboardButton("My Tickets", callback_data="my_tickets")],
            [InlineKeyboardButton("My Referrals", callback_data="my_referrals")]
        ]
        return InlineKeyboardMarkup(keyboard)

    def back_menu(self):
        return InlineKeyboardMarkup([[InlineKeyboardButton("Back to Menu", callback_data="back_to_menu")]])

    async def start(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /start command, optionally with a referral code: /start <code>"""
        user = update.effective_user
        referral_code = context.args[0] if context.args else None

        own_code = self.db.add_user(user.id, user.username, user.first_name, user.last_name, referral_code)

        welcome_text = f"""
{self.RAFFLE_TITLE}

Hi {user.first_name}! Ready to try your luck?

Every approved ticket is one entry in the draw.
Every friend you refer who pays earns you a bonus entry.

Your referral code: {own_code or 'unavailable'}
Share it as: /start {own_code or ''}
        """

        await update.message.reply_text(welcome_text, reply_markup=self.main_menu())

    async def button_handler(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle button callbacks"""
        query = update.callback_query
        await query.answer()

        user_id = query.from_user.id

        if query.data == "events":
            await self.show_events(query)
        elif query.data == "my_tickets":
            await self.show_my_tickets(query, user_id)
        elif query.data == "my_referrals":
            await self.show_my_referrals(query, user_id)
        elif query.data.startswith("chance_"):
            event_id = int(query.data.split("_")[1])
            await query.edit_message_text(self.chance_text(user_id, event_id), reply_markup=self.back_menu())
        elif query.data == "back_to_menu":
            await query.edit_message_text(self.RAFFLE_TITLE, reply_markup=self.main_menu())

    def events_text(self):
        events = self.db.get_active_events()
        if not events:
            return "No active draw events right now.", []

        lines = ["Active Draw Events", ""]
        buttons = []
        for event in events:
            lines.append(
                f"#{event['event_id']} {event['name']} - ticket {event['ticket_price']}, "
                f"prize {event.get('prize_amount')} {event.get('prize_description', '')}".rstrip()
            )
            buttons.append([InlineKeyboardButton(
                f"My chance in #{event['event_id']}", callback_data=f"chance_{event['event_id']}"
            )])
        lines.append("")
        lines.append("Buy tickets with /buy <event_id> <count>")
        return "\n".join(lines), buttons

    async def show_events(self, query):
        text, buttons = self.events_text()
        buttons.append([InlineKeyboardButton("Back to Menu", callback_data="back_to_menu")])
        await query.edit_message_text(text, reply_markup=InlineKeyboardMarkup(buttons))

    async def events_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        text, buttons = self.events_text()
        await update.message.reply_text(text, reply_markup=InlineKeyboardMarkup(buttons) if buttons else None)

    def tickets_text(self, user_id, event_id=None):
        tickets = self.db.get_user_tickets(user_id, event_id)
        if not tickets:
            return "You don't have any approved tickets yet!"

        ticket_lines = [
            f"• {t['ticket_number']} (event #{t['fortune_draw_event_id']}, {t['status']})" for t in tickets
        ]
        return "Your Tickets\n\nTotal Tickets: {}\n{}\n\nGood luck!".format(len(tickets), "\n".join(ticket_lines))

    async def show_my_tickets(self, query, user_id):
        """Show user's tickets"""
        await query.edit_message_text(self.tickets_text(user_id), reply_markup=self.back_menu())

    async def my_tickets_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        parsed = parse_int_args(context.args, 1)
        event_id = parsed[0] if parsed else None
        await update.message.reply_text(self.tickets_text(update.effective_user.id, event_id))

    def referrals_text(self, user_id):
        stats = self.db.get_referral_stats(user_id)
        user = self.db.get_user(user_id) or {}
        return f"""
Your Referrals

Referral code: {user.get('referral_code', 'unavailable')}
Total referrals: {stats['total_referrals']}
Paid referrals (bonus entries): {stats['paid_referrals']}
Pending referrals: {stats['pending_referrals']}
        """

    async def show_my_referrals(self, query, user_id):
        await query.edit_message_text(self.referrals_text(user_id), reply_markup=self.back_menu())

    async def referrals_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await update.message.reply_text(self.referrals_text(update.effective_user.id))

    def chance_text(self, user_id, event_id):
        try:
            chance = winning_chance(self.db, user_id, event_id)
        except FortuneDrawError as e:
            logger.error(f"Winning chance for user {user_id} in event {event_id} failed: {e}")
            return "Could not calculate your winning chance. Please try again later."

        note = "" if chance['eligible'] else "\nBuy at least one ticket for this event to enter the draw."
        return f"""
Winning Chance - Event #{event_id}

Base entries (tickets): {chance['base_entries']}
Bonus entries (referrals): {chance['bonus_entries']}
Your entries: {chance['total_entries']}
Participants: {chance['total_participants']}
Total entries: {chance['total_weight_pool']}

Winning chance: {chance['winning_chance']}{note}
        """

    async def chance_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /chance <event_id>"""
        parsed = parse_int_args(context.args, 1)
        if not parsed:
            await update.message.reply_text("Usage: /chance <event_id>")
            return
        await update.message.reply_text(self.chance_text(update.effective_user.id, parsed[0]))

    async def buy_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /buy <event_id> <count>: records a payment for an admin to approve"""
        parsed = parse_int_args(context.args, 2)
        if not parsed or not 1 <= parsed[1] <= 100:
            await update.message.reply_text("Usage: /buy <event_id> <count> (1-100 tickets)")
            return

        event_id, ticket_count = parsed
        user_id = update.effective_user.id
        reference = f"PAY{user_id}{uuid.uuid4().hex[:8].upper()}"
        amount = self.db.add_pending_payment(user_id, reference, event_id, ticket_count)
        if amount is None:
            await update.message.reply_text("This draw event is not accepting tickets right now.")
            return

        await update.message.reply_text(f"""
Payment Required

Tickets: {ticket_count}
Amount: {amount}
Reference: {reference}

Pay the amount quoting the reference. Your tickets are issued once an admin approves the payment.
        """)

    # ------------------------------------------------------------------
    # Admin commands
    # ------------------------------------------------------------------

    async def _require_admin(self, update: Update):
        if not self.is_admin(update.effective_user.id):
            await update.message.reply_text("Access denied.")
            return False
        return True

    async def new_event(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Admin: /newevent <ticket_price> <prize_amount> <name...>"""
        if not await self._require_admin(update):
            return
        parsed = parse_int_args(context.args, 2)
        if not parsed or len(context.args) < 3:
            await update.message.reply_text("Usage: /newevent <ticket_price> <prize_amount> <name>")
            return

        ticket_price, prize_amount = parsed
        name = " ".join(context.args[2:])
        try:
            event_id = self.db.create_draw_event(name, ticket_price, prize_amount)
        except FortuneDrawError as e:
            await update.message.reply_text(f"Could not create event: {e}")
            return
        await update.message.reply_text(f"Draw event #{event_id} created as draft. Open it with /openevent {event_id}")

    async def _change_status(self, update: Update, context: ContextTypes.DEFAULT_TYPE, status):
        if not await self._require_admin(update):
            return
        parsed = parse_int_args(context.args, 1)
        if not parsed:
            await update.message.reply_text("Usage: event id required")
            return
        try:
            self.db.set_event_status(parsed[0], status)
        except FortuneDrawError as e:
            await update.message.reply_text(str(e))
            return
        await update.message.reply_text(f"Draw event #{parsed[0]} is now {status}.")

    async def open_event(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await self._change_status(update, context, "active")

    async def close_event(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await self._change_status(update, context, "closed")

    async def approve_payment(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Admin: /approve <reference>"""
        if not await self._require_admin(update):
            return
        if not context.args:
            await update.message.reply_text("Usage: /approve <reference>")
            return

        reference = context.args[0]
        try:
            ticket_numbers = self.db.approve_payment(reference)
        except FortuneDrawError as e:
            await update.message.reply_text(f"Could not approve payment: {e}")
            return
        if ticket_numbers is None:
            await update.message.reply_text("Pending payment not found.")
            return

        await update.message.reply_text(f"Payment {reference} approved: {len(ticket_numbers)} tickets issued.")

    async def reject_payment(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Admin: /reject <reference> <reason...>"""
        if not await self._require_admin(update):
            return
        if len(context.args) < 2:
            await update.message.reply_text("Usage: /reject <reference> <reason>")
            return

        try:
            rejected = self.db.reject_payment(context.args[0], " ".join(context.args[1:]))
        except FortuneDrawError as e:
            await update.message.reply_text(f"Could not reject payment: {e}")
            return
        await update.message.reply_text("Payment rejected." if rejected else "Pending payment not found.")

    async def admin_stats(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Admin command to show statistics for one event"""
        if not await self._require_admin(update):
            return
        parsed = parse_int_args(context.args, 1)
        if not parsed:
            await update.message.reply_text("Usage: /stats <event_id>")
            return

        stats = self.db.get_event_stats(parsed[0])
        pending = self.db.get_pending_payments(parsed[0])

        text = f"""
🎯 Draw Event #{parsed[0]} 🎯

📊 STATISTICS:
• Approved Tickets: {stats['total_tickets']}
• Participants: {stats['total_users']}
• Revenue: {stats['total_revenue']}
• Pending Payments: {stats['pending_payments']}
        """
        if pending:
            text += "\n📋 PENDING PAYMENTS:\n"
            for payment in pending[:10]:
                text += f"• {payment['payment_id']} - User {payment['user_id']} - {payment['ticket_count']} tickets\n"

        await update.message.reply_text(text)

    async def draw(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Admin: /draw <event_id> runs the weighted draw and records the winner"""
        if not await self._require_admin(update):
            return
        parsed = parse_int_args(context.args, 1)
        if not parsed:
            await update.message.reply_text("Usage: /draw <event_id>")
            return

        event_id = parsed[0]
        try:
            result = WinnerSelector(self.db).select_winner(event_id)
            winner = self.db.commit_draw_result(event_id, result)
        except DrawUnavailable as e:
            await update.message.reply_text(f"Cannot draw: {e}")
            return
        except DrawCommitError as e:
            await update.message.reply_text(f"Draw not recorded: {e}")
            return
        except FortuneDrawError as e:
            logger.error(f"Draw for event {event_id} failed: {e}")
            await update.message.reply_text("Draw failed. Please try again later.")
            return

        text = f"""
🎉 WINNER SELECTED! 🎉

🎟️ Winning Ticket: {winner['ticket_number']}
🆔 User ID: {result.winner_id}
⚖️ Entries: {result.base_entries} + {result.bonus_entries} bonus = {result.total_weight}
👥 Participants: {result.total_participants}
🎲 Total Entries: {result.total_weight_pool}
🍀 Winning Probability: {result.winning_probability}
        """
        if result.fallback_used:
            text += "\n⚠️ Boundary fallback used, check the logs."
        await update.message.reply_text(text)

        await self._send_winner_ticket(context, result.winner_id, winner['ticket_number'])

    async def winners_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not await self._require_admin(update):
            return
        winners = self.db.get_winners()
        if not winners:
            await update.message.reply_text("No winners drawn yet.")
            return

        text = "🏆 WINNERS 🏆\n\n"
        for w in winners:
            name = f"@{w['username']}" if w.get('username') else f"user{w['user_id']}"
            text += f"• {w.get('event_name') or w['fortune_draw_event_id']}: {name} - {w['ticket_number']} ({w['winning_probability']})\n"
        await update.message.reply_text(text)

    async def _send_winner_ticket(self, context: ContextTypes.DEFAULT_TYPE, chat_id: int, ticket_number):
        """Send the winner an image of the winning ticket."""
        try:
            image = self._generate_ticket_image(ticket_number)
            with self._pil_image_to_bytes(image) as bio:
                await context.bot.send_photo(chat_id=chat_id, photo=bio, caption=f"Congratulations! Ticket {ticket_number} won the {self.RAFFLE_TITLE}!")
        except Exception as e:
            # Winner is already recorded; a failed notification must not undo it
            logger.error(f"Failed to send winning ticket image to {chat_id}: {e}")

    def _generate_ticket_image(self, ticket_number):
        """Overlay the ticket number centered on local template image ticket.png."""
        try:
            template_path = os.path.join(os.path.dirname(__file__), 'ticket.png')
            base = Image.open(template_path)
        except OSError as e:
            logger.warning(f"Failed to open ticket.png template, falling back to solid background: {e}")
            base = Image.new('RGB', (800, 450), color=(245, 245, 245))

        # Ensure RGB for JPEG output
        if base.mode not in ('RGB', 'L'):
            base = base.convert('RGB')

        draw = ImageDraw.Draw(base)

        # Ticket numbers are long, so scale the font to the width
        width, height = base.size
        number_text = str(ticket_number)
        number_font_size = max(24, int(width / max(len(number_text), 1) * 1.4))
        try:
            font_number = ImageFont.truetype("arialbd.ttf", number_font_size)
        except OSError:
            try:
                font_number = ImageFont.truetype("arial.ttf", number_font_size)
            except OSError:
                font_number = ImageFont.load_default()

        number_bbox = draw.textbbox((0, 0), number_text, font=font_number)
        number_w = number_bbox[2] - number_bbox[0]
        number_h = number_bbox[3] - number_bbox[1]

        # Slight shadow for readability
        center_x = (width - number_w) / 2
        center_y = (height - number_h) / 2
        shadow_offset = max(1, number_font_size // 40)
        draw.text((center_x + shadow_offset, center_y + shadow_offset), number_text, fill=(0, 0, 0), font=font_number)
        draw.text((center_x, center_y), number_text, fill=(20, 20, 20), font=font_number)

        return base

    def _pil_image_to_bytes(self, image: Image.Image):
        """Convert PIL Image to BytesIO (JPEG, optimized) for telegram upload."""
        bio = BytesIO()
        image.save(bio, format='JPEG', quality=85, optimize=True)
        bio.seek(0)
        return bio


def main():
    """Start the bot"""
    logging.basicConfig(
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        level=os.getenv('LOG_LEVEL', 'INFO')
    )
    # Reduce APScheduler and HTTP noise
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    BOT_TOKEN = os.getenv('BOT_TOKEN')

    if not BOT_TOKEN:
        print("ERROR: Please set your BOT_TOKEN in the .env file!")
        return

    bot = FortuneDrawBot()

    application = Application.builder().token(BOT_TOKEN).build()

    application.add_handler(CommandHandler("start", bot.start))
    application.add_handler(CommandHandler("events", bot.events_command))
    application.add_handler(CommandHandler("chance", bot.chance_command))
    application.add_handler(CommandHandler("mytickets", bot.my_tickets_command))
    application.add_handler(CommandHandler("referrals", bot.referrals_command))
    application.add_handler(CommandHandler("buy", bot.buy_command))
    application.add_handler(CommandHandler("newevent", bot.new_event))
    application.add_handler(CommandHandler("openevent", bot.open_event))
    application.add_handler(CommandHandler("closeevent", bot.close_event))
    application.add_handler(CommandHandler("approve", bot.approve_payment))
    application.add_handler(CommandHandler("reject", bot.reject_payment))
    application.add_handler(CommandHandler("stats", bot.admin_stats))
    application.add_handler(CommandHandler("draw", bot.draw))
    application.add_handler(CommandHandler("winners", bot.winners_command))
    application.add_handler(CallbackQueryHandler(bot.button_handler))

    print("STARTING: Fortune draw bot is starting...")
    print("INFO: Send /start to your bot to begin!")

    application.run_polling(allowed_updates=Update.ALL_TYPES)


if __name__ == "__main__":
    main()
