"""
🎯 Fortune Draw Script

Run this script once per draw event, when you're ready to conduct the draw:

    python draw_winner.py <event_id>

It picks a winner weighted by tickets and paid referrals and records the
result. A second run for the same event is rejected.
"""

import argparse
import logging
import os
import sys

from database import Database
from errors import DrawCommitError, DrawUnavailable, FortuneDrawError
from fortune_draw import WinnerSelector

logger = logging.getLogger(__name__)


def conduct_draw(db, event_id, rng=None):
    """Conduct the draw for one event and return the stored winner record"""
    event = db.get_draw_event(event_id)
    if not event:
        print(f"❌ Draw event {event_id} not found!")
        return None

    existing = db.get_winner(event_id)
    if existing:
        print(f"❌ A winner has already been drawn for {event['name']}: user {existing['user_id']}")
        return None

    print(f"🎟️ Draw event: {event['name']} ({event['status']})")
    print("🎯 Conducting draw...")
    print("." * 20)

    try:
        result = WinnerSelector(db, rng=rng).select_winner(event_id)
        winner = db.commit_draw_result(event_id, result)
    except DrawUnavailable as e:
        print(f"❌ Cannot draw: {e}")
        return None
    except DrawCommitError as e:
        print(f"❌ Draw not recorded: {e}")
        return None

    user = db.get_user(result.winner_id) or {}
    username = user.get('username')

    print(f"""
🎉 WINNER SELECTED! 🎉

🎟️ Winning Ticket: {winner['ticket_number']}
👤 Winner: {user.get('first_name', '')} (@{username if username else f'user{result.winner_id}'})
🆔 User ID: {result.winner_id}

Congratulations! 🎊
    """)

    print(f"""
📊 Draw Statistics:
🎫 Base Entries: {result.base_entries}
🤝 Bonus Entries: {result.bonus_entries}
⚖️ Winner Weight: {result.total_weight} / {result.total_weight_pool}
🍀 Winning Probability: {result.winning_probability}
👥 Total Participants: {result.total_participants}
🏆 Prize: {event.get('prize_amount')} {event.get('prize_description', '')}
    """)

    if result.fallback_used:
        print("⚠️ Random point fell outside the weight range; last participant was used. Check the logs.")

    return winner


def main(argv=None):
    parser = argparse.ArgumentParser(description="Draw the winner of a fortune draw event")
    parser.add_argument("event_id", type=int, help="draw event id")
    args = parser.parse_args(argv)

    logging.basicConfig(
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        level=os.getenv('LOG_LEVEL', 'INFO')
    )

    try:
        db = Database()
    except FortuneDrawError as e:
        print(f"❌ {e}")
        return 1

    try:
        winner = conduct_draw(db, args.event_id)
    except FortuneDrawError as e:
        logger.error(f"Draw failed: {e}")
        print(f"❌ Draw failed: {e}")
        return 1
    finally:
        db.close_connection()
    return 0 if winner else 1


if __name__ == "__main__":
    sys.exit(main())
