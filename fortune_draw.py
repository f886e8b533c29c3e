"""
Weighted fortune draw

Base entries  = approved, active tickets a user holds for the draw event
Bonus entries = paid referrals the user has made (across all events)
Total weight  = base entries + bonus entries

Higher weight = higher probability of winning. Everything here is a pure
read against an injected store (see database.Database), so it is safe to
call as often as needed; recording the result is the store's job.
"""

import logging
import random
from dataclasses import dataclass, asdict

from errors import NoEligibleParticipants, NoValidWeight

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParticipantWeight:
    user_id: int
    base_entries: int
    bonus_entries: int

    @property
    def total_weight(self):
        return self.base_entries + self.bonus_entries


@dataclass(frozen=True)
class DrawResult:
    winner_id: int
    base_entries: int
    bonus_entries: int
    total_weight: int
    total_participants: int
    total_weight_pool: int
    winning_probability: str
    fallback_used: bool = False

    def to_dict(self):
        return asdict(self)


def format_percentage(part, whole, places=2):
    """Format part/whole as a percentage string, "0.00%" style for an empty pool."""
    if not whole:
        return f"{0:.{places}f}%"
    return f"{part / whole * 100:.{places}f}%"


class WeightCalculator:
    def __init__(self, store):
        self.store = store

    def compute_weight(self, user_id, event_id):
        """Entry weight of one user for one draw event"""
        base_entries = int(self.store.approved_active_ticket_count(user_id, event_id) or 0)
        # Referral bonus is counted per referrer, not per draw event
        bonus_entries = int(self.store.paid_referral_count(user_id) or 0)
        return ParticipantWeight(user_id, base_entries, bonus_entries)


class EligibilitySet:
    def __init__(self, store):
        self.store = store

    def eligible_users(self, event_id):
        """Users holding at least one approved, active ticket for the event"""
        return set(self.store.distinct_users_with_approved_active_ticket(event_id))


class WinnerSelector:
    """Draws one winner with probability proportional to entry weight.

    ``rng`` only needs a ``random()`` method returning a float in [0, 1);
    it defaults to ``random.SystemRandom``.
    """

    def __init__(self, store, rng=None):
        self.weights = WeightCalculator(store)
        self.eligibility = EligibilitySet(store)
        self.rng = rng or random.SystemRandom()

    def distribution(self, event_id):
        """Weights of every eligible user with a positive weight, ordered by user id.

        Raises NoEligibleParticipants or NoValidWeight when nobody can win.
        """
        user_ids = self.eligibility.eligible_users(event_id)
        if not user_ids:
            raise NoEligibleParticipants(event_id)

        participants = [self.weights.compute_weight(user_id, event_id) for user_id in sorted(user_ids)]
        participants = [p for p in participants if p.total_weight > 0]
        if not participants:
            raise NoValidWeight(event_id)
        return participants

    def select_winner(self, event_id):
        participants = self.distribution(event_id)
        total_weight_pool = sum(p.total_weight for p in participants)

        point = self.rng.random() * total_weight_pool
        cumulative_weight = 0
        winner = None
        for participant in participants:
            cumulative_weight += participant.total_weight
            if point < cumulative_weight:
                winner = participant
                break

        fallback_used = winner is None
        if fallback_used:
            winner = participants[-1]
            logger.warning(
                f"Draw event {event_id}: random point {point!r} not below cumulative weight "
                f"{cumulative_weight}; falling back to last participant {winner.user_id}"
            )

        result = DrawResult(
            winner_id=winner.user_id,
            base_entries=winner.base_entries,
            bonus_entries=winner.bonus_entries,
            total_weight=winner.total_weight,
            total_participants=len(participants),
            total_weight_pool=total_weight_pool,
            winning_probability=format_percentage(winner.total_weight, total_weight_pool),
            fallback_used=fallback_used,
        )
        logger.info(
            f"Draw event {event_id}: selected user {result.winner_id} "
            f"({result.total_weight}/{total_weight_pool}, {result.winning_probability})"
        )
        return result


def winning_chance(store, user_id, event_id):
    """Preview of a user's current chance to win, before any draw.

    Uses the same weight formula as the draw itself. An empty pool reports
    "0.0000%" instead of failing.
    """
    weights = WeightCalculator(store)
    user_weight = weights.compute_weight(user_id, event_id)
    eligible_ids = EligibilitySet(store).eligible_users(event_id)

    total_weight = sum(weights.compute_weight(uid, event_id).total_weight for uid in eligible_ids)

    return {
        "user_id": user_id,
        "eligible": user_id in eligible_ids,
        "base_entries": user_weight.base_entries,
        "bonus_entries": user_weight.bonus_entries,
        "total_entries": user_weight.total_weight,
        "total_participants": len(eligible_ids),
        "total_weight_pool": total_weight,
        "winning_chance": format_percentage(user_weight.total_weight, total_weight, places=4),
    }
