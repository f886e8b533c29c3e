import mongomock
import pytest
from pymongo.errors import PyMongoError

from database import Database


class FixedRandom:
    """Random source that always returns the same value"""

    def __init__(self, value):
        self.value = value

    def random(self):
        return self.value


class FailingCollection:
    """Wraps a collection and makes the named methods raise PyMongoError"""

    def __init__(self, collection, *failing):
        self._collection = collection
        self._failing = set(failing)

    def __getattr__(self, name):
        if name in self._failing:
            def fail(*args, **kwargs):
                raise PyMongoError(f"{name} failed")
            return fail
        return getattr(self._collection, name)


class InMemoryStore:
    """Ticket and referral counts kept in dicts.

    ``eligible`` overrides the eligible set, for simulating tickets that
    disappear between the eligibility read and the weight reads.
    """

    def __init__(self, tickets=None, referrals=None, eligible=None):
        self.tickets = tickets or {}
        self.referrals = referrals or {}
        self.eligible = eligible

    def approved_active_ticket_count(self, user_id, event_id):
        return self.tickets.get((user_id, event_id), 0)

    def distinct_users_with_approved_active_ticket(self, event_id):
        if self.eligible is not None:
            return set(self.eligible)
        return {user_id for (user_id, eid), count in self.tickets.items() if eid == event_id and count > 0}

    def paid_referral_count(self, user_id):
        return self.referrals.get(user_id, 0)


@pytest.fixture
def mongo_db():
    db = Database(client=mongomock.MongoClient(), db_name="fortune_draw_test", use_transactions=False)
    yield db
    db.close_connection()


@pytest.fixture
def open_event(mongo_db):
    event_id = mongo_db.create_draw_event("Weekly Draw", 100, 5000, "cash")
    mongo_db.set_event_status(event_id, "active")
    return event_id


@pytest.fixture
def buy(mongo_db):
    """Register (if needed) and buy approved tickets for a user"""
    counter = {"n": 0}

    def _buy(user_id, event_id, ticket_count, approve=True):
        if mongo_db.get_user(user_id) is None:
            mongo_db.add_user(user_id, f"user{user_id}", f"User{user_id}", None)
        counter["n"] += 1
        reference = f"REF-{user_id}-{counter['n']}"
        assert mongo_db.add_pending_payment(user_id, reference, event_id, ticket_count) is not None
        if approve:
            mongo_db.approve_payment(reference)
        return reference

    return _buy
