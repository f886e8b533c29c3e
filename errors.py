"""Exceptions raised by the fortune draw core and its MongoDB store."""


class FortuneDrawError(Exception):
    """Base class for every error this project raises on purpose."""


class DataAccessError(FortuneDrawError):
    """A read or write against the store failed."""


class DrawUnavailable(FortuneDrawError):
    """No winner can be drawn for the event right now."""


class NoEligibleParticipants(DrawUnavailable):
    def __init__(self, event_id):
        super().__init__(f"No eligible participants for draw event {event_id}")
        self.event_id = event_id


class NoValidWeight(DrawUnavailable):
    def __init__(self, event_id):
        super().__init__(f"No participants with valid entries for draw event {event_id}")
        self.event_id = event_id


class DrawCommitError(FortuneDrawError):
    """The store refused to record a draw result."""


class DrawEventNotFound(DrawCommitError):
    def __init__(self, event_id):
        super().__init__(f"Draw event {event_id} not found")
        self.event_id = event_id


class InvalidEventState(DrawCommitError):
    def __init__(self, event_id, status):
        super().__init__(f"Draw event {event_id} is '{status}' and cannot be drawn")
        self.event_id = event_id
        self.status = status


class DrawAlreadyCommitted(DrawCommitError):
    def __init__(self, event_id):
        super().__init__(f"Winner has already been drawn for draw event {event_id}")
        self.event_id = event_id


class WinningTicketNotFound(DrawCommitError):
    def __init__(self, event_id, user_id):
        super().__init__(f"No approved active ticket for user {user_id} in draw event {event_id}")
        self.event_id = event_id
        self.user_id = user_id


class InvalidStatusTransition(FortuneDrawError):
    def __init__(self, event_id, current, requested):
        super().__init__(f"Draw event {event_id} cannot move from '{current}' to '{requested}'")
        self.event_id = event_id
        self.current = current
        self.requested = requested


class PaymentNotApprovable(FortuneDrawError):
    def __init__(self, reference, event_id, status):
        super().__init__(f"Payment {reference} cannot be approved: draw event {event_id} is '{status}'")
        self.reference = reference
        self.event_id = event_id
        self.status = status
