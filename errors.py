"""Exceptions raised by the order queue, lifecycle and record store."""


class OrderSystemError(Exception):
    pass


class QueueEmptyError(OrderSystemError):
    """Dequeue attempted on an empty active queue."""


class IllegalTransitionError(OrderSystemError):
    """Status change requested from a state that does not allow it."""


class PersistenceError(OrderSystemError):
    """The record store is unreachable or rejected the operation."""
