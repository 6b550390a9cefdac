"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class BusNotFoundError(DomainException):
    """Bus has no live record"""

    pass


class BusInactiveError(DomainException):
    """Bus live record reports the bus as inactive"""

    pass


class BalanceConflictError(DomainException):
    """Rider balance changed between the guard read and the debit"""

    pass


class InsufficientBalanceError(DomainException):
    """Debit would leave the rider with a negative balance"""

    pass


class LiveStateAPIError(DomainException):
    """Bus live-state store returned an error or is unavailable"""

    pass


class NotificationError(DomainException):
    """SMS or email transport rejected the message or is unavailable"""

    pass


class EarningsConflictError(DomainException):
    """Bus earnings changed between the read and the write"""

    pass
