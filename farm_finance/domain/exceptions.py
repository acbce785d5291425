"""Domain-specific exceptions"""

from enum import Enum


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class DealValidationError(DomainException):
    """Deal creation parameters are out of range"""

    pass


class AffordabilityReason(str, Enum):
    TOO_LOW = "payment_too_low"
    TOO_HIGH = "payment_too_high"
    INSUFFICIENT_FUNDS = "insufficient_funds"


class AffordabilityError(DomainException):
    """Account cannot cover a requested payment or down payment"""

    def __init__(self, reason: AffordabilityReason, message: str = ""):
        super().__init__(message or reason.value)
        self.reason = reason


class CreditRequirementError(DomainException):
    """Credit score is below the minimum for the requested product"""

    pass


class PolicyBlockedError(DomainException):
    """Another subsystem owns this product category"""

    pass


class DealNotFoundError(DomainException):
    """No registered deal with the given id"""

    pass


class DealStateError(DomainException):
    """Operation is not allowed in the deal's current state"""

    pass


class CorruptRecordError(DomainException):
    """Persisted record is missing required identity"""

    pass


class NotAuthorityError(DomainException):
    """State mutation attempted outside the authority role"""

    pass


class AuthorityAPIError(DomainException):
    """Authority service returned an error or is unavailable"""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
