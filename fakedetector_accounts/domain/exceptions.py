"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class AccountNotFoundError(DomainException):
    """No account or ledger exists for the given identifier"""

    pass


class InvalidTierError(DomainException):
    """Tier name is not one of free, basic, standard, business"""

    pass


class InvalidAmountError(DomainException):
    """Point amount must be a positive integer"""

    pass


class MalformedPayloadError(DomainException):
    """Gateway webhook payload could not be parsed into a known event shape"""

    pass


class UnknownGatewayError(DomainException):
    """No verification client is registered for the gateway name"""

    pass


class GatewayUnavailableError(DomainException):
    """Gateway verification API timed out, was unreachable, or returned a server error"""

    pass
