class DomainError(Exception):
    """Base class for all domain-level errors."""

    pass


class InvalidConfig(DomainError, ValueError):
    """Policy, namespace or settings value is out of range."""

    pass


class StoreError(DomainError):
    """Base class for failures of the key-value store behind the port."""

    pass


class StoreUnavailable(StoreError):
    """A store round-trip failed (connection lost, timeout, server error)."""

    pass
