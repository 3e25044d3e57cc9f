"""Errors raised by the orchestration layer and mapped to HTTP by the API."""


class ResourceNotFound(Exception):
    """A shop, address, item or order referenced by the request is missing."""


class OrderRejected(Exception):
    """The order fails a business rule (eligibility gate, unknown items)."""


class OrderConflict(Exception):
    """The order could not be stored without clashing with a concurrent one."""
