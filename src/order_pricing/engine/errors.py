"""Exceptions raised by the pricing engine."""


class InvalidInput(ValueError):
    """A line item or discount rule is malformed; no partial result is produced."""
