"""Errors shared by services that are not covered by Protean's exceptions."""


class ConcurrencyConflict(Exception):
    """An aggregate kept changing underneath us until the retry budget ran out."""

    def __init__(self, message: str, aggregate_id: str | None = None):
        super().__init__(message)
        self.aggregate_id = aggregate_id
