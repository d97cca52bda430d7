class MatchError(Exception):
    """Base class for matching failures."""


class TaskValidationError(MatchError, ValueError):
    """Malformed task input, raised before any store is queried."""


class StoreError(MatchError):
    """An identity or task-history store query failed."""
