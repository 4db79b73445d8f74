"""Failures raised by sensor store adapters."""


class StoreError(Exception):
    """Base class for store failures."""


class FetchFailure(StoreError):
    """The store could not be read (unreachable, timed out, corrupt)."""


class PersistenceFailure(StoreError):
    """A write to the store did not complete."""
