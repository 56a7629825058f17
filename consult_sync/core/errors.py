"""Error taxonomy for calendar synchronization.

Each class maps to one way an inbound event or a poll run can go wrong:

    - ``AuthenticityError``: bad or missing webhook signature. Always a 401,
      never touches stored records.
    - ``ConfigurationError``: a secret or credential is missing. Surfaced as
      a 500 because the operator, not the caller, has to fix it.
    - ``ReconciliationSkip``: an expected no-op such as a duplicate delivery
      or a cancel for a booking we never saw. Logged, not a failure.
    - ``PersistenceError``: a store operation failed. Fails one webhook
      request (the provider retries) or one poll item.
    - ``ProviderError``: the provider API could not be reached or answered
      with an error status.
    - ``SyncInProgressError``: a poll sync is already running in this process.
"""


class CalendarSyncError(Exception):
    """Base class for calendar synchronization errors."""


class AuthenticityError(CalendarSyncError):
    """Raised when an inbound webhook fails signature verification."""


class ConfigurationError(CalendarSyncError):
    """Raised when a required secret or credential is not configured."""


class ReconciliationSkip(CalendarSyncError):
    """Raised by reconciliation planning when an event requires no change."""

    def __init__(self, reason: str, consultation_id=None):
        super().__init__(reason)
        self.reason = reason
        self.consultation_id = consultation_id


class PersistenceError(CalendarSyncError):
    """Raised when a store operation fails."""


class ProviderError(CalendarSyncError):
    """Raised when a call to the scheduling provider fails."""


class SyncInProgressError(CalendarSyncError):
    """Raised when a poll sync is requested while another one is running."""
