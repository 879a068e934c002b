"""Error taxonomy for the announcement core."""

from __future__ import annotations


class BrokerDeskError(RuntimeError):
    """Base exception raised by the announcement core."""


class ValidationError(BrokerDeskError):
    """Raised when required announcement input is missing or empty.

    Surfaced to the caller verbatim and never retried.
    """


class NotFoundError(BrokerDeskError):
    """Raised when an announcement or read receipt does not exist."""


class ConflictError(BrokerDeskError):
    """Raised when a receipt insert hits the (announcement, user) unique key.

    The fan-out engine absorbs this; it never reaches API callers.
    """


class TransientCollaboratorError(BrokerDeskError):
    """Raised when the role directory, storage or change feed is briefly unreachable.

    Request-path callers should ask the user to try again.
    """
