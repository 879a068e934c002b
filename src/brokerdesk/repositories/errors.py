"""Translation of storage failures into the core error taxonomy."""
from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import DBAPIError, OperationalError

from brokerdesk.services.errors import TransientCollaboratorError

logger = logging.getLogger(__name__)


@contextmanager
def collaborator_call(name: str) -> Iterator[None]:
    """Re-raise connection-level database failures as `TransientCollaboratorError`."""
    try:
        yield
    except DBAPIError as exc:
        if not (isinstance(exc, OperationalError) or exc.connection_invalidated):
            raise
        logger.warning("%s unavailable: %s", name, exc.orig or exc)
        raise TransientCollaboratorError(f"{name} is temporarily unavailable") from exc
