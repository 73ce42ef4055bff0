import contextlib
import logging
from typing import Optional

from sqlalchemy.orm import sessionmaker

from database.database import get_session_factory
from database.repository import MarketplaceRepository

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def matching_uow(session_factory: Optional[sessionmaker] = None):
    """Per-unit-of-work transaction scope.

    Yields a MarketplaceRepository bound to a fresh Session. Commits on
    success, rolls back on exception, always closes.

    Usage:
        with matching_uow() as repo:
            order = repo.orders.get_by_id(order_id)
            # perform operations...
        # commit happens automatically on successful exit
    """
    session = (session_factory or get_session_factory())()
    try:
        repo = MarketplaceRepository(session)
        yield repo
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
