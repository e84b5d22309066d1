# marketplace/utils/db.py
import functools

from sqlalchemy.exc import OperationalError, DBAPIError

from marketplace.domain.errors import Unavailable
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


def translate_db_errors(func):
    """
    Repo method decorator: connection loss and statement timeouts become
    Unavailable, after the session is rolled back.
    """

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except (OperationalError, DBAPIError) as e:
            if isinstance(e, DBAPIError) and not isinstance(e, OperationalError) and not e.connection_invalidated:
                raise
            logger.error(f"Database unavailable in {func.__qualname__}: {e}")
            self.db.rollback()
            raise Unavailable("Storage unavailable, try again") from e

    return wrapper
