import functools
import logging

from sqlalchemy.exc import SQLAlchemyError

from pqr_scheduling.core.errors import DependencyError

logger = logging.getLogger(__name__)


def storage_guard(method):
    """Roll back and re-raise database failures as ``DependencyError``.

    Wraps service methods whose ``self`` carries a ``db`` session. Nothing is
    committed when the wrapped call fails.
    """

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Storage failure in %s', method.__qualname__)
            raise DependencyError('Database unavailable. Try again later.') from exc

    return wrapper
