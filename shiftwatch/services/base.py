import logging
from typing import Optional
from sqlalchemy.orm import Session


class BaseService:
    """Common session and logging plumbing for domain services."""

    def __init__(self, db: Session, company_id: Optional[int] = None):
        self.db = db
        self.company_id = company_id
        self._logger = logging.getLogger(self.__class__.__module__)

    def _context(self) -> dict:
        return {"company_id": self.company_id} if self.company_id is not None else {}

    def log_info(self, message: str, **extra):
        self._logger.info(message, extra={**self._context(), **extra})

    def log_warning(self, message: str, **extra):
        self._logger.warning(message, extra={**self._context(), **extra})

    def log_error(self, message: str, exc_info: bool = False, **extra):
        self._logger.error(message, exc_info=exc_info, extra={**self._context(), **extra})
