from __future__ import annotations
import logging
from sqlalchemy.orm import Session

from .admin_auth import AdminAuthService

logger = logging.getLogger(__name__)


def purge_expired_sessions(db: Session) -> int:
	# Expired or logged-out admin sessions are never reactivated
	removed = AdminAuthService(db).cleanup_expired_sessions()
	if removed:
		logger.info(f"Purged {removed} expired admin sessions")
	return removed
