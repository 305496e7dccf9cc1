from __future__ import annotations
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from milicard import get_db
from milicard.models.point import PointVisit
from milicard.services.storage import get_storage

logger = logging.getLogger(__name__)


def cleanup_expired_visits(days: int = 7, now: datetime = None) -> int:
    """Delete visits older than ``days`` together with their images. Returns the count removed.

    Image files are removed only after the deleting transaction commits.
    """
    session = get_db()
    now = now or datetime.now(timezone.utc)
    cutoff = (now.astimezone(timezone.utc) - timedelta(days=days)).replace(tzinfo=None)
    expired = list(session.execute(select(PointVisit).where(PointVisit.visit_date < cutoff)).scalars())
    urls = []
    for visit in expired:
        urls.extend(visit.images or [])
        session.delete(visit)
    session.commit()
    images = get_storage().delete_all(urls)
    logger.info('visit cleanup removed %d visits and %d images older than %s', len(expired), images, cutoff.date())
    return len(expired)
