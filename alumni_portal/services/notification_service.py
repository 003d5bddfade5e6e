"""
Notification Fan-out

One event -> one notification document per recipient, written with a
single insert_many. Fan-out is best-effort: it never raises into the
transition that triggered it. It is also not idempotent, so each state
change must call it exactly once.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from bson import ObjectId
from pymongo.database import Database

from alumni_portal.schemas.schemas import NotificationCategory
from alumni_portal.services.mongo_service import NotificationStore

logger = logging.getLogger(__name__)


class NotificationFanout:

    def __init__(self, db: Database = None, store: NotificationStore = None):
        self.store = store or NotificationStore(db)

    def fan_out(
        self,
        recipients: Iterable[ObjectId],
        title: str,
        message: str,
        category: NotificationCategory = NotificationCategory.session,
        link: Optional[str] = None,
    ) -> int:
        """
        Create one notification per recipient.

        Returns:
            Number of notifications written; 0 when there was nobody to
            notify or the insert failed.
        """
        now = datetime.utcnow()
        docs: List[dict] = [
            {
                "recipient": recipient,
                "title": title,
                "message": message,
                "category": NotificationCategory(category).value,
                "link": link,
                "read": False,
                "created_at": now,
            }
            for recipient in recipients
            if recipient is not None
        ]
        if not docs:
            return 0
        try:
            written = self.store.insert_many(docs)
        except Exception:
            logger.exception("Notification fan-out failed for %d recipients (%s)", len(docs), title)
            return 0
        logger.info("Fanned out '%s' to %d recipients", title, written)
        return written

    def notify(self, recipient: ObjectId, title: str, message: str,
               category: NotificationCategory = NotificationCategory.session,
               link: Optional[str] = None) -> int:
        return self.fan_out([recipient], title, message, category, link)


class NotificationService:
    """Recipient-side reads and the read flag."""

    def __init__(self, db: Database = None):
        self.store = NotificationStore(db)

    def list_for(self, recipient: ObjectId, limit: int = 50) -> dict:
        return {
            "notifications": self.store.list_for_recipient(recipient, limit),
            "unread": self.store.count_unread(recipient),
        }

    def unread_count(self, recipient: ObjectId) -> int:
        return self.store.count_unread(recipient)

    def mark_read(self, notification_id: str, recipient: ObjectId) -> Optional[dict]:
        return self.store.mark_read(notification_id, recipient)

    def delete(self, notification_id: str, recipient: ObjectId) -> bool:
        return self.store.delete(notification_id, recipient)
