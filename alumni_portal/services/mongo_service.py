"""
MongoDB Service - CRUD operations for the portal collections.

Collections in this database:
1. users               - identity, role and cohort attributes (owned by the auth service)
2. session_requests    - proposals from alumni/faculty/admins
3. sessions            - scheduled sessions
4. session_attendance  - one record per (session, student)
5. notifications       - in-app notifications

Every store accepts an optional Database so tests can hand in an
in-memory one; without it the shared client from db.mongodb is used.
"""

from datetime import datetime
from typing import Optional, List, Iterable
from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from alumni_portal.core.errors import NotFoundError
from alumni_portal.db.mongodb import get_collection, COLLECTIONS
from alumni_portal.schemas.schemas import SessionStatus, UserRole
from alumni_portal.services.eligibility import session_eligibility_query


# ============================================================
# HELPERS: ObjectId <-> string
# ============================================================

def to_object_id(value, label: str = "Document") -> ObjectId:
    """Parse an id from a URL or token. A malformed id cannot exist, so it is a 404."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise NotFoundError(f"{label} not found")


def _to_json_value(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, list):
        return [_to_json_value(v) for v in value]
    return value


def serialize_doc(doc: dict) -> Optional[dict]:
    """Convert MongoDB document to JSON-serializable dict."""
    if doc is None:
        return None
    return {key: _to_json_value(value) for key, value in doc.items()}


def serialize_docs(docs: Iterable[dict]) -> list:
    """Convert list of MongoDB documents to JSON-serializable list."""
    return [serialize_doc(doc) for doc in docs]


# ============================================================
# USERS COLLECTION
# Read-only here: accounts are created by the auth service
# ============================================================

class UserStore:

    def __init__(self, db: Database = None):
        self.collection: Collection = get_collection(COLLECTIONS["users"], db)

    def get_by_id(self, user_id) -> Optional[dict]:
        return self.collection.find_one({"_id": to_object_id(user_id, "User")})

    def find_admins(self) -> List[dict]:
        return list(self.collection.find({"role": UserRole.admin.value}))

    def find_eligible_students(self, session: dict) -> List[dict]:
        """Bulk side of the eligibility rule; same predicate as is_student_eligible()."""
        cursor = self.collection.find(session_eligibility_query(session)).sort("full_name", ASCENDING)
        return list(cursor)


# ============================================================
# SESSION REQUESTS COLLECTION
# ============================================================

class SessionRequestStore:

    def __init__(self, db: Database = None):
        self.collection: Collection = get_collection(COLLECTIONS["session_requests"], db)

    def insert(self, doc: dict) -> dict:
        result = self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc

    def get_by_id(self, request_id) -> Optional[dict]:
        return self.collection.find_one({"_id": to_object_id(request_id, "Session request")})

    def list_requests(self, status: Optional[str] = None) -> List[dict]:
        query = {"status": status} if status else {}
        return list(self.collection.find(query).sort("created_at", DESCENDING))

    def list_by_user(self, user_id: ObjectId) -> List[dict]:
        return list(self.collection.find({"user_id": user_id}).sort("created_at", DESCENDING))

    def transition(self, request_id: ObjectId, from_statuses: Iterable[str], to_status: str) -> Optional[dict]:
        """
        Compare-and-swap on status.

        Only moves the request if its status is still one of `from_statuses`;
        returns the updated document, or None when another writer got there first.
        """
        return self.collection.find_one_and_update(
            {"_id": request_id, "status": {"$in": list(from_statuses)}},
            {"$set": {"status": to_status, "updated_at": datetime.utcnow()}},
            return_document=ReturnDocument.AFTER
        )

    def restore_status(self, request_id: ObjectId, expected: str, previous: str) -> bool:
        """Undo a transition, only if nobody has moved the request since."""
        result = self.collection.update_one(
            {"_id": request_id, "status": expected},
            {"$set": {"status": previous, "updated_at": datetime.utcnow()}}
        )
        return result.modified_count > 0

    def delete(self, request_id: ObjectId) -> bool:
        result = self.collection.delete_one({"_id": request_id})
        return result.deleted_count > 0


# ============================================================
# SESSIONS COLLECTION
# ============================================================

class SessionStore:

    def __init__(self, db: Database = None):
        self.collection: Collection = get_collection(COLLECTIONS["sessions"], db)

    def insert(self, doc: dict) -> dict:
        result = self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc

    def get_by_id(self, session_id) -> Optional[dict]:
        return self.collection.find_one({"_id": to_object_id(session_id, "Session")})

    def list_all(self) -> List[dict]:
        return list(self.collection.find().sort([("date", ASCENDING), ("time", ASCENDING)]))

    def list_by_host(self, host_id: ObjectId) -> List[dict]:
        return list(self.collection.find({"session_head": host_id}).sort("date", DESCENDING))

    def update_fields(self, session_id: ObjectId, fields: dict) -> Optional[dict]:
        return self.collection.find_one_and_update(
            {"_id": session_id},
            {"$set": fields},
            return_document=ReturnDocument.AFTER
        )

    def refresh_status(self, session_id: ObjectId, status: str) -> bool:
        """
        Write back a time-derived status.

        Guarded so a late write can never overwrite a cancellation or a
        manual completion that landed after the read.
        """
        result = self.collection.update_one(
            {
                "_id": session_id,
                "manually_completed": {"$ne": True},
                "status": {"$ne": SessionStatus.cancelled.value},
            },
            {"$set": {"status": status}}
        )
        return result.modified_count > 0

    def cancel_linked(self, request_id: ObjectId) -> int:
        """Cancel every session created from a request, skipping ones already cancelled."""
        result = self.collection.update_many(
            {"session_request_id": request_id, "status": {"$ne": SessionStatus.cancelled.value}},
            {"$set": {"status": SessionStatus.cancelled.value}}
        )
        return result.modified_count

    def delete(self, session_id: ObjectId) -> bool:
        result = self.collection.delete_one({"_id": session_id})
        return result.deleted_count > 0


# ============================================================
# SESSION ATTENDANCE COLLECTION
# Unique on (session_id, student_id); all writes are atomic upserts
# ============================================================

class AttendanceStore:

    def __init__(self, db: Database = None):
        self.collection: Collection = get_collection(COLLECTIONS["attendance"], db)

    def get(self, session_id: ObjectId, student_id: ObjectId) -> Optional[dict]:
        return self.collection.find_one({"session_id": session_id, "student_id": student_id})

    def _upsert(self, session_id: ObjectId, student_id: ObjectId, fields: dict) -> dict:
        now = datetime.utcnow()
        key = {"session_id": session_id, "student_id": student_id}
        update = {
            "$set": {**fields, "updated_at": now},
            "$setOnInsert": {"created_at": now},
        }
        if "feedback_submitted" not in fields:
            update["$setOnInsert"]["feedback_submitted"] = False
        try:
            return self.collection.find_one_and_update(
                key, update, upsert=True, return_document=ReturnDocument.AFTER
            )
        except DuplicateKeyError:
            # Two first-time upserts raced; the loser now finds the winner's record
            return self.collection.find_one_and_update(
                key, update, upsert=True, return_document=ReturnDocument.AFTER
            )

    def upsert_intent(self, session_id: ObjectId, student_id: ObjectId, will_attend: bool) -> dict:
        return self._upsert(session_id, student_id, {
            "will_attend": will_attend,
            "response_date": datetime.utcnow(),
        })

    def upsert_feedback(self, session_id: ObjectId, student_id: ObjectId,
                        feedback_text: str, feedback_rating: Optional[int]) -> dict:
        return self._upsert(session_id, student_id, {
            "feedback_text": feedback_text,
            "feedback_rating": feedback_rating,
            "feedback_submitted": True,
            "feedback_date": datetime.utcnow(),
        })

    def list_for_session(self, session_id: ObjectId) -> List[dict]:
        return list(self.collection.find({"session_id": session_id}).sort("response_date", DESCENDING))

    def delete_for_session(self, session_id: ObjectId) -> int:
        return self.collection.delete_many({"session_id": session_id}).deleted_count


# ============================================================
# NOTIFICATIONS COLLECTION
# ============================================================

class NotificationStore:

    def __init__(self, db: Database = None):
        self.collection: Collection = get_collection(COLLECTIONS["notifications"], db)

    def insert_many(self, docs: List[dict]) -> int:
        if not docs:
            return 0
        result = self.collection.insert_many(docs)
        return len(result.inserted_ids)

    def list_for_recipient(self, recipient: ObjectId, limit: int = 50) -> List[dict]:
        cursor = self.collection.find({"recipient": recipient}).sort("created_at", DESCENDING).limit(limit)
        return list(cursor)

    def count_unread(self, recipient: ObjectId) -> int:
        return self.collection.count_documents({"recipient": recipient, "read": False})

    def mark_read(self, notification_id, recipient: ObjectId) -> Optional[dict]:
        return self.collection.find_one_and_update(
            {"_id": to_object_id(notification_id, "Notification"), "recipient": recipient},
            {"$set": {"read": True}},
            return_document=ReturnDocument.AFTER
        )

    def delete(self, notification_id, recipient: ObjectId) -> bool:
        result = self.collection.delete_one(
            {"_id": to_object_id(notification_id, "Notification"), "recipient": recipient}
        )
        return result.deleted_count > 0
