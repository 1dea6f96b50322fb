import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import motor.motor_asyncio
from pymongo import ASCENDING, DESCENDING

from talent_match.models.models import SourceRecord
from talent_match.utils import config
from talent_match.utils.exceptions import DatabaseError
from talent_match.utils.logging_config import get_logger

logger = get_logger(__name__)

logger.info(f"Initializing MongoDB connection to database: {config.DB_NAME}")

# Motor does not connect until the first operation
client = motor.motor_asyncio.AsyncIOMotorClient(config.MONGO_DETAILS)
db = client[config.DB_NAME]

# Collections
profiles_coll = db["profiles"]
searches_coll = db["job_searches"]
matches_coll = db["candidate_matches"]
bookmarks_coll = db["candidate_bookmarks"]


async def init_indexes():
    """Index initialization for collections."""
    logger.info("Starting database index initialization")

    specs = [
        (profiles_coll, [("id", ASCENDING)], {"unique": True}),
        (profiles_coll, [("user_id", ASCENDING), ("created_at", DESCENDING)], {}),
        (profiles_coll, [("user_id", ASCENDING), ("email", ASCENDING)], {}),
        (searches_coll, [("id", ASCENDING)], {"unique": True}),
        (searches_coll, [("user_id", ASCENDING), ("created_at", DESCENDING)], {}),
        (matches_coll, [("search_id", ASCENDING), ("match_score", DESCENDING)], {}),
        (bookmarks_coll, [("user_id", ASCENDING), ("candidate_id", ASCENDING)], {"unique": True}),
    ]
    for coll, keys, options in specs:
        try:
            await coll.create_index(keys, **options)
            logger.debug(f"Ensured index on {coll.name}.{[k for k, _ in keys]}")
        except Exception as e:
            if "already exists" in str(e).lower():
                logger.debug(f"Index on {coll.name}.{[k for k, _ in keys]} already exists")
            else:
                logger.warning(f"Could not create index on {coll.name}.{[k for k, _ in keys]}: {e}")

    logger.info("Database index initialization completed")


def to_dict(doc):
    if not doc:
        return None
    doc.pop("_id", None)
    return doc


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProfileStore:
    """Async access to the collections the orchestrators read and write."""

    def __init__(self, profiles=None, searches=None, matches=None):
        self.profiles = profiles if profiles is not None else profiles_coll
        self.searches = searches if searches is not None else searches_coll
        self.matches = matches if matches is not None else matches_coll

    async def list_recent_profiles(self, user_id: str, limit: int) -> List[SourceRecord]:
        try:
            cursor = self.profiles.find({"user_id": user_id}).sort("created_at", DESCENDING).limit(limit)
            docs = await cursor.to_list(length=limit)
        except Exception as e:
            raise DatabaseError(
                "Failed to fetch profiles", operation="list_recent_profiles",
                collection="profiles", cause=e
            ) from e
        return [SourceRecord(**to_dict(doc)) for doc in docs]

    async def update_profile(self, profile_id: str, fields: Dict[str, Any]) -> None:
        try:
            await self.profiles.update_one({"id": profile_id}, {"$set": fields})
        except Exception as e:
            raise DatabaseError(
                f"Failed to update profile {profile_id}", operation="update_profile",
                collection="profiles", cause=e
            ) from e

    async def find_profile_by_email(self, user_id: str, email: str) -> Optional[Dict[str, Any]]:
        try:
            doc = await self.profiles.find_one({"user_id": user_id, "email": email})
        except Exception as e:
            raise DatabaseError(
                "Failed to look up profile by email", operation="find_profile_by_email",
                collection="profiles", cause=e
            ) from e
        return to_dict(doc)

    async def insert_profile(self, user_id: str, fields: Dict[str, Any]) -> str:
        profile_id = new_id()
        doc = {**fields, "id": profile_id, "user_id": user_id, "created_at": utcnow()}
        try:
            await self.profiles.insert_one(doc)
        except Exception as e:
            raise DatabaseError(
                "Failed to insert profile", operation="insert_profile",
                collection="profiles", cause=e
            ) from e
        return profile_id

    async def insert_search(self, user_id: str, job_description: str, total_candidates: int) -> str:
        search_id = new_id()
        doc = {
            "id": search_id,
            "user_id": user_id,
            "job_description": job_description,
            "total_candidates": total_candidates,
            "created_at": utcnow(),
        }
        try:
            await self.searches.insert_one(doc)
        except Exception as e:
            raise DatabaseError(
                "Failed to save search", operation="insert_search",
                collection="job_searches", cause=e
            ) from e
        return search_id

    async def insert_matches(self, rows: List[Dict[str, Any]]) -> None:
        if not rows:
            return
        now = utcnow()
        docs = [{**row, "created_at": row.get("created_at") or now} for row in rows]
        try:
            await self.matches.insert_many(docs, ordered=True)
        except Exception as e:
            raise DatabaseError(
                "Failed to save candidate matches", operation="insert_matches",
                collection="candidate_matches", cause=e
            ) from e


def get_profile_store() -> ProfileStore:
    return ProfileStore()
