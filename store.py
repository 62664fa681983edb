"""
Collection access for users, orders and the product catalog.

User documents carry a `version` counter. Cart and favourites writes go
through `UserStore.mutate`, which loads the document, applies a transition and
writes back only if the version is unchanged, retrying when another request
got there first.
"""

import logging
import os
from typing import Callable, Dict, Iterable, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo.database import Database

from database import create_document, get_documents, now_utc, parse_object_id
from errors import Conflict, NotFound
from schemas import Order, User

logger = logging.getLogger(__name__)

MAX_UPDATE_ATTEMPTS = int(os.getenv("MAX_UPDATE_ATTEMPTS", 5))

# Takes the loaded user document, returns the fields to write or None for no write.
Transition = Callable[[dict], Optional[dict]]


class UserStore:
    collection_name = "user"

    def __init__(self, db: Database, max_attempts: int = MAX_UPDATE_ATTEMPTS):
        self.db = db
        self.collection = db[self.collection_name]
        self.max_attempts = max_attempts

    def get(self, user_id) -> Optional[dict]:
        try:
            oid = user_id if isinstance(user_id, ObjectId) else ObjectId(user_id)
        except (InvalidId, TypeError):
            return None
        return self.collection.find_one({"_id": oid})

    def get_by_email(self, email: str) -> Optional[dict]:
        return self.collection.find_one({"email": email})

    def create(self, user: User) -> dict:
        user_id = create_document(self.collection_name, user, database=self.db)
        return self.get(user_id)

    def save(self, user: dict, changes: dict) -> bool:
        """Write `changes` if `user` is still the stored version. Returns False on a lost race."""
        if "version" in user:
            version_filter = user["version"]
        else:
            version_filter = {"$exists": False}
        result = self.collection.update_one(
            {"_id": user["_id"], "version": version_filter},
            {"$set": {**changes, "updated_at": now_utc()}, "$inc": {"version": 1}},
        )
        return result.matched_count == 1

    def mutate(self, user_id, transition: Transition) -> dict:
        for attempt in range(1, self.max_attempts + 1):
            user = self.get(user_id)
            if user is None:
                raise NotFound("User not found")
            changes = transition(user)
            if changes is None:
                return user
            if self.save(user, changes):
                user.update(changes)
                user["version"] = user.get("version", 0) + 1
                return user
            logger.info("User %s changed during update, retrying (attempt %d)", user_id, attempt)
        logger.error("Giving up on user %s after %d attempts", user_id, self.max_attempts)
        raise Conflict("User was modified concurrently, try again")


class OrderStore:
    collection_name = "order"

    def __init__(self, db: Database):
        self.db = db
        self.collection = db[self.collection_name]

    def create(self, order: Order) -> dict:
        order_id = create_document(self.collection_name, order, database=self.db)
        return self.collection.find_one({"_id": ObjectId(order_id)})

    def list_for_user(self, user_id: ObjectId) -> List[dict]:
        return get_documents(self.collection_name, {"user": user_id}, database=self.db)


class ProductCatalog:
    collection_name = "product"

    def __init__(self, db: Database):
        self.collection = db[self.collection_name]

    def resolve(self, product_ids: Iterable[ObjectId]) -> Dict[ObjectId, dict]:
        """Read-through join: fetch the products behind a set of references."""
        ids = list(set(product_ids))
        if not ids:
            return {}
        return {doc["_id"]: doc for doc in self.collection.find({"_id": {"$in": ids}})}

    def get(self, product_id: str) -> Optional[dict]:
        return self.collection.find_one({"_id": parse_object_id(product_id, "product id")})

    def search(self, q: Optional[str] = None, category: Optional[str] = None, limit: int = 20) -> List[dict]:
        query: Dict[str, object] = {}
        if q:
            query["$or"] = [
                {"title": {"$regex": q, "$options": "i"}},
                {"description": {"$regex": q, "$options": "i"}},
            ]
        if category:
            query["category"] = category
        return list(self.collection.find(query).limit(limit))
