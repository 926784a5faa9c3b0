import logging
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from pymongo.collection import Collection
from pymongo.database import Database

from database import TASKS, USERS
from query import QuerySpec, to_object_id

logger = logging.getLogger(__name__)


def object_ids(ids: Iterable[str]) -> List[ObjectId]:
    return [ObjectId(i) for i in ids if ObjectId.is_valid(i)]


class Repository:
    """Single-collection access: filter/sort/projection/skip/limit plus by-id CRUD."""

    collection_name: str = ""

    def __init__(self, db: Database):
        self.collection: Collection = db[self.collection_name]

    def find(self, spec: QuerySpec) -> List[Dict[str, Any]]:
        cursor = self.collection.find(spec.filter, spec.projection)
        if spec.sort:
            cursor = cursor.sort(spec.sort)
        if spec.skip is not None:
            cursor = cursor.skip(spec.skip)
        if spec.limit is not None:
            cursor = cursor.limit(spec.limit)
        return list(cursor)

    def count(self, spec: QuerySpec) -> int:
        return len(self.find(spec))

    def get(self, doc_id: str, projection: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        oid = to_object_id(doc_id)
        if not isinstance(oid, ObjectId):
            return None
        return self.collection.find_one({"_id": oid}, projection)

    def find_by_ids(self, ids: Iterable[str]) -> List[Dict[str, Any]]:
        return list(self.collection.find({"_id": {"$in": object_ids(ids)}}))

    def create(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        res = self.collection.insert_one(doc)
        return self.collection.find_one({"_id": res.inserted_id})

    def update(self, doc_id: ObjectId, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        self.collection.update_one({"_id": doc_id}, {"$set": fields})
        return self.collection.find_one({"_id": doc_id})

    def delete(self, doc_id: ObjectId) -> bool:
        return self.collection.delete_one({"_id": doc_id}).deleted_count == 1


class UserRepository(Repository):
    collection_name = USERS

    def add_pending_task(self, user_id: str, task_id: str) -> None:
        oid = to_object_id(user_id)
        self.collection.update_one({"_id": oid}, {"$addToSet": {"pendingTasks": task_id}})
        logger.debug(f"Added task {task_id} to pendingTasks of user {user_id}")

    def remove_pending_task(self, user_id: str, task_id: str) -> None:
        oid = to_object_id(user_id)
        self.collection.update_one({"_id": oid}, {"$pull": {"pendingTasks": task_id}})
        logger.debug(f"Removed task {task_id} from pendingTasks of user {user_id}")


class TaskRepository(Repository):
    collection_name = TASKS

    def assign_many(self, task_ids: Iterable[str], user_id: str, user_name: str) -> int:
        res = self.collection.update_many(
            {"_id": {"$in": object_ids(task_ids)}},
            {"$set": {"assignedUser": user_id, "assignedUserName": user_name}},
        )
        return res.modified_count

    def unassign_user(self, user_id: str, unassigned_name: str) -> int:
        res = self.collection.update_many(
            {"assignedUser": user_id},
            {"$set": {"assignedUser": "", "assignedUserName": unassigned_name}},
        )
        return res.modified_count
