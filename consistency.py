"""
Consistency engine for the Task.assignedUser <-> User.pendingTasks references.

This is the only code path that writes the inverse side of a reference. Each
cascade step is an independent single-document write; nothing here is
transactional, so a failure between the primary write and a cascade leaves the
pair out of sync until the next write touching them.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from errors import ConflictError, NotFoundError, ValidationError
from repository import TaskRepository, UserRepository
from schemas import UNASSIGNED, Task, TaskIn, User, UserIn

logger = logging.getLogger(__name__)

ADD = "add"
REMOVE = "remove"

INVALID_ASSIGNEE = "assignedUser is not a valid user id"
DUPLICATE_EMAIL = "Email already exists"


def plan_reconciliation(old_user: str, old_completed: bool, new_user: str, new_completed: bool) -> List[Tuple[str, str]]:
    """Return the ordered pendingTasks operations for a task moving from old to new state.

    Each entry is ``(ADD | REMOVE, user_id)``. Adds and removes are set
    operations on the store side, so replaying a plan is harmless.
    """
    ops: List[Tuple[str, str]] = []
    if old_user and old_user != new_user:
        ops.append((REMOVE, old_user))
    if new_user and new_user != old_user and not new_completed:
        ops.append((ADD, new_user))
    if new_user and new_user == old_user:
        if not old_completed and new_completed:
            ops.append((REMOVE, new_user))
        elif old_completed and not new_completed:
            ops.append((ADD, new_user))
    return ops


class ConsistencyEngine:
    def __init__(self, db: Database):
        self.users = UserRepository(db)
        self.tasks = TaskRepository(db)

    # -----------------------------
    # Tasks
    # -----------------------------
    def resolve_assignee(self, body: TaskIn) -> Tuple[str, str]:
        if not body.assignedUser:
            return "", UNASSIGNED
        user = self.users.get(body.assignedUser)
        if not user:
            raise ValidationError(INVALID_ASSIGNEE)
        return str(user["_id"]), body.assignedUserName or user["name"]

    def create_task(self, body: TaskIn) -> Dict[str, Any]:
        assigned_user, assigned_name = self.resolve_assignee(body)
        doc = Task(
            name=body.name,
            description=body.description,
            deadline=body.deadline,
            completed=body.completed,
            assignedUser=assigned_user,
            assignedUserName=assigned_name,
            dateCreated=datetime.now(timezone.utc),
        ).model_dump()
        task = self.tasks.create(doc)
        task_id = str(task["_id"])
        logger.info(f"Created task {task_id}")

        if assigned_user and not task["completed"]:
            self._cascade(f"adding task {task_id} to user {assigned_user}", self.users.add_pending_task, assigned_user, task_id)
        return task

    def update_task(self, task_id: str, body: TaskIn) -> Dict[str, Any]:
        task = self.tasks.get(task_id)
        if not task:
            raise NotFoundError("Task not found")

        old_user = task.get("assignedUser") or ""
        old_completed = bool(task.get("completed"))

        new_user, new_name = self.resolve_assignee(body)
        updated = self.tasks.update(task["_id"], {
            "name": body.name,
            "description": body.description,
            "deadline": body.deadline,
            "completed": body.completed,
            "assignedUser": new_user,
            "assignedUserName": new_name,
        })
        logger.info(f"Updated task {task_id}")

        self._apply(str(task["_id"]), plan_reconciliation(old_user, old_completed, new_user, body.completed))
        return updated

    def delete_task(self, task_id: str) -> None:
        task = self.tasks.get(task_id)
        if not task:
            raise NotFoundError("Task not found")
        if task.get("assignedUser"):
            self._cascade(
                f"removing task {task_id} from user {task['assignedUser']}",
                self.users.remove_pending_task, task["assignedUser"], str(task["_id"]),
            )
        self.tasks.delete(task["_id"])
        logger.info(f"Deleted task {task_id}")

    def _apply(self, task_id: str, ops: List[Tuple[str, str]]) -> None:
        for op, user_id in ops:
            step = self.users.add_pending_task if op == ADD else self.users.remove_pending_task
            self._cascade(f"{op} task {task_id} for user {user_id}", step, user_id, task_id)

    def _cascade(self, description: str, fn, *args) -> Any:
        # The primary write is already committed; a failed cascade is logged, not raised.
        try:
            return fn(*args)
        except PyMongoError:
            logger.exception(f"Cascade failed while {description}")
            return None

    # -----------------------------
    # Users
    # -----------------------------
    def check_pending_tasks(self, task_ids: List[str]) -> None:
        found = self.tasks.find_by_ids(task_ids)
        if len(found) != len(task_ids):
            raise ValidationError("One or more task IDs in pendingTasks do not exist")
        if any(t.get("assignedUser") for t in found):
            logger.warning(f"Rejected user creation: pendingTasks {task_ids} include assigned tasks")
            raise ConflictError("Conflict: One or more tasks are already assigned to another user")

    def create_user(self, body: UserIn) -> Dict[str, Any]:
        # The listed tasks are validated but not pointed back at the new user.
        if body.pendingTasks:
            self.check_pending_tasks(body.pendingTasks)
        doc = User(
            name=body.name,
            email=body.email,
            pendingTasks=body.pendingTasks,
            dateCreated=datetime.now(timezone.utc),
        ).model_dump()
        try:
            user = self.users.create(doc)
        except DuplicateKeyError:
            raise ConflictError(DUPLICATE_EMAIL, status_code=400)
        logger.info(f"Created user {user['_id']}")
        return user

    def update_user(self, user_id: str, body: UserIn) -> Dict[str, Any]:
        user = self.users.get(user_id)
        if not user:
            raise NotFoundError("User not found")
        try:
            updated = self.users.update(user["_id"], {"name": body.name, "email": body.email})
        except DuplicateKeyError:
            raise ConflictError(DUPLICATE_EMAIL, status_code=400)
        logger.info(f"Updated user {user_id}")

        pending = updated.get("pendingTasks") or []
        if pending:
            synced = self._cascade(
                f"re-syncing tasks of user {user_id}",
                self.tasks.assign_many, pending, str(updated["_id"]), updated["name"],
            )
            logger.debug(f"Re-synced {synced} tasks for user {user_id}")
        return updated

    def delete_user(self, user_id: str) -> None:
        user = self.users.get(user_id)
        if not user:
            raise NotFoundError("User not found")
        cleared = self._cascade(f"unassigning tasks of user {user_id}", self.tasks.unassign_user, str(user["_id"]), UNASSIGNED)
        logger.debug(f"Unassigned {cleared} tasks from user {user_id}")
        self.users.delete(user["_id"])
        logger.info(f"Deleted user {user_id}")
