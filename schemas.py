"""
Database Schemas for the Task Tracker

Each stored model maps to a MongoDB collection named after the lowercased class
name (User -> "user", Task -> "task"). The *In models describe request bodies
after envelope normalization and are what the consistency engine consumes.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator

from errors import ValidationError

UNASSIGNED = "unassigned"

M = TypeVar("M", bound=BaseModel)


# Stored documents
class User(BaseModel):
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="Unique email, trimmed")
    pendingTasks: List[str] = Field(default_factory=list, description="Task _id strings, set semantics")
    dateCreated: datetime


class Task(BaseModel):
    name: str
    description: str = ""
    deadline: datetime
    completed: bool = False
    assignedUser: str = Field("", description="User _id string, empty when unassigned")
    assignedUserName: str = Field(UNASSIGNED, description="Assignee name at last write")
    dateCreated: datetime


# Request bodies
class UserIn(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True, extra="ignore")

    name: str
    email: str
    pendingTasks: List[str] = Field(default_factory=list)

    @field_validator("email")
    @classmethod
    def strip_email(cls, v: str) -> str:
        return v.strip()

    @field_validator("pendingTasks", mode="before")
    @classmethod
    def as_unique_list(cls, v: Any) -> Any:
        if v is None or v == "":
            return []
        if not isinstance(v, list):
            v = [v]
        seen = []
        for item in v:
            item = str(item)
            if item not in seen:
                seen.append(item)
        return seen


class TaskIn(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True, extra="ignore")

    name: str
    description: str = ""
    deadline: datetime
    completed: bool = False
    assignedUser: str = ""
    assignedUserName: Optional[str] = None

    @field_validator("description", "assignedUser", mode="before")
    @classmethod
    def empty_when_missing(cls, v: Any) -> Any:
        return v if v else ""

    @field_validator("completed", mode="before")
    @classmethod
    def false_when_missing(cls, v: Any) -> Any:
        return v if v else False

    @field_validator("assignedUserName", mode="before")
    @classmethod
    def none_when_blank(cls, v: Any) -> Any:
        return v if v else None


def parse_body(model: Type[M], body: Dict[str, Any], required: List[str], message: str) -> M:
    if any(not body.get(field) for field in required):
        raise ValidationError(message)
    try:
        return model.model_validate(body)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or "body"
        raise ValidationError(f"Bad request: invalid value for {field}")
