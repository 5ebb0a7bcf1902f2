"""Pydantic models for tracked entities."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, Field


def _new_id() -> str:
    return str(uuid.uuid4())


def _now() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


# ── Status vocabularies ────────────────────────────────────────────

PROJECT_STATUSES = (
    "planning", "in-development", "on-hold", "cancelled", "completed", "archived",
)
FEATURE_STATUSES = (
    "draft", "planning", "in-development", "testing", "validating",
    "pending-review", "blocked", "on-hold", "deployed", "completed", "archived",
)
TASK_STATUSES = (
    "backlog", "pending", "in-progress", "in-review", "changes-requested",
    "testing", "ready-for-qa", "investigating", "blocked", "on-hold",
    "deployed", "completed", "cancelled", "deferred",
)
PRIORITIES = ("high", "medium", "low")
CONTENT_FORMATS = ("markdown", "plain_text", "json", "code")
DEPENDENCY_TYPES = ("blocks", "is_blocked_by", "relates_to")


class EntityType:
    PROJECT = "project"
    FEATURE = "feature"
    TASK = "task"
    SECTION = "section"
    TEMPLATE = "template"


# ── Mirrored entities ──────────────────────────────────────────────

class Project(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    summary: str = ""
    description: str = ""
    status: str = "planning"
    tags: list[str] = Field(default_factory=list)
    createdAt: str = Field(default_factory=_now)
    modifiedAt: str = Field(default_factory=_now)


class Feature(BaseModel):
    id: str = Field(default_factory=_new_id)
    projectId: str | None = None
    name: str
    summary: str = ""
    description: str = ""
    status: str = "planning"
    priority: str = "medium"
    tags: list[str] = Field(default_factory=list)
    createdAt: str = Field(default_factory=_now)
    modifiedAt: str = Field(default_factory=_now)


class Task(BaseModel):
    id: str = Field(default_factory=_new_id)
    projectId: str | None = None
    featureId: str | None = None
    title: str
    summary: str = ""
    description: str = ""
    status: str = "pending"
    priority: str = "medium"
    complexity: int = 5
    tags: list[str] = Field(default_factory=list)
    createdAt: str = Field(default_factory=_now)
    modifiedAt: str = Field(default_factory=_now)


class Section(BaseModel):
    id: str = Field(default_factory=_new_id)
    entityType: str  # "project" | "feature" | "task"
    entityId: str
    title: str
    usageDescription: str = ""
    content: str = ""
    contentFormat: str = "markdown"
    ordinal: int = 0
    tags: list[str] = Field(default_factory=list)


# ── Pass-through entities (no markdown form) ──────────────────────

class Template(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    description: str = ""
    targetEntityType: str = EntityType.TASK
    isBuiltIn: bool = False
    isEnabled: bool = True
    tags: list[str] = Field(default_factory=list)


class Dependency(BaseModel):
    id: str = Field(default_factory=_new_id)
    fromTaskId: str
    toTaskId: str
    type: str = "blocks"
