"""
boardsync Domain Models

Data classes representing boards, lanes and their referential anchors.
These are used for data transfer between storage, backends, the cache
and services.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


# Status Constants

class BoardType:
    """Board layout values."""
    KANBAN = "kanban"
    SCRUM = "scrum"

    ALL = (KANBAN, SCRUM)


class StateCategory:
    """Workflow state categories."""
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"
    ARCHIVED = "ARCHIVED"

    ALL = (TODO, IN_PROGRESS, DONE, ARCHIVED)


class SyncState:
    """
    Client-visible lifecycle of a cached board or lane.

    unsaved -> pending -> confirmed, or confirmed -> deleting -> removed.
    """
    UNSAVED = "unsaved"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DELETING = "deleting"
    REMOVED = "removed"


# Fields a client may patch through update operations.
LANE_PATCH_FIELDS = ("name", "mapped_states", "wip_limit", "is_collapsed")
BOARD_PATCH_FIELDS = ("name", "board_type", "is_default", "sprint_id", "filter_query", "settings")


# Referential anchors

@dataclass
class Project:
    """A project owns boards, sprints and workflow states."""
    id: str
    name: str
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Sprint:
    """A sprint a scrum board may be scoped to."""
    id: str
    project_id: str
    name: str
    status: str = "planned"
    created_at: str = ""
    updated_at: str = ""


@dataclass
class WorkflowState:
    """A workflow state work items move through. Lanes map onto these."""
    id: str
    project_id: str
    name: str
    category: str = StateCategory.TODO
    position: int = 0
    color: Optional[str] = None
    wip_limit: Optional[int] = None
    is_initial: bool = False
    is_final: bool = False


# Core models

@dataclass
class Lane:
    """
    A column-like grouping within a board.

    `position` is dense and zero-based within the board. `client_key` is the
    idempotency key the lane was created with, echoed back by the store.
    """
    id: str
    board_id: str
    name: str
    position: int
    mapped_states: List[str] = field(default_factory=list)
    wip_limit: Optional[int] = None
    is_collapsed: bool = False
    client_key: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Board:
    """A kanban or scrum arrangement of a project's work into ordered lanes."""
    id: str
    project_id: str
    name: str
    board_type: str = BoardType.KANBAN
    is_default: bool = False
    sprint_id: Optional[str] = None
    filter_query: Optional[Dict[str, Any]] = None
    settings: Optional[Dict[str, Any]] = None
    client_key: Optional[str] = None
    lanes: List[Lane] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""
