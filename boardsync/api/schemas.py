from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# Base Models
# =============================================================================

BoardTypeName = Literal["kanban", "scrum"]
StateCategoryName = Literal["TODO", "IN_PROGRESS", "DONE", "ARCHIVED"]


class APIModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class Health(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    service: str = "boardsync"


class SuccessOut(BaseModel):
    success: bool = True

# =============================================================================
# Project Models
# =============================================================================

class ProjectCreate(BaseModel):
    name: str = Field(min_length=1)


class ProjectOut(APIModel):
    id: str
    name: str
    created_at: Any
    updated_at: Any

# =============================================================================
# Sprint Models
# =============================================================================

class SprintCreate(BaseModel):
    name: str = Field(min_length=1)
    status: str = "planned"


class SprintOut(APIModel):
    id: str
    project_id: str
    name: str
    status: str
    created_at: Any
    updated_at: Any

# =============================================================================
# Workflow State Models
# =============================================================================

class WorkflowStateCreate(BaseModel):
    name: str = Field(min_length=1)
    category: StateCategoryName = "TODO"
    position: Optional[int] = Field(default=None, ge=0)
    color: Optional[str] = None
    wip_limit: Optional[int] = Field(default=None, gt=0)
    is_initial: bool = False
    is_final: bool = False


class WorkflowStateOut(APIModel):
    id: str
    project_id: str
    name: str
    category: str
    position: int
    color: Optional[str] = None
    wip_limit: Optional[int] = None
    is_initial: bool
    is_final: bool

# =============================================================================
# Lane Models
# =============================================================================

class LaneCreate(BaseModel):
    name: str = Field(min_length=1)
    position: Optional[int] = Field(default=None, ge=0)
    mapped_states: List[str] = Field(default_factory=list)
    wip_limit: Optional[int] = Field(default=None, gt=0)
    is_collapsed: bool = False
    client_key: Optional[str] = None


class LaneUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    mapped_states: Optional[List[str]] = None
    wip_limit: Optional[int] = Field(default=None, gt=0)
    is_collapsed: Optional[bool] = None


class LanePosition(BaseModel):
    id: str
    position: int = Field(ge=0)


class LaneReorder(BaseModel):
    lanes: List[LanePosition] = Field(min_length=1)


class LaneOut(APIModel):
    id: str
    board_id: str
    name: str
    position: int
    mapped_states: List[str] = Field(default_factory=list)
    wip_limit: Optional[int] = None
    is_collapsed: bool = False
    client_key: Optional[str] = None
    created_at: Any
    updated_at: Any

# =============================================================================
# Board Models
# =============================================================================

class BoardCreate(BaseModel):
    project_id: str
    name: str = Field(min_length=1)
    board_type: BoardTypeName = "kanban"
    is_default: bool = False
    sprint_id: Optional[str] = None
    filter_query: Optional[Dict[str, Any]] = None
    settings: Optional[Dict[str, Any]] = None
    client_key: Optional[str] = None


class BoardUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    board_type: Optional[BoardTypeName] = None
    is_default: Optional[bool] = None
    sprint_id: Optional[str] = None
    filter_query: Optional[Dict[str, Any]] = None
    settings: Optional[Dict[str, Any]] = None


class BoardOut(APIModel):
    id: str
    project_id: str
    name: str
    board_type: str
    is_default: bool
    sprint_id: Optional[str] = None
    filter_query: Optional[Dict[str, Any]] = None
    settings: Optional[Dict[str, Any]] = None
    client_key: Optional[str] = None
    lanes: List[LaneOut] = Field(default_factory=list)
    created_at: Any
    updated_at: Any
