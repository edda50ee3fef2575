from typing import List

from fastapi import APIRouter, Depends, HTTPException

from boardsync.api import schemas
from boardsync.api.dependencies import get_db
from boardsync.db.database import Database

router = APIRouter(prefix="/projects", tags=["projects"])


@router.post("", response_model=schemas.ProjectOut)
def create_project(project: schemas.ProjectCreate, db: Database = Depends(get_db)):
    try:
        return db.create_project(name=project.name)
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc))


@router.get("/{project_id}", response_model=schemas.ProjectOut)
def get_project(project_id: str, db: Database = Depends(get_db)):
    try:
        return db.get_project(project_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Project not found")


@router.post("/{project_id}/sprints", response_model=schemas.SprintOut)
def create_sprint(project_id: str, sprint: schemas.SprintCreate, db: Database = Depends(get_db)):
    try:
        return db.create_sprint(project_id=project_id, name=sprint.name, status=sprint.status)
    except KeyError:
        raise HTTPException(status_code=404, detail="Project not found")
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc))


@router.get("/{project_id}/sprints", response_model=List[schemas.SprintOut])
def list_sprints(project_id: str, db: Database = Depends(get_db)):
    """Sprints of a project, oldest first."""
    return db.list_sprints(project_id)


@router.post("/{project_id}/states", response_model=schemas.WorkflowStateOut)
def create_state(project_id: str, state: schemas.WorkflowStateCreate, db: Database = Depends(get_db)):
    try:
        return db.create_state(project_id=project_id, **state.model_dump())
    except KeyError:
        raise HTTPException(status_code=404, detail="Project not found")
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc))


@router.get("/{project_id}/states", response_model=List[schemas.WorkflowStateOut])
def list_states(project_id: str, db: Database = Depends(get_db)):
    """Workflow states of a project, ordered by position."""
    return db.list_states(project_id)


@router.get("/{project_id}/boards", response_model=List[schemas.BoardOut])
def list_boards(project_id: str, db: Database = Depends(get_db)):
    """Boards of a project with their ordered lanes."""
    return db.list_boards(project_id)
