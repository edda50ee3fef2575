from fastapi import APIRouter, Depends, HTTPException

from boardsync.api import schemas
from boardsync.api.dependencies import get_db
from boardsync.db.database import Database
from boardsync.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["boards"])


def _not_found(exc: KeyError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(exc.args[0]) if exc.args else "Not found")


def _conflict(exc: ValueError) -> HTTPException:
    logger.info("Board change rejected", extra={"error": str(exc)})
    return HTTPException(status_code=409, detail=str(exc))


# =============================================================================
# Boards
# =============================================================================

@router.get("/boards/{board_id}", response_model=schemas.BoardOut)
def get_board(board_id: str, db: Database = Depends(get_db)):
    try:
        return db.get_board(board_id)
    except KeyError as exc:
        raise _not_found(exc)


@router.post("/boards", response_model=schemas.BoardOut)
def create_board(board: schemas.BoardCreate, db: Database = Depends(get_db)):
    try:
        return db.create_board(**board.model_dump())
    except KeyError as exc:
        raise _not_found(exc)
    except ValueError as exc:
        raise _conflict(exc)


@router.patch("/boards/{board_id}", response_model=schemas.BoardOut)
def update_board(board_id: str, board: schemas.BoardUpdate, db: Database = Depends(get_db)):
    try:
        return db.update_board(board_id, **board.model_dump(exclude_unset=True))
    except KeyError as exc:
        raise _not_found(exc)
    except ValueError as exc:
        raise _conflict(exc)


@router.delete("/boards/{board_id}", response_model=schemas.SuccessOut)
def delete_board(board_id: str, db: Database = Depends(get_db)):
    try:
        db.delete_board(board_id)
    except KeyError as exc:
        raise _not_found(exc)
    return schemas.SuccessOut()


# =============================================================================
# Lanes
# =============================================================================

@router.post("/boards/{board_id}/lanes", response_model=schemas.LaneOut)
def create_lane(board_id: str, lane: schemas.LaneCreate, db: Database = Depends(get_db)):
    try:
        return db.create_lane(board_id=board_id, **lane.model_dump())
    except KeyError as exc:
        raise _not_found(exc)
    except ValueError as exc:
        raise _conflict(exc)


@router.patch("/lanes/{lane_id}", response_model=schemas.LaneOut)
def update_lane(lane_id: str, lane: schemas.LaneUpdate, db: Database = Depends(get_db)):
    try:
        return db.update_lane(lane_id, **lane.model_dump(exclude_unset=True))
    except KeyError as exc:
        raise _not_found(exc)
    except ValueError as exc:
        raise _conflict(exc)


@router.delete("/lanes/{lane_id}", response_model=schemas.SuccessOut)
def delete_lane(lane_id: str, db: Database = Depends(get_db)):
    try:
        db.delete_lane(lane_id)
    except KeyError as exc:
        raise _not_found(exc)
    return schemas.SuccessOut()


@router.post("/lanes/reorder", response_model=schemas.SuccessOut)
def reorder_lanes(reorder: schemas.LaneReorder, db: Database = Depends(get_db)):
    """Apply lane positions; the board is renumbered densely afterwards."""
    try:
        db.reorder_lanes([(item.id, item.position) for item in reorder.lanes])
    except KeyError as exc:
        raise _not_found(exc)
    except ValueError as exc:
        raise _conflict(exc)
    return schemas.SuccessOut()
