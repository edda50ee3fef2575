from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from boardsync import __version__
from boardsync.api import schemas
from boardsync.api.dependencies import require_api_token
from boardsync.api.routes import boards, projects
from boardsync.config import get_config
from boardsync.db.database import get_database
from boardsync.logging import get_logger

logger = get_logger(__name__)

app = FastAPI(
    title="boardsync API",
    description="REST API for boards, lanes and their workflow-state mappings",
    version=__version__,
)

# CORS
config = get_config()
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_allow_origins or [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes
auth_deps = [Depends(require_api_token)]
app.include_router(projects.router, tags=["Projects"], dependencies=auth_deps)
app.include_router(boards.router, tags=["Boards"], dependencies=auth_deps)


@app.on_event("startup")
def bootstrap_database() -> None:
    """
    Ensure DB schema exists.

    This is safe to run multiple times (CREATE TABLE IF NOT EXISTS).
    """
    db = get_database(get_config().db_path)
    db.init_schema()
    logger.info("database_ready", extra={"db_path": str(db.db_path)})


@app.get("/health", response_model=schemas.Health)
def health_check():
    """Health check endpoint."""
    return schemas.Health(version=__version__)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8011)
