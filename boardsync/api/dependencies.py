from typing import Optional

from fastapi import Header, HTTPException

from boardsync.config import load_config
from boardsync.db.database import get_database


def get_db():
    """Get database instance."""
    config = load_config()
    db = get_database(config.db_path)
    try:
        yield db
    finally:
        pass


def require_api_token(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    x_boardsync_token: Optional[str] = Header(None, alias="X-Boardsync-Token"),
) -> None:
    """
    Require an API bearer token if `BOARDSYNC_API_TOKEN` is set.

    Accepted headers:
    - `Authorization: Bearer <token>`
    - `X-Boardsync-Token: <token>`
    """
    config = load_config()
    expected = config.api_token
    if not expected:
        return

    if x_boardsync_token and x_boardsync_token == expected:
        return

    if authorization:
        parts = authorization.strip().split(None, 1)
        if len(parts) == 2 and parts[0].lower() == "bearer" and parts[1] == expected:
            return

    raise HTTPException(status_code=401, detail="Unauthorized")
