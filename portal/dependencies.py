import hmac
import logging
import os
from typing import List, Optional

from dotenv import load_dotenv
from fastapi import Header, HTTPException, Request, status

load_dotenv()

logger = logging.getLogger(__name__)

_ALLOWLIST_PATHS = {
    "/health",
    "/docs",
    "/docs/oauth2-redirect",
    "/openapi.json",
    "/redoc",
}


def get_api_keys() -> List[str]:
    keys = os.getenv("API_KEYS", "")
    return [k.strip() for k in keys.split(",") if k.strip()]


async def api_key_protection(
    request: Request = None,  # default None so the check can be called directly in tests
    x_api_key: Optional[str] = Header(default=None, alias="X-API-KEY"),
) -> None:
    path = request.url.path if request is not None else "<no-request>"
    if request is not None and path in _ALLOWLIST_PATHS:
        return

    valid_keys = get_api_keys()
    candidate = (x_api_key or "").strip()
    ok = bool(candidate) and any(hmac.compare_digest(candidate, k) for k in valid_keys)
    if not ok:
        logger.info("Rejected request without a valid API key: path=%s", path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API Key",
        )


_db = None


def get_db():
    """MongoDB when MONGODB_URL is set, otherwise the in-memory store."""
    global _db
    if _db is None:
        if os.getenv("MONGODB_URL"):
            from portal.database.mongo_real import MongoDB

            _db = MongoDB(os.environ["MONGODB_URL"], os.getenv("MONGODB_DATABASE", "portal"))
        else:
            from portal.database.mongo import MongoDB

            logger.info("Using in-memory MongoDB store")
            _db = MongoDB()
    return _db
