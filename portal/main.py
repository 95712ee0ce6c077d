"""
FastAPI application - membership portal (accounts and organizations on MongoDB)
"""

from dotenv import load_dotenv

load_dotenv()

import logging
from typing import Any, Dict

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from portal.dependencies import api_key_protection, get_db
from portal.routers import accounts_api, organizations_api

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Membership Portal API",
    description="Accounts and organizations",
    version="1.0.0",
    dependencies=[Depends(api_key_protection)],  # protect everything by default
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(accounts_api, prefix="/accounts", tags=["Accounts"])
app.include_router(organizations_api, prefix="/organizations", tags=["Organizations"])


@app.get("/health")
async def health(db=Depends(get_db)) -> Dict[str, Any]:
    ok = await db.ping()
    return {"status": "ok" if ok else "degraded", "service": "portal", "database": ok}
