"""
Redis persistence for registration sessions.

Keys:
- `orchestrator:session:{id}`       session JSON (TTL = session lifetime)
- `orchestrator:account_guid:{id}`  Dataverse GUID of the created account
- `orchestrator:token:{token}`      verification / approval token -> session id
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

SESSION_PREFIX = "orchestrator:session:"
ACCOUNT_GUID_PREFIX = "orchestrator:account_guid:"
TOKEN_PREFIX = "orchestrator:token:"

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(n: int) -> str:
    if n == 0:
        return "0"
    out = []
    while n:
        n, r = divmod(n, 36)
        out.append(_BASE36[r])
    return "".join(reversed(out))


def new_session_id() -> str:
    return f"reg_{_base36(int(time.time() * 1000))}_{secrets.token_hex(4)}"


class RegistrationRepository:
    def __init__(self, store, session_ttl_seconds: int = 24 * 3600) -> None:
        self.store = store
        self.session_ttl_seconds = session_ttl_seconds

    # --- sessions ---------------------------------------------------------

    def save(self, session: Dict[str, Any], ttl: Optional[int] = None) -> None:
        key = f"{SESSION_PREFIX}{session['session_id']}"
        if ttl is None:
            remaining = self.store.ttl(key)
            ttl = remaining if remaining and remaining > 0 else self.session_ttl_seconds
        self.store.set_json(key, session, ttl)

    def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        return self.store.get_json(f"{SESSION_PREFIX}{session_id}")

    # --- account guid -----------------------------------------------------

    def store_account_guid(self, session_id: str, guid: str) -> None:
        self.store.set_json(f"{ACCOUNT_GUID_PREFIX}{session_id}", guid, self.session_ttl_seconds)

    def get_account_guid(self, session_id: str) -> Optional[str]:
        return self.store.get_json(f"{ACCOUNT_GUID_PREFIX}{session_id}")

    # --- token index ------------------------------------------------------

    def index_token(self, token: str, session_id: str, ttl: int) -> None:
        self.store.set_json(f"{TOKEN_PREFIX}{token}", session_id, ttl)

    def session_for_token(self, token: str) -> Optional[str]:
        return self.store.get_json(f"{TOKEN_PREFIX}{token}")

    def drop_token(self, token: Optional[str]) -> None:
        if token:
            self.store.delete(f"{TOKEN_PREFIX}{token}")
