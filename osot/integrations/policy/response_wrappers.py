from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError


class IntegrationResponseError(ValueError):
    def __init__(self, message: str, *, payload: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.payload = payload or {}


class TokenResponseModel(BaseModel):
    access_token: str
    expires_in: int = Field(ge=1)
    token_type: str = "Bearer"


class EmailApiResponseModel(BaseModel):
    accepted: bool = True
    message_id: str = ""
    raw: Dict[str, Any] = Field(default_factory=dict)


def normalize_token_response(raw: Dict[str, Any]) -> TokenResponseModel:
    if not isinstance(raw, dict):
        raise IntegrationResponseError("Token response is not a JSON object.")
    return _build_model(
        TokenResponseModel,
        {
            "access_token": raw.get("access_token"),
            "expires_in": _coerce_int(raw.get("expires_in"), "expires_in", raw),
            "token_type": raw.get("token_type") or "Bearer",
        },
        raw,
    )


def normalize_collection(raw: Any) -> List[Dict[str, Any]]:
    """Return the `value` array of an OData collection response."""
    if not isinstance(raw, dict):
        raise IntegrationResponseError("OData collection response is not a JSON object.")
    value = raw.get("value")
    if not isinstance(value, list):
        raise IntegrationResponseError("OData collection response is missing 'value'.", payload=raw)
    return [_strip_annotations(item) for item in value if isinstance(item, dict)]


def normalize_entity(raw: Any, primary_key: Optional[str] = None) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise IntegrationResponseError("OData entity response is not a JSON object.")
    if primary_key and not raw.get(primary_key):
        raise IntegrationResponseError(f"OData entity response is missing '{primary_key}'.", payload=raw)
    return _strip_annotations(raw)


def normalize_email_response(raw: Dict[str, Any]) -> EmailApiResponseModel:
    raw = raw if isinstance(raw, dict) else {}
    accepted = raw.get("accepted", raw.get("success", True))
    message_id = _first_non_empty(raw, "message_id", "messageId", "id", default="")
    return _build_model(
        EmailApiResponseModel,
        {"accepted": bool(accepted), "message_id": str(message_id), "raw": raw},
        raw,
    )


def _strip_annotations(record: Dict[str, Any]) -> Dict[str, Any]:
    # Keep formatted values ("...@OData.Community.Display.V1.FormattedValue") out
    # of records; drop the "@odata.context"/"@odata.etag" envelope keys.
    return {k: v for k, v in record.items() if "@" not in k}


def _first_non_empty(raw: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return default


def _coerce_int(value: Any, label: str, raw: Dict[str, Any]) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise IntegrationResponseError(f"Invalid {label} in response.", payload=raw) from exc


def _build_model(model_cls, data: Dict[str, Any], raw: Dict[str, Any]):
    try:
        return model_cls(**data)
    except ValidationError as exc:
        raise IntegrationResponseError(f"Malformed response for {model_cls.__name__}: {exc}", payload=raw) from exc
