"""
Registration workflow for new OSOT accounts.

A registration is staged in Redis first and only turned into Dataverse
records after the applicant verifies their email. Admins then approve or
reject the account through one-time links.

Session shape (stored as JSON):

    {
      "session_id": "reg_...",
      "status": "email_verification_pending",
      "request": {"account": {...}, "address": {...}, ...},   # validated
      "organization_id": "...", "organization_slug": "osot",
      "email": {"token": ..., "expires_at": ..., "attempts": 0, "resends": 0, "verified_at": None},
      "approval": {"approve_token": ..., "reject_token": ..., "decision": None},
      "entities": {"account": {"id": ..., "business_id": ...}, ...},
      "failed_entities": [...], "errors": [...], "retry_count": 0,
      "history": [{"status": ..., "at": ...}],
    }
"""

from __future__ import annotations

import logging
import secrets
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from osot.cache.cache_service import CacheService
from osot.controllers.accounts import AccountController, enforce_privileged_fields
from osot.controllers.base import EntityController
from osot.controllers.education import controller_for_group
from osot.controllers.membership import MembershipSettingsController
from osot.controllers.organizations import OrganizationController
from osot.controllers.profile import AddressController, ContactController, IdentityController, ManagementController
from osot.entities.enums import AccountGroup, AccountStatus, Privilege
from osot.error_handler import AppError, ErrorCode
from osot.integrations.contracts.dataverse import DataverseClient
from osot.integrations.contracts.email import EmailClient, EmailMessage
from osot.registration import emails
from osot.registration.repository import RegistrationRepository, new_session_id
from osot.registration.states import RegistrationState, can_transition, progress_for
from osot.utils.config_loader import RegistrationConfig
from osot.utils.masking import mask_email
from osot.validation import FormValidationError

logger = logging.getLogger(__name__)

S = RegistrationState

# Child records created after the account, in order.
CHILD_ENTITIES = ("address", "contact", "identity", "education", "management")
REQUIRED_SECTIONS = ("account", "address", "contact", "identity")

# States in which the applicant's email is already confirmed.
_VERIFIED_STATES = {
    S.EMAIL_VERIFIED,
    S.ACCOUNT_CREATED,
    S.ENTITIES_CREATING,
    S.PENDING_APPROVAL,
    S.APPROVED,
    S.PROCESSING,
    S.COMPLETED,
}


def _plain(value: Any) -> Any:
    """Enums to their values so the session survives a JSON round trip."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def _iso(dt: datetime) -> str:
    return dt.isoformat()


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class RegistrationOrchestrator:
    def __init__(
        self,
        dataverse: DataverseClient,
        cache: CacheService,
        email: EmailClient,
        config: Optional[RegistrationConfig] = None,
        repository: Optional[RegistrationRepository] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.dataverse = dataverse
        self.cache = cache
        self.email = email
        self.config = config or RegistrationConfig()
        self.repository = repository or RegistrationRepository(
            cache.store, self.config.session_ttl_hours * 3600
        )
        self._now = clock or (lambda: datetime.now(timezone.utc))

        self.accounts = AccountController(dataverse, cache)
        self.organizations = OrganizationController(dataverse, cache)
        self.settings = MembershipSettingsController(dataverse, cache)
        self.children: Dict[str, EntityController] = {
            "address": AddressController(dataverse, cache),
            "contact": ContactController(dataverse, cache),
            "identity": IdentityController(dataverse, cache),
            "management": ManagementController(dataverse, cache),
        }

    # ------------------------------------------------------------------ #
    # Session helpers
    # ------------------------------------------------------------------ #
    def _load(self, session_id: str) -> Dict[str, Any]:
        session = self.repository.get(session_id)
        if not session:
            raise AppError(ErrorCode.REGISTRATION_SESSION_NOT_FOUND)
        return session

    def _transition(self, session: Dict[str, Any], target: RegistrationState) -> None:
        current = S(session["status"])
        if not can_transition(current, target):
            raise AppError(
                ErrorCode.INVALID_STATE_TRANSITION,
                f"Cannot move registration from {current.value} to {target.value}",
            )
        now = _iso(self._now())
        session["status"] = target.value
        session["updated_at"] = now
        session.setdefault("history", []).append({"status": target.value, "at": now})
        self.repository.save(session)
        logger.info("Registration %s: %s -> %s", session["session_id"], current.value, target.value)

    async def _send(self, message: EmailMessage) -> bool:
        try:
            return await self.email.send(message)
        except Exception:
            logger.exception("Email '%s' could not be sent", message.template)
            return False

    # ------------------------------------------------------------------ #
    # Staging
    # ------------------------------------------------------------------ #
    async def _education_controller(self, account_group: Any):
        cls = controller_for_group(account_group)
        if cls is None:
            return None
        active = await self.settings.get_active_settings(AccountGroup(int(account_group)))
        expires: Optional[date] = None
        if active and active[0].get("year_ends"):
            expires = date.fromisoformat(str(active[0]["year_ends"])[:10])
        return cls(self.dataverse, self.cache, membership_expires=expires)

    async def _validate_request(self, request: Dict[str, Any]) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        code = ErrorCode.VALIDATION_ERROR
        validated: Dict[str, Any] = {}

        for section in REQUIRED_SECTIONS:
            if not isinstance(request.get(section), dict):
                errors[section] = f"{section} information is required"
        if errors:
            raise FormValidationError(field_errors=errors, message="Registration is incomplete")

        # Applicants register as owners of private records.
        for section in CHILD_ENTITIES + ("account",):
            if isinstance(request.get(section), dict):
                enforce_privileged_fields(request[section], Privilege.OWNER)

        async def run(section: str, controller: EntityController) -> None:
            nonlocal code
            try:
                validated[section] = await controller.validate(request[section])
            except FormValidationError as e:
                for field, message in e.field_errors.items():
                    errors[f"{section}.{field}"] = message
                if e.code != ErrorCode.VALIDATION_ERROR:
                    code = e.code

        await run("account", self.accounts)
        for name in ("address", "contact", "identity"):
            await run(name, self.children[name])
        if request.get("management"):
            await run("management", self.children["management"])

        group = validated.get("account", {}).get("account_group") or request["account"].get("account_group")
        education_ctrl = await self._education_controller(group) if group not in (None, "") else None
        if education_ctrl is not None:
            if not isinstance(request.get("education"), dict):
                errors["education"] = "Education information is required for this account group"
                code = ErrorCode.EDUCATION_DATA_INCOMPLETE
            else:
                await run("education", education_ctrl)

        if errors:
            if len(errors) > 1 and code != ErrorCode.EDUCATION_DATA_INCOMPLETE:
                code = ErrorCode.VALIDATION_ERROR
            raise FormValidationError(field_errors=errors, message="Please correct the highlighted fields", code=code)
        return _plain(validated)

    async def stage_registration(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """Validate a full registration and start email verification."""
        validated = await self._validate_request(request)
        slug = request.get("organization_slug") or self.config.default_organization_slug
        org = await self.organizations.resolve_active(slug)
        validated["account"]["organization_id"] = org["id"]

        now = self._now()
        session: Dict[str, Any] = {
            "session_id": new_session_id(),
            "status": S.STAGED.value,
            "created_at": _iso(now),
            "updated_at": _iso(now),
            "expires_at": _iso(now + timedelta(hours=self.config.session_ttl_hours)),
            "request": validated,
            "organization_id": org["id"],
            "organization_slug": org["slug"],
            "email": {"attempts": 0, "resends": 0, "verified_at": None},
            "approval": {},
            "entities": {},
            "failed_entities": [],
            "errors": [],
            "retry_count": 0,
            "account_business_id": None,
            "history": [{"status": S.STAGED.value, "at": _iso(now)}],
        }
        self.repository.save(session, self.config.session_ttl_hours * 3600)
        logger.info("Staged registration %s for %s", session["session_id"], mask_email(validated["account"]["email"]))

        self._new_verification_token(session)
        self._transition(session, S.EMAIL_VERIFICATION_PENDING)
        sent = await self._send_verification(session)

        return {
            "session_id": session["session_id"],
            "status": session["status"],
            "progress": progress_for(S(session["status"])),
            "email": mask_email(validated["account"]["email"]),
            "email_sent": sent,
            "message": "Registration received. Please check your email to verify your address.",
        }

    # ------------------------------------------------------------------ #
    # Email verification
    # ------------------------------------------------------------------ #
    def _new_verification_token(self, session: Dict[str, Any]) -> str:
        ttl = self.config.verification_token_ttl_seconds
        self.repository.drop_token(session["email"].get("token"))
        token = f"verify_{secrets.token_hex(32)}"
        session["email"].update(
            token=token,
            expires_at=_iso(self._now() + timedelta(seconds=ttl)),
            attempts=0,
            max_attempts=self.config.max_verification_attempts,
        )
        self.repository.index_token(token, session["session_id"], ttl)
        return token

    async def _send_verification(self, session: Dict[str, Any]) -> bool:
        account = session["request"]["account"]
        message = emails.verification_email(
            account["email"],
            account.get("first_name", ""),
            session["session_id"],
            session["email"]["token"],
            self.config.verification_token_ttl_seconds // 60,
        )
        sent = await self._send(message)
        if not sent:
            logger.warning("Verification email for %s was not delivered", session["session_id"])
        return sent

    async def verify_email(self, session_id: str, token: str) -> Dict[str, Any]:
        session = self._load(session_id)
        status = S(session["status"])
        state = session["email"]

        if status in _VERIFIED_STATES:
            return {"success": True, "status": "already_verified", "session_id": session_id}
        if status != S.EMAIL_VERIFICATION_PENDING:
            raise AppError(ErrorCode.INVALID_STATE_TRANSITION, f"Registration is {status.value}")

        expires_at = _parse(state.get("expires_at"))
        # The session stays pending so the applicant can ask for a new token.
        if expires_at is None or self._now() > expires_at:
            logger.info("Verification token for %s has expired", session_id)
            return {
                "success": False,
                "status": "expired",
                "session_id": session_id,
                "can_resend": int(state.get("resends") or 0) < self.config.max_resends,
            }

        max_attempts = int(state.get("max_attempts") or self.config.max_verification_attempts)
        if int(state.get("attempts") or 0) >= max_attempts:
            return {"success": False, "status": "max_attempts_exceeded", "session_id": session_id}

        if not secrets.compare_digest(str(token or ""), str(state.get("token") or "")):
            state["attempts"] = int(state.get("attempts") or 0) + 1
            self.repository.save(session)
            remaining = max(max_attempts - state["attempts"], 0)
            logger.info("Wrong verification token for %s (%d left)", session_id, remaining)
            return {
                "success": False,
                "status": "failed" if remaining else "max_attempts_exceeded",
                "session_id": session_id,
                "remaining_attempts": remaining,
            }

        state["verified_at"] = _iso(self._now())
        self.repository.drop_token(state.get("token"))
        state["token"] = None
        self._transition(session, S.EMAIL_VERIFIED)

        created = await self._create_entities(session)
        result = self.get_status(session_id)
        result["success"] = created
        result["email_verified"] = True
        return result

    async def resend_verification(self, session_id: str) -> Dict[str, Any]:
        session = self._load(session_id)
        if S(session["status"]) != S.EMAIL_VERIFICATION_PENDING:
            raise AppError(ErrorCode.INVALID_STATE_TRANSITION, "This registration is not waiting for email verification")
        state = session["email"]
        if int(state.get("resends") or 0) >= self.config.max_resends:
            raise AppError(ErrorCode.BUSINESS_RULE_VIOLATION, "Maximum resend attempts reached")

        self._new_verification_token(session)
        state["resends"] = int(state.get("resends") or 0) + 1
        self.repository.save(session)
        sent = await self._send_verification(session)
        return {
            "success": sent,
            "session_id": session_id,
            "email": mask_email(session["request"]["account"]["email"]),
            "resends_remaining": max(self.config.max_resends - state["resends"], 0),
        }

    def get_email_status(self, session_id: str) -> Dict[str, Any]:
        session = self._load(session_id)
        state = session["email"]
        expires_at = _parse(state.get("expires_at"))
        max_attempts = int(state.get("max_attempts") or self.config.max_verification_attempts)
        attempts = int(state.get("attempts") or 0)
        return {
            "session_id": session_id,
            "status": session["status"],
            "email": mask_email(session["request"]["account"]["email"]),
            "email_verified": bool(state.get("verified_at")),
            "verification_attempts": attempts,
            "remaining_attempts": max(max_attempts - attempts, 0),
            "resend_count": int(state.get("resends") or 0),
            "token_expires_at": state.get("expires_at"),
            "token_expired": bool(expires_at and self._now() > expires_at),
        }

    # ------------------------------------------------------------------ #
    # Entity creation
    # ------------------------------------------------------------------ #
    async def _create_account(self, session: Dict[str, Any]) -> Optional[str]:
        session_id = session["session_id"]
        guid = self.repository.get_account_guid(session_id)
        if guid:
            return guid
        data = dict(session["request"]["account"])
        data["account_status"] = AccountStatus.PENDING.value
        record = await self.accounts.insert(data)
        self.repository.store_account_guid(session_id, record["id"])
        session["entities"]["account"] = {"id": record["id"], "business_id": record.get("business_id")}
        session["account_business_id"] = record.get("business_id")
        return record["id"]

    async def _child_controller(self, name: str, session: Dict[str, Any]) -> Optional[EntityController]:
        if name == "education":
            return await self._education_controller(session["request"]["account"].get("account_group"))
        return self.children[name]

    async def _create_children(self, session: Dict[str, Any], account_id: str) -> List[Tuple[str, str]]:
        failures: List[Tuple[str, str]] = []
        for name in CHILD_ENTITIES:
            payload = session["request"].get(name)
            if not payload or name in session["entities"]:
                continue
            try:
                controller = await self._child_controller(name, session)
                if controller is None:
                    continue
                data = dict(payload)
                data["account_id"] = account_id
                if session.get("account_business_id"):
                    data["user_business_id"] = session["account_business_id"]
                record = await controller.insert(data)
                session["entities"][name] = {"id": record["id"], "business_id": record.get("business_id")}
            except Exception as e:
                logger.error("Creating %s for %s failed: %s", name, session["session_id"], e, exc_info=True)
                failures.append((name, str(e)))
        return failures

    def _fail(self, session: Dict[str, Any], failures: List[Tuple[str, str]]) -> None:
        session["failed_entities"] = [name for name, _ in failures]
        session["errors"] = [{"entity": name, "message": message} for name, message in failures]
        self._transition(session, S.FAILED)

    async def _create_entities(self, session: Dict[str, Any]) -> bool:
        """Create the account and its children, then hand over for approval."""
        session_id = session["session_id"]
        starting = S(session["status"])

        if starting == S.EMAIL_VERIFIED:
            try:
                account_id = await self._create_account(session)
            except Exception as e:
                logger.error("Account creation failed for %s: %s", session_id, e, exc_info=True)
                self._fail(session, [("account", str(e))])
                return False
            self._transition(session, S.ACCOUNT_CREATED)
            self._transition(session, S.ENTITIES_CREATING)
        else:
            self._transition(session, S.ENTITIES_CREATING)
            try:
                account_id = await self._create_account(session)
            except Exception as e:
                logger.error("Account creation failed for %s: %s", session_id, e, exc_info=True)
                self._fail(session, [("account", str(e))])
                return False

        failures = await self._create_children(session, account_id)
        if failures:
            self._fail(session, failures)
            return False

        session["failed_entities"] = []
        session["errors"] = []
        self._transition(session, S.PENDING_APPROVAL)
        await self._request_approval(session)
        return True

    async def _request_approval(self, session: Dict[str, Any]) -> None:
        ttl = self.config.approval_token_ttl_seconds
        approve_token = f"approve_{secrets.token_hex(32)}"
        reject_token = f"reject_{secrets.token_hex(32)}"
        session["approval"] = {
            "approve_token": approve_token,
            "reject_token": reject_token,
            "expires_at": _iso(self._now() + timedelta(seconds=ttl)),
            "decision": None,
        }
        self.repository.index_token(approve_token, session["session_id"], ttl)
        self.repository.index_token(reject_token, session["session_id"], ttl)
        # Approval can take up to the token lifetime.
        self.repository.save(session, max(ttl, self.config.session_ttl_hours * 3600))
        if not await self._send(emails.admin_approval_email(session, approve_token, reject_token)):
            logger.warning("Admin approval email for %s was not delivered", session["session_id"])

    async def execute(self, session_id: str) -> Dict[str, Any]:
        """Create the Dataverse records for a verified session."""
        session = self._load(session_id)
        if S(session["status"]) != S.EMAIL_VERIFIED:
            raise AppError(ErrorCode.INVALID_STATE_TRANSITION, "Only verified registrations can be executed")
        created = await self._create_entities(session)
        result = self.get_status(session_id)
        result["success"] = created
        return result

    async def retry_entity_creation(self, session_id: str) -> Dict[str, Any]:
        session = self._load(session_id)
        if S(session["status"]) != S.FAILED:
            raise AppError(ErrorCode.INVALID_STATE_TRANSITION, "Only failed registrations can be retried")
        if not session["email"].get("verified_at"):
            raise AppError(ErrorCode.BUSINESS_RULE_VIOLATION, "Email must be verified before retrying")
        if int(session.get("retry_count") or 0) >= self.config.max_retry_attempts:
            raise AppError(ErrorCode.BUSINESS_RULE_VIOLATION, "Maximum retry attempts reached")

        session["retry_count"] = int(session.get("retry_count") or 0) + 1
        self._transition(session, S.RETRY_PENDING)
        created = await self._create_entities(session)
        result = self.get_status(session_id)
        result["success"] = created
        return result

    # ------------------------------------------------------------------ #
    # Admin decision
    # ------------------------------------------------------------------ #
    def _session_for_decision(self, token: str, kind: str) -> Dict[str, Any]:
        session_id = self.repository.session_for_token(token)
        if not session_id:
            raise AppError(ErrorCode.REGISTRATION_SESSION_NOT_FOUND, "This link is invalid or has expired")
        session = self._load(session_id)
        expected = session.get("approval", {}).get(f"{kind}_token")
        if not expected or not secrets.compare_digest(token, expected):
            raise AppError(ErrorCode.VERIFICATION_FAILED, "This link is not valid for this action")
        if S(session["status"]) != S.PENDING_APPROVAL:
            raise AppError(ErrorCode.INVALID_STATE_TRANSITION, f"Registration is already {session['status']}")
        return session

    def _close_approval(self, session: Dict[str, Any], decision: str, reason: str = "") -> None:
        approval = session["approval"]
        self.repository.drop_token(approval.get("approve_token"))
        self.repository.drop_token(approval.get("reject_token"))
        approval.update(decision=decision, reason=reason or None, decided_at=_iso(self._now()))

    async def approve(self, token: str) -> Dict[str, Any]:
        session = self._session_for_decision(token, "approve")
        session_id = session["session_id"]
        account_id = self.repository.get_account_guid(session_id) or session["entities"]["account"]["id"]

        self._transition(session, S.APPROVED)
        try:
            await self.accounts.set_status(account_id, AccountStatus.ACTIVE)
        except Exception as e:
            logger.error("Activating account for %s failed: %s", session_id, e, exc_info=True)
            session["errors"] = [{"entity": "account", "message": str(e)}]
            self._transition(session, S.FAILED)
            raise AppError(ErrorCode.ACCOUNT_CREATION_FAILED, "The account could not be activated") from e

        self._close_approval(session, "approved")
        self._transition(session, S.COMPLETED)

        account = session["request"]["account"]
        if not await self._send(emails.account_approved_email(account["email"], account.get("first_name", ""))):
            logger.warning("Approval notification for %s was not delivered", session_id)
        return self.get_status(session_id)

    async def reject(self, token: str, reason: str = "") -> Dict[str, Any]:
        session = self._session_for_decision(token, "reject")
        session_id = session["session_id"]
        account_id = self.repository.get_account_guid(session_id) or session["entities"]["account"]["id"]

        await self.accounts.set_status(account_id, AccountStatus.INACTIVE)
        self._close_approval(session, "rejected", reason)
        self._transition(session, S.REJECTED)

        account = session["request"]["account"]
        if not await self._send(emails.account_rejected_email(account["email"], account.get("first_name", ""), reason)):
            logger.warning("Rejection notification for %s was not delivered", session_id)
        return self.get_status(session_id)

    # ------------------------------------------------------------------ #
    # Status
    # ------------------------------------------------------------------ #
    def get_status(self, session_id: str) -> Dict[str, Any]:
        session = self._load(session_id)
        status = S(session["status"])
        return {
            "session_id": session_id,
            "status": status.value,
            "progress": progress_for(status),
            "email": mask_email(session["request"]["account"]["email"]),
            "email_verified": bool(session["email"].get("verified_at")),
            "account_business_id": session.get("account_business_id"),
            "created_entities": sorted(session.get("entities", {})),
            "failed_entities": list(session.get("failed_entities") or []),
            "errors": list(session.get("errors") or []),
            "retry_count": int(session.get("retry_count") or 0),
            "created_at": session.get("created_at"),
            "updated_at": session.get("updated_at"),
        }
