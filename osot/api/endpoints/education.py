from typing import Any, Dict, Type

from osot.api.dependencies import Services, app_context_for
from osot.api.endpoints.common import owned_entity_router
from osot.auth.tokens import TokenClaims
from osot.controllers.accounts import AccountController
from osot.controllers.education import OtaEducationController, OtEducationController, _EducationController
from osot.controllers.membership import MembershipSettingsController
from osot.error_handler import AppError, ErrorCode


def _education_factory(controller_cls: Type[_EducationController]):
    async def build(services: Services, user: TokenClaims) -> _EducationController:
        settings = MembershipSettingsController(services.dataverse, services.cache)
        expires = await settings.get_membership_expiration(user.user_guid, controller_cls.account_group)
        return controller_cls(services.dataverse, services.cache, app_context_for(user), membership_expires=expires)

    return build


def _group_check(controller_cls: Type[_EducationController]):
    async def check(services: Services, user: TokenClaims, data: Dict[str, Any]) -> None:
        account = await AccountController(services.dataverse, services.cache).get(data["account_id"])
        if account is None:
            raise AppError(ErrorCode.ACCOUNT_NOT_FOUND)
        controller_cls(services.dataverse, services.cache).ensure_group(account.get("account_group"))

    return check


ot_education_api = owned_entity_router(
    OtEducationController,
    "OT education",
    factory=_education_factory(OtEducationController),
    before_create=_group_check(OtEducationController),
)
ota_education_api = owned_entity_router(
    OtaEducationController,
    "OTA education",
    factory=_education_factory(OtaEducationController),
    before_create=_group_check(OtaEducationController),
)
