"""
Dataverse table definitions: entity sets, keys and DTO <-> column mapping.

API payloads use snake_case names; Dataverse uses `osot_*` logical names.
Lookups are written through `Nav@odata.bind` and read back from the
`_nav_value` column Dataverse adds to every retrieved row.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from osot.integrations.contracts.dataverse import odata_bind

ACCOUNTS = "osot_table_accounts"
ORGANIZATIONS = "osot_table_organizations"
PRODUCTS = "osot_table_products"
ORDERS = "osot_table_orders"
AFFILIATES = "osot_table_account_affiliates"


@dataclass(frozen=True)
class EntityDefinition:
    name: str
    entity_set: str
    primary_key: str
    fields: Dict[str, str]
    # dto name -> (navigation property, target entity set)
    lookups: Dict[str, Tuple[str, str]] = field(default_factory=dict)
    # (column, prefix) of the autonumber business id, e.g. ("osot_account_id", "osot-")
    business_id: Optional[Tuple[str, str]] = None
    hidden: FrozenSet[str] = frozenset()
    immutable: FrozenSet[str] = frozenset()
    # multi-select choice columns, returned as lists
    multi: FrozenSet[str] = frozenset()

    @property
    def account_bound(self) -> bool:
        return "account_id" in self.lookups

    def column(self, dto_name: str) -> str:
        if dto_name in self.lookups:
            return self.lookup_column(dto_name)
        if dto_name == "id":
            return self.primary_key
        if self.business_id and dto_name == "business_id":
            return self.business_id[0]
        return self.fields[dto_name]

    def lookup_column(self, dto_name: str) -> str:
        nav, _ = self.lookups[dto_name]
        return f"_{nav.lower()}_value"

    def to_odata(self, data: Dict[str, Any]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for name, value in data.items():
            if name in self.fields:
                payload[self.fields[name]] = _to_column_value(value)
            elif name in self.lookups and value:
                nav, target = self.lookups[name]
                payload[f"{nav}@odata.bind"] = odata_bind(target, str(value))
        return payload

    def from_odata(self, record: Dict[str, Any], *, include_hidden: bool = False) -> Dict[str, Any]:
        out: Dict[str, Any] = {"id": record.get(self.primary_key)}
        if self.business_id:
            out["business_id"] = record.get(self.business_id[0])
        for name, column in self.fields.items():
            if name in self.hidden and not include_hidden:
                continue
            value = record.get(column)
            out[name] = _split_multi(value) if name in self.multi else value
        for name in self.lookups:
            out[name] = record.get(self.lookup_column(name))
        out["created_on"] = record.get("createdon")
        out["modified_on"] = record.get("modifiedon")
        return out


def _to_column_value(value: Any) -> Any:
    # Multi-select choice columns are stored as comma-separated strings.
    if isinstance(value, (list, tuple, set)):
        return ",".join(str(_to_column_value(v)) for v in value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def _split_multi(value: Any) -> List[Any]:
    if value in (None, ""):
        return []
    if isinstance(value, list):
        return value
    items = [v.strip() for v in str(value).split(",") if v.strip()]
    return [int(v) if v.lstrip("-").isdigit() else v for v in items]


_ACCOUNT_LOOKUP = {"account_id": ("osot_Table_Account", ACCOUNTS)}

ACCOUNT = EntityDefinition(
    name="account",
    entity_set=ACCOUNTS,
    primary_key="osot_table_accountid",
    business_id=("osot_account_id", "osot-"),
    fields={
        "first_name": "osot_first_name",
        "last_name": "osot_last_name",
        "date_of_birth": "osot_date_of_birth",
        "mobile_phone": "osot_mobile_phone",
        "email": "osot_email",
        "password": "osot_password",
        "account_group": "osot_account_group",
        "account_declaration": "osot_account_declaration",
        "account_status": "osot_account_status",
        "active_member": "osot_active_member",
        "access_modifiers": "osot_access_modifiers",
        "privilege": "osot_privilege",
    },
    lookups={"organization_id": ("osot_Table_Organization", ORGANIZATIONS)},
    hidden=frozenset({"password"}),
    immutable=frozenset({"date_of_birth"}),
)

AFFILIATE = EntityDefinition(
    name="affiliate",
    entity_set=AFFILIATES,
    primary_key="osot_table_account_affiliateid",
    business_id=("osot_affiliate_id", "affi-"),
    fields={
        "affiliate_name": "osot_affiliate_name",
        "affiliate_area": "osot_affiliate_area",
        "representative_first_name": "osot_representative_first_name",
        "representative_last_name": "osot_representative_last_name",
        "representative_job_title": "osot_representative_job_title",
        "affiliate_email": "osot_affiliate_email",
        "affiliate_phone": "osot_affiliate_phone",
        "affiliate_website": "osot_affiliate_website",
        "affiliate_facebook": "osot_affiliate_facebook",
        "affiliate_instagram": "osot_affiliate_instagram",
        "affiliate_tiktok": "osot_affiliate_tiktok",
        "affiliate_linkedin": "osot_affiliate_linkedin",
        "affiliate_address_1": "osot_affiliate_address_1",
        "affiliate_address_2": "osot_affiliate_address_2",
        "affiliate_city": "osot_affiliate_city",
        "affiliate_province": "osot_affiliate_province",
        "affiliate_postal_code": "osot_affiliate_postal_code",
        "affiliate_country": "osot_affiliate_country",
        "password": "osot_password",
        "account_status": "osot_account_status",
        "account_declaration": "osot_account_declaration",
        "active_member": "osot_active_member",
        "access_modifiers": "osot_access_modifiers",
        "privilege": "osot_privilege",
    },
    lookups={"organization_id": ("osot_Table_Organization", ORGANIZATIONS)},
    hidden=frozenset({"password"}),
    immutable=frozenset({"affiliate_name"}),
)

ADDRESS = EntityDefinition(
    name="address",
    entity_set="osot_table_addresses",
    primary_key="osot_table_addressid",
    business_id=("osot_address_id", "osot-ad-"),
    fields={
        "user_business_id": "osot_user_business_id",
        "address_1": "osot_address_1",
        "address_2": "osot_address_2",
        "city": "osot_city",
        "province": "osot_province",
        "postal_code": "osot_postal_code",
        "country": "osot_country",
        "address_type": "osot_address_type",
        "address_preference": "osot_address_preference",
        "access_modifiers": "osot_access_modifiers",
        "privilege": "osot_privilege",
    },
    lookups=_ACCOUNT_LOOKUP,
)

CONTACT = EntityDefinition(
    name="contact",
    entity_set="osot_table_contacts",
    primary_key="osot_table_contactid",
    business_id=("osot_contact_id", "osot-ct-"),
    fields={
        "user_business_id": "osot_user_business_id",
        "secondary_email": "osot_secondary_email",
        "job_title": "osot_job_title",
        "home_phone": "osot_home_phone",
        "work_phone": "osot_work_phone",
        "business_website": "osot_business_website",
        "facebook": "osot_facebook",
        "instagram": "osot_instagram",
        "tiktok": "osot_tiktok",
        "linkedin": "osot_linkedin",
        "access_modifiers": "osot_access_modifiers",
        "privilege": "osot_privilege",
    },
    lookups=_ACCOUNT_LOOKUP,
)

IDENTITY = EntityDefinition(
    name="identity",
    entity_set="osot_table_identities",
    primary_key="osot_table_identityid",
    business_id=("osot_identity_id", "osot-id-"),
    fields={
        "user_business_id": "osot_user_business_id",
        "chosen_name": "osot_chosen_name",
        "language": "osot_language",
        "gender": "osot_gender",
        "race": "osot_race",
        "indigenous": "osot_indigenous",
        "disability": "osot_disability",
        "access_modifiers": "osot_access_modifiers",
        "privilege": "osot_privilege",
    },
    lookups=_ACCOUNT_LOOKUP,
    multi=frozenset({"language"}),
)

OT_EDUCATION = EntityDefinition(
    name="ot_education",
    entity_set="osot_table_ot_educations",
    primary_key="osot_table_ot_educationid",
    business_id=("osot_ot_education_id", "osot-ote-"),
    fields={
        "user_business_id": "osot_user_business_id",
        "coto_status": "osot_coto_status",
        "coto_registration": "osot_coto_registration",
        "degree_type": "osot_ot_degree_type",
        "university": "osot_ot_university",
        "graduation_year": "osot_ot_grad_year",
        "country": "osot_ot_country",
        "education_category": "osot_education_category",
        "access_modifiers": "osot_access_modifiers",
        "privilege": "osot_privilege",
    },
    lookups=_ACCOUNT_LOOKUP,
)

OTA_EDUCATION = EntityDefinition(
    name="ota_education",
    entity_set="osot_table_ota_educations",
    primary_key="osot_table_ota_educationid",
    business_id=("osot_ota_education_id", "osot-otae-"),
    fields={
        "user_business_id": "osot_user_business_id",
        "work_declaration": "osot_work_declaration",
        "degree_type": "osot_ota_degree_type",
        "college": "osot_ota_college",
        "graduation_year": "osot_ota_grad_year",
        "country": "osot_ota_country",
        "education_category": "osot_education_category",
        "access_modifiers": "osot_access_modifiers",
        "privilege": "osot_privilege",
    },
    lookups=_ACCOUNT_LOOKUP,
)

MANAGEMENT = EntityDefinition(
    name="management",
    entity_set="osot_table_account_managements",
    primary_key="osot_table_account_managementid",
    business_id=("osot_account_management_id", "osot-am-"),
    fields={
        "user_business_id": "osot_user_business_id",
        "life_member_retired": "osot_life_member_retired",
        "shadowing": "osot_shadowing",
        "passed_away": "osot_passed_away",
        "vendor": "osot_vendor",
        "advertising": "osot_advertising",
        "recruitment": "osot_recruitment",
        "driver_rehab": "osot_driver_rehab",
        "access_modifiers": "osot_access_modifiers",
        "privilege": "osot_privilege",
    },
    lookups=_ACCOUNT_LOOKUP,
)

MEMBERSHIP_CATEGORY = EntityDefinition(
    name="membership_category",
    entity_set="osot_table_membership_categories",
    primary_key="osot_table_membership_categoryid",
    business_id=("osot_category_id", "osot-mc-"),
    fields={
        "user_business_id": "osot_user_business_id",
        "membership_year": "osot_membership_year",
        "membership_category": "osot_membership_category",
        "users_group": "osot_users_group",
        "parental_leave_from": "osot_parental_leave_from",
        "parental_leave_to": "osot_parental_leave_to",
        "parental_leave_expected": "osot_parental_leave_expected",
        "retirement_start": "osot_retirement_start",
        "access_modifiers": "osot_access_modifiers",
        "privilege": "osot_privilege",
    },
    lookups=_ACCOUNT_LOOKUP,
)

MEMBERSHIP_EMPLOYMENT = EntityDefinition(
    name="membership_employment",
    entity_set="osot_table_membership_employments",
    primary_key="osot_table_membership_employmentid",
    business_id=("osot_employment_id", "osot-me-"),
    fields={
        "user_business_id": "osot_user_business_id",
        "membership_year": "osot_membership_year",
        "employment_status": "osot_employment_status",
        "role_descriptor": "osot_role_descriptor",
        "practice_years": "osot_practice_years",
        "work_hours": "osot_work_hours",
        "position_funding": "osot_position_funding",
        "employment_benefits": "osot_employment_benefits",
        "another_employment": "osot_another_employment",
        "access_modifiers": "osot_access_modifiers",
        "privilege": "osot_privilege",
    },
    lookups=_ACCOUNT_LOOKUP,
    multi=frozenset({"position_funding", "employment_benefits"}),
)

MEMBERSHIP_PRACTICES = EntityDefinition(
    name="membership_practices",
    entity_set="osot_table_membership_practices",
    primary_key="osot_table_membership_practiceid",
    business_id=("osot_practice_id", "osot-mp-"),
    fields={
        "user_business_id": "osot_user_business_id",
        "membership_year": "osot_membership_year",
        "preceptor_declaration": "osot_preceptor_declaration",
        "clients_age": "osot_clients_age",
        "practice_area": "osot_practice_area",
        "practice_settings": "osot_practice_settings",
        "practice_services": "osot_practice_services",
        "access_modifiers": "osot_access_modifiers",
        "privilege": "osot_privilege",
    },
    lookups=_ACCOUNT_LOOKUP,
    multi=frozenset({"clients_age", "practice_area", "practice_settings", "practice_services"}),
)

MEMBERSHIP_PREFERENCES = EntityDefinition(
    name="membership_preferences",
    entity_set="osot_table_membership_preferences",
    primary_key="osot_table_membership_preferenceid",
    business_id=("osot_preference_id", "osot-mpf-"),
    fields={
        "user_business_id": "osot_user_business_id",
        "membership_year": "osot_membership_year",
        "auto_renewal": "osot_auto_renewal",
        "third_parties": "osot_third_parties",
        "practice_promotion": "osot_practice_promotion",
        "search_tools": "osot_search_tools",
        "psychotherapy_supervision": "osot_psychotherapy_supervision",
        "access_modifiers": "osot_access_modifiers",
        "privilege": "osot_privilege",
    },
    lookups=_ACCOUNT_LOOKUP,
)

MEMBERSHIP_SETTINGS = EntityDefinition(
    name="membership_settings",
    entity_set="osot_table_membership_settings",
    primary_key="osot_table_membership_settingid",
    business_id=("osot_settingsid", "osot-set-"),
    fields={
        "membership_year": "osot_membership_year",
        "membership_year_status": "osot_membership_year_status",
        "membership_group": "osot_membership_group",
        "year_starts": "osot_year_starts",
        "year_ends": "osot_year_ends",
        "privilege": "osot_privilege",
        "access_modifiers": "osot_access_modifiers",
    },
    lookups={"organization_id": ("osot_Table_Organization", ORGANIZATIONS)},
)

ORGANIZATION = EntityDefinition(
    name="organization",
    entity_set=ORGANIZATIONS,
    primary_key="osot_table_organizationid",
    fields={
        "organization_name": "osot_organization_name",
        "legal_name": "osot_legal_name",
        "acronym": "osot_acronym",
        "slug": "osot_slug",
        "organization_status": "osot_organization_status",
        "organization_logo": "osot_organization_logo",
        "organization_website": "osot_organization_website",
        "representative": "osot_representative",
        "organization_email": "osot_organization_email",
        "organization_phone": "osot_organization_phone",
        "privilege": "osot_privilege",
        "access_modifiers": "osot_access_modifiers",
    },
)

_CATEGORY_PRICE_FIELDS = {
    "otstu_price": "osot_otstu_price",
    "otng_price": "osot_otng_price",
    "otpr_price": "osot_otpr_price",
    "otnp_price": "osot_otnp_price",
    "otret_price": "osot_otret_price",
    "otlife_price": "osot_otlife_price",
    "otastu_price": "osot_otastu_price",
    "otang_price": "osot_otang_price",
    "otanp_price": "osot_otanp_price",
    "otaret_price": "osot_otaret_price",
    "otapr_price": "osot_otapr_price",
    "otalife_price": "osot_otalife_price",
    "assoc_price": "osot_assoc_price",
    "affprim_price": "osot_affprim_price",
    "affprem_price": "osot_affprem_price",
}

PRODUCT = EntityDefinition(
    name="product",
    entity_set=PRODUCTS,
    primary_key="osot_table_productid",
    business_id=("osot_productid", "osot-prod-"),
    fields={
        "product_name": "osot_product_name",
        "product_code": "osot_product_code",
        "product_description": "osot_product_description",
        "product_category": "osot_product_category",
        "product_picture": "osot_product_picture",
        "product_status": "osot_product_status",
        "product_gl_code": "osot_product_gl_code",
        "general_price": "osot_general_price",
        **_CATEGORY_PRICE_FIELDS,
        "inventory": "osot_inventory",
        "shipping": "osot_shipping",
        "taxes": "osot_taxes",
        "start_date": "osot_start_date",
        "end_date": "osot_end_date",
        "active_membership_only": "osot_active_membership_only",
        "product_year": "osot_product_year",
        "insurance_type": "osot_insurance_type",
        "insurance_limit": "osot_insurance_limit",
        "post_purchase_info": "osot_post_purchase_info",
        "privilege": "osot_privilege",
        "access_modifiers": "osot_access_modifiers",
    },
)

CATEGORY_PRICE_FIELDS = tuple(_CATEGORY_PRICE_FIELDS)

INSURANCE_PROVIDER = EntityDefinition(
    name="insurance_provider",
    entity_set="osot_table_insurance_providers",
    primary_key="osot_table_insurance_providerid",
    business_id=("osot_provider_id", "osot-prov-"),
    fields={
        "insurance_company_name": "osot_insurance_company_name",
        "insurance_company_logo": "osot_insurance_company_logo",
        "insurance_broker_name": "osot_insurance_broker_name",
        "insurance_broker_logo": "osot_insurance_broker_logo",
        "policy_period_start": "osot_policy_period_start",
        "policy_period_end": "osot_policy_period_end",
        "master_policy_description": "osot_master_policy_description",
        "insurance_authorized_representative": "osot_insurance_authorized_representative",
        "certificate_observations": "osot_certificate_observations",
        "broker_general_information": "osot_broker_general_information",
        "privilege": "osot_privilege",
        "access_modifiers": "osot_access_modifiers",
    },
    lookups={"organization_id": ("osot_Table_Organization", ORGANIZATIONS)},
)

ORDER = EntityDefinition(
    name="order",
    entity_set=ORDERS,
    primary_key="osot_table_orderid",
    business_id=("osot_orderid", "osot-ord-"),
    fields={
        "order_status": "osot_order_status",
        "payment_status": "osot_payment_status",
        "subtotal": "osot_subtotal",
        "coupon": "osot_coupon",
        "total": "osot_total",
        "privilege": "osot_privilege",
        "access_modifiers": "osot_access_modifiers",
    },
    lookups={
        "organization_id": ("osot_Table_Organization", ORGANIZATIONS),
        "account_id": ("osot_Table_Account", ACCOUNTS),
        "affiliate_id": ("osot_Table_Account_Affiliate", AFFILIATES),
    },
)

ORDER_PRODUCT = EntityDefinition(
    name="order_product",
    entity_set="osot_table_order_products",
    primary_key="osot_table_order_productid",
    business_id=("osot_orderproductid", "osot-op-"),
    fields={
        "product_id": "osot_product_id",
        "product_name": "osot_product_name",
        "product_category": "osot_product_category",
        "selected_price": "osot_selectedprice",
        "product_tax_rate": "osot_producttax",
        "quantity": "osot_quantity",
        "item_subtotal": "osot_itemsubtotal",
        "tax_amount": "osot_taxamount",
        "item_total": "osot_itemtotal",
        "insurance_type": "osot_insurance_type",
        "insurance_limit": "osot_insurance_limit",
        "product_additional_info": "osot_product_additional_info",
    },
    lookups={"order_id": ("osot_Order", ORDERS)},
    immutable=frozenset(
        {
            "order_id",
            "product_id",
            "product_name",
            "product_category",
            "selected_price",
            "product_tax_rate",
            "quantity",
            "item_subtotal",
            "tax_amount",
            "item_total",
            "insurance_type",
            "insurance_limit",
            "product_additional_info",
        }
    ),
)

ALL_DEFINITIONS = (
    ACCOUNT,
    AFFILIATE,
    ADDRESS,
    CONTACT,
    IDENTITY,
    OT_EDUCATION,
    OTA_EDUCATION,
    MANAGEMENT,
    MEMBERSHIP_CATEGORY,
    MEMBERSHIP_EMPLOYMENT,
    MEMBERSHIP_PRACTICES,
    MEMBERSHIP_PREFERENCES,
    MEMBERSHIP_SETTINGS,
    ORGANIZATION,
    PRODUCT,
    INSURANCE_PROVIDER,
    ORDER,
    ORDER_PRODUCT,
)

BY_ENTITY_SET = {d.entity_set: d for d in ALL_DEFINITIONS}
