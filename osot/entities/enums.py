"""Choice values stored in Dataverse option-set columns."""

from enum import Enum, IntEnum


class AccountGroup(IntEnum):
    OTHER = 0
    OT = 1
    OTA = 2
    VENDOR_ADVERTISER = 3


class AccountStatus(IntEnum):
    ACTIVE = 1
    INACTIVE = 2
    PENDING = 3


class AccessModifier(IntEnum):
    PUBLIC = 1
    PROTECTED = 2
    PRIVATE = 3


class Privilege(IntEnum):
    OWNER = 1
    ADMIN = 2
    MAIN = 3

    @property
    def role(self) -> str:
        return self.name.lower()


class UserType(str, Enum):
    ACCOUNT = "account"
    AFFILIATE = "affiliate"


class AffiliateArea(IntEnum):
    OTHER = 0
    HEALTHCARE_AND_LIFE_SCIENCES = 1
    GOVERNMENT_AND_PUBLIC_SECTOR = 2
    CONSTRUCTION_REAL_ESTATE_AND_PROPERTY_MANAGEMENT = 3
    CONSUMER_GOODS_AND_RETAIL = 4
    FINANCIAL_SERVICES_AND_INSURANCE = 5
    INFORMATION_TECHNOLOGY_AND_SOFTWARE = 6
    LEGAL_SERVICES = 7
    NONPROFIT_AND_SOCIAL_SERVICES = 8
    PHARMACEUTICALS_AND_BIOTECHNOLOGY = 9
    PROFESSIONAL_SERVICES = 10
    SCIENCE_AND_RESEARCH = 11


class OrganizationStatus(IntEnum):
    ACTIVE = 1
    INACTIVE = 2


class AddressType(IntEnum):
    HOME = 1
    WORK = 2
    OTHER = 3


class AddressPreference(IntEnum):
    MAIL = 1
    BILLING = 2
    OTHER = 3


class Gender(IntEnum):
    FEMALE = 1
    MALE = 2
    NON_BINARY = 3
    OTHER = 4
    PREFER_NOT_TO_SAY = 5


class CotoStatus(IntEnum):
    GENERAL = 1
    PROVISIONAL_TEMPORARY = 2
    STUDENT = 3
    PENDING = 4
    RESIGNED = 5
    OTHER = 6


class EducationCategory(IntEnum):
    GRADUATED = 1
    STUDENT = 2
    NEW_GRADUATED = 3


class MembershipCategory(IntEnum):
    OT_STU = 0
    OT_NG = 1
    OT_PR = 2
    OT_NP = 3
    OT_RET = 4
    OT_LIFE = 5
    OTA_STU = 6
    OTA_NG = 7
    OTA_NP = 8
    OTA_RET = 9
    OTA_PR = 10
    OTA_LIFE = 11
    ASSOC = 12
    AFF_PRIM = 13
    AFF_PREM = 14


class MembershipYearStatus(IntEnum):
    ACTIVE = 1
    INACTIVE = 2


class EmploymentStatus(IntEnum):
    EMPLOYED_FULL_TIME = 1
    EMPLOYED_PART_TIME = 2
    SELF_EMPLOYED = 3
    UNEMPLOYED = 4
    RETIRED = 5
    ON_LEAVE = 6


class ProductStatus(IntEnum):
    UNAVAILABLE = 0
    AVAILABLE = 1
    DISCONTINUED = 2
    DRAFT = 3
    OUT_OF_STOCK = 4


class ProductCategory(IntEnum):
    GENERAL = 0
    INSURANCE = 1
    MEMBERSHIP = 2
    SERVICE = 3
    EVENT = 4


class OrderStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class PaymentStatus(str, Enum):
    UNPAID = "UNPAID"
    PENDING = "PENDING"
    PAID = "PAID"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"
    FULLY_REFUNDED = "FULLY_REFUNDED"
