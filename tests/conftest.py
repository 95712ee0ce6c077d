"""Pytest fixtures: in-memory Redis, Dataverse and email backends."""

from datetime import date

import pytest
import pytest_asyncio

from osot.cache.cache_service import CacheService
from osot.controllers.organizations import OrganizationController
from osot.database.redis import RedisCache
from osot.integrations.clients.mocks.dataverse import MockDataverseClient
from osot.integrations.clients.mocks.email import MockEmailClient
from osot.registration.orchestrator import RegistrationOrchestrator

STRONG_PASSWORD = "Maple$Tree42"


@pytest.fixture
def store():
    """In-memory RedisCache stub."""
    return RedisCache()


@pytest.fixture
def cache(store):
    return CacheService(store)


@pytest.fixture
def dataverse():
    return MockDataverseClient()


@pytest.fixture
def mailer(tmp_path):
    return MockEmailClient(output_root=tmp_path / "emails")


@pytest_asyncio.fixture
async def organization(dataverse, cache):
    return await OrganizationController(dataverse, cache).create(
        {
            "organization_name": "Ontario Society of Occupational Therapists",
            "acronym": "OSOT",
            "slug": "osot",
            "organization_website": "osot.on.ca",
        }
    )


@pytest.fixture
def orchestrator(dataverse, cache, mailer):
    return RegistrationOrchestrator(dataverse, cache, mailer)


@pytest.fixture
def account_data():
    """Factory for a valid account payload."""

    def build(**overrides):
        data = {
            "first_name": "Jane",
            "last_name": "Doe",
            "date_of_birth": "1990-05-17",
            "email": "jane.doe@example.com",
            "mobile_phone": "416-555-0123",
            "password": STRONG_PASSWORD,
            "account_group": 0,
            "account_declaration": True,
        }
        data.update(overrides)
        return data

    return build


@pytest.fixture
def registration_request(account_data):
    """Factory for a complete registration request (no education section)."""

    def build(**account_overrides):
        return {
            "account": account_data(**account_overrides),
            "address": {
                "address_1": "55 King St W",
                "city": "Toronto",
                "province": "ON",
                "postal_code": "m5v2t6",
                "country": "Canada",
                "address_type": 1,
                "address_preference": 1,
            },
            "contact": {"job_title": "Occupational Therapist", "work_phone": "(647) 555-0188"},
            "identity": {"language": [1], "gender": 1, "indigenous": False},
            "management": {"shadowing": True},
        }

    return build


@pytest.fixture
def ot_education():
    def build(**overrides):
        data = {
            "coto_status": 3,
            "degree_type": 1,
            "university": "University of Toronto",
            "graduation_year": date.today().year + 1,
            "country": "Canada",
        }
        data.update(overrides)
        return data

    return build
