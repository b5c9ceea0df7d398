"""
Shared pytest fixtures built from the test data in tests/fake_warehouse.py.
"""
import pytest

from config.settings import ReportConfig
from src.data.account_hierarchy import AccountHierarchyBuilder
from src.data.config_store import ConfigBundle
from src.data.entity_hierarchy import OrganizationHierarchy
from tests.fake_warehouse import (
    ACCOUNT_DOC,
    CUSTOMER_DOC,
    DEPARTMENT_DOC,
    REGION_DOC,
    SECTION_CONFIG,
    FakeWarehouse,
)


@pytest.fixture
def account_hierarchy():
    return AccountHierarchyBuilder().from_document(ACCOUNT_DOC)


@pytest.fixture
def organization():
    return OrganizationHierarchy.from_documents(CUSTOMER_DOC, REGION_DOC, DEPARTMENT_DOC)


@pytest.fixture
def bundle(account_hierarchy, organization):
    return ConfigBundle(accounts=account_hierarchy, organization=organization, section_config=dict(SECTION_CONFIG))


@pytest.fixture
def report_config():
    return ReportConfig(company_name="Yona Solutions")


@pytest.fixture
def warehouse():
    return FakeWarehouse()
