"""
Data layer module for account hierarchy rollups, organization grouping,
in-memory fact sets, census side data and configuration documents.
"""
from src.data.account_hierarchy import (
    AccountNode,
    AccountHierarchy,
    AccountHierarchyBuilder,
    RollupMode,
    build_children_map,
    compute_rollups,
    find_cycle,
)
from src.data.entity_hierarchy import (
    Entity,
    District,
    TagGroup,
    OrgUnit,
    OrganizationHierarchy,
    build_district_membership,
    group_customers_by_district_tags,
    parse_selector,
)
from src.data.fact_set import (
    FactSet,
    Period,
    Scenario,
    TransactionFact,
)
from src.data.census import (
    CensusProvider,
    FacilityCensus,
)
from src.data.config_store import (
    ConfigBundle,
    ConfigStore,
)

__all__ = [
    # Account hierarchy
    "AccountNode",
    "AccountHierarchy",
    "AccountHierarchyBuilder",
    "RollupMode",
    "build_children_map",
    "compute_rollups",
    "find_cycle",
    # Organization
    "Entity",
    "District",
    "TagGroup",
    "OrgUnit",
    "OrganizationHierarchy",
    "build_district_membership",
    "group_customers_by_district_tags",
    "parse_selector",
    # Facts
    "FactSet",
    "Period",
    "Scenario",
    "TransactionFact",
    # Census
    "CensusProvider",
    "FacilityCensus",
    # Configuration documents
    "ConfigBundle",
    "ConfigStore",
]
