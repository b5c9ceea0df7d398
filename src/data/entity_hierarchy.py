"""
Organizational Hierarchy and Tag Grouping

Customer (facility) -> district membership and the tag-driven regrouping
of districts into reporting units, plus region/subsidiary lookup from the
region and department documents.

Key Concepts:
- A customer's tags are its PARENT DISTRICT's tags, never its own
- A district with no tags falls back to a single tag: its own label
- Districts whose sorted tag sets are identical collapse into one TagGroup
- districtReportingExcluded only suppresses a district's own standalone
  report; its customers still land in tag groups
"""
import logging
from dataclasses import dataclass, field, replace
from typing import List, Dict, Any, Optional, Iterable, Mapping, Tuple

from src.core.config_schemas import (
    CustomerConfigEntry,
    DepartmentConfigEntry,
    RegionConfigEntry,
    validate_document,
)
from src.core.error_taxonomy import NoDataError, SelectorNotFoundError
from src.data.census import customer_code_from_label

logger = logging.getLogger(__name__)

TAG_PREFIX = "tag_"

# Selectable regions/departments hang directly under the "All ..." node
LEAF_PARENT_ID = "2"

NO_TAGS_LABEL = "Other"


@dataclass
class Entity:
    """A customer/facility."""
    id: str  # customer_internal_id
    label: str
    parent_district_id: Optional[str] = None
    config_id: Optional[str] = None
    census_code: Optional[str] = None
    start_date: Optional[str] = None

    # Filled from the warehouse dim_customers rows when known
    region_id: Optional[str] = None
    subsidiary_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "parent_district_id": self.parent_district_id,
            "census_code": self.census_code,
            "start_date": self.start_date,
            "region_id": self.region_id,
            "subsidiary_id": self.subsidiary_id,
        }


@dataclass
class District:
    id: str
    label: str
    tags: Tuple[str, ...] = ()
    reporting_excluded: bool = False
    display_excluded: bool = False


@dataclass
class TagGroup:
    """A reporting unit formed by all districts sharing one tag set."""
    key: str
    label: str
    tags: Tuple[str, ...]
    members: List[Entity] = field(default_factory=list)
    source_districts: List[str] = field(default_factory=list)

    @property
    def customer_ids(self) -> List[str]:
        return [m.id for m in self.members]

    @property
    def is_combined(self) -> bool:
        return len(self.source_districts) > 1


@dataclass
class OrgUnit:
    """A region or a subsidiary (department) node."""
    id: str  # config node id
    label: str
    internal_id: Optional[str] = None  # warehouse id
    parent: Optional[str] = None
    tags: Tuple[str, ...] = ()
    display_excluded: bool = False
    operational_excluded: bool = False

    @property
    def is_selectable(self) -> bool:
        return (
            self.parent == LEAF_PARENT_ID
            and not self.display_excluded
            and not self.operational_excluded
        )


@dataclass
class SelectableItem:
    id: str
    label: str
    type: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "label": self.label, "type": self.type}


@dataclass
class ParsedSelector:
    actual_id: str
    label: str
    is_tag: bool

    @property
    def tag(self) -> Optional[str]:
        return self.actual_id[len(TAG_PREFIX):] if self.is_tag else None


@dataclass
class DistrictSelection:
    """What a district-level selector resolved to."""
    name: str
    is_tag: bool
    members: List[Entity]
    source_districts: List[str] = field(default_factory=list)


def parse_selector(selector: str) -> ParsedSelector:
    """
    Parse a report selector.

    - "tag_<Tag>": a tag; the whole string is the id (tags may contain " - ")
    - "<id> - <label>": id before the first " - "
    - "<id>": used as-is
    """
    selector = (selector or "").strip()
    if selector.startswith(TAG_PREFIX):
        return ParsedSelector(actual_id=selector, label=selector[len(TAG_PREFIX):], is_tag=True)
    if " - " in selector:
        actual_id, label = selector.split(" - ", 1)
        return ParsedSelector(actual_id=actual_id.strip(), label=label.strip(), is_tag=False)
    return ParsedSelector(actual_id=selector, label=selector, is_tag=False)


def district_tags(district: Optional[District]) -> Tuple[str, ...]:
    """Sorted tags of a district, falling back to its label."""
    if district is None:
        return ()
    if district.tags:
        return tuple(sorted(district.tags))
    return (district.label,)


def tag_group_key(tags: Iterable[str]) -> str:
    return ",".join(sorted(tags))


def tag_group_label(tags: Iterable[str]) -> str:
    tags = sorted(tags)
    if not tags:
        return NO_TAGS_LABEL
    if len(tags) == 1:
        return tags[0]
    return " - ".join(tags)


def build_district_membership(
    entities: Iterable[Entity],
    districts: Mapping[str, District],
) -> Dict[str, List[Entity]]:
    """District label -> member entities, matched on parent district id."""
    membership: Dict[str, List[Entity]] = {d.label: [] for d in districts.values()}
    for entity in entities:
        district = districts.get(entity.parent_district_id) if entity.parent_district_id else None
        if district is None:
            logger.warning(f"Customer {entity.id} ({entity.label}) has no configured parent district")
            continue
        membership.setdefault(district.label, []).append(entity)
    return membership


def group_customers_by_district_tags(
    entities: Iterable[Entity],
    districts: Mapping[str, District],
) -> List[TagGroup]:
    """
    Partition customers by their parent district's sorted tag set.

    Every entity lands in exactly one group. Groups come out in order of
    first appearance. A customer whose district is unknown has no tags and
    goes to the "Other" group.
    """
    groups: Dict[str, TagGroup] = {}

    for entity in entities:
        district = districts.get(entity.parent_district_id) if entity.parent_district_id else None
        tags = district_tags(district)
        key = tag_group_key(tags)

        group = groups.get(key)
        if group is None:
            group = TagGroup(key=key, label=tag_group_label(tags), tags=tags)
            groups[key] = group

        group.members.append(entity)
        if district is not None and district.label not in group.source_districts:
            group.source_districts.append(district.label)

    result = list(groups.values())
    for group in result:
        if group.is_combined:
            logger.info(
                f"Tag group {group.label!r} combines {len(group.source_districts)} districts: "
                f"{', '.join(group.source_districts)}"
            )
    return result


def _selectable_with_tags(units: Iterable[Any], item_type: str, selectable) -> List[SelectableItem]:
    items: List[SelectableItem] = []
    tags: List[str] = []
    for unit in units:
        if selectable(unit):
            items.append(SelectableItem(id=unit.id, label=unit.label, type=item_type))
        for tag in unit.tags:
            if tag not in tags:
                tags.append(tag)
    items.extend(SelectableItem(id=f"{TAG_PREFIX}{t}", label=t, type="tag") for t in tags)
    return sorted(items, key=lambda i: i.label.lower())


@dataclass
class OrganizationHierarchy:
    """
    Districts, customers, regions and subsidiaries for one request.

    Built from the customer, region and department documents.
    """
    districts: Dict[str, District] = field(default_factory=dict)
    customers: Dict[str, Entity] = field(default_factory=dict)  # by customer_internal_id
    regions: Dict[str, OrgUnit] = field(default_factory=dict)
    subsidiaries: Dict[str, OrgUnit] = field(default_factory=dict)

    # ---- construction -------------------------------------------------

    @classmethod
    def from_documents(
        cls,
        customer_doc: Any,
        region_doc: Any = None,
        department_doc: Any = None,
    ) -> "OrganizationHierarchy":
        """
        Raises:
            ConfigurationError: a document is malformed
        """
        customer_entries = validate_document(customer_doc, CustomerConfigEntry, "customer_config.json")

        districts: Dict[str, District] = {}
        for node_id, entry in customer_entries.items():
            if entry.is_district:
                districts[node_id] = District(
                    id=node_id,
                    label=entry.label or node_id,
                    tags=tuple(entry.tags),
                    reporting_excluded=entry.district_reporting_excluded,
                    display_excluded=entry.display_excluded,
                )

        customers: Dict[str, Entity] = {}
        for node_id, entry in customer_entries.items():
            if entry.is_district or not entry.customer_internal_id:
                continue
            if entry.parent not in districts:
                logger.warning(f"Customer node {node_id} ({entry.label}) is not under a district; skipping")
                continue
            if entry.customer_internal_id in customers:
                continue
            label = entry.label or entry.customer_internal_id
            customers[entry.customer_internal_id] = Entity(
                id=entry.customer_internal_id,
                label=label,
                parent_district_id=entry.parent,
                config_id=node_id,
                census_code=customer_code_from_label(label),
                start_date=entry.start_date_est,
            )

        regions = cls._org_units(region_doc, RegionConfigEntry, "region_config.json", "region_internal_id")
        subsidiaries = cls._org_units(
            department_doc, DepartmentConfigEntry, "department_config.json", "subsidiary_internal_id"
        )

        logger.info(
            f"Loaded organization: {len(districts)} districts, {len(customers)} customers, "
            f"{len(regions)} regions, {len(subsidiaries)} subsidiaries"
        )
        return cls(districts=districts, customers=customers, regions=regions, subsidiaries=subsidiaries)

    @staticmethod
    def _org_units(raw: Any, schema, document_name: str, id_field: str) -> Dict[str, OrgUnit]:
        if raw is None:
            return {}
        entries = validate_document(raw, schema, document_name)
        return {
            node_id: OrgUnit(
                id=node_id,
                label=entry.label or node_id,
                internal_id=getattr(entry, id_field),
                parent=entry.parent,
                tags=tuple(entry.tags),
                display_excluded=entry.display_excluded,
                operational_excluded=entry.operational_excluded,
            )
            for node_id, entry in entries.items()
        }

    # ---- selection ----------------------------------------------------

    def resolve_district(self, selector: str) -> DistrictSelection:
        """
        Resolve a district or district-tag selector to its member customers.

        A tag selects every district carrying it, reporting-excluded ones
        included; display-excluded districts are skipped.

        Raises:
            SelectorNotFoundError: unknown district id or tag
            NoDataError: the selection has no customers
        """
        parsed = parse_selector(selector)

        if parsed.is_tag:
            source = [
                d for d in self.districts.values()
                if not d.display_excluded and parsed.tag in d.tags
            ]
            if not source:
                raise SelectorNotFoundError("district tag", parsed.tag)
            name = parsed.tag
        else:
            district = self.districts.get(parsed.actual_id)
            if district is None:
                raise SelectorNotFoundError("district", parsed.actual_id)
            source = [district]
            name = district.label

        source_ids = {d.id for d in source}
        members = [c for c in self.customers.values() if c.parent_district_id in source_ids]
        if not members:
            raise NoDataError("district", selector)

        logger.info(
            f"Resolved {'tag' if parsed.is_tag else 'district'} {name!r}: "
            f"{len(members)} customers from {len(source)} district(s)"
        )
        return DistrictSelection(
            name=name,
            is_tag=parsed.is_tag,
            members=members,
            source_districts=[d.label for d in source],
        )

    def _resolve_unit(self, units: Dict[str, OrgUnit], level: str, selector: str) -> OrgUnit:
        parsed = parse_selector(selector)
        unit = units.get(parsed.actual_id)
        if unit is None or not unit.internal_id:
            raise SelectorNotFoundError(level, parsed.actual_id)
        return unit

    def resolve_region(self, selector: str) -> OrgUnit:
        """Raises SelectorNotFoundError for unknown regions (or regions with no warehouse id)."""
        return self._resolve_unit(self.regions, "region", selector)

    def resolve_subsidiary(self, selector: str) -> OrgUnit:
        return self._resolve_unit(self.subsidiaries, "subsidiary", selector)

    # ---- membership ---------------------------------------------------

    def entities_from_rows(self, rows: Iterable[Mapping[str, Any]]) -> List[Entity]:
        """
        Map warehouse customer rows onto configured customers.

        Region/subsidiary ids from the rows are carried onto the entities.
        Customers missing from configuration are logged and skipped.
        """
        entities: List[Entity] = []
        seen = set()
        for row in rows:
            customer_id = str(row.get("customer_id") or row.get("customer_internal_id") or "").strip()
            if not customer_id or customer_id in seen:
                continue
            seen.add(customer_id)
            configured = self.customers.get(customer_id)
            if configured is None:
                logger.warning(f"Customer {customer_id} ({row.get('label')}) not found in customer configuration")
                continue
            entities.append(replace(
                configured,
                region_id=_str_or_none(row.get("region_id", row.get("region_internal_id"))),
                subsidiary_id=_str_or_none(row.get("subsidiary_id", row.get("subsidiary_internal_id"))),
            ))
        return entities

    def group_by_tags(self, entities: Iterable[Entity]) -> List[TagGroup]:
        return group_customers_by_district_tags(entities, self.districts)

    def group_by_region(self, entities: Iterable[Entity]) -> List[Tuple[OrgUnit, List[Entity]]]:
        """Entities grouped by region, regions in configuration order."""
        by_region: Dict[str, List[Entity]] = {}
        for entity in entities:
            if not entity.region_id:
                logger.warning(f"Customer {entity.id} has no region id")
                continue
            by_region.setdefault(entity.region_id, []).append(entity)

        result: List[Tuple[OrgUnit, List[Entity]]] = []
        known = set()
        for region in self.regions.values():
            if region.internal_id in by_region and region.internal_id not in known:
                known.add(region.internal_id)
                result.append((region, by_region[region.internal_id]))

        for region_id in by_region:
            if region_id not in known:
                logger.warning(f"Region {region_id} not found in region configuration; skipping its customers")
        return result

    # ---- selectable items ---------------------------------------------

    def selectable_districts(self) -> List[SelectableItem]:
        return _selectable_with_tags(
            self.districts.values(),
            "district",
            lambda d: not d.reporting_excluded and not d.display_excluded,
        )

    def selectable_regions(self) -> List[SelectableItem]:
        return _selectable_with_tags(self.regions.values(), "region", lambda r: r.is_selectable)

    def selectable_subsidiaries(self) -> List[SelectableItem]:
        return _selectable_with_tags(self.subsidiaries.values(), "subsidiary", lambda s: s.is_selectable)


def _str_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
