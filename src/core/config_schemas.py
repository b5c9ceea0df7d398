"""
Configuration Document Schemas

Pydantic models for the hierarchy configuration documents (account,
customer/district, region, department). Documents are JSON objects keyed
by node id; each entry is validated here so malformed configuration fails
loudly at load time instead of part-way through a report.

Lenient by design of the documents themselves:
- unknown keys are kept (documents carry UI-only fields)
- boolean flags accept true/false, "T"/"F", 0/1 and null
- a `tags` field that is not a list of strings is treated as empty
"""
import logging
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from src.core.error_taxonomy import ConfigurationError

logger = logging.getLogger(__name__)

_TRUE_STRINGS = {"true", "t", "1", "yes", "y"}


def _coerce_flag(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def _coerce_id(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _coerce_tags(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [t.strip() for t in value if isinstance(t, str) and t.strip()]


class _ConfigEntry(BaseModel):
    """Fields shared by every hierarchy document entry."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    label: Optional[str] = None
    parent: Optional[str] = None
    display_excluded: bool = Field(False, alias="displayExcluded")

    @field_validator("parent", mode="before")
    @classmethod
    def normalize_parent_as_id(cls, v):
        return _coerce_id(v)

    @field_validator("label", mode="before")
    @classmethod
    def normalize_label_as_text(cls, v):
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    @field_validator("display_excluded", mode="before")
    @classmethod
    def normalize_display_flag(cls, v):
        return _coerce_flag(v)


class AccountConfigEntry(_ConfigEntry):
    """One node of account_config.json."""
    account_internal_id: Optional[str] = None
    operational_excluded: bool = Field(False, alias="operationalExcluded")
    double_lines: bool = Field(False, alias="doubleLines")

    @field_validator("account_internal_id", mode="before")
    @classmethod
    def normalize_account_id(cls, v):
        return _coerce_id(v)

    @field_validator("operational_excluded", "double_lines", mode="before")
    @classmethod
    def normalize_flags(cls, v):
        return _coerce_flag(v)


class CustomerConfigEntry(_ConfigEntry):
    """One node of customer_config.json (a district or a customer/facility)."""
    is_district: bool = Field(False, alias="isDistrict")
    tags: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("tags", "districtTags"),
    )
    district_reporting_excluded: bool = Field(False, alias="districtReportingExcluded")
    customer_internal_id: Optional[str] = None
    start_date_est: Optional[str] = None

    @field_validator("is_district", "district_reporting_excluded", mode="before")
    @classmethod
    def normalize_flags(cls, v):
        return _coerce_flag(v)

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, v):
        return _coerce_tags(v)

    @field_validator("customer_internal_id", "start_date_est", mode="before")
    @classmethod
    def normalize_ids(cls, v):
        return _coerce_id(v)


class RegionConfigEntry(_ConfigEntry):
    """One node of region_config.json."""
    region_internal_id: Optional[str] = None
    operational_excluded: bool = Field(False, alias="operationalExcluded")
    tags: List[str] = Field(default_factory=list)

    @field_validator("region_internal_id", mode="before")
    @classmethod
    def normalize_region_id(cls, v):
        return _coerce_id(v)

    @field_validator("operational_excluded", mode="before")
    @classmethod
    def normalize_flags(cls, v):
        return _coerce_flag(v)

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, v):
        return _coerce_tags(v)


class DepartmentConfigEntry(_ConfigEntry):
    """One node of department_config.json (subsidiaries)."""
    subsidiary_internal_id: Optional[str] = None
    operational_excluded: bool = Field(False, alias="operationalExcluded")
    tags: List[str] = Field(default_factory=list)

    @field_validator("subsidiary_internal_id", mode="before")
    @classmethod
    def normalize_subsidiary_id(cls, v):
        return _coerce_id(v)

    @field_validator("operational_excluded", mode="before")
    @classmethod
    def normalize_flags(cls, v):
        return _coerce_flag(v)

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, v):
        return _coerce_tags(v)


EntryT = TypeVar("EntryT", bound=_ConfigEntry)


def validate_document(
    raw: Any,
    schema: Type[EntryT],
    document_name: str,
) -> Dict[str, EntryT]:
    """
    Validate a whole configuration document.

    Returns:
        Dict of node id -> validated entry, in document order.

    Raises:
        ConfigurationError: if the document is not an object or an entry
            fails validation.
    """
    if not isinstance(raw, dict):
        raise ConfigurationError(
            f"{document_name} must be a JSON object keyed by node id, got {type(raw).__name__}",
            document=document_name,
        )

    entries: Dict[str, EntryT] = {}
    for node_id, entry in raw.items():
        if not isinstance(entry, dict):
            logger.warning(f"{document_name}: skipping node {node_id} (not an object)")
            continue
        try:
            entries[str(node_id)] = schema.model_validate(entry)
        except ValidationError as e:
            raise ConfigurationError(
                f"{document_name}: node {node_id} is invalid: {e}",
                document=document_name,
                context={"node_id": str(node_id)},
            ) from e

    logger.debug(f"Validated {len(entries)} entries in {document_name}")
    return entries
