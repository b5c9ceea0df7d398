"""
Configuration Object Store

Reads the hierarchy configuration documents (account, customer/district,
region, department) from a local directory or an HTTP(S) base URL, and
builds the per-request ConfigBundle from them.
"""
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from config.settings import ConfigStoreConfig, get_config
from src.core.error_taxonomy import ConfigurationError
from src.data.account_hierarchy import AccountHierarchy, AccountHierarchyBuilder
from src.data.entity_hierarchy import OrganizationHierarchy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfigBundle:
    """Everything loaded from configuration for one report request."""
    accounts: AccountHierarchy
    organization: OrganizationHierarchy
    section_config: Dict[str, List[str]]


class ConfigStore:
    """
    Read-only access to configuration documents.

    `location` is either a directory path or an http(s):// base URL.
    """

    def __init__(self, config: Optional[ConfigStoreConfig] = None, session: Optional[requests.Session] = None):
        self.config = config or get_config().config_store
        self._session = session

    @property
    def is_remote(self) -> bool:
        return self.config.location.startswith(("http://", "https://"))

    def _get_session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def exists(self, name: str) -> bool:
        if self.is_remote:
            try:
                response = self._get_session().head(self._url(name), timeout=self.config.timeout_seconds)
                return response.ok
            except requests.RequestException:
                return False
        return (Path(self.config.location) / name).is_file()

    def _url(self, name: str) -> str:
        return f"{self.config.location.rstrip('/')}/{name}"

    def get_document(self, name: str) -> Any:
        """
        Fetch and parse one JSON document.

        Raises:
            ConfigurationError: the document is missing or not valid JSON
        """
        if self.is_remote:
            try:
                response = self._get_session().get(self._url(name), timeout=self.config.timeout_seconds)
                response.raise_for_status()
                document = response.json()
            except requests.RequestException as e:
                logger.error(f"Failed to fetch {name} from config store: {e}")
                raise ConfigurationError(f"Could not fetch {name}: {e}", document=name) from e
            except ValueError as e:
                raise ConfigurationError(f"{name} is not valid JSON: {e}", document=name) from e
        else:
            path = Path(self.config.location) / name
            try:
                with open(path, "r", encoding="utf-8") as f:
                    document = json.load(f)
            except FileNotFoundError as e:
                raise ConfigurationError(f"Configuration document not found: {path}", document=name) from e
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"{name} is not valid JSON: {e}", document=name) from e

        size = len(document) if isinstance(document, dict) else 0
        logger.info(f"Loaded {name} ({size} nodes)")
        return document

    def save_document(self, name: str, data: Any) -> Path:
        """Write a document to a local store."""
        if self.is_remote:
            raise ConfigurationError("Saving documents is only supported for local config stores", document=name)
        directory = Path(self.config.location)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        logger.info(f"Saved {name} to {directory}")
        return path

    def _optional_document(self, name: str) -> Any:
        try:
            return self.get_document(name)
        except ConfigurationError as e:
            logger.warning(f"{e}; reports at that level will be unavailable")
            return None

    def load_bundle(self, section_config: Optional[Dict[str, List[str]]] = None) -> ConfigBundle:
        """
        Load and validate all documents.

        The account and customer documents are required; region and
        department documents are optional (district reports work without them).

        Raises:
            ConfigurationError: a required document is missing or invalid
            AccountCycleError: the account hierarchy has a cycle
        """
        cfg = self.config
        accounts = AccountHierarchyBuilder(cfg.account_document).from_document(
            self.get_document(cfg.account_document)
        )
        organization = OrganizationHierarchy.from_documents(
            self.get_document(cfg.customer_document),
            self._optional_document(cfg.region_document),
            self._optional_document(cfg.department_document),
        )
        return ConfigBundle(
            accounts=accounts,
            organization=organization,
            section_config=section_config or get_config().report.section_config,
        )
