"""
Configuration settings for the Facility P&L Reporter.

All connection details come from environment variables, never hardcoded.
The P&L section layout lives in config/report_layout.yaml.
"""
import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, List, Any

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).parent

# Used when report_layout.yaml is missing or unreadable
DEFAULT_SECTION_CONFIG: Dict[str, List[str]] = {
    "REVENUE": ["Income"],
    "COST OF GOODS SOLD": ["Cost of Sales", "Gross Profit"],
    "EXPENSES": ["Expense", "Net Ordinary Income", "Net Income", "Other Income and Expenses"],
}

BIGQUERY_API_URL = "https://bigquery.googleapis.com/bigquery/v2"


@dataclass
class WarehouseConfig:
    """Analytics warehouse (BigQuery REST) configuration."""
    project_id: str = field(default_factory=lambda: os.getenv("WAREHOUSE_PROJECT_ID", ""))
    dataset: str = field(default_factory=lambda: os.getenv("WAREHOUSE_DATASET", "dbt_production"))
    location: str = field(default_factory=lambda: os.getenv("WAREHOUSE_LOCATION", "US"))
    api_url: str = field(default_factory=lambda: os.getenv("WAREHOUSE_API_URL", BIGQUERY_API_URL))

    # Either a static bearer token or OAuth client-credentials
    access_token: str = field(default_factory=lambda: os.getenv("WAREHOUSE_ACCESS_TOKEN", ""))
    token_url: str = field(default_factory=lambda: os.getenv("WAREHOUSE_TOKEN_URL", ""))
    client_id: str = field(default_factory=lambda: os.getenv("WAREHOUSE_CLIENT_ID", ""))
    client_secret: str = field(default_factory=lambda: os.getenv("WAREHOUSE_CLIENT_SECRET", ""))

    timeout_seconds: float = field(
        default_factory=lambda: float(os.getenv("WAREHOUSE_TIMEOUT_SECONDS", "60"))
    )

    @property
    def facts_table(self) -> str:
        return f"{self.dataset}.fct_transactions_summary"

    @property
    def customers_table(self) -> str:
        return f"{self.dataset}.dim_customers"


@dataclass
class ConfigStoreConfig:
    """Where the hierarchy configuration documents are read from."""
    # Local directory or http(s):// base URL
    location: str = field(default_factory=lambda: os.getenv("CONFIG_STORE_LOCATION", "config_store"))
    account_document: str = "account_config.json"
    customer_document: str = "customer_config.json"
    region_document: str = "region_config.json"
    department_document: str = "department_config.json"
    timeout_seconds: float = 30.0


@dataclass
class FiscalConfig:
    """Fiscal calendar configuration."""
    # Month (1-12) the YTD window starts in. 1 = calendar year.
    fiscal_year_start_month: int = field(
        default_factory=lambda: int(os.getenv("FISCAL_YEAR_START_MONTH", "1"))
    )


@dataclass
class ReportConfig:
    """Report assembly and layout settings."""
    income_account: str = "Income"
    revenue_threshold: float = 0.0001
    default_pl_type: str = "Standard"
    company_name: str = field(default_factory=lambda: os.getenv("REPORT_COMPANY_NAME", "Yona Solutions"))
    output_dir: str = field(default_factory=lambda: os.getenv("REPORT_OUTPUT_DIR", ".outputs"))
    layout_file: Path = field(default_factory=lambda: CONFIG_DIR / "report_layout.yaml")

    _layout: Optional[Dict[str, Any]] = field(default=None, repr=False)

    @property
    def layout(self) -> Dict[str, Any]:
        """Report layout loaded from YAML (cached)."""
        if self._layout is None:
            self._layout = load_report_layout(self.layout_file)
        return self._layout

    @property
    def section_config(self) -> Dict[str, List[str]]:
        return self.layout.get("sections") or dict(DEFAULT_SECTION_CONFIG)


@dataclass
class AppConfig:
    """Main application configuration."""
    warehouse: WarehouseConfig = field(default_factory=WarehouseConfig)
    config_store: ConfigStoreConfig = field(default_factory=ConfigStoreConfig)
    fiscal: FiscalConfig = field(default_factory=FiscalConfig)
    report: ReportConfig = field(default_factory=ReportConfig)

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))


def load_report_layout(path: Path) -> Dict[str, Any]:
    """Load the P&L layout YAML, falling back to the built-in sections."""
    fallback = {"sections": dict(DEFAULT_SECTION_CONFIG)}

    if not path.exists():
        logger.warning(f"Report layout not found at {path}. Using default sections.")
        return fallback

    import yaml
    try:
        with open(path, 'r', encoding='utf-8') as f:
            layout = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load report layout: {e}")
        return fallback

    sections = layout.get("sections")
    if not isinstance(sections, dict) or not sections:
        logger.warning(f"Report layout {path} has no sections. Using default sections.")
        layout["sections"] = dict(DEFAULT_SECTION_CONFIG)
    else:
        layout["sections"] = {str(k): [str(a) for a in (v or [])] for k, v in sections.items()}

    logger.info(f"Loaded report layout from {path}")
    return layout


def get_config() -> AppConfig:
    """Factory function to get application configuration."""
    return AppConfig()
