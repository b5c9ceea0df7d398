"""
Analytics Warehouse Client

Deterministic fact retrieval from the analytics warehouse (BigQuery REST API).

This module handles:
1. Bearer token authentication (static token or OAuth client-credentials)
2. Parameterized SQL execution over the `queries` endpoint, with paging
3. P&L fact queries (month and YTD) filtered by customers, region or subsidiary
4. Customer dimension lookups and available report months

Every fact query increments `fetch_count`, so callers can verify the
fixed number of warehouse round trips per report.
"""
import logging
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, List, Dict, Any, Callable, Tuple

import requests

from config.settings import WarehouseConfig, get_config
from src.core.error_taxonomy import AuthenticationError, WarehouseError
from src.core.fiscal_calendar import FiscalCalendar, get_fiscal_calendar, parse_report_date
from src.data.fact_set import TransactionFact, to_decimal

logger = logging.getLogger(__name__)

MAX_RESULT_PAGES = 100


@dataclass
class FactFilter:
    """
    Which facts to fetch. At least one criterion is required; region and
    subsidiary may be combined (a filtered region/subsidiary report).
    """
    customer_ids: Optional[List[str]] = None
    region_id: Optional[str] = None
    subsidiary_id: Optional[str] = None

    def __post_init__(self):
        if self.customer_ids is not None:
            self.customer_ids = [str(c) for c in self.customer_ids]
        if self.customer_ids is None and not self.region_id and not self.subsidiary_id:
            raise ValueError("FactFilter needs customer_ids, region_id or subsidiary_id")
        if self.customer_ids is not None and not self.customer_ids:
            raise ValueError("FactFilter customer_ids must not be empty")

    def where_clause(self) -> Tuple[str, List[Dict[str, Any]]]:
        """SQL predicate and its named query parameters."""
        clauses = []
        params: List[Dict[str, Any]] = []
        if self.customer_ids is not None:
            clauses.append("CAST(customer_internal_id AS STRING) IN UNNEST(@customer_ids)")
            params.append(_array_param("customer_ids", self.customer_ids))
        if self.region_id:
            clauses.append("CAST(region_internal_id AS STRING) = @region_id")
            params.append(_scalar_param("region_id", "STRING", str(self.region_id)))
        if self.subsidiary_id:
            clauses.append("CAST(subsidiary_internal_id AS STRING) = @subsidiary_id")
            params.append(_scalar_param("subsidiary_id", "STRING", str(self.subsidiary_id)))
        return " AND ".join(clauses), params

    def describe(self) -> str:
        parts = []
        if self.customer_ids is not None:
            parts.append(f"{len(self.customer_ids)} customers")
        if self.region_id:
            parts.append(f"region_internal_id={self.region_id}")
        if self.subsidiary_id:
            parts.append(f"subsidiary_internal_id={self.subsidiary_id}")
        return " AND ".join(parts)


def _scalar_param(name: str, type_: str, value: Any) -> Dict[str, Any]:
    return {
        "name": name,
        "parameterType": {"type": type_},
        "parameterValue": {"value": value},
    }


def _array_param(name: str, values: List[str]) -> Dict[str, Any]:
    return {
        "name": name,
        "parameterType": {"type": "ARRAY", "arrayType": {"type": "STRING"}},
        "parameterValue": {"arrayValues": [{"value": v} for v in values]},
    }


@dataclass
class QueryResult:
    """Rows of a warehouse query with metadata."""
    rows: List[Dict[str, Any]]
    row_count: int
    column_names: List[str]
    execution_time_ms: float
    job_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row_count": self.row_count,
            "column_names": self.column_names,
            "execution_time_ms": self.execution_time_ms,
            "job_id": self.job_id,
        }


class TokenAuthenticator:
    """
    Bearer token provider.

    Uses the configured static access token if present, otherwise the
    OAuth 2.0 client-credentials flow against `token_url`.
    """

    def __init__(self, config: WarehouseConfig):
        self.config = config
        self._access_token: Optional[str] = config.access_token or None
        self._token_expiry: Optional[datetime] = None

    def get_access_token(self) -> str:
        if self.config.access_token:
            return self.config.access_token
        if self._is_token_valid():
            return self._access_token
        return self._refresh_token()

    def _is_token_valid(self) -> bool:
        if not self._access_token or not self._token_expiry:
            return False
        # 5 minute buffer
        return datetime.utcnow() < (self._token_expiry - timedelta(minutes=5))

    def _refresh_token(self) -> str:
        if not (self.config.token_url and self.config.client_id and self.config.client_secret):
            raise AuthenticationError(
                "No warehouse credentials: set WAREHOUSE_ACCESS_TOKEN or "
                "WAREHOUSE_TOKEN_URL/WAREHOUSE_CLIENT_ID/WAREHOUSE_CLIENT_SECRET"
            )

        payload = {
            "grant_type": "client_credentials",
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
        }

        try:
            response = requests.post(self.config.token_url, data=payload, timeout=self.config.timeout_seconds)
            response.raise_for_status()

            token_data = response.json()
            self._access_token = token_data["access_token"]
            expires_in = token_data.get("expires_in", 3600)
            self._token_expiry = datetime.utcnow() + timedelta(seconds=expires_in)

            logger.info("Warehouse access token refreshed successfully")
            return self._access_token

        except (requests.RequestException, KeyError, ValueError) as e:
            logger.error(f"Warehouse authentication failed: {e}")
            raise AuthenticationError(f"Failed to obtain warehouse access token: {e}") from e


class WarehouseRESTClient:
    """
    BigQuery REST client: runs parameterized standard-SQL queries and
    flattens the `{"f": [{"v": ...}]}` row format into dicts.
    """

    def __init__(self, config: WarehouseConfig, authenticator: Optional[TokenAuthenticator] = None,
                 session: Optional[requests.Session] = None):
        self.config = config
        self.authenticator = authenticator or TokenAuthenticator(config)
        self._session = session

    @property
    def base_url(self) -> str:
        return f"{self.config.api_url.rstrip('/')}/projects/{self.config.project_id}"

    def _get_session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update({"Content-Type": "application/json"})
        return self._session

    def _auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.authenticator.get_access_token()}"}

    def execute(self, sql: str, params: List[Dict[str, Any]] = None) -> QueryResult:
        """
        Execute a query and return all result rows.

        Raises:
            AuthenticationError: the token was rejected
            WarehouseError: the query failed or timed out
        """
        start_time = time.monotonic()
        body = {
            "query": sql,
            "useLegacySql": False,
            "parameterMode": "NAMED",
            "queryParameters": params or [],
            "location": self.config.location,
            "timeoutMs": int(self.config.timeout_seconds * 1000),
        }

        payload = self._request("POST", f"{self.base_url}/queries", json=body)
        job_id = (payload.get("jobReference") or {}).get("jobId")

        attempts = 0
        while not payload.get("jobComplete", True):
            attempts += 1
            if attempts > MAX_RESULT_PAGES or not job_id:
                raise WarehouseError("Warehouse query did not complete in time", timeout=True)
            payload = self._request("GET", f"{self.base_url}/queries/{job_id}",
                                    params={"location": self.config.location})

        fields = [f["name"] for f in (payload.get("schema") or {}).get("fields", [])]
        rows = [self._flatten_row(fields, r) for r in payload.get("rows", [])]

        pages = 0
        page_token = payload.get("pageToken")
        while page_token and job_id:
            pages += 1
            if pages > MAX_RESULT_PAGES:
                logger.warning(f"Stopped paging query {job_id} after {MAX_RESULT_PAGES} pages")
                break
            page = self._request("GET", f"{self.base_url}/queries/{job_id}",
                                 params={"pageToken": page_token, "location": self.config.location})
            rows.extend(self._flatten_row(fields, r) for r in page.get("rows", []))
            page_token = page.get("pageToken")

        return QueryResult(
            rows=rows,
            row_count=len(rows),
            column_names=fields,
            execution_time_ms=(time.monotonic() - start_time) * 1000,
            job_id=job_id,
        )

    def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            response = self._get_session().request(
                method, url, headers=self._auth_headers(), timeout=self.config.timeout_seconds, **kwargs
            )
        except requests.Timeout as e:
            logger.error(f"Warehouse request timed out: {e}")
            raise WarehouseError(f"Warehouse request timed out: {e}", timeout=True) from e
        except requests.RequestException as e:
            logger.error(f"Warehouse request failed: {e}")
            raise WarehouseError(f"Warehouse request failed: {e}") from e

        if response.status_code in (401, 403):
            raise AuthenticationError(f"Warehouse rejected credentials (HTTP {response.status_code})")

        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            logger.error(f"Warehouse query failed: {e}")
            raise WarehouseError(
                f"Warehouse query failed: {e}",
                context={"status_code": response.status_code},
            ) from e

        return response.json()

    @staticmethod
    def _flatten_row(fields: List[str], row: Dict[str, Any]) -> Dict[str, Any]:
        values = [cell.get("v") if isinstance(cell, dict) else cell for cell in row.get("f", [])]
        return dict(zip(fields, values))


class WarehouseClient:
    """
    High-level P&L data access.

    This is the interface the report assembler depends on.
    """

    FACTS_SQL = """
        WITH base AS (
            SELECT
                account_internal_id,
                customer_internal_id,
                region_internal_id,
                subsidiary_internal_id,
                scenario,
                value
            FROM `{table}`
            WHERE {period_clause}
              AND {where_clause}
        )
        SELECT
            account_internal_id,
            customer_internal_id,
            region_internal_id,
            subsidiary_internal_id,
            scenario,
            SUM(value) AS value
        FROM base
        GROUP BY
            account_internal_id,
            customer_internal_id,
            region_internal_id,
            subsidiary_internal_id,
            scenario
        ORDER BY
            account_internal_id,
            scenario
    """

    CUSTOMERS_SQL = """
        SELECT DISTINCT
            CAST(customer_internal_id AS STRING) AS customer_id,
            display_name AS label,
            CAST(region_internal_id AS STRING) AS region_id,
            CAST(subsidiary_internal_id AS STRING) AS subsidiary_id
        FROM `{table}`
        WHERE {where_clause}
        ORDER BY label
    """

    DATES_SQL = """
        SELECT DISTINCT time_date AS time
        FROM `{table}`
        WHERE time_date < DATE_TRUNC(CURRENT_DATE(), MONTH)
        ORDER BY time_date DESC
    """

    def __init__(
        self,
        config: Optional[WarehouseConfig] = None,
        rest_client: Optional[WarehouseRESTClient] = None,
        fiscal_calendar: Optional[FiscalCalendar] = None,
    ):
        self.config = config or get_config().warehouse
        self.client = rest_client or WarehouseRESTClient(self.config)
        self.fiscal_calendar = fiscal_calendar or get_fiscal_calendar()
        self._fetch_count = 0

    @property
    def fetch_count(self) -> int:
        """Number of fact queries issued by this client."""
        return self._fetch_count

    def fetch_facts(
        self,
        fact_filter: FactFilter,
        period_date,
        ytd: bool = False,
        label_for: Optional[Callable[[Any], str]] = None,
    ) -> List[TransactionFact]:
        """
        Fetch summed facts for one period.

        Args:
            fact_filter: customers, region and/or subsidiary
            period_date: the report month (any day in it)
            ytd: fetch fiscal-year-to-date through the report month instead
            label_for: maps account_internal_id to an account label

        Returns:
            List of TransactionFact
        """
        period = self.fiscal_calendar.reporting_period(period_date)
        month = period.month_date
        where_clause, params = fact_filter.where_clause()
        params = list(params) + [_scalar_param("date", "DATE", month.isoformat())]

        if ytd:
            period_clause = "time_date BETWEEN @ytd_start AND @date"
            params.append(_scalar_param("ytd_start", "DATE", period.ytd_start.isoformat()))
        else:
            period_clause = "time_date = @date"

        sql = self.FACTS_SQL.format(
            table=self.config.facts_table,
            period_clause=period_clause,
            where_clause=where_clause,
        )

        self._fetch_count += 1
        result = self.client.execute(sql, params)

        facts = [
            TransactionFact(
                account_label=label_for(row.get("account_internal_id")) if label_for
                else str(row.get("account_internal_id")),
                customer_id=_str_or_none(row.get("customer_internal_id")),
                region_id=_str_or_none(row.get("region_internal_id")),
                subsidiary_id=_str_or_none(row.get("subsidiary_internal_id")),
                scenario=str(row.get("scenario") or ""),
                value=to_decimal(row.get("value")),
            )
            for row in result.rows
        ]

        logger.info(
            f"Fetched {len(facts)} {'YTD' if ytd else 'month'} fact rows for "
            f"{fact_filter.describe()} ({month.isoformat()}) in {result.execution_time_ms:.0f}ms"
        )
        return facts

    def _fetch_customers(self, fact_filter: FactFilter) -> List[Dict[str, Any]]:
        where_clause, params = fact_filter.where_clause()
        sql = self.CUSTOMERS_SQL.format(table=self.config.customers_table, where_clause=where_clause)
        rows = self.client.execute(sql, params).rows
        logger.info(f"Found {len(rows)} customers for {fact_filter.describe()}")
        return rows

    def fetch_entities_in_region(self, region_id: str, subsidiary_id: Optional[str] = None) -> List[Dict[str, Any]]:
        return self._fetch_customers(FactFilter(region_id=region_id, subsidiary_id=subsidiary_id))

    def fetch_entities_in_subsidiary(self, subsidiary_id: str, region_id: Optional[str] = None) -> List[Dict[str, Any]]:
        return self._fetch_customers(FactFilter(region_id=region_id, subsidiary_id=subsidiary_id))

    def available_dates(self) -> List[date]:
        """Distinct report months before the current month, newest first."""
        result = self.client.execute(self.DATES_SQL.format(table=self.config.facts_table))
        dates = []
        for row in result.rows:
            value = row.get("time")
            if value:
                dates.append(parse_report_date(value))
        return dates


def _str_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def get_warehouse_client() -> WarehouseClient:
    """Factory function to get a configured warehouse client."""
    return WarehouseClient()
