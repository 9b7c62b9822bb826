# opsbot/reports.py
"""
Pre-built spreadsheet reports kept in a blob container.

Each report key maps to one workbook; the first worksheet is read with
pandas and returned as a list of row mappings keyed by header text.
"""
import io
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from urllib.parse import quote

import httpx
import pandas as pd

from .config import Settings

logger = logging.getLogger(__name__)

EMPTY_CELL = "-"

# key -> (blob path, display title)
REPORT_CATALOG: dict[str, tuple[str, str]] = {
    "account": ("Account Details/Platform, App & Infra.xlsx",
                "Account Details - Platform, App & Infrastructure"),
    "bench": ("Bench Report/Bench Report _August Month.xlsx", "Bench Report (August)"),
    "certification": ("Certification/App and Cloud Certification data - August.xlsx",
                      "Certification Data (August)"),
    "certification-july": ("Certification/App and Cloud Certification Data - July.xlsx",
                           "App and Cloud Certification Data (July)"),
    "certification-august": ("Certification/App and Cloud Certification data - August.xlsx",
                             "App and Cloud Certification Data (August)"),
    "gt-allocation": ("GT's Allocation/Graduate Trainee Allocation Details.xlsx",
                      "Graduate Trainee Allocation Details"),
    "rrf": ("RRF/RRF September.xlsx", "RRF - Request for Resources (September)"),
    "rrf-july": ("RRF/RRF JULY.xlsx", "RRF - Request for Resources (July)"),
    "rrf-august": ("RRF/RRF August.xlsx", "RRF - Request for Resources (August)"),
    "rrf-september": ("RRF/RRF September.xlsx", "RRF - Request for Resources (September)"),
    "utilization": ("Utilization/utilization-report.xlsx", "Utilization Report"),
}


class UnknownReportError(KeyError):
    pass


class ReportFetchError(Exception):
    pass


@dataclass
class Report:
    key: str
    title: str
    worksheet: str
    rows: list[dict] = field(default_factory=list)
    source_url: str = ""
    fetched_at: str = ""

    def as_payload(self) -> dict:
        return {
            "success": True,
            "key": self.key,
            "title": self.title,
            "worksheet": self.worksheet,
            "totalRows": len(self.rows),
            "data": self.rows,
            "sourceUrl": self.source_url,
            "lastFetched": self.fetched_at,
        }


def _is_blank(value) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if value is pd.NaT:
        return True
    return isinstance(value, str) and not value.strip()


def format_cell(value):
    if _is_blank(value):
        return EMPTY_CELL
    if isinstance(value, (datetime, pd.Timestamp)):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if hasattr(value, "item"):
        # numpy scalars
        return format_cell(value.item())
    return value


def parse_workbook(content: bytes) -> tuple[str, list[dict]]:
    """
    Reads the first worksheet. Row 1 holds headers; blank rows and
    blank-header columns are dropped. `_rowIndex` is the sheet row number.
    """
    with pd.ExcelFile(io.BytesIO(content), engine="openpyxl") as xls:
        sheet = xls.sheet_names[0]
        df = pd.read_excel(xls, sheet_name=sheet, header=None, dtype=object)

    if df.empty:
        return sheet, []

    raw = df.values.tolist()
    headers = [None if _is_blank(h) else str(h).strip() for h in raw[0]]

    rows = []
    for offset, cells in enumerate(raw[1:]):
        if all(_is_blank(c) for c in cells):
            continue
        row = {"_rowIndex": offset + 2}
        for header, cell in zip(headers, cells):
            if header:
                row[header] = format_cell(cell)
        rows.append(row)
    return sheet, rows


class ReportProvider:
    def __init__(self, base_url: str, timeout: float = 30.0,
                 client: httpx.AsyncClient | None = None):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReportProvider":
        return cls(settings.report_base_url, settings.report_timeout)

    @staticmethod
    def available() -> list[dict]:
        return [{"key": k, "title": title} for k, (_, title) in REPORT_CATALOG.items()]

    def report_url(self, key: str) -> str:
        if key not in REPORT_CATALOG:
            raise UnknownReportError(key)
        path, _ = REPORT_CATALOG[key]
        encoded = "/".join(quote(part, safe="") for part in path.split("/"))
        return f"{self.base_url}/{encoded}"

    async def fetch_report(self, key: str) -> Report:
        url = self.report_url(key)
        _, title = REPORT_CATALOG[key]
        logger.info("Fetching report %s from %s", key, url)
        try:
            resp = await self._client.get(
                url,
                headers={"Accept": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"},
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Failed to fetch report %s: %s", key, e)
            raise ReportFetchError(f"Could not download report '{key}': {e}") from e

        try:
            sheet, rows = parse_workbook(resp.content)
        except Exception as e:
            logger.error("Failed to parse report %s: %s", key, e)
            raise ReportFetchError(f"Could not read report '{key}': {e}") from e

        return Report(
            key=key,
            title=title,
            worksheet=sheet,
            rows=rows,
            source_url=url,
            fetched_at=datetime.now(timezone.utc).isoformat(),
        )

    async def aclose(self) -> None:
        await self._client.aclose()
