"""
Client for the remote report backend, which owns report definitions and
report-generation limits.

``ReportCatalog`` is a request-scoped cache of the definitions: create one
per request (the API dependency does) so a request that touches several
reports fetches the list once, and nothing leaks between requests.
"""

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from reportsql.core.config import settings
from reportsql.models import ReportTemplate

_log = logging.getLogger(__name__)


class ReportSourceError(ValueError):
    """The report backend is disabled, unreachable, or answered with garbage."""


class ReportBackendClient:
    """Thin httpx wrapper: ``X-API-Key`` auth, JSON in and out, fixed timeout."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        *,
        timeout: float | None = None,
        enabled: bool | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.REPORT_BACKEND_URL).rstrip("/")
        self.enabled = settings.REPORT_BACKEND_ENABLED if enabled is None else enabled
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else settings.REPORT_BACKEND_TIMEOUT,
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
                "X-API-Key": api_key if api_key is not None else settings.REPORT_BACKEND_API_KEY,
            },
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ReportBackendClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        if not self.enabled:
            raise ReportSourceError("Report backend is disabled")
        try:
            resp = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            _log.error("Report backend %s %s failed: %s", method, path, e)
            raise ReportSourceError(f"Report backend request failed: {e}") from e
        if resp.status_code != 200:
            _log.warning(
                "Report backend %s %s returned HTTP %s", method, path, resp.status_code
            )
            raise ReportSourceError(
                f"Report backend returned HTTP {resp.status_code}"
            )
        try:
            return resp.json()
        except ValueError as e:
            raise ReportSourceError("Report backend returned invalid JSON") from e

    def fetch_definitions(self) -> list[ReportTemplate]:
        """``GET /reports/definitions`` -> report templates (invalid entries skipped)."""
        body = self._request("GET", "/reports/definitions")
        if not isinstance(body, dict) or not body.get("success"):
            raise ReportSourceError("Invalid response from report backend")
        reports: list[ReportTemplate] = []
        for raw in body.get("data") or []:
            try:
                reports.append(ReportTemplate.model_validate(raw))
            except ValidationError:
                _log.warning("Skipping malformed report definition: %r", raw)
        return reports

    def check_report_limits(self) -> dict[str, Any]:
        """``POST /report-limits/check`` -> ``{"eligible": bool, ...}``."""
        body = self._request("POST", "/report-limits/check", json={})
        if not isinstance(body, dict) or "eligible" not in body:
            raise ReportSourceError("Invalid limits response from report backend")
        return body


class ReportCatalog:
    """Definitions fetched at most once per catalog, indexed by trimmed name."""

    def __init__(self, client: ReportBackendClient) -> None:
        self._client = client
        self._by_name: dict[str, ReportTemplate] | None = None

    def _load(self) -> dict[str, ReportTemplate]:
        if self._by_name is None:
            self._by_name = {r.name: r for r in self._client.fetch_definitions()}
        return self._by_name

    def all(self) -> list[ReportTemplate]:
        return list(self._load().values())

    def get(self, name: str) -> ReportTemplate | None:
        return self._load().get(name.strip())
