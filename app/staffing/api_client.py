"""HTTP client for the staff read API with a strict response envelope."""

from __future__ import annotations

import logging
from typing import Any

import requests

from app.staffing.errors import ResponseContractError

LOGGER = logging.getLogger(__name__)


def parse_staff_envelope(payload: Any) -> list[dict[str, Any]]:
    """Return ``payload["data"]`` when it is a list of staff objects.

    Only ``{"data": [{"id": ...}, ...]}`` is accepted; any other shape is a
    contract violation.
    """
    if not isinstance(payload, dict) or "data" not in payload:
        raise ResponseContractError("Response is not a {data: [...]} envelope.")
    data = payload["data"]
    if not isinstance(data, list):
        raise ResponseContractError("Response 'data' must be a list.")
    for index, item in enumerate(data):
        if not isinstance(item, dict) or not str(item.get("id") or "").strip():
            raise ResponseContractError(f"Staff item {index} has no id.")
    return data


class StaffApiClient:
    """Thin ``requests`` wrapper for the staff-for-client endpoints."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_sec: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_sec = timeout_sec
        self._session = session or requests.Session()

    def staff_for_client(self, client_id: str) -> list[dict[str, Any]]:
        return self._get_staff("/api/staff-for-client", client_id)

    def legacy_staff_by_client(self, client_id: str) -> list[dict[str, Any]]:
        return self._get_staff("/api/legacy-staff-by-client", client_id)

    def close(self) -> None:
        self._session.close()

    def _get_staff(self, path: str, client_id: str) -> list[dict[str, Any]]:
        url = f"{self._base_url}{path}"
        response = self._session.get(
            url, params={"clientId": client_id}, timeout=self._timeout_sec
        )
        response.raise_for_status()
        try:
            payload = response.json()
        except ValueError as exc:
            raise ResponseContractError(f"Response from {path} is not JSON.") from exc
        staff = parse_staff_envelope(payload)
        LOGGER.debug("Fetched %s staff from %s", len(staff), path)
        return staff
