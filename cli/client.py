from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the unit compatibility service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def units_for_unit(self, unit_id: int) -> List[int]:
        return self._request("GET", f"/units/{unit_id}/compatible")["unit_ids"]

    def units_for_meters(self, meter_ids: List[int]) -> List[int]:
        return self._request("POST", "/meters/compatible", json={"meter_ids": meter_ids})["unit_ids"]

    def units_for_group(self, group_id: int) -> List[int]:
        return self._request("GET", f"/groups/{group_id}/compatible")["unit_ids"]

    def menu_options(self, group_id: int, kind: str) -> List[Dict[str, Any]]:
        return self._request("GET", f"/groups/{group_id}/{kind}-options")

    def load_hierarchy(self, path: Path) -> Dict[str, Any]:
        return self._request("PUT", "/hierarchy", json=self._read_json(path))

    def load_conversion_array(self, path: Path) -> Dict[str, Any]:
        return self._request("PUT", "/conversion-array", json=self._read_json(path))

    def plan_change(self, group_id: int, change: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", f"/groups/{group_id}/changes", json=change)

    def commit_change(self, group_id: int, change: Dict[str, Any], confirmed: bool) -> Dict[str, Any]:
        return self._request(
            "POST",
            f"/groups/{group_id}/changes/commit",
            json={"change": change, "confirmed": confirmed},
        )

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    @staticmethod
    def _read_json(path: Path) -> Any:
        if not path.is_file():
            raise typer.BadParameter(f"Path {path} is not a file.")
        try:
            return json.loads(path.read_text())
        except json.JSONDecodeError as exc:
            raise typer.BadParameter(f"File {path} is not valid JSON: {exc}") from exc

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: Any = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
