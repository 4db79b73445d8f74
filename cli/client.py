from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the rockfall monitor service."""

    def __init__(self, config: CLIConfig, transport: Optional[httpx.BaseTransport] = None) -> None:
        self._config = config
        self._client = httpx.Client(
            base_url=config.base_url, timeout=config.timeout, transport=transport
        )

    def close(self) -> None:
        self._client.close()

    def list_mines(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/mines")

    def get_readings(self, mine_id: str, limit: int) -> List[Dict[str, Any]]:
        return self._request(
            "GET",
            f"/mines/{mine_id}/readings",
            params={"limit": limit},
            not_found=f"Mine {mine_id} was not found.",
        )

    def score(self, reading: Dict[str, Any], model: str) -> Dict[str, Any]:
        return self._request("POST", "/risk/score", params={"model": model}, json=reading)

    def generate_mine_data(self) -> Dict[str, Any]:
        return self._request("POST", "/jobs/generate-mine-data")

    def sync_weather_data(self) -> Dict[str, Any]:
        return self._request("POST", "/jobs/sync-weather-data")

    def _request(
        self,
        method: str,
        path: str,
        not_found: Optional[str] = None,
        **kwargs: Any,
    ) -> Any:
        try:
            response = self._client.request(method, path, **kwargs)
            if response.status_code == 404 and not_found:
                raise typer.BadParameter(not_found)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            typer.secho(
                f"Could not reach {self._config.base_url}: {exc}", fg=typer.colors.RED, err=True
            )
            raise typer.Exit(code=1) from exc
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
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
