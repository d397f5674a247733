"""HTTP client for the DBHub Content API."""

from pathlib import Path
from typing import Any
import json

import httpx
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, DownloadColumn

from .config import CLIConfig, get_config


class APIError(Exception):
    """API error with status code and details."""

    def __init__(self, status_code: int, message: str, details: dict | None = None):
        self.status_code = status_code
        self.message = message
        self.details = details or {}
        super().__init__(f"[{status_code}] {message}")


def _error_message(body: bytes, status_code: int) -> tuple[str, dict]:
    """Pull the message out of an error body.

    Content errors are {"error", "message"}; authentication errors arrive
    wrapped as {"detail": {"error", "message"}}.
    """
    try:
        data = json.loads(body.decode())
    except (UnicodeDecodeError, json.JSONDecodeError):
        return body.decode(errors="replace") or f"HTTP {status_code}", {}

    if isinstance(data, dict) and isinstance(data.get("detail"), dict):
        data = data["detail"]
    if not isinstance(data, dict):
        return str(data), {}
    message = data.get("message", data.get("detail", f"HTTP {status_code}"))
    return str(message), data.get("details") or {}


class DBHubClient:
    """HTTP client for the DBHub Content API."""

    def __init__(self, config: CLIConfig | None = None, verbose: bool = False):
        self.config = config or get_config()
        self.verbose = verbose
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None:
            headers = {}
            if self.config.api_key:
                headers["Authorization"] = f"Bearer {self.config.api_key}"
            self._client = httpx.Client(
                base_url=self.config.url,
                headers=headers,
                timeout=60.0,
            )
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            self._client.close()
            self._client = None

    def __enter__(self) -> "DBHubClient":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def _check(self, response: httpx.Response) -> httpx.Response:
        if self.verbose:
            print(f"  -> {response.status_code} ({response.elapsed.total_seconds():.2f}s)")

        if response.status_code >= 400:
            message, details = _error_message(response.content, response.status_code)
            raise APIError(response.status_code, message, details)
        return response

    def get_json(self, path: str, params: dict | None = None) -> dict[str, Any]:
        """GET a JSON document. An empty result ({}) is returned as {}."""
        if self.verbose:
            print(f"GET {path}")
        response = self._check(self.client.get(path, params=_clean(params)))
        try:
            return response.json()
        except json.JSONDecodeError:
            return {}

    def get_bytes(self, path: str, params: dict | None = None) -> bytes:
        """GET a response body as bytes."""
        if self.verbose:
            print(f"GET {path}")
        return self._check(self.client.get(path, params=_clean(params))).content

    def download_file(
        self,
        path: str,
        output_path: Path,
        params: dict | None = None,
        show_progress: bool = True
    ) -> int:
        """Stream a download to a local path. Returns bytes written."""
        if self.verbose:
            print(f"GET {path} (file download)")

        written = 0
        with self.client.stream("GET", path, params=_clean(params)) as response:
            if response.status_code >= 400:
                message, details = _error_message(response.read(), response.status_code)
                raise APIError(response.status_code, message, details)

            total = int(response.headers.get("content-length", 0))

            with open(output_path, "wb") as f:
                if show_progress and total > 1024 * 1024:  # Show progress for files > 1MB
                    with Progress(
                        SpinnerColumn(),
                        TextColumn("[progress.description]{task.description}"),
                        BarColumn(),
                        DownloadColumn(),
                    ) as progress:
                        task = progress.add_task(f"Downloading to {output_path.name}", total=total or None)
                        for chunk in response.iter_bytes(chunk_size=8192):
                            f.write(chunk)
                            written += len(chunk)
                            progress.update(task, advance=len(chunk))
                else:
                    for chunk in response.iter_bytes(chunk_size=8192):
                        f.write(chunk)
                        written += len(chunk)

        return written


def _clean(params: dict | None) -> dict | None:
    """Drop unset query parameters."""
    if params is None:
        return None
    return {k: v for k, v in params.items() if v not in (None, "")}


def get_client(verbose: bool = False) -> DBHubClient:
    """Get a configured API client."""
    config = get_config()
    errors = config.validate()
    if errors:
        raise ValueError("\n".join(errors))
    return DBHubClient(config, verbose=verbose)
