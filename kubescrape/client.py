"""HTTP client for the kubelet."""

from __future__ import annotations

import logging
import posixpath
import time
from typing import Any
from urllib.parse import urlunsplit

import requests

_BACKOFF_SECONDS = 1.0


def _join_path(*parts: str) -> str:
    joined = "/".join(part for part in parts if part)
    return posixpath.normpath(joined) if joined else ""


class KubeletClient:
    """Sends GET requests to the kubelet found by a connector, retrying on failure."""

    def __init__(self, connector, max_retries: int = 0, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._max_retries = max_retries
        if connector is None:
            raise ValueError("connector should not be nil")
        try:
            self._conn = connector.connect()
        except (OSError, ValueError, LookupError) as err:
            raise ConnectionError(f"connecting to kubelet using the connector: {err}") from err

        self._retrying = isinstance(self._conn.session, requests.Session)
        if not self._retrying:
            self._logger.debug("running kubelet client without retries")

    def get(self, url_path: str) -> Any:
        """GET ``url_path`` below the kubelet endpoint and return the response."""
        conn = self._conn
        url = urlunsplit((conn.scheme, conn.host, _join_path(conn.path, url_path), "", ""))
        self._logger.debug("Calling Kubelet endpoint: %s", url)

        if not self._retrying:
            return conn.session.request("GET", url, timeout=conn.timeout)
        return self._get_with_retries(url)

    def _get_with_retries(self, url: str) -> requests.Response:
        attempts = max(1, self._max_retries)
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                response = self._conn.session.request("GET", url, timeout=self._conn.timeout)
            except requests.RequestException as err:
                last_error = err
                self._logger.debug("getting data from kubelet: attempt %d: %s", attempt, err)
            else:
                if response.status_code < 500 or attempt == attempts:
                    return response
                self._logger.debug(
                    "getting data from kubelet: attempt %d: status %d", attempt, response.status_code
                )
                response.close()
            if attempt < attempts:
                time.sleep(attempt * _BACKOFF_SECONDS)
        raise ConnectionError(f"getting {url} from kubelet: {last_error}") from last_error