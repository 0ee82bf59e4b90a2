"""Finding a working way to reach the kubelet."""

from __future__ import annotations

import logging
import posixpath
from contextlib import closing
from dataclasses import dataclass, field
from http import HTTPStatus
from pathlib import Path
from typing import Any, Callable
from urllib.parse import urlsplit, urlunsplit

import requests
from requests.auth import AuthBase

HEALTHZ_PATH = "/healthz"
DEFAULT_HTTP_KUBELET_PORT = 10255
DEFAULT_HTTPS_KUBELET_PORT = 10250

_API_PROXY_PATH = "/api/v1/nodes/{}/proxy/"
_HTTP = "http"
_HTTPS = "https"


def _join_path(*parts: str) -> str:
    joined = "/".join(part for part in parts if part)
    return posixpath.normpath(joined) if joined else ""


def _join_host_port(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


@dataclass(frozen=True)
class ConnParams:
    """Where the kubelet is reached and the session used to reach it."""

    scheme: str
    host: str
    path: str
    session: Any
    timeout: float | None = None

    @property
    def url(self) -> str:
        return urlunsplit((self.scheme, self.host, self.path, "", ""))


@dataclass
class ConnectorConfig:
    """Settings used to probe the kubelet locally and through the API server."""

    node_name: str
    node_ip: str
    api_host: str = ""
    bearer_token_file: str | None = None
    api_insecure: bool = False
    api_ca_file: str | None = None
    kubelet_port: int = 0
    kubelet_scheme: str = ""
    timeout: float | None = field(default=None)


class _BearerTokenFileAuth(AuthBase):
    """Adds a bearer token read from a file, re-reading it for every request."""

    def __init__(self, token_file: str) -> None:
        self._token_file = Path(token_file)
        self._token = self._read()

    def _read(self) -> str:
        return self._token_file.read_text().strip()

    def __call__(self, request: requests.PreparedRequest) -> requests.PreparedRequest:
        try:
            self._token = self._read()
        except OSError:
            pass
        if self._token:
            request.headers["Authorization"] = f"Bearer {self._token}"
        return request


def check_connection(conn: ConnParams) -> None:
    """Raise ``ConnectionError`` unless the health endpoint answers 200."""
    url = urlunsplit((conn.scheme, conn.host, _join_path(conn.path, HEALTHZ_PATH), "", ""))
    try:
        response = conn.session.request("GET", url, timeout=conn.timeout)
    except OSError as err:
        raise ConnectionError(f'connecting to "{url}": {err}') from err
    with closing(response):
        if response.status_code != HTTPStatus.OK:
            raise ConnectionError(
                f"calling {url} got non-200 status code: {response.status_code}"
            )


class StaticConnector:
    """Hands out a fixed URL and session without probing anything."""

    def __init__(self, session: Any, url: str) -> None:
        self._session = session
        parts = urlsplit(url)
        self._scheme, self._host, self._path = parts.scheme, parts.netloc, parts.path

    def connect(self) -> ConnParams:
        return ConnParams(self._scheme, self._host, self._path, self._session)


class DefaultConnector:
    """Probes the kubelet on the node IP first and then through the API server proxy."""

    def __init__(
        self,
        config: ConnectorConfig,
        node_port_getter: Callable[[str], int],
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._node_port_getter = node_port_getter
        self._logger = logger or logging.getLogger(__name__)

    def connect(self) -> ConnParams:
        """Return the parameters of the first connection that answers its health check."""
        cfg = self._config
        try:
            port = self._port()
        except Exception as err:
            raise ConnectionError(f"getting kubelet port: {err}") from err

        scheme = self._scheme_for(port)
        host = _join_host_port(cfg.node_ip, port)

        self._logger.info(
            'Trying to connect to kubelet locally with scheme="%s" hostURL="%s"', scheme, host
        )
        try:
            auth = _BearerTokenFileAuth(cfg.bearer_token_file) if cfg.bearer_token_file else None
        except OSError as err:
            raise ConnectionError(
                f"creating tripper connecting to kubelet through nodeIP: {err}"
            ) from err

        try:
            conn = self._check_local_connection(auth, scheme, host)
        except ConnectionError as err:
            self._logger.info(
                'Kubelet not reachable locally with scheme="%s" hostURL="%s": %s', scheme, host, err
            )
        else:
            self._logger.info(
                'Connected to Kubelet through nodeIP with scheme="%s" hostURL="%s"', scheme, host
            )
            return conn

        self._logger.info(
            'Trying to connect to kubelet through API proxy "%s" to node "%s"',
            cfg.api_host,
            cfg.node_name,
        )
        try:
            return self._check_connection_api_proxy(auth)
        except ConnectionError as err:
            raise ConnectionError(f"creating connection parameters for API proxy: {err}") from err

    def _port(self) -> int:
        cfg = self._config
        if cfg.kubelet_port:
            self._logger.debug("Setting Port %d as specified by user config", cfg.kubelet_port)
            return cfg.kubelet_port
        try:
            port = int(self._node_port_getter(cfg.node_name))
        except Exception as err:
            raise LookupError(f'getting node "{cfg.node_name}": {err}') from err
        self._logger.debug("Setting Port %d as found in status condition", port)
        return port

    def _scheme_for(self, port: int) -> str:
        if self._config.kubelet_scheme:
            self._logger.debug(
                "Setting Kubelet Endpoint Scheme %s as specified by user config",
                self._config.kubelet_scheme,
            )
            return self._config.kubelet_scheme
        if port == DEFAULT_HTTP_KUBELET_PORT:
            return _HTTP
        if port == DEFAULT_HTTPS_KUBELET_PORT:
            return _HTTPS
        self._logger.info(
            "Cannot automatically figure out scheme from non-standard port %d, "
            "please set kubelet.scheme in the config file.",
            port,
        )
        return ""

    def _check_local_connection(self, auth: AuthBase | None, scheme: str, host: str) -> ConnParams:
        if scheme == _HTTP:
            probes = [lambda: self._check_http(host)]
        elif scheme == _HTTPS:
            probes = [lambda: self._check_https(host, auth)]
        else:
            self._logger.info(
                "Checking both HTTP and HTTPS since the scheme was not detected automatically, "
                "you can set kubelet.scheme to avoid this behaviour"
            )
            probes = [lambda: self._check_https(host, auth), lambda: self._check_http(host)]

        last_error: ConnectionError | None = None
        for probe in probes:
            try:
                return probe()
            except ConnectionError as err:
                last_error = err
        raise ConnectionError(f"no connection succeeded through localhost: {last_error}")

    def _check_http(self, host: str) -> ConnParams:
        self._logger.debug("testing kubelet connection over plain http to %s", host)
        conn = ConnParams(_HTTP, host, "", requests.Session(), self._config.timeout)
        check_connection(conn)
        return conn

    def _check_https(self, host: str, auth: AuthBase | None) -> ConnParams:
        self._logger.debug("testing kubelet connection over https to %s", host)
        session = requests.Session()
        # The kubelet's serving certificate cannot be verified like the API server's.
        session.verify = False
        session.auth = auth
        conn = ConnParams(_HTTPS, host, "", session, self._config.timeout)
        check_connection(conn)
        return conn

    def _check_connection_api_proxy(self, auth: AuthBase | None) -> ConnParams:
        cfg = self._config
        api_url = urlsplit(cfg.api_host)
        if not api_url.scheme or not api_url.netloc:
            raise ConnectionError(
                f"parsing kubernetes api url from in cluster config: {cfg.api_host!r}"
            )

        session = requests.Session()
        session.auth = auth
        if cfg.api_insecure:
            session.verify = False
        elif cfg.api_ca_file:
            session.verify = cfg.api_ca_file

        conn = ConnParams(
            api_url.scheme,
            api_url.netloc,
            _join_path(_API_PROXY_PATH.format(cfg.node_name)),
            session,
            cfg.timeout,
        )
        self._logger.debug(
            "Testing kubelet connection through API proxy: %s%s", api_url.netloc, conn.path
        )
        try:
            check_connection(conn)
        except ConnectionError as err:
            raise ConnectionError(f"checking connection via API proxy: {err}") from err
        return conn