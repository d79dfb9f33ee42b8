#!/usr/bin/env python
import logging
import math
import os
import sys
from dataclasses import dataclass
from http.cookiejar import DefaultCookiePolicy
from types import TracebackType
from typing import Mapping
from typing import Optional
from typing import Tuple
from typing import Union
from urllib.parse import unquote

import requests
from requests.auth import AuthBase
from requests.structures import CaseInsensitiveDict

from davkit import __version__
from davkit.lib import error
from davkit.lib.auth import Credentials
from davkit.lib.cookies import MemoryCookieStore
from davkit.lib.python_utilities import to_normal_str
from davkit.lib.python_utilities import to_wire
from davkit.lib.tls import CertificateTrustManager
from davkit.lib.tls import certificate_fingerprint
from davkit.lib.tls import fetch_server_certificate
from davkit.lib.tls import TLSAdapter
from davkit.lib.url import URL
from davkit.protocol.operations import DAVProtocol
from davkit.protocol.types import AUTO_REDIRECT_METHODS
from davkit.protocol.types import DAVRequest
from davkit.protocol.types import DAVResponse

if sys.version_info < (3, 11):
    from typing_extensions import Self
else:
    from typing import Self

log = logging.getLogger(__name__)

## PROPFIND and REPORT carry a body that defines the request; a generic
## redirect handler would turn them into a GET.  We follow them ourselves.
MANUAL_REDIRECT_METHODS = frozenset(("PROPFIND", "REPORT"))
REDIRECT_STATUSES = frozenset((301, 302, 303, 307, 308))
MAX_REDIRECTS = 5


@dataclass(frozen=True)
class Timeouts:
    """
    Connect, write and read timeouts in seconds.  All of them are
    mandatory and finite.  urllib3 has one socket timeout for
    everything after the connect, so the larger of write and read
    is used there.
    """

    connect: float = 30
    write: float = 30
    read: float = 120

    def __post_init__(self) -> None:
        for name in ("connect", "write", "read"):
            value = getattr(self, name)
            if value is None or not math.isfinite(value) or value <= 0:
                raise ValueError("%s timeout must be a positive number, not %r" % (name, value))

    @classmethod
    def uniform(cls, seconds: Union[float, str]) -> "Timeouts":
        seconds = float(seconds)
        return cls(connect=seconds, write=seconds, read=seconds)

    def as_requests(self) -> Tuple[float, float]:
        return (self.connect, max(self.write, self.read))


def _to_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "yes", "true", "on")
    return bool(value)


def _same_origin_for_auth(origin: URL, target: URL) -> bool:
    """
    Whether credentials meant for ``origin`` may be sent to ``target``:
    same host, and no downgrade from https to http.
    """
    if (target.hostname or "").lower() != (origin.hostname or "").lower():
        return False
    return not (origin.scheme.lower() == "https" and target.scheme.lower() != "https")


class DAVClient:
    """
    Basic client for webdav, uses the requests lib; gives access to
    low-level operations towards the DAV server.

    All requests are blocking.  The resource operations themselves
    are in :class:`davkit.davobject.DAVObject`, the discovery in
    :class:`davkit.discovery.DavResourceFinder`.
    """

    url: Optional[URL] = None
    huge_tree: bool = False

    def __init__(
        self,
        url: Optional[str] = None,
        credentials: Optional[Credentials] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        token: Optional[str] = None,
        preemptive_auth: Union[bool, str] = False,
        auth: Optional[AuthBase] = None,
        timeouts: Optional[Timeouts] = None,
        timeout: Union[float, str, None] = None,
        ssl_context=None,
        trust_manager: Optional[CertificateTrustManager] = None,
        cookie_store: Optional[MemoryCookieStore] = None,
        headers: Optional[Mapping[str, str]] = None,
        max_redirects: int = MAX_REDIRECTS,
        huge_tree: bool = False,
    ) -> None:
        """
        Sets up a requests session.  Nothing is sent to the server.

        Args:
          url: Base URL; relative request URLs are resolved against it.
            User information in the URL is used as credentials.
          credentials: A :class:`Credentials` object.  Alternatively,
            pass username, password (or token) and preemptive_auth.
          auth: A requests.auth.AuthBase object, overrides the credentials.
          timeouts: A :class:`Timeouts`; ``timeout`` sets all three to
            the same value.  Defaults: connect 30s, write 30s, read 120s.
          ssl_context: The ssl.SSLContext to use, see
            :func:`davkit.lib.tls.create_ssl_context`.
          trust_manager: Asked about certificates that could not be
            verified.
          cookie_store: A :class:`MemoryCookieStore`, may be shared
            between clients.  A private one is created if not given.
          max_redirects: Bound for consecutive redirects.
          huge_tree: boolean, enable XMLParser huge_tree to handle big
            responses, beware of security issues, see
            https://lxml.de/api/lxml.etree.XMLParser-class.html
        """
        self.url = URL.objectify(url) if url else None
        if self.url is not None and self.url.username is not None:
            username = unquote(self.url.username)
            password = unquote(self.url.password or "")
            self.url = self.url.unauth()
        log.debug("url: %s", self.url)

        if credentials is None and (username is not None or password or token):
            credentials = Credentials(
                username=username,
                password=password,
                token=token,
                preemptive=_to_bool(preemptive_auth),
            )
        self.credentials = credentials
        self.auth = auth or (credentials.auth() if credentials else None)

        if timeouts is None:
            timeouts = Timeouts.uniform(timeout) if timeout is not None else Timeouts()
        self.timeouts = timeouts
        self.max_redirects = max_redirects
        self.huge_tree = huge_tree
        self.trust_manager = trust_manager
        self.cookie_store = cookie_store if cookie_store is not None else MemoryCookieStore()
        self.protocol = DAVProtocol(huge_tree=huge_tree)

        self.session = requests.Session()
        ## cookies are handled by our own store
        self.session.cookies.set_policy(DefaultCookiePolicy(allowed_domains=[]))
        self.adapter = TLSAdapter(ssl_context=ssl_context)
        self.session.mount("https://", self.adapter)

        # Build global headers
        self.headers = CaseInsensitiveDict(
            {
                "User-Agent": "davkit/" + __version__,
                "Accept-Encoding": "gzip",
            }
        )
        self.headers.update(headers or {})

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: Optional[BaseException] = None,
        exc_value: Optional[BaseException] = None,
        traceback: Optional[TracebackType] = None,
    ) -> None:
        self.close()

    def close(self) -> None:
        """
        Closes the DAVClient's session object
        """
        self.session.close()

    def execute(self, request: DAVRequest) -> DAVResponse:
        """Runs a request built by :class:`davkit.protocol.DAVProtocol`"""
        return self.request(
            request.url, request.method.value, request.body, request.headers
        )

    def request(
        self,
        url: Union[URL, str],
        method: str = "GET",
        body: Union[str, bytes, None] = None,
        headers: Optional[Mapping[str, str]] = None,
        follow_redirects: bool = True,
    ) -> DAVResponse:
        """
        Sends a request and returns the response, whatever its status.

        Redirects are followed for OPTIONS, GET, PUT, DELETE, PROPFIND
        and REPORT with the same method, body and headers, up to
        ``max_redirects`` consecutive hops.  The returned response
        carries the URL that finally answered.  Credentials are not
        sent on after a redirect to another host or from https to http.

        Raises:
          RedirectLimitError: the server is still redirecting after
            ``max_redirects`` requests
          requests.RequestException: transport errors
        """
        method = method.upper()
        url_obj = URL.objectify(url)
        if self.url is not None:
            url_obj = self.url.join(url_obj)

        combined_headers = self.headers.copy()
        combined_headers.update(headers or {})
        if body is None or body == b"" or body == "":
            combined_headers.pop("Content-Type", None)
            body = None

        follow = follow_redirects and (
            method in AUTO_REDIRECT_METHODS or method in MANUAL_REDIRECT_METHODS
        )

        origin = url_obj
        auth = self.auth
        for _ in range(self.max_redirects):
            r = self._send(method, url_obj, body, combined_headers, auth)
            location = r.headers.get("Location")
            if not (follow and r.status_code in REDIRECT_STATUSES and location):
                return self._response(r, url_obj)
            target = url_obj.join(location)
            log.debug(
                "%s %s redirected (%i) to %s", method, url_obj, r.status_code, target
            )
            if auth is not None or "Authorization" in combined_headers:
                if not _same_origin_for_auth(origin, target):
                    log.info(
                        "redirect to %s leaves %s, not sending credentials there",
                        target.hostname,
                        origin.hostname,
                    )
                    auth = None
                    combined_headers.pop("Authorization", None)
            url_obj = target

        raise error.RedirectLimitError(
            url=str(url_obj),
            reason="still redirected after %i requests" % self.max_redirects,
        )

    def _send(self, method: str, url: URL, body, headers, auth) -> requests.Response:
        headers = headers.copy()
        cookie = self.cookie_store.cookie_header(url)
        if cookie and "Cookie" not in headers:
            headers["Cookie"] = cookie

        log.debug(
            "sending request - method=%s, url=%s, headers=%s\nbody:\n%s",
            method,
            url,
            dict(headers),
            to_normal_str(body) if log.isEnabledFor(logging.DEBUG) else "",
        )

        try:
            r = self._session_request(method, url, body, headers, auth)
        except requests.exceptions.SSLError:
            if not self._accept_certificate(url):
                raise
            r = self._session_request(method, url, body, headers, auth)

        log.debug("server responded with %i %s", r.status_code, r.reason)
        for response in list(getattr(r, "history", None) or []) + [r]:
            self.cookie_store.save_from_response(url, response)
        return r

    def _session_request(self, method: str, url: URL, body, headers, auth) -> requests.Response:
        return self.session.request(
            method,
            str(url),
            data=to_wire(body),
            headers=headers,
            auth=auth,
            timeout=self.timeouts.as_requests(),
            allow_redirects=False,
        )

    def _accept_certificate(self, url: URL) -> bool:
        """
        Asks the trust manager about the certificate the server
        presents.  On acceptance it's added to the trust store.
        """
        if self.trust_manager is None or url.scheme != "https":
            return False
        try:
            pem = fetch_server_certificate(
                url.hostname, url.port or 443, self.timeouts.connect
            )
        except (OSError, ValueError):
            log.warning("could not fetch the certificate of %s", url.hostname, exc_info=True)
            return False
        fingerprint = certificate_fingerprint(pem)
        if not self.trust_manager.is_trusted(url.hostname, pem, fingerprint):
            return False
        self.adapter.trust_certificate(pem)
        return True

    def _response(self, r: requests.Response, url: URL) -> DAVResponse:
        response = DAVResponse(
            status=r.status_code,
            headers=CaseInsensitiveDict(r.headers or {}),
            body=r.content or b"",
            url=str(url),
            reason=r.reason or "",
        )
        if response.body and log.isEnabledFor(logging.DEBUG):
            log.debug("response body:\n%s", to_normal_str(response.body))
        return response


def get_davclient(
    check_config_file: bool = True,
    config_file: Optional[str] = None,
    config_section: Optional[str] = None,
    environment: bool = True,
    **config_data,
) -> Optional["DAVClient"]:
    """
    This function will yield a DAVClient object.  It will not try to
    connect.  It will read configuration from various sources,
    dependent on the parameters given, in this order:

    * Data from the parameters given
    * Environment variables prepended with `DAVKIT_`, like `DAVKIT_URL`,
      `DAVKIT_USERNAME`, `DAVKIT_PASSWORD`, `DAVKIT_TOKEN`,
      `DAVKIT_PREEMPTIVE_AUTH` and `DAVKIT_TIMEOUT`.
      `DAVKIT_CONFIG_FILE` and `DAVKIT_CONFIG_SECTION` select the
      configuration file.
    * Configuration file, see :mod:`davkit.config`.  Keys are
      prepended with `davkit_`, `davkit_user` and `davkit_pass` are
      accepted for username and password.

    Returns None if no configuration was found.
    """
    if config_data:
        return DAVClient(**config_data)

    if environment:
        conf = {}
        for conf_key in (
            x
            for x in os.environ
            if x.startswith("DAVKIT_")
            and not x.startswith("DAVKIT_CONFIG")
            and x != "DAVKIT_DEBUGMODE"
        ):
            conf[conf_key[7:].lower()] = os.environ[conf_key]
        if conf:
            return DAVClient(**conf)
        if not config_file:
            config_file = os.environ.get("DAVKIT_CONFIG_FILE")
        if not config_section:
            config_section = os.environ.get("DAVKIT_CONFIG_SECTION")

    if check_config_file:
        from . import config

        if not config_section:
            config_section = "default"

        cfg = config.read_config(config_file)
        if cfg:
            section = config.config_section(cfg, config_section)
            conn_params = {}
            for k in section:
                if k.startswith("davkit_") and section[k]:
                    key = k[7:]
                    if key == "pass":
                        key = "password"
                    if key == "user":
                        key = "username"
                    conn_params[key] = section[k]
            if conn_params:
                return DAVClient(**conn_params)
    return None
