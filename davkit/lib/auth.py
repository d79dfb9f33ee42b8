"""
Authentication for DAVClient.

Two modes are supported:

* preemptive - Basic credentials go with every request
  (:class:`requests.auth.HTTPBasicAuth`)
* challenge-response - the credentials are only sent after the server
  asked for them with a 401 (:class:`ChallengeAuth`).  Basic is used
  if the server offers it, else Digest.

A token without a username is sent as ``Authorization: Bearer``.
"""

import logging
from dataclasses import dataclass
from dataclasses import field
from typing import Optional

from requests.auth import AuthBase
from requests.auth import HTTPBasicAuth
from requests.auth import HTTPDigestAuth
from requests.auth import _basic_auth_str

from davkit.lib.python_utilities import to_normal_str

log = logging.getLogger(__name__)


def extract_auth_types(header: str) -> set:
    """
    Extract authentication types from WWW-Authenticate header.

    Example:
        >>> sorted(extract_auth_types('Basic realm="test", Digest realm="test"'))
        ['basic', 'digest']

    Reference:
        https://developer.mozilla.org/en-US/docs/Web/HTTP/Headers/WWW-Authenticate#syntax
    """
    return {h.split()[0] for h in header.lower().split(",") if h.strip() and "=" not in h.split()[0]}


class HTTPBearerAuth(AuthBase):
    def __init__(self, password: str) -> None:
        self.password = password

    def __eq__(self, other: object) -> bool:
        return self.password == getattr(other, "password", None)

    def __ne__(self, other: object) -> bool:
        return not self == other

    def __call__(self, r):
        r.headers["Authorization"] = f"Bearer {self.password}"
        return r


class ChallengeAuth(HTTPBasicAuth):
    """
    Credentials sent only as answer to a 401 challenge.  Basic is
    used when the challenge offers it, Digest when that is all the
    server offers (handled by :class:`requests.auth.HTTPDigestAuth`).
    A request that already carried an Authorization header is never
    retried, so wrong credentials give one 401 and not a loop.
    """

    def __init__(self, username, password) -> None:
        super().__init__(username, password)
        self.digest = HTTPDigestAuth(to_normal_str(username), to_normal_str(password))

    def __call__(self, r):
        r.register_hook("response", self.handle_401)
        return r

    def handle_401(self, r, **kwargs):
        if r.status_code != 401:
            return r

        challenge = r.headers.get("WWW-Authenticate", "")
        auth_types = extract_auth_types(challenge)
        if "basic" not in auth_types and "digest" not in auth_types:
            log.debug("401 without Basic or Digest challenge (%s), not authenticating", challenge)
            return r

        if "Authorization" in r.request.headers:
            log.info("credentials were rejected by %s", r.request.url)
            return r

        if "basic" not in auth_types:
            log.debug("answering Digest challenge of %s", r.request.url)
            self.digest.init_per_thread_state()
            self.digest._thread_local.num_401_calls = 1
            self.digest._thread_local.pos = None
            return self.digest.handle_401(r, **kwargs)

        # Consume content and release the original connection
        # to allow our new request to reuse the same one.
        r.content
        r.close()
        prep = r.request.copy()
        prep.headers["Authorization"] = _basic_auth_str(self.username, self.password)
        _r = r.connection.send(prep, **kwargs)
        _r.history.append(r)
        _r.request = prep
        return _r


@dataclass
class Credentials:
    """
    What we authenticate with.  Owned by the caller; the password and
    the token never show up in repr() or in logs.
    """

    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    token: Optional[str] = field(default=None, repr=False)
    preemptive: bool = False

    def auth(self) -> Optional[AuthBase]:
        """The requests auth object for these credentials, or None"""
        if self.username is None:
            if self.token or self.password:
                return HTTPBearerAuth(self.token or self.password)
            return None
        username = self.username.encode("utf-8")
        password = (self.password or "").encode("utf-8")
        if self.preemptive:
            return HTTPBasicAuth(username, password)
        return ChallengeAuth(username, password)
