"""
A minimal in-memory cookie store.

Cookies are stored by the exact URL of the request that received
them, and only sent back to that same URL.  There is no domain or
path scoping as described in RFC 6265, so a cookie set by
``/dav/principals/`` is not sent to ``/dav/calendars/``.  This is
enough for servers that use cookies to keep a session for a resource,
and it is a known limitation.

One store may be shared between several clients and threads.
"""

import logging
import threading
from http.cookies import CookieError
from http.cookies import SimpleCookie
from typing import Dict
from typing import List
from typing import Optional

from davkit.lib.url import URL

log = logging.getLogger(__name__)


def _key(url) -> str:
    return str(URL.objectify(url).normalize())


def set_cookie_headers(response) -> List[str]:
    """All Set-Cookie header values of a requests response"""
    values: List[str] = []
    raw_headers = getattr(getattr(response, "raw", None), "headers", None)
    if raw_headers is not None and hasattr(raw_headers, "getlist"):
        values = [x for x in raw_headers.getlist("Set-Cookie") if isinstance(x, str)]
    if not values:
        value = response.headers.get("Set-Cookie")
        if value:
            values = [value]
    return values


class MemoryCookieStore:
    def __init__(self) -> None:
        self._cookies: Dict[str, Dict[str, str]] = {}
        self._lock = threading.Lock()

    def save(self, url, set_cookie_values: List[str]) -> None:
        """Stores cookies from Set-Cookie header values received for ``url``"""
        if not set_cookie_values:
            return
        key = _key(url)
        with self._lock:
            jar = self._cookies.setdefault(key, {})
            for value in set_cookie_values:
                cookie = SimpleCookie()
                try:
                    cookie.load(value)
                except CookieError:
                    log.warning("ignoring unparsable cookie from %s", key)
                    continue
                for name, morsel in cookie.items():
                    if morsel["max-age"] in ("0", "-1"):
                        jar.pop(name, None)
                    else:
                        jar[name] = morsel.value
            if not jar:
                del self._cookies[key]

    def save_from_response(self, url, response) -> None:
        self.save(url, set_cookie_headers(response))

    def load(self, url) -> Dict[str, str]:
        with self._lock:
            return dict(self._cookies.get(_key(url), {}))

    def cookie_header(self, url) -> Optional[str]:
        cookies = self.load(url)
        if not cookies:
            return None
        return "; ".join("%s=%s" % (k, v) for k, v in cookies.items())

    def clear(self) -> None:
        with self._lock:
            self._cookies.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cookies)
