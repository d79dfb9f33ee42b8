#!/usr/bin/env python
import re
import sys
import urllib.parse
from typing import Any
from typing import cast
from typing import Optional
from typing import Union
from urllib.parse import ParseResult
from urllib.parse import quote
from urllib.parse import SplitResult
from urllib.parse import unquote
from urllib.parse import urljoin
from urllib.parse import urlparse
from urllib.parse import urlunparse

from davkit.lib.python_utilities import to_normal_str

if sys.version_info < (3, 11):
    from typing_extensions import Self
else:
    from typing import Self

## characters allowed unescaped in a path segment (RFC 3986 pchar)
SEGMENT_SAFE = ":@!$&'()*+,;=~"


def _remove_dot_segments(path: str) -> str:
    """RFC 3986, section 5.2.4"""
    output = []
    for segment in path.split("/"):
        if segment == ".":
            continue
        if segment == "..":
            if len(output) > 1:
                output.pop()
            continue
        output.append(segment)
    ret = "/".join(output)
    if path.endswith(("/.", "/..")):
        ret += "/"
    if path.startswith("/") and not ret.startswith("/"):
        ret = "/" + ret
    return ret


class URL:
    """
    Wraps a resource location.  All methods that accept URLs can be
    fed either with a URL object, a string or a urlparse result.

    Two URLs compare equal if their normalized forms are equal, see
    :meth:`normalize`.  Collections are always slash-terminated in
    normalized form, so a collection URL and the same URL without
    trailing slash do *not* compare equal; use
    :meth:`strip_trailing_slash` when that distinction doesn't matter.
    """

    def __init__(self, url: Union[str, ParseResult, SplitResult]) -> None:
        if isinstance(url, ParseResult) or isinstance(url, SplitResult):
            self.url_parsed: Optional[Union[ParseResult, SplitResult]] = url
            self.url_raw = None
        else:
            self.url_raw = to_normal_str(url)
            self.url_parsed = None

    def __bool__(self) -> bool:
        if self.url_raw or self.url_parsed:
            return True
        else:
            return False

    def __ne__(self, other: object) -> bool:
        return not self == other

    def __eq__(self, other: object) -> bool:
        if other is None:
            return False
        if str(self) == str(other):
            return True
        other = URL.objectify(other)
        return str(self.normalize()) == str(other.normalize())

    def __hash__(self) -> int:
        return hash(str(self.normalize()))

    @classmethod
    def objectify(cls, url: Union[Self, str, ParseResult, SplitResult, None]) -> "URL":
        if url is None or isinstance(url, URL):
            return url
        else:
            return URL(url)

    # To deal with all kind of methods/properties in the ParseResult
    # class
    def __getattr__(self, attr: str):
        if "url_parsed" not in vars(self):
            raise AttributeError(attr)
        if self.url_parsed is None:
            self.url_parsed = cast(urllib.parse.ParseResult, urlparse(self.url_raw))
        if hasattr(self.url_parsed, attr):
            return getattr(self.url_parsed, attr)
        raise AttributeError(attr)

    def __str__(self) -> str:
        if self.url_raw is None:
            if self.url_parsed is None:
                raise ValueError("Unexpected value None for self.url_parsed")
            self.url_raw = self.url_parsed.geturl()
        return self.url_raw

    def __repr__(self) -> str:
        return "URL(%s)" % str(self)

    def is_collection(self) -> bool:
        return self.path.endswith("/")

    def with_trailing_slash(self) -> "URL":
        if self.path.endswith("/"):
            return self
        return URL(self.url_parsed._replace(path=self.path + "/"))

    def strip_trailing_slash(self) -> "URL":
        if len(self.path) > 1 and self.path.endswith("/"):
            return URL(self.url_parsed._replace(path=self.path.rstrip("/") or "/"))
        return self

    def last_segment(self) -> str:
        """The last non-empty path segment, unquoted.  Used as a fallback title."""
        segments = [x for x in self.path.split("/") if x]
        if not segments:
            return ""
        return unquote(segments[-1])

    def is_auth(self) -> bool:
        return self.username is not None

    def unauth(self) -> "URL":
        """Returns the URL without embedded user information"""
        if not self.is_auth():
            return self
        return URL.objectify(
            ParseResult(
                self.scheme,
                self._netloc(),
                self.path,
                self.params,
                self.query,
                self.fragment,
            )
        )

    def _netloc(self) -> str:
        host = self.hostname or ""
        if ":" in host:
            host = "[%s]" % host
        if self.port:
            host = "%s:%i" % (host, self.port)
        return host

    def host_url(self) -> "URL":
        """scheme://host[:port]/ of this URL"""
        return URL(urlunparse((self.scheme.lower(), self._netloc(), "/", "", "", "")))

    def normalize(self, collection: bool = False) -> "URL":
        """
        Returns a normalized copy: scheme and host lower-cased, user
        information removed, duplicate slashes collapsed, dot segments
        removed and each path segment quoted in one canonical way
        (an escaped slash inside a segment stays escaped).  The fragment
        is dropped.  If ``collection`` is set, the path is guaranteed
        to carry a trailing slash.

        Normalization is idempotent.
        """
        path = re.sub("/{2,}", "/", self.path)
        path = "/".join(quote(unquote(x), safe=SEGMENT_SAFE) for x in path.split("/"))
        path = _remove_dot_segments(path)
        if not path.startswith("/"):
            path = "/" + path
        if collection and not path.endswith("/"):
            path += "/"
        return URL(
            urlunparse(
                (
                    self.scheme.lower(),
                    self._netloc(),
                    path,
                    self.params,
                    self.query,
                    "",
                )
            )
        )

    def join(self, path: Any) -> "URL":
        """
        Resolves ``path`` against this URL as a base, following
        RFC 3986.  Relative references (including ``../``), absolute
        paths and absolute URLs (possibly on another host) are
        accepted.
        """
        path_as_string = str(path) if path is not None else ""
        if not path_as_string:
            return self
        return URL(urljoin(str(self), path_as_string))
