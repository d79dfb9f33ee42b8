#!/usr/bin/env python
import logging
import os
from typing import Dict
from typing import Optional
from typing import Type

from davkit import __version__

## one of DEBUG_PDB, DEBUG, DEVELOPMENT, PRODUCTION
debugmode = os.environ.get("DAVKIT_DEBUGMODE")
if not debugmode:
    if "dev" in __version__:
        debugmode = "DEVELOPMENT"
    else:
        debugmode = "PRODUCTION"

log = logging.getLogger("davkit")
if debugmode.startswith("DEBUG"):
    log.setLevel(logging.DEBUG)


def weirdness(*reasons) -> None:
    """
    Logs a deviation from what we expect from a standards-compliant
    server.  The operation continues.
    """
    from davkit.lib.debug import xmlstring

    reason = " : ".join([xmlstring(x) for x in reasons])
    log.warning(f"Deviation from expectations found: {reason}")
    if debugmode == "DEBUG_PDB":
        log.error(f"Dropping into debugger due to {reason}")
        import pdb

        pdb.set_trace()


def assert_(condition: object) -> None:
    try:
        assert condition
    except AssertionError:
        if debugmode == "PRODUCTION":
            log.error("Deviation from expectations found.", exc_info=True)
        elif debugmode == "DEBUG_PDB":
            log.error("Deviation from expectations found.  Dropping into debugger")
            import pdb

            pdb.set_trace()
        else:
            raise


class DAVError(Exception):
    url: Optional[str] = None
    reason: str = "no reason"

    def __init__(self, url: Optional[str] = None, reason: Optional[str] = None) -> None:
        super().__init__(url, reason)
        if url:
            self.url = str(url)
        if reason:
            self.reason = reason

    def __str__(self) -> str:
        return "%s at '%s', reason %s" % (
            self.__class__.__name__,
            self.url,
            self.reason,
        )


class HTTPError(DAVError):
    """
    The server answered with a status code outside of the 1xx/2xx
    range.  ``status`` carries the code, ``reason`` the reason phrase.
    """

    status: int = 0

    def __init__(
        self,
        url: Optional[str] = None,
        reason: Optional[str] = None,
        status: Optional[int] = None,
    ) -> None:
        super().__init__(url, reason)
        if status is not None:
            self.status = status

    def __str__(self) -> str:
        return "%s at '%s': %i %s" % (
            self.__class__.__name__,
            self.url,
            self.status,
            self.reason,
        )


class NotAuthorizedError(HTTPError):
    status = 401
    reason = "Unauthorized"


class NotFoundError(HTTPError):
    status = 404
    reason = "Not Found"


class PreconditionFailedError(HTTPError):
    status = 412
    reason = "Precondition Failed"


class DavProtocolError(DAVError):
    """The server response could not be understood as WebDAV."""

    pass


class DavNoMultiStatusError(DavProtocolError):
    reason = "expected 207 Multi-Status"


class DavNoContentError(DavProtocolError):
    reason = "response has no body"


class RedirectLimitError(DAVError):
    reason = "too many redirects"


class DiscoveryError(DAVError):
    """Raised when the discovery engine is fed with unusable input"""

    pass


exception_by_status: Dict[int, Type[HTTPError]] = {
    401: NotAuthorizedError,
    404: NotFoundError,
    412: PreconditionFailedError,
}


def http_error(url: Optional[str], status: int, reason: Optional[str]) -> HTTPError:
    """Returns the typed exception for an unsuccessful status code"""
    cls = exception_by_status.get(status, HTTPError)
    return cls(url=url, reason=reason, status=status)
