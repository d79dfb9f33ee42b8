"""
DAV protocol operations combining request building and response parsing.

This class provides a high-level interface to the DAV operations while
remaining completely I/O-free.
"""

import re
from typing import Dict, Iterable, List, Optional, Union

from davkit import properties as p
from davkit.lib import error
from davkit.lib.python_utilities import to_wire
from davkit.lib.url import URL

from .types import (
    DAVMethod,
    DAVRequest,
    DAVResponse,
    OptionsResult,
    PropfindPurpose,
    PropfindResult,
    PutMode,
    ServiceType,
)
from .xml_builders import build_multiget_body, build_propfind_body
from .xml_parsers import fold_multistatus, parse_multistatus_response

XML_CONTENT_TYPE = "text/xml; charset=utf-8"

_LIST_SEPARATOR = re.compile(r",\s*")


def _header_tokens(value: Optional[str]) -> frozenset:
    if not value:
        return frozenset()
    return frozenset(x.strip() for x in _LIST_SEPARATOR.split(value) if x.strip())


class DAVProtocol:
    """
    Sans-I/O DAV protocol handler.

    Builds requests and parses responses without doing any I/O.
    All HTTP communication is delegated to an external I/O implementation
    (normally :meth:`davkit.davclient.DAVClient.execute`).

    Example:
        protocol = DAVProtocol()

        # Build request
        request = protocol.propfind_request(url, PropfindPurpose.CTAG)

        # Execute with your I/O
        response = client.execute(request)

        # Parse response
        result = protocol.parse_propfind(response)
    """

    def __init__(self, huge_tree: bool = False) -> None:
        self.huge_tree = huge_tree

    # =========================================================================
    # Request builders
    # =========================================================================

    def options_request(self, url: Union[URL, str]) -> DAVRequest:
        return DAVRequest(method=DAVMethod.OPTIONS, url=str(url))

    def propfind_request(
        self,
        url: Union[URL, str],
        props: Union[PropfindPurpose, Iterable[Union[p.Property, str]]],
        depth: Optional[int] = None,
        service: Optional[ServiceType] = None,
    ) -> DAVRequest:
        """
        Build a PROPFIND request.

        Args:
            url: Resource URL
            props: A purpose, or the properties to ask for
            depth: Depth header; defaults to the depth of the purpose, else 0
            service: Narrows the properties of a purpose to one service

        Returns:
            DAVRequest ready for execution
        """
        if depth is None:
            depth = props.depth if isinstance(props, PropfindPurpose) else 0
        if depth not in (0, 1):
            raise ValueError("depth must be 0 or 1, not %r" % depth)
        return DAVRequest(
            method=DAVMethod.PROPFIND,
            url=str(url),
            headers={"Content-Type": XML_CONTENT_TYPE, "Depth": str(depth)},
            body=build_propfind_body(props, service),
        )

    def multiget_request(
        self,
        url: Union[URL, str],
        hrefs: Iterable[Union[URL, str]],
        service: ServiceType,
    ) -> DAVRequest:
        """
        Build an addressbook-multiget/calendar-multiget REPORT.  Full
        URLs are reduced to their path.
        """
        paths = []
        for href in hrefs:
            href = URL.objectify(href)
            paths.append(href.path if href.scheme else str(href))
        return DAVRequest(
            method=DAVMethod.REPORT,
            url=str(url),
            headers={"Content-Type": XML_CONTENT_TYPE, "Depth": "0"},
            body=build_multiget_body(paths, service),
        )

    def put_request(
        self,
        url: Union[URL, str],
        data: Union[bytes, str],
        mode: PutMode,
        etag: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> DAVRequest:
        """
        Build a conditional PUT.

        ``PutMode.CREATE`` fails on the server if the resource exists
        (``If-None-Match: *``), ``PutMode.UPDATE`` fails if it has
        changed since ``etag`` was seen (``If-Match``).  Without etag,
        an update only requires the resource to exist.
        """
        headers: Dict[str, str] = {}
        if content_type:
            headers["Content-Type"] = content_type
        if mode is PutMode.CREATE:
            headers["If-None-Match"] = "*"
        else:
            headers["If-Match"] = etag or "*"
        return DAVRequest(
            method=DAVMethod.PUT,
            url=str(url),
            headers=headers,
            body=to_wire(data),
        )

    def delete_request(
        self,
        url: Union[URL, str],
        etag: Optional[str] = None,
    ) -> DAVRequest:
        """Build a DELETE, conditional on ``etag`` if one is known."""
        headers: Dict[str, str] = {}
        if etag:
            headers["If-Match"] = etag
        return DAVRequest(method=DAVMethod.DELETE, url=str(url), headers=headers)

    # =========================================================================
    # Response parsers
    # =========================================================================

    def check_response(self, response: DAVResponse) -> DAVResponse:
        """
        Raises the typed HTTPError for anything outside 1xx/2xx.
        Returns the response otherwise.
        """
        if response.ok:
            return response
        raise error.http_error(response.url, response.status, response.reason)

    def parse_options(self, response: DAVResponse) -> OptionsResult:
        self.check_response(response)
        return OptionsResult(
            methods=frozenset(
                x.upper() for x in _header_tokens(response.headers.get("Allow"))
            ),
            capabilities=_header_tokens(response.headers.get("DAV")),
        )

    def parse_propfind(
        self,
        response: DAVResponse,
        location: Union[URL, str, None] = None,
    ) -> PropfindResult:
        """
        Parse a PROPFIND response and fold it relative to ``location``
        (defaults to the URL that answered).
        """
        self.check_response(response)
        multistatus = parse_multistatus_response(response, huge_tree=self.huge_tree)
        return fold_multistatus(multistatus, location or response.url)

    def parse_multiget(
        self,
        response: DAVResponse,
        location: Union[URL, str, None] = None,
    ) -> PropfindResult:
        """
        A multiget response has the same shape as a depth 1 PROPFIND;
        the requested resources show up as members.
        """
        return self.parse_propfind(response, location)

    def parse_put(self, response: DAVResponse) -> Optional[str]:
        """Returns the new ETag, if the server sent one"""
        self.check_response(response)
        return response.headers.get("ETag") or None

    def parse_delete(self, response: DAVResponse) -> None:
        self.check_response(response)

    def content_location(self, response: DAVResponse) -> Optional[URL]:
        """The Content-Location header, resolved against the response URL"""
        value = response.headers.get("Content-Location")
        if not value:
            return None
        return URL.objectify(response.url).join(value)


def multiget_data(result: PropfindResult, service: ServiceType) -> List[tuple]:
    """
    (url, etag, data) of each member of a multiget result that came
    with data.
    """
    ret = []
    for member in result.members:
        data = member.properties.get(service.data_property)
        if data is None:
            continue
        ret.append((member.url, member.properties.get(p.GETETAG), data))
    return ret
