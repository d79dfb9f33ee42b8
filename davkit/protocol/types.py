"""
Core protocol types for the Sans-I/O DAV implementation.

These dataclasses represent HTTP requests and responses at the protocol level,
independent of any I/O implementation, plus the structured results the
parsers produce.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterator, List, Optional, Type

from requests.structures import CaseInsensitiveDict

from davkit import properties as p
from davkit.elements import cdav, carddav
from davkit.elements.base import BaseElement
from davkit.lib.url import URL


class DAVMethod(Enum):
    """The HTTP methods this library speaks."""

    GET = "GET"
    PUT = "PUT"
    DELETE = "DELETE"
    PROPFIND = "PROPFIND"
    REPORT = "REPORT"
    OPTIONS = "OPTIONS"


## methods requests may follow redirects for on its own
AUTO_REDIRECT_METHODS = frozenset(("OPTIONS", "GET", "PUT", "DELETE"))


class ServiceType(Enum):
    """The two services the discovery engine knows about."""

    CARDDAV = "carddav"
    CALDAV = "caldav"

    @property
    def well_known_path(self) -> str:
        return "/.well-known/%s" % self.value

    @property
    def capability(self) -> str:
        """The token in the DAV header announcing the service"""
        return {"carddav": "addressbook", "caldav": "calendar-access"}[self.value]

    @property
    def home_set(self) -> p.Property:
        if self is ServiceType.CARDDAV:
            return p.ADDRESSBOOK_HOME_SET
        return p.CALENDAR_HOME_SET

    @property
    def collection_type(self) -> str:
        if self is ServiceType.CARDDAV:
            return p.ADDRESSBOOK
        return p.CALENDAR

    @property
    def data_property(self) -> p.Property:
        if self is ServiceType.CARDDAV:
            return p.ADDRESS_DATA
        return p.CALENDAR_DATA

    @property
    def multiget_element(self) -> Type[BaseElement]:
        if self is ServiceType.CARDDAV:
            return carddav.AddressbookMultiGet
        return cdav.CalendarMultiGet

    @property
    def srv_name(self) -> str:
        return "_%ss._tcp" % self.value


_CARDDAV_INFO = (p.ADDRESSBOOK_DESCRIPTION, p.SUPPORTED_ADDRESS_DATA)
_CALDAV_INFO = (
    p.CALENDAR_DESCRIPTION,
    p.CALENDAR_COLOR,
    p.CALENDAR_TIMEZONE,
    p.SUPPORTED_CALENDAR_COMPONENT_SET,
)


class PropfindPurpose(Enum):
    """
    What a PROPFIND is for.  The purpose selects the Depth header and
    the requested properties.
    """

    PRINCIPAL = "principal"
    HOME_SETS = "home-sets"
    MEMBERS = "members"
    CTAG = "ctag"
    MEMBER_ETAGS = "member-etags"
    SERVICE_PROBE = "service-probe"
    USER_ADDRESSES = "user-addresses"

    @property
    def depth(self) -> int:
        if self in (PropfindPurpose.MEMBERS, PropfindPurpose.MEMBER_ETAGS):
            return 1
        return 0

    def properties(self, service: Optional[ServiceType] = None) -> List[p.Property]:
        """
        The properties to ask for.  Where the list depends on the
        service, ``None`` means "ask for both".
        """
        if self is PropfindPurpose.PRINCIPAL:
            return [p.CURRENT_USER_PRINCIPAL]
        if self is PropfindPurpose.HOME_SETS:
            return [p.ADDRESSBOOK_HOME_SET, p.CALENDAR_HOME_SET]
        if self is PropfindPurpose.CTAG:
            return [p.GETCTAG]
        if self is PropfindPurpose.MEMBER_ETAGS:
            return [p.GETCTAG, p.GETETAG]
        if self is PropfindPurpose.USER_ADDRESSES:
            return [p.CALENDAR_USER_ADDRESS_SET]

        service_info: List[p.Property] = []
        if service in (None, ServiceType.CARDDAV):
            service_info.extend(_CARDDAV_INFO)
        if service in (None, ServiceType.CALDAV):
            service_info.extend(_CALDAV_INFO)

        if self is PropfindPurpose.MEMBERS:
            return [
                p.RESOURCETYPE,
                p.DISPLAYNAME,
                p.CURRENT_USER_PRIVILEGE_SET,
            ] + service_info

        ## SERVICE_PROBE
        home_sets = (
            [service.home_set]
            if service
            else [p.ADDRESSBOOK_HOME_SET, p.CALENDAR_HOME_SET]
        )
        return (
            [
                p.RESOURCETYPE,
                p.DISPLAYNAME,
                p.CURRENT_USER_PRINCIPAL,
                p.CURRENT_USER_PRIVILEGE_SET,
            ]
            + service_info
            + home_sets
        )


class PutMode(Enum):
    """Conditional PUT semantics."""

    ## If-None-Match: *
    CREATE = "create"
    ## If-Match: <etag> (or * if no etag is known)
    UPDATE = "update"


@dataclass(frozen=True)
class DAVRequest:
    """
    Represents an HTTP request to be made.

    This is a pure data structure with no I/O. It describes what request
    should be made, but does not make it.

    Attributes:
        method: HTTP method
        url: Full URL for the request
        headers: HTTP headers as dict
        body: Request body as bytes (optional)
    """

    method: DAVMethod
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None

    def with_header(self, name: str, value: str) -> "DAVRequest":
        """Return new request with additional header."""
        return DAVRequest(
            method=self.method,
            url=self.url,
            headers={**self.headers, name: value},
            body=self.body,
        )


@dataclass(frozen=True)
class DAVResponse:
    """
    Represents an HTTP response received.

    Attributes:
        status: HTTP status code
        headers: HTTP headers, looked up case-insensitively
        body: Response body as bytes
        url: The location that finally answered, after redirects
        reason: The reason phrase sent by the server
    """

    status: int
    headers: CaseInsensitiveDict
    body: bytes
    url: str = ""
    reason: str = ""

    @property
    def ok(self) -> bool:
        """True if status indicates success (1xx/2xx)."""
        return 100 <= self.status < 300


@dataclass(frozen=True)
class OptionsResult:
    """Allow and DAV headers of an OPTIONS response"""

    methods: FrozenSet[str] = frozenset()
    capabilities: FrozenSet[str] = frozenset()

    def supports(self, capability: str) -> bool:
        return capability in self.capabilities


@dataclass
class Propstat:
    """
    One ``<D:propstat>``: the status line and the property elements
    it covers.  ``status`` is None if the status line was unparsable.
    """

    status_line: Optional[str]
    status: Optional[int]
    elements: list = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status is not None and 100 <= self.status < 300


@dataclass
class MultistatusEntry:
    """
    One ``<D:response>``.  ``status`` is the response-level status if
    the server sent one (typically instead of propstats).
    """

    href: str
    propstats: List[Propstat] = field(default_factory=list)
    status: Optional[int] = None


@dataclass
class MultistatusResponse:
    """
    Parsed 207 Multi-Status body, in document order.  An empty list
    of responses is valid.
    """

    responses: List[MultistatusEntry] = field(default_factory=list)


@dataclass
class ResourceProperties:
    """A member found in a multistatus response"""

    url: URL
    properties: p.PropertyBag = field(default_factory=p.PropertyBag)
    status: Optional[int] = None

    @property
    def ok(self) -> bool:
        """False if the server reported an error status for the resource"""
        return self.status is None or 100 <= self.status < 300


@dataclass
class PropfindResult:
    """
    A multistatus response folded relative to the requested location:
    properties of the resource itself, and the members.

    Attributes:
        location: The requested location.  Slash-terminated if the
            server says the resource is a collection.
        properties: Properties of the requested resource, or None if
            the server didn't report on the requested resource at all.
        members: Everything else the response reported on.
    """

    location: URL
    properties: Optional[p.PropertyBag] = None
    members: List[ResourceProperties] = field(default_factory=list)

    def member(self, url) -> Optional[ResourceProperties]:
        url = URL.objectify(url)
        for member in self.members:
            if member.url == url:
                return member
        return None

    def responses(self) -> Iterator[ResourceProperties]:
        """The requested resource first (if reported on), then the members"""
        if self.properties is not None:
            yield ResourceProperties(self.location, self.properties)
        yield from self.members
