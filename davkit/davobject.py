#!/usr/bin/env python
import logging
from typing import FrozenSet
from typing import Iterable
from typing import List
from typing import Optional
from typing import TYPE_CHECKING
from typing import Union

from davkit import properties as p
from davkit.lib.url import URL
from davkit.protocol.types import DAVResponse
from davkit.protocol.types import OptionsResult
from davkit.protocol.types import PropfindPurpose
from davkit.protocol.types import PropfindResult
from davkit.protocol.types import PutMode
from davkit.protocol.types import ResourceProperties
from davkit.protocol.types import ServiceType

if TYPE_CHECKING:
    from davkit.davclient import DAVClient

log = logging.getLogger(__name__)

CONTENT_TYPES = {
    ServiceType.CARDDAV: "text/vcard; charset=utf-8",
    ServiceType.CALDAV: "text/calendar; charset=utf-8",
}


class DAVObject:
    """
    A resource on a DAV server, at ``location``.

    ``properties`` holds what the last PROPFIND told about the
    resource itself, ``members`` what the last depth 1 PROPFIND or
    multiget told about its members.  Both are replaced, not merged,
    on every fetch.  HTTP errors propagate as
    :class:`davkit.lib.error.HTTPError` subclasses.
    """

    def __init__(
        self,
        client: "DAVClient",
        url: Union[URL, str],
        service: Optional[ServiceType] = None,
        properties: Optional[p.PropertyBag] = None,
    ) -> None:
        self.client = client
        url = URL.objectify(url)
        if client.url is not None:
            url = client.url.join(url)
        self.location: URL = url
        self.service = service
        self.properties: p.PropertyBag = (
            properties if properties is not None else p.PropertyBag()
        )
        self.members: List[ResourceProperties] = []
        self.methods: FrozenSet[str] = frozenset()
        self.capabilities: FrozenSet[str] = frozenset()

    def __repr__(self) -> str:
        return "%s(%s)" % (self.__class__.__name__, self.location)

    @property
    def protocol(self):
        return self.client.protocol

    @property
    def etag(self) -> Optional[str]:
        return self.properties.get(p.GETETAG)

    @property
    def ctag(self) -> Optional[str]:
        return self.properties.get(p.GETCTAG)

    def _follow_location(self, response: DAVResponse) -> None:
        """
        The resource may have moved: after redirects, the response
        URL is where it lives now.  A Content-Location header names
        the resource the body describes.
        """
        if response.url and URL.objectify(response.url) != self.location:
            log.debug("%s moved to %s", self.location, response.url)
            self.location = URL.objectify(response.url)
        content_location = self.protocol.content_location(response)
        if content_location is not None and content_location != self.location:
            log.debug("Content-Location of %s is %s", self.location, content_location)
            self.location = content_location

    def options(self) -> OptionsResult:
        """Fetches the Allow and DAV headers"""
        response = self.client.execute(self.protocol.options_request(self.location))
        result = self.protocol.parse_options(response)
        self.methods = result.methods
        self.capabilities = result.capabilities
        return result

    def supports(self, capability: str) -> bool:
        """Whether the last OPTIONS response announced ``capability``"""
        return capability in self.capabilities

    def propfind(
        self,
        props: Union[PropfindPurpose, Iterable[Union[p.Property, str]]] = PropfindPurpose.MEMBERS,
        depth: Optional[int] = None,
    ) -> PropfindResult:
        """
        PROPFIND with the properties selected by a purpose (or given
        explicitly).  Replaces ``properties``, and ``members`` on depth 1.

        Raises:
          HTTPError: on a status outside 1xx/2xx
          DavProtocolError: if the response isn't a usable multistatus
        """
        request = self.protocol.propfind_request(
            self.location, props, depth=depth, service=self.service
        )
        response = self.client.execute(request)
        self._follow_location(response)
        result = self.protocol.parse_propfind(response, self.location)

        self.location = result.location
        self.properties = result.properties if result.properties is not None else p.PropertyBag()
        if request.headers.get("Depth") == "1":
            self.members = result.members
        elif result.members:
            log.debug(
                "depth 0 PROPFIND on %s reported %i other resources",
                self.location,
                len(result.members),
            )
        return result

    def multiget(self, hrefs: Iterable[Union[URL, str]]) -> List[ResourceProperties]:
        """
        Fetches data and ETag of the given members in one REPORT.
        Replaces ``members``.
        """
        if self.service is None:
            raise ValueError("multiget needs to know the service of %s" % self.location)
        hrefs = [self.location.join(x) for x in hrefs]
        if not hrefs:
            self.members = []
            return self.members
        response = self.client.execute(
            self.protocol.multiget_request(self.location, hrefs, self.service)
        )
        result = self.protocol.parse_multiget(response, response.url or self.location)
        self.members = result.members
        return self.members

    def put(
        self,
        data: Union[str, bytes],
        mode: Optional[PutMode] = None,
        etag: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> Optional[str]:
        """
        Uploads the resource.  Without mode, the resource is created
        if we don't know an ETag and updated otherwise.

        Returns the new ETag if the server sent one.  The stored ETag
        is updated, or cleared if there is none.

        Raises:
          PreconditionFailedError: the resource exists (create) or
            has changed (update)
        """
        if etag is None:
            etag = self.etag
        if mode is None:
            mode = PutMode.UPDATE if etag else PutMode.CREATE
        if content_type is None and self.service is not None:
            content_type = CONTENT_TYPES[self.service]
        response = self.client.execute(
            self.protocol.put_request(self.location, data, mode, etag, content_type)
        )
        new_etag = self.protocol.parse_put(response)
        if new_etag:
            self.properties[p.GETETAG] = new_etag
        else:
            self.properties.pop(p.GETETAG, None)
        return new_etag

    def delete(self, etag: Optional[str] = None) -> None:
        """Deletes the resource, conditional on the known ETag if there is one"""
        if etag is None:
            etag = self.etag
        response = self.client.execute(
            self.protocol.delete_request(self.location, etag)
        )
        self.protocol.parse_delete(response)
        self.properties.pop(p.GETETAG, None)

    def invalidate_ctag(self) -> None:
        """Forgets the CTag, so the next sync won't skip this collection"""
        self.properties.pop(p.GETCTAG, None)
