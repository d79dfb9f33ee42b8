"""
Pure functions for parsing DAV XML responses.

All functions in this module are pure - they take XML bytes in and return
structured data out, with no side effects or I/O.
"""

import logging
from typing import List, Optional, Tuple, Union

from lxml import etree
from lxml.etree import _Element

from davkit import properties as p
from davkit.elements import dav
from davkit.lib import error
from davkit.lib.namespace import ns
from davkit.lib.url import URL

from .types import (
    DAVResponse,
    MultistatusEntry,
    MultistatusResponse,
    Propstat,
    PropfindResult,
    ResourceProperties,
)

log = logging.getLogger(__name__)

## other children a multistatus may carry
_MULTISTATUS_EXTRAS = (ns("D", "responsedescription"), ns("D", "sync-token"))


def parse_multistatus(
    body: bytes,
    url: Optional[str] = None,
    huge_tree: bool = False,
) -> MultistatusResponse:
    """
    Parse a 207 Multi-Status response body.

    Args:
        body: Raw XML response bytes
        url: Request location, used in error messages only
        huge_tree: Allow parsing very large XML documents

    Returns:
        Structured MultistatusResponse, one entry per ``<D:response>``

    Raises:
        DavNoContentError: If body is empty
        DavProtocolError: If body is not a multistatus document
    """
    if not body or not body.strip():
        raise error.DavNoContentError(url=url)

    parser = etree.XMLParser(huge_tree=huge_tree, resolve_entities=False)
    try:
        tree = etree.fromstring(body, parser)
    except etree.XMLSyntaxError as e:
        raise error.DavProtocolError(url=url, reason="invalid XML: %s" % e) from e

    multistatus = _strip_to_multistatus(tree)
    if multistatus is None:
        raise error.DavProtocolError(
            url=url, reason="expected multistatus, got %s" % tree.tag
        )

    responses: List[MultistatusEntry] = []
    for elem in multistatus:
        if elem.tag != dav.Response.tag:
            if isinstance(elem.tag, str):
                error.assert_(elem.tag in _MULTISTATUS_EXTRAS)
            continue
        entry = _parse_response_element(elem)
        if entry is None:
            continue
        responses.append(entry)

    return MultistatusResponse(responses=responses)


def parse_multistatus_response(response: DAVResponse, huge_tree: bool = False) -> MultistatusResponse:
    """
    Like :func:`parse_multistatus`, but checks the status code first.

    Raises:
        DavNoMultiStatusError: If the status is not 207
    """
    if response.status != 207:
        raise error.DavNoMultiStatusError(
            url=response.url,
            reason="expected 207 Multi-Status, got %i %s"
            % (response.status, response.reason),
        )
    return parse_multistatus(response.body, url=response.url, huge_tree=huge_tree)


def fold_multistatus(
    multistatus: MultistatusResponse,
    location: Union[URL, str],
) -> PropfindResult:
    """
    Fold a multistatus response into properties for ``location``
    itself and a list of members.

    hrefs are resolved against ``location``, which has to be the
    location that actually answered (after redirects).  Properties
    from propstats with a status outside 1xx/2xx are dropped.  A
    resource of type collection gets a trailing slash, and a response
    on ``location`` with or without trailing slash counts as
    ``location`` itself.
    """
    location = URL.objectify(location)
    result = PropfindResult(location=location)

    for entry in multistatus.responses:
        try:
            url = location.join(entry.href)
        except ValueError:
            error.weirdness("unresolvable href in multistatus", entry.href)
            continue

        bag = p.PropertyBag()
        for propstat in entry.propstats:
            if not propstat.ok:
                log.debug(
                    "ignoring propstat with status %s for %s", propstat.status_line, url
                )
                continue
            for prop in propstat.elements:
                p.merge_prop(bag, prop)

        if bag.is_collection():
            url = url.with_trailing_slash()

        if _same_resource(url, location):
            if bag.is_collection():
                result.location = location.with_trailing_slash()
            if result.properties is None:
                result.properties = bag
            else:
                result.properties.update(bag)
            continue

        result.members.append(
            ResourceProperties(url=url, properties=bag, status=entry.status)
        )

    return result


def _same_resource(url: URL, location: URL) -> bool:
    return url.normalize(collection=True) == location.normalize(collection=True)


# Helper functions


def _strip_to_multistatus(tree: _Element) -> Optional[_Element]:
    """
    The general format is:
        <multistatus>
            <response>...</response>
            <response>...</response>
        </multistatus>

    Some servers wrap it into an ``<xml>`` element.  Returns None if
    there is no multistatus element at the expected places.
    """
    if tree.tag == "xml" and len(tree) > 0 and tree[0].tag == dav.MultiStatus.tag:
        return tree[0]
    if tree.tag == dav.MultiStatus.tag:
        return tree
    return None


def _parse_response_element(response: _Element) -> Optional[MultistatusEntry]:
    """
    Parse a single DAV:response element.  Returns None if it has no
    href.
    """
    status: Optional[int] = None
    hrefs: List[str] = []
    propstats: List[Propstat] = []

    for elem in response:
        if elem.tag == dav.Status.tag:
            status, _ = _parse_status(elem.text)
        elif elem.tag == dav.Href.tag:
            text = (elem.text or "").strip()
            # Fix for double-encoded URLs (e.g., Confluence)
            if "%2540" in text:
                text = text.replace("%2540", "%40")
            if text:
                hrefs.append(text)
        elif elem.tag == dav.PropStat.tag:
            propstats.append(_parse_propstat(elem))

    if not hrefs:
        error.weirdness("response without href", response)
        return None
    if len(hrefs) > 1 and propstats:
        error.weirdness("propstat response with several hrefs", response)

    return MultistatusEntry(href=hrefs[0], propstats=propstats, status=status)


def _parse_propstat(propstat: _Element) -> Propstat:
    status_line: Optional[str] = None
    status: Optional[int] = 200
    elements: List[_Element] = []
    seen_status = False

    for elem in propstat:
        if elem.tag == dav.Status.tag:
            seen_status = True
            status, status_line = _parse_status(elem.text)
        elif elem.tag == dav.Prop.tag:
            elements.append(elem)

    if not seen_status:
        error.weirdness("propstat without status, assuming 200", propstat)

    return Propstat(status_line=status_line, status=status, elements=elements)


def _parse_status(status: Optional[str]) -> Tuple[Optional[int], Optional[str]]:
    """
    "HTTP/1.1 404 Not Found" -> (404, "HTTP/1.1 404 Not Found").
    The code is None if the line can't be parsed.
    """
    if not status:
        return None, status
    status = status.strip()
    parts = status.split()
    if len(parts) >= 2 and parts[0].upper().startswith("HTTP/"):
        try:
            return int(parts[1]), status
        except ValueError:
            pass
    error.weirdness("unparsable status line", status)
    return None, status
