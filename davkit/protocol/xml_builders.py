"""
Pure functions for building DAV XML request bodies.

All functions in this module are pure - they take data in and return XML out,
with no side effects or I/O.
"""
from typing import Iterable
from typing import List
from typing import Optional
from typing import Union

from lxml import etree

from davkit import properties as p
from davkit.elements import dav
from davkit.elements.base import BaseElement
from davkit.elements.base import PropertyName

from .types import PropfindPurpose
from .types import ServiceType


def _to_bytes(root: BaseElement) -> bytes:
    return etree.tostring(root.xmlelement(), encoding="utf-8", xml_declaration=True)


def _prop(props: Iterable[Union[p.Property, str]]) -> BaseElement:
    return dav.Prop() + [PropertyName(str(x)) for x in props]


def build_propfind_body(
    props: Union[PropfindPurpose, Iterable[Union[p.Property, str]]],
    service: Optional[ServiceType] = None,
) -> bytes:
    """
    Build a PROPFIND request body.

    Args:
        props: Either a purpose, or the properties (catalog entries or
               tags in Clark notation) to ask for.
        service: Narrows the properties of a purpose to one service.

    Returns:
        UTF-8 encoded XML bytes
    """
    if isinstance(props, PropfindPurpose):
        props = props.properties(service)
    return _to_bytes(dav.Propfind() + _prop(props))


def build_multiget_body(
    hrefs: Iterable[str],
    service: ServiceType,
) -> bytes:
    """
    Build an addressbook-multiget or calendar-multiget REPORT body
    asking for getetag and the address/calendar data of each href.
    """
    elements: List[BaseElement] = [_prop([p.GETETAG, service.data_property])]
    for href in hrefs:
        elements.append(dav.Href(str(href)))
    return _to_bytes(service.multiget_element() + elements)
