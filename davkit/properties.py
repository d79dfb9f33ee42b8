#!/usr/bin/env python
"""
The WebDAV/CalDAV/CardDAV property catalog.

Every supported property is one :class:`Property` entry in
:data:`CATALOG`, keyed by its tag in Clark notation
(``{namespace}local-name``).  An entry knows how to turn the XML
element found in a ``<D:prop>`` of a multistatus response into a
python value, and (where it makes sense) how to turn a python value
back into an element.

Decoded values:

=================================  =========================================
resourcetype                       frozenset of tags (:data:`COLLECTION` ...)
current-user-privilege-set         frozenset of privilege tags
current-user-principal             href (str) or None if unauthenticated
*-home-set, calendar-user-address  list of hrefs (str)
calendar-color                     ARGB int, see :func:`hex_to_argb`
supported-calendar-component-set   list of component names ("VEVENT", ...)
supported-address-data             list of (content-type, version) tuples
everything else                    str
=================================  =========================================

Absence of a property is never an error.  A present but broken
calendar-color decodes to :data:`DEFAULT_COLOR`; any other broken
value is logged and left out of the :class:`PropertyBag`.
"""
import logging
import re
from dataclasses import dataclass
from typing import Any
from typing import Callable
from typing import Dict
from typing import FrozenSet
from typing import Iterable
from typing import List
from typing import Optional
from typing import Tuple
from typing import Union

from lxml import etree
from lxml.etree import _Element

from davkit.lib import error
from davkit.lib.namespace import ns
from davkit.lib.namespace import nsmap2

log = logging.getLogger(__name__)

HREF = ns("D", "href")

## resource types
COLLECTION = ns("D", "collection")
PRINCIPAL = ns("D", "principal")
ADDRESSBOOK = ns("CR", "addressbook")
CALENDAR = ns("C", "calendar")

## privileges
PRIVILEGE = ns("D", "privilege")
PRIV_ALL = ns("D", "all")
PRIV_WRITE = ns("D", "write")
PRIV_WRITE_CONTENT = ns("D", "write-content")
PRIV_BIND = ns("D", "bind")
PRIV_UNBIND = ns("D", "unbind")

## light green, used when the server sends an unusable calendar-color
DEFAULT_COLOR = 0xFF8BC34A

_COLOR_RE = re.compile(r"^#?([0-9a-fA-F]{6})([0-9a-fA-F]{2})?$")


def hex_to_argb(value: str) -> int:
    """
    "#RRGGBB" or "#RRGGBBAA" -> 32 bit ARGB int (alpha in the top
    byte).  Alpha defaults to 0xFF.  Raises ValueError on anything
    else.
    """
    match = _COLOR_RE.match((value or "").strip())
    if not match:
        raise ValueError("not a color: %r" % value)
    rgb = int(match.group(1), 16)
    alpha = int(match.group(2), 16) if match.group(2) else 0xFF
    return (alpha << 24) | rgb


def argb_to_hex(color: int) -> str:
    """32 bit ARGB int -> "#RRGGBBAA" """
    color &= 0xFFFFFFFF
    return "#%06X%02X" % (color & 0xFFFFFF, color >> 24)


def is_read_only(privileges: Optional[Iterable[str]]) -> bool:
    """
    A resource is writable if we have the all or write privilege, or
    write-content together with bind and unbind.  An unknown privilege
    set counts as writable.
    """
    if privileges is None:
        return False
    privileges = set(privileges)
    return not (
        PRIV_ALL in privileges
        or PRIV_WRITE in privileges
        or (
            PRIV_WRITE_CONTENT in privileges
            and PRIV_BIND in privileges
            and PRIV_UNBIND in privileges
        )
    )


def vcard4_supported(address_data_types: Optional[Iterable[Tuple[str, str]]]) -> bool:
    """Only text/vcard 4.0 is special, everything else means vCard 3.0"""
    for content_type, version in address_data_types or ():
        if content_type.lower() == "text/vcard" and version == "4.0":
            return True
    return False


## decoders - they all take the property element


def _text(elem: _Element) -> str:
    return elem.text or ""


def _href(elem: _Element) -> Optional[str]:
    for child in elem:
        if child.tag == HREF and child.text and child.text.strip():
            return child.text.strip()
    ## <D:unauthenticated/> and friends
    return None


def _href_list(elem: _Element) -> List[str]:
    return [
        child.text.strip()
        for child in elem
        if child.tag == HREF and child.text and child.text.strip()
    ]


def _child_tags(elem: _Element) -> FrozenSet[str]:
    return frozenset(child.tag for child in elem if isinstance(child.tag, str))


def _privileges(elem: _Element) -> FrozenSet[str]:
    ret = set()
    for privilege in elem:
        if privilege.tag != PRIVILEGE:
            continue
        ret.update(x.tag for x in privilege if isinstance(x.tag, str))
    return frozenset(ret)


def _color(elem: _Element) -> int:
    try:
        return hex_to_argb(elem.text)
    except ValueError:
        error.weirdness("unparsable calendar-color, using default", elem.text or "")
        return DEFAULT_COLOR


def _components(elem: _Element) -> List[str]:
    return [
        comp.get("name").upper()
        for comp in elem
        if comp.tag == ns("C", "comp") and comp.get("name")
    ]


def _address_data_types(elem: _Element) -> List[Tuple[str, str]]:
    return [
        (x.get("content-type", "text/vcard"), x.get("version", "3.0"))
        for x in elem
        if x.tag == ns("CR", "address-data-type")
    ]


## encoders - value in, property element out


def _element(tag: str) -> _Element:
    return etree.Element(tag, nsmap=nsmap2)


def _encode_text(tag: str) -> Callable[[Any], _Element]:
    def encode(value: str) -> _Element:
        root = _element(tag)
        root.text = value
        return root

    return encode


def _encode_hrefs(tag: str) -> Callable[[Any], _Element]:
    def encode(value: Union[None, str, List[str]]) -> _Element:
        root = _element(tag)
        if isinstance(value, str):
            value = [value]
        for href in value or []:
            etree.SubElement(root, HREF).text = href
        return root

    return encode


def _encode_tags(tag: str, wrapper: Optional[str] = None) -> Callable[[Any], _Element]:
    def encode(value: Iterable[str]) -> _Element:
        root = _element(tag)
        for child_tag in sorted(value):
            parent = etree.SubElement(root, wrapper) if wrapper else root
            etree.SubElement(parent, child_tag)
        return root

    return encode


def _encode_color(value: int) -> _Element:
    root = _element(ns("I", "calendar-color"))
    root.text = argb_to_hex(value)
    return root


def _encode_components(value: Iterable[str]) -> _Element:
    root = _element(ns("C", "supported-calendar-component-set"))
    for name in value:
        etree.SubElement(root, ns("C", "comp")).set("name", name)
    return root


def _encode_address_data_types(value: Iterable[Tuple[str, str]]) -> _Element:
    root = _element(ns("CR", "supported-address-data"))
    for content_type, version in value:
        child = etree.SubElement(root, ns("CR", "address-data-type"))
        child.set("content-type", content_type)
        child.set("version", version)
    return root


@dataclass(frozen=True)
class Property:
    """One catalog entry"""

    prefix: str
    name: str
    decode: Callable[[_Element], Any]
    encode: Optional[Callable[[Any], _Element]] = None

    @property
    def tag(self) -> str:
        return ns(self.prefix, self.name)

    def __str__(self) -> str:
        return self.tag


def _simple(prefix: str, name: str) -> Property:
    return Property(prefix, name, _text, _encode_text(ns(prefix, name)))


RESOURCETYPE = Property(
    "D", "resourcetype", _child_tags, _encode_tags(ns("D", "resourcetype"))
)
DISPLAYNAME = _simple("D", "displayname")
GETETAG = _simple("D", "getetag")
GETCTAG = _simple("CS", "getctag")
CURRENT_USER_PRINCIPAL = Property(
    "D",
    "current-user-principal",
    _href,
    _encode_hrefs(ns("D", "current-user-principal")),
)
CURRENT_USER_PRIVILEGE_SET = Property(
    "D",
    "current-user-privilege-set",
    _privileges,
    _encode_tags(ns("D", "current-user-privilege-set"), PRIVILEGE),
)
ADDRESSBOOK_HOME_SET = Property(
    "CR",
    "addressbook-home-set",
    _href_list,
    _encode_hrefs(ns("CR", "addressbook-home-set")),
)
CALENDAR_HOME_SET = Property(
    "C", "calendar-home-set", _href_list, _encode_hrefs(ns("C", "calendar-home-set"))
)
CALENDAR_USER_ADDRESS_SET = Property(
    "C",
    "calendar-user-address-set",
    _href_list,
    _encode_hrefs(ns("C", "calendar-user-address-set")),
)
ADDRESSBOOK_DESCRIPTION = _simple("CR", "addressbook-description")
CALENDAR_DESCRIPTION = _simple("C", "calendar-description")
CALENDAR_COLOR = Property("I", "calendar-color", _color, _encode_color)
CALENDAR_TIMEZONE = _simple("C", "calendar-timezone")
SUPPORTED_CALENDAR_COMPONENT_SET = Property(
    "C", "supported-calendar-component-set", _components, _encode_components
)
SUPPORTED_ADDRESS_DATA = Property(
    "CR", "supported-address-data", _address_data_types, _encode_address_data_types
)
ADDRESS_DATA = _simple("CR", "address-data")
CALENDAR_DATA = _simple("C", "calendar-data")

CATALOG: Dict[str, Property] = {
    prop.tag: prop
    for prop in (
        RESOURCETYPE,
        DISPLAYNAME,
        GETETAG,
        GETCTAG,
        CURRENT_USER_PRINCIPAL,
        CURRENT_USER_PRIVILEGE_SET,
        ADDRESSBOOK_HOME_SET,
        CALENDAR_HOME_SET,
        CALENDAR_USER_ADDRESS_SET,
        ADDRESSBOOK_DESCRIPTION,
        CALENDAR_DESCRIPTION,
        CALENDAR_COLOR,
        CALENDAR_TIMEZONE,
        SUPPORTED_CALENDAR_COMPONENT_SET,
        SUPPORTED_ADDRESS_DATA,
        ADDRESS_DATA,
        CALENDAR_DATA,
    )
}

PropertyKey = Union[Property, str]


def _key(prop: PropertyKey) -> str:
    return prop.tag if isinstance(prop, Property) else prop


class PropertyBag(dict):
    """
    Decoded properties of one resource, keyed by tag in Clark
    notation.  A missing key means "unknown".  Lookups accept
    :class:`Property` catalog entries as well as tags.

    Properties not in the catalog are stored as the raw lxml element.
    """

    def __getitem__(self, prop: PropertyKey) -> Any:
        return super().__getitem__(_key(prop))

    def __setitem__(self, prop: PropertyKey, value: Any) -> None:
        super().__setitem__(_key(prop), value)

    def __delitem__(self, prop: PropertyKey) -> None:
        super().__delitem__(_key(prop))

    def __contains__(self, prop: object) -> bool:
        return super().__contains__(_key(prop))

    def get(self, prop: PropertyKey, default: Any = None) -> Any:
        return super().get(_key(prop), default)

    def pop(self, prop: PropertyKey, *default: Any) -> Any:
        return super().pop(_key(prop), *default)

    def resource_types(self) -> FrozenSet[str]:
        return self.get(RESOURCETYPE, frozenset())

    def is_collection(self) -> bool:
        return COLLECTION in self.resource_types()


def decode_property(elem: _Element) -> Any:
    """
    Decodes one property element.  Elements not in the catalog are
    returned as they are.
    """
    prop = CATALOG.get(elem.tag)
    if prop is None:
        return elem
    return prop.decode(elem)


def encode_property(prop: PropertyKey, value: Any) -> _Element:
    if not isinstance(prop, Property):
        prop = CATALOG[prop]
    if prop.encode is None:
        raise ValueError("%s can't be encoded" % prop.tag)
    return prop.encode(value)


def merge_prop(bag: PropertyBag, prop_element: _Element) -> None:
    """
    Decodes all children of a ``<D:prop>`` into ``bag``.  A child that
    fails to decode is logged and skipped, the others are kept.
    """
    for child in prop_element:
        if not isinstance(child.tag, str):
            ## comments and processing instructions
            continue
        try:
            bag[child.tag] = decode_property(child)
        except (ValueError, TypeError, AttributeError):
            log.warning("could not decode property %s, ignoring it", child.tag, exc_info=True)
