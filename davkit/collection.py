#!/usr/bin/env python
"""
What the discovery and refresh code hands over about a collection.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from davkit import properties as p
from davkit.lib.url import URL


class CollectionType(Enum):
    ADDRESS_BOOK = "address-book"
    CALENDAR = "calendar"


@dataclass
class CollectionInfo:
    """
    A snapshot of a collection's properties.  Owned by the caller once
    returned; nothing in this library keeps a reference.

    ``supports_vevent`` and ``supports_vtodo`` are None for address
    books.  A calendar without supported-calendar-component-set takes
    all components.
    """

    url: URL
    type: CollectionType
    read_only: bool = False
    display_name: Optional[str] = None
    description: Optional[str] = None
    color: Optional[int] = None
    timezone: Optional[str] = None
    supports_vevent: Optional[bool] = None
    supports_vtodo: Optional[bool] = None
    vcard4: bool = False

    @property
    def title(self) -> str:
        return self.display_name or self.url.last_segment()

    @classmethod
    def from_properties(
        cls, url: URL, properties: p.PropertyBag
    ) -> Optional["CollectionInfo"]:
        """
        Returns None if the resource is neither an address book nor a
        calendar.
        """
        types = properties.resource_types()
        url = URL.objectify(url).with_trailing_slash()
        read_only = p.is_read_only(properties.get(p.CURRENT_USER_PRIVILEGE_SET))
        display_name = properties.get(p.DISPLAYNAME) or None

        if p.ADDRESSBOOK in types:
            return cls(
                url=url,
                type=CollectionType.ADDRESS_BOOK,
                read_only=read_only,
                display_name=display_name,
                description=properties.get(p.ADDRESSBOOK_DESCRIPTION) or None,
                vcard4=p.vcard4_supported(properties.get(p.SUPPORTED_ADDRESS_DATA)),
            )

        if p.CALENDAR in types:
            components = properties.get(p.SUPPORTED_CALENDAR_COMPONENT_SET)
            if components is None:
                supports_vevent = supports_vtodo = True
            else:
                supports_vevent = "VEVENT" in components
                supports_vtodo = "VTODO" in components
            return cls(
                url=url,
                type=CollectionType.CALENDAR,
                read_only=read_only,
                display_name=display_name,
                description=properties.get(p.CALENDAR_DESCRIPTION) or None,
                color=properties.get(p.CALENDAR_COLOR),
                timezone=properties.get(p.CALENDAR_TIMEZONE) or None,
                supports_vevent=supports_vevent,
                supports_vtodo=supports_vtodo,
            )

        return None
