#!/usr/bin/env python
from typing import ClassVar

from .base import BaseElement
from davkit.lib.namespace import ns


# Operations
class AddressbookMultiGet(BaseElement):
    tag: ClassVar[str] = ns("CR", "addressbook-multiget")
