#!/usr/bin/env python
from typing import ClassVar

from .base import BaseElement
from davkit.lib.namespace import ns


# Operations
class CalendarMultiGet(BaseElement):
    tag: ClassVar[str] = ns("C", "calendar-multiget")
