#!/usr/bin/env python
from typing import ClassVar

from .base import BaseElement
from .base import ValuedBaseElement
from davkit.lib.namespace import ns


# Operations
class Propfind(BaseElement):
    tag: ClassVar[str] = ns("D", "propfind")


# Components / Data
class Prop(BaseElement):
    tag: ClassVar[str] = ns("D", "prop")


class Href(ValuedBaseElement):
    tag: ClassVar[str] = ns("D", "href")


# Multistatus response structure
class MultiStatus(BaseElement):
    tag: ClassVar[str] = ns("D", "multistatus")


class Response(BaseElement):
    tag: ClassVar[str] = ns("D", "response")


class PropStat(BaseElement):
    tag: ClassVar[str] = ns("D", "propstat")


class Status(ValuedBaseElement):
    tag: ClassVar[str] = ns("D", "status")
