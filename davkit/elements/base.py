#!/usr/bin/env python
import sys
from collections.abc import Iterable
from typing import ClassVar
from typing import Dict
from typing import List
from typing import Optional
from typing import Union

from lxml import etree
from lxml.etree import _Element

from davkit.lib.namespace import nsmap
from davkit.lib.namespace import nsmap2
from davkit.lib.python_utilities import to_normal_str

if sys.version_info < (3, 11):
    from typing_extensions import Self
else:
    from typing import Self


class BaseElement:
    """
    A request body element.  Subclasses set ``tag``; children are
    added with ``+`` or :meth:`append`, and :meth:`xmlelement` gives
    the lxml tree.
    """

    tag: ClassVar[Optional[str]] = None
    namespaces: ClassVar[Dict[str, str]] = nsmap

    def __init__(self, value: Union[str, bytes, None] = None) -> None:
        self.children: List[BaseElement] = []
        self.value: Optional[str] = to_normal_str(value)

    def __add__(self, other: Union["BaseElement", Iterable["BaseElement"]]) -> Self:
        return self.append(other)

    def __repr__(self) -> str:
        return "%s(%r, %i children)" % (self.__class__.__name__, self.value, len(self.children))

    def xmlelement(self) -> _Element:
        if self.tag is None:
            raise ValueError("Unexpected value None for self.tag")

        root = etree.Element(self.tag, nsmap=self.namespaces)
        if self.value is not None:
            root.text = self.value
        self.xmlchildren(root)
        return root

    def xmlchildren(self, root: _Element) -> None:
        for c in self.children:
            root.append(c.xmlelement())

    def append(self, element: Union["BaseElement", Iterable["BaseElement"]]) -> Self:
        if isinstance(element, BaseElement):
            self.children.append(element)
        else:
            self.children.extend(element)
        return self


class ValuedBaseElement(BaseElement):
    """An element carrying text, like ``<D:href>``"""

    def __init__(self, value: Union[str, bytes, None] = None) -> None:
        super().__init__(value=value)


class PropertyName(BaseElement):
    """
    An empty property element as used inside ``<D:prop>`` of a
    request.  The tag is given per instance, in Clark notation.
    """

    namespaces = nsmap2

    def __init__(self, tag: str) -> None:
        super().__init__()
        self.tag = tag
