#!/usr/bin/env python
import logging

__version__ = "0.4.0"

from .davclient import DAVClient
from .davclient import get_davclient
from .discovery import DavResourceFinder
from .lib.auth import Credentials

# Silence notification of no default logging handler
log = logging.getLogger("davkit")


class NullHandler(logging.Handler):
    def emit(self, record) -> None:
        pass


log.addHandler(NullHandler())

__all__ = [
    "__version__",
    "Credentials",
    "DAVClient",
    "DavResourceFinder",
    "get_davclient",
]
