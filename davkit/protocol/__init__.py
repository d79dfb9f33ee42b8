"""
Sans-I/O DAV protocol implementation.

This module provides protocol-level operations without any I/O.
It builds requests and parses responses as pure data transformations.

The protocol layer is organized into:
- types: Core data structures (DAVRequest, DAVResponse, result types)
- xml_builders: Pure functions to build XML request bodies
- xml_parsers: Pure functions to parse XML response bodies
- operations: DAVProtocol class combining builders and parsers

Example usage:

    from davkit.protocol import DAVProtocol, PropfindPurpose

    protocol = DAVProtocol()

    # Build a request (no I/O)
    request = protocol.propfind_request(
        "https://dav.example.com/calendars/user/", PropfindPurpose.MEMBERS
    )

    # Execute via your preferred I/O (DAVClient.execute, or mock)
    response = client.execute(request)

    # Parse response (no I/O)
    result = protocol.parse_propfind(response)
"""

from .types import (
    # Enums
    DAVMethod,
    PropfindPurpose,
    PutMode,
    ServiceType,
    # Request/Response
    DAVRequest,
    DAVResponse,
    # Result types
    MultistatusEntry,
    MultistatusResponse,
    OptionsResult,
    PropfindResult,
    Propstat,
    ResourceProperties,
)
from .xml_builders import (
    build_multiget_body,
    build_propfind_body,
)
from .xml_parsers import (
    fold_multistatus,
    parse_multistatus,
    parse_multistatus_response,
)
from .operations import DAVProtocol, multiget_data

__all__ = [
    # Enums
    "DAVMethod",
    "PropfindPurpose",
    "PutMode",
    "ServiceType",
    # Request/Response
    "DAVRequest",
    "DAVResponse",
    # Result types
    "MultistatusEntry",
    "MultistatusResponse",
    "OptionsResult",
    "PropfindResult",
    "Propstat",
    "ResourceProperties",
    # Builders
    "build_multiget_body",
    "build_propfind_body",
    # Parsers
    "fold_multistatus",
    "parse_multistatus",
    "parse_multistatus_response",
    # Operations
    "DAVProtocol",
    "multiget_data",
]
