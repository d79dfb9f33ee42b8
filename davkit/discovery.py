#!/usr/bin/env python
"""
Service detection: from a URL or an email address to principals, home
sets and collections, for CardDAV and CalDAV independently.

Per service, the steps are:

1. If the user gave an http(s) URL, PROPFIND it.  It may be a
   collection, carry home sets, or point at the principal
   (current-user-principal, or resourcetype principal).
2. If that gave no principal and the URL is https, ask
   /.well-known/{carddav,caldav} on the same host for
   current-user-principal.
3. Still no principal: RFC 6764 DNS discovery on the domain of the
   https URL or of the email address.  SRV (or the domain itself on
   port 443) gives the server, TXT the initial context path; the
   context path, /.well-known/... and / are asked for
   current-user-principal, in that order.
4. CalDAV only: the principal's calendar-user-address-set gives the
   email address.

A principal is only accepted if an OPTIONS request on it announces the
service (``addressbook`` or ``calendar-access`` in the DAV header).
Every step that fails is logged and counts as "nothing found".

SECURITY CONSIDERATIONS:
    DNS-based discovery is vulnerable to attacks if DNS is not secured with DNSSEC:

    - DNS Spoofing: Attackers can provide malicious SRV/TXT records pointing to
      attacker-controlled servers
    - Man-in-the-Middle: Even with HTTPS, attackers can redirect to their servers

    Only the TLS services (_caldavs, _carddavs) are looked up, and a
    warning is logged if the SRV target is outside of the queried domain
    (RFC 6764 section 8).

See: https://datatracker.ietf.org/doc/html/rfc6764
"""
import logging
import traceback
from dataclasses import dataclass
from dataclasses import field
from typing import Dict
from typing import List
from typing import Optional
from typing import Set
from typing import Tuple
from urllib.parse import urlparse

import dns.exception
import dns.resolver
import requests

from davkit import properties as p
from davkit.collection import CollectionInfo
from davkit.davclient import DAVClient
from davkit.davobject import DAVObject
from davkit.lib.auth import Credentials
from davkit.lib.error import DAVError
from davkit.lib.error import DiscoveryError
from davkit.lib.error import NotAuthorizedError
from davkit.lib.url import URL
from davkit.protocol.types import PropfindPurpose
from davkit.protocol.types import PropfindResult
from davkit.protocol.types import ServiceType

log = logging.getLogger(__name__)

## failures of a single step; they mean "this step found nothing"
STEP_ERRORS = (
    requests.exceptions.RequestException,
    DAVError,
    dns.exception.DNSException,
    ValueError,
)


@dataclass
class ServiceInfo:
    """What was found for one service"""

    principal: Optional[URL] = None
    home_sets: Set[URL] = field(default_factory=set)
    collections: Dict[URL, CollectionInfo] = field(default_factory=dict)
    emails: List[str] = field(default_factory=list)

    @property
    def email(self) -> Optional[str]:
        return self.emails[0] if self.emails else None

    @property
    def available(self) -> bool:
        return bool(self.principal or self.home_sets or self.collections)


@dataclass
class Configuration:
    """
    Result of :meth:`DavResourceFinder.find_initial_configuration`.
    A service that wasn't found is None.
    """

    carddav: Optional[ServiceInfo]
    caldav: Optional[ServiceInfo]
    encountered_401: bool = False
    logs: str = field(default="", repr=False)

    @property
    def nothing_detected(self) -> bool:
        return self.carddav is None and self.caldav is None


def _is_subdomain_or_same(discovered_domain: str, original_domain: str) -> bool:
    """
    Check if discovered domain is the same as or a subdomain of the original domain.

    Examples:
        >>> _is_subdomain_or_same('calendar.example.com', 'example.com')
        True
        >>> _is_subdomain_or_same('evil.com', 'example.com')
        False
        >>> _is_subdomain_or_same('exampleXcom.evil.com', 'example.com')
        False
    """
    discovered = discovered_domain.lower().strip(".")
    original = original_domain.lower().strip(".")

    if discovered == original:
        return True

    # Must end with .original_domain to be a valid subdomain
    if discovered.endswith("." + original):
        return True

    return False


def _parse_txt_record(txt_data: str) -> Optional[str]:
    """
    Parse TXT record data to extract the path attribute.

    Examples:
        >>> _parse_txt_record('path=/caldav/')
        '/caldav/'
        >>> _parse_txt_record('path=/caldav/ other=value')
        '/caldav/'
    """
    # TXT records are key=value pairs separated by spaces
    for pair in txt_data.split():
        if "=" in pair:
            key, value = pair.split("=", 1)
            if key.strip().lower() == "path":
                return value.strip()
    return None


def _srv_lookup(domain: str, service: ServiceType) -> List[Tuple[str, int, int, int]]:
    """
    Perform DNS SRV record lookup for the TLS service.

    Returns:
        List of tuples: (hostname, port, priority, weight), sorted by
        priority (lower is better), then by weight (higher is better)
    """
    srv_name = f"{service.srv_name}.{domain}"

    log.debug(f"Performing SRV lookup for {srv_name}")

    try:
        answers = dns.resolver.resolve(srv_name, "SRV")
    except dns.exception.DNSException as e:
        log.debug(f"SRV lookup failed for {srv_name}: {e}")
        return []

    results = []
    for rdata in answers:
        hostname = str(rdata.target).rstrip(".")
        port = int(rdata.port)
        priority = int(rdata.priority)
        weight = int(rdata.weight)
        if not hostname:
            ## "." - service decidedly not available
            continue

        log.debug(
            f"Found SRV record: {hostname}:{port} (priority={priority}, weight={weight})"
        )
        results.append((hostname, port, priority, weight))

    results.sort(key=lambda x: (x[2], -x[3]))
    return results


def _txt_lookup(domain: str, service: ServiceType) -> List[str]:
    """
    Perform DNS TXT record lookup to find initial context paths.

    Returns:
        The path attributes of all TXT records, possibly empty
    """
    txt_name = f"{service.srv_name}.{domain}"

    log.debug(f"Performing TXT lookup for {txt_name}")

    try:
        answers = dns.resolver.resolve(txt_name, "TXT")
    except dns.exception.DNSException as e:
        log.debug(f"TXT lookup failed for {txt_name}: {e}")
        return []

    paths = []
    for rdata in answers:
        # TXT records can have multiple strings; join them
        txt_data = "".join(
            [s.decode("utf-8") if isinstance(s, bytes) else s for s in rdata.strings]
        )
        log.debug(f"Found TXT record: {txt_data}")

        path = _parse_txt_record(txt_data)
        if path:
            paths.append(path)
    return paths


def _parse_seed(identifier: str) -> Tuple[Optional[URL], Optional[str]]:
    """
    Returns (base URL, mailbox domain); exactly one of them is set.
    A bare host name is taken as https URL.
    """
    identifier = (identifier or "").strip()
    if not identifier:
        raise DiscoveryError(reason="no URL or email address given")

    mailbox = None
    if identifier.lower().startswith("mailto:"):
        mailbox = identifier[7:]
    elif "://" not in identifier and "@" in identifier:
        mailbox = identifier
    if mailbox is not None:
        domain = mailbox.rpartition("@")[2].strip().lower()
        if "@" not in mailbox or not domain:
            raise DiscoveryError(reason="invalid email address %s" % mailbox)
        return None, domain

    if "://" not in identifier:
        identifier = "https://" + identifier
    url = URL(identifier)
    if url.scheme.lower() not in ("http", "https") or not url.hostname:
        raise DiscoveryError(url=identifier, reason="neither http(s) URL nor email address")
    return url.unauth(), None


class DavResourceFinder:
    """
    Finds the CardDAV and CalDAV configuration for a URL or an email
    address, see the module documentation.

    Example:
        with DavResourceFinder("user@example.com", Credentials("user", "secret")) as finder:
            config = finder.find_initial_configuration()
        if config.nothing_detected:
            print(config.logs)
    """

    def __init__(
        self,
        base_uri: str,
        credentials: Optional[Credentials] = None,
        client: Optional[DAVClient] = None,
        **client_params,
    ) -> None:
        self.base_url, self.mailbox_domain = _parse_seed(base_uri)
        self._own_client = client is None
        self.client = client or DAVClient(credentials=credentials, **client_params)
        self.encountered_401 = False
        self._logs: List[str] = []

    def __enter__(self) -> "DavResourceFinder":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        if self._own_client:
            self.client.close()

    def _log(self, level: int, msg: str, *args, exc: Optional[BaseException] = None) -> None:
        text = msg % args if args else msg
        if exc is not None:
            text += "\n" + "".join(traceback.format_exception_only(type(exc), exc)).rstrip()
        self._logs.append("%s %s" % (logging.getLevelName(level), text))
        log.log(level, text)

    def _process_exception(self, e: BaseException) -> None:
        if isinstance(e, NotAuthorizedError):
            self.encountered_401 = True

    def find_initial_configuration(self) -> Configuration:
        """
        Runs the service detection.  Never raises because of what the
        server does; if nothing was found, both services are None and
        ``logs`` tells what happened.
        """
        self._logs = []
        self.encountered_401 = False
        results: Dict[ServiceType, Optional[ServiceInfo]] = {}
        for service in (ServiceType.CARDDAV, ServiceType.CALDAV):
            try:
                results[service] = self.find_service(service)
            except Exception as e:
                ## one service failing must not prevent the other
                self._log(logging.INFO, "%s service detection failed", service.value, exc=e)
                self._process_exception(e)
                results[service] = None

        return Configuration(
            carddav=results[ServiceType.CARDDAV],
            caldav=results[ServiceType.CALDAV],
            encountered_401=self.encountered_401,
            logs="\n".join(self._logs),
        )

    def find_service(self, service: ServiceType) -> Optional[ServiceInfo]:
        """The configuration for one service, or None if not available"""
        config = ServiceInfo()
        discovery_domain = self.mailbox_domain

        self._log(logging.INFO, "Finding initial %s service configuration", service.value)
        if self.base_url is not None:
            ## DNS discovery is only done for https
            if self.base_url.scheme.lower() == "https":
                discovery_domain = self.base_url.hostname

            self.check_base_url(self.base_url, service, config)

            if config.principal is None and self.base_url.scheme.lower() == "https":
                well_known = self.base_url.join(service.well_known_path)
                try:
                    config.principal = self.get_current_user_principal(well_known, service)
                except STEP_ERRORS as e:
                    self._log(logging.DEBUG, "Well-known URL detection failed", exc=e)
                    self._process_exception(e)

        if config.principal is None and discovery_domain:
            self._log(
                logging.INFO,
                "No principal found at user-given URL, trying to discover for domain %s",
                discovery_domain,
            )
            try:
                config.principal = self.discover_principal_url(discovery_domain, service)
            except STEP_ERRORS as e:
                self._log(logging.DEBUG, "%s service discovery failed", service.value, exc=e)
                self._process_exception(e)

        if service is ServiceType.CALDAV and config.principal is not None:
            config.emails.extend(self.query_email_address(config.principal))

        if config.available:
            return config
        return None

    def check_base_url(self, base_url: URL, service: ServiceType, config: ServiceInfo) -> None:
        """
        Asks the user-given URL whether it is a collection, a principal,
        or knows home sets or the current user principal.
        """
        self._log(logging.INFO, "Checking user-given URL: %s", base_url)
        resource = DAVObject(self.client, base_url, service)
        try:
            result = resource.propfind(PropfindPurpose.SERVICE_PROBE, depth=0)
            self.scan_response(service, result, config)
        except STEP_ERRORS as e:
            self._log(logging.DEBUG, "PROPFIND/OPTIONS on user-given URL failed", exc=e)
            self._process_exception(e)

    def scan_response(
        self, service: ServiceType, result: PropfindResult, config: ServiceInfo
    ) -> None:
        """
        Records collections of the service's type, home sets and the
        principal found in a PROPFIND result.  Collections and home sets
        are stored with trailing slash.
        """
        for response in result.responses():
            if not response.ok:
                continue
            url, properties = response.url, response.properties
            principal: Optional[URL] = None

            href = properties.get(p.CURRENT_USER_PRINCIPAL)
            if href:
                principal = result.location.join(href)

            types = properties.resource_types()
            if service.collection_type in types:
                info = CollectionInfo.from_properties(url, properties)
                if info is not None:
                    self._log(logging.INFO, "Found %s at %s", info.type.value, info.url)
                    config.collections[info.url] = info
                    home_set = info.url.join("../")
                    if home_set != info.url:
                        self._log(logging.INFO, "Assuming home-set at %s", home_set)
                        config.home_sets.add(home_set)

            if p.PRINCIPAL in types:
                principal = url

            for href in properties.get(service.home_set) or []:
                location = result.location.join(href).with_trailing_slash()
                self._log(logging.INFO, "Found %s home-set at %s", service.value, location)
                config.home_sets.add(location)

            if principal is not None:
                if self.provides_service(principal, service):
                    config.principal = principal
                else:
                    self._log(
                        logging.WARNING,
                        "Principal %s doesn't provide %s service",
                        principal,
                        service.value,
                    )

    def provides_service(self, url: URL, service: ServiceType) -> bool:
        """
        OPTIONS on ``url``: is the service's capability in the DAV
        header?  Any failure, including transport errors, means "no".
        """
        resource = DAVObject(self.client, url, service)
        try:
            return resource.options().supports(service.capability)
        except STEP_ERRORS as e:
            self._log(logging.WARNING, "Couldn't detect services on %s", url, exc=e)
            self._process_exception(e)
            return False

    def get_current_user_principal(
        self, url: URL, service: Optional[ServiceType]
    ) -> Optional[URL]:
        """
        PROPFIND ``url`` for current-user-principal.  Returns the
        principal if it provides ``service`` (not checked if None).
        """
        resource = DAVObject(self.client, url, service)
        result = resource.propfind(PropfindPurpose.PRINCIPAL, depth=0)
        for response in result.responses():
            href = response.properties.get(p.CURRENT_USER_PRINCIPAL)
            if not href:
                continue
            principal = result.location.join(href)
            self._log(logging.INFO, "Found current-user-principal: %s", principal)
            if service is not None and not self.provides_service(principal, service):
                self._log(
                    logging.WARNING,
                    "Principal %s doesn't provide %s service",
                    principal,
                    service.value,
                )
                continue
            return principal
        return None

    def discover_principal_url(self, domain: str, service: ServiceType) -> Optional[URL]:
        """
        RFC 6764 discovery of the principal for ``domain``.  Only the
        TLS services are looked up.
        """
        srv_records = _srv_lookup(domain, service)
        if srv_records:
            if len(srv_records) > 1:
                self._log(
                    logging.INFO,
                    "%i SRV records for %s, using the first one",
                    len(srv_records),
                    domain,
                )
            fqdn, port = srv_records[0][:2]
            if not _is_subdomain_or_same(fqdn, domain):
                self._log(
                    logging.WARNING,
                    "SRV record for %s points to %s, outside of the domain",
                    domain,
                    fqdn,
                )
            self._log(logging.INFO, "Found %s service at https://%s:%i", service.value, fqdn, port)
        else:
            fqdn, port = domain, 443
            self._log(
                logging.INFO,
                "Didn't find %s service, trying at https://%s:%i",
                service.value,
                fqdn,
                port,
            )

        ## in case there's a TXT record, but it's wrong, try well-known;
        ## if this fails too, try "/"
        paths = _txt_lookup(domain, service)
        paths += [service.well_known_path, "/"]

        netloc = fqdn if port == 443 else "%s:%i" % (fqdn, port)
        for path in paths:
            if not path.startswith("/"):
                path = "/" + path
            initial_context_path = URL("https://%s%s" % (netloc, path))
            self._log(
                logging.INFO,
                "Trying to determine principal from initial context path=%s",
                initial_context_path,
            )
            try:
                principal = self.get_current_user_principal(initial_context_path, service)
            except STEP_ERRORS as e:
                self._log(logging.WARNING, "No resource found", exc=e)
                self._process_exception(e)
                continue
            if principal is not None:
                return principal
        return None

    def query_email_address(self, principal: URL) -> List[str]:
        """
        The mailto: addresses of the principal's
        calendar-user-address-set, in server order.
        """
        mailboxes: List[str] = []
        resource = DAVObject(self.client, principal, ServiceType.CALDAV)
        try:
            result = resource.propfind(PropfindPurpose.USER_ADDRESSES, depth=0)
        except STEP_ERRORS as e:
            self._log(logging.WARNING, "Couldn't query user email address", exc=e)
            self._process_exception(e)
            return mailboxes
        for response in result.responses():
            for href in response.properties.get(p.CALENDAR_USER_ADDRESS_SET) or []:
                parsed = urlparse(href)
                if parsed.scheme.lower() == "mailto" and parsed.path:
                    mailboxes.append(parsed.path)
        return mailboxes

