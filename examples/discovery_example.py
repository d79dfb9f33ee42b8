#!/usr/bin/env python
"""
Example: finding and refreshing the CalDAV/CardDAV setup of an account.

Usage:
    discovery_example.py jane@example.com jane secret
    discovery_example.py https://dav.example.com/ jane secret
"""
import logging
import sys

from davkit import Credentials
from davkit import DavResourceFinder
from davkit.davclient import DAVClient
from davkit.protocol import ServiceType
from davkit.refresh import RefreshManager
from davkit.refresh import ServiceRefresher


def print_service(name, info):
    if info is None:
        print(f"{name}: not available")
        return
    print(f"{name}: principal {info.principal}")
    for home_set in sorted(info.home_sets, key=str):
        print(f"  home set {home_set}")
    for collection in info.collections.values():
        flags = " (read-only)" if collection.read_only else ""
        print(f"  {collection.type.value} {collection.title}{flags}: {collection.url}")
    if info.email:
        print(f"  email {info.email}")


def main(seed, username, password):
    credentials = Credentials(username, password)
    with DavResourceFinder(seed, credentials) as finder:
        config = finder.find_initial_configuration()

    if config.nothing_detected:
        print("Nothing found.")
        if config.encountered_401:
            print("The server rejected the credentials.")
        print(config.logs)
        return 1

    print_service("CardDAV", config.carddav)
    print_service("CalDAV", config.caldav)

    ## Refresh both services in the background
    with DAVClient(credentials=credentials) as client, RefreshManager() as manager:
        manager.add_listener(lambda service_id, running: print(f"{service_id} running: {running}"))
        futures = {}
        for service, info in ((ServiceType.CARDDAV, config.carddav), (ServiceType.CALDAV, config.caldav)):
            if info is not None:
                refresher = ServiceRefresher(client, service, info)
                futures[service] = manager.refresh(service.value, refresher.refresh)
        for service, future in futures.items():
            print_service(f"{service.value} after refresh", future.result())
    return 0


if __name__ == "__main__":
    if len(sys.argv) != 4:
        print(__doc__)
        sys.exit(2)
    logging.basicConfig(level=logging.INFO)
    sys.exit(main(*sys.argv[1:]))
