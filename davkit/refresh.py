#!/usr/bin/env python
"""
Keeping the collection list of a service up to date.

:class:`ServiceRefresher` does one refresh of a service found by
:class:`davkit.discovery.DavResourceFinder`.  :class:`RefreshManager`
runs refresh jobs in the background, at most one per service.
"""
import logging
import threading
from concurrent.futures import Executor
from concurrent.futures import Future
from concurrent.futures import ThreadPoolExecutor
from typing import Callable
from typing import Dict
from typing import Hashable
from typing import List
from typing import Optional
from typing import Set

from davkit import properties as p
from davkit.collection import CollectionInfo
from davkit.davclient import DAVClient
from davkit.davobject import DAVObject
from davkit.discovery import ServiceInfo
from davkit.lib.error import HTTPError
from davkit.lib.url import URL
from davkit.protocol.types import PropfindPurpose
from davkit.protocol.types import ServiceType

log = logging.getLogger(__name__)

## a home set or collection answering with one of these is gone
GONE_STATUSES = frozenset((403, 404, 410))

RefreshListener = Callable[[Hashable, bool], None]


class ServiceRefresher:
    """
    Refreshes home sets and collections of one service:

    1. The principal is asked for its home sets; new ones are added.
    2. Every home set is listed (depth 1).  Collections of the
       service's type are added or updated.  Home sets that are gone
       are removed.
    3. Collections that were not found in any home set are asked
       about themselves (depth 0).  Gone ones are removed.

    The given :class:`ServiceInfo` is not modified; :meth:`refresh`
    returns the new state.
    """

    def __init__(self, client: DAVClient, service: ServiceType, info: ServiceInfo) -> None:
        self.client = client
        self.service = service
        self.info = ServiceInfo(
            principal=info.principal,
            home_sets=set(info.home_sets),
            collections=dict(info.collections),
            emails=list(info.emails),
        )

    def refresh(self) -> ServiceInfo:
        """
        Raises:
          HTTPError: other than "gone" for home sets and collections,
            or a server error on the principal
          requests.RequestException: transport errors
        """
        if self.info.principal is not None:
            self.discover_home_sets(self.info.principal)
        found = self.refresh_home_sets()
        self.refresh_collections_without_home_set(found)
        return self.info

    def discover_home_sets(self, principal: URL) -> None:
        log.debug("Discovering home sets of %s", principal)
        resource = DAVObject(self.client, principal, self.service)
        try:
            result = resource.propfind([self.service.home_set], depth=0)
        except HTTPError as e:
            if 400 <= e.status < 500:
                log.info("Ignoring %i while looking for %s home sets", e.status, self.service.value)
                return
            raise
        for response in result.responses():
            for href in response.properties.get(self.service.home_set) or []:
                home_set = result.location.join(href).with_trailing_slash()
                if home_set not in self.info.home_sets:
                    log.info("Found new home set %s", home_set)
                    self.info.home_sets.add(home_set)

    def refresh_home_sets(self) -> Set[URL]:
        """Lists all home sets; returns the URLs of the collections found"""
        found: Set[URL] = set()
        for home_set in sorted(self.info.home_sets, key=str):
            log.debug("Listing home set %s", home_set)
            resource = DAVObject(self.client, home_set, self.service)
            try:
                result = resource.propfind(PropfindPurpose.MEMBERS, depth=1)
            except HTTPError as e:
                if e.status not in GONE_STATUSES:
                    raise
                log.info("Home set %s is gone (%i), removing it", home_set, e.status)
                self.info.home_sets.discard(home_set)
                continue
            for response in result.responses():
                if not response.ok:
                    continue
                info = self._collection(response.url, response.properties)
                if info is not None:
                    self.info.collections[info.url] = info
                    found.add(info.url)
        return found

    def refresh_collections_without_home_set(self, found: Set[URL]) -> None:
        for url in [x for x in self.info.collections if x not in found]:
            log.debug("Checking collection without home set %s", url)
            resource = DAVObject(self.client, url, self.service)
            try:
                resource.propfind(PropfindPurpose.MEMBERS, depth=0)
            except HTTPError as e:
                if e.status not in GONE_STATUSES:
                    raise
                log.info("Collection %s is gone (%i), removing it", url, e.status)
                del self.info.collections[url]
                continue
            del self.info.collections[url]
            info = self._collection(resource.location, resource.properties)
            if info is None:
                log.info("%s is not a %s collection anymore, removing it", url, self.service.value)
            else:
                self.info.collections[info.url] = info

    def _collection(self, url: URL, properties: p.PropertyBag) -> Optional[CollectionInfo]:
        if self.service.collection_type not in properties.resource_types():
            return None
        return CollectionInfo.from_properties(url, properties)


class RefreshManager:
    """
    Runs refresh jobs in an executor, at most one per service id.

    Listeners are called with ``(service_id, True)`` when a job starts
    and ``(service_id, False)`` when it has ended, successful or not.
    They are called from the worker thread.

    Example:
        manager = RefreshManager()
        manager.add_listener(lambda service_id, running: print(service_id, running))
        future = manager.refresh("caldav", ServiceRefresher(client, ServiceType.CALDAV, info).refresh)
        info = future.result()
    """

    def __init__(self, executor: Optional[Executor] = None, max_workers: Optional[int] = None) -> None:
        self._own_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="davkit-refresh"
        )
        self._running: Dict[Hashable, Future] = {}
        self._listeners: List[RefreshListener] = []
        self._lock = threading.Lock()

    def __enter__(self) -> "RefreshManager":
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()

    def shutdown(self, wait: bool = True) -> None:
        if self._own_executor:
            self._executor.shutdown(wait=wait)

    def add_listener(self, listener: RefreshListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: RefreshListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def running(self, service_id: Hashable) -> bool:
        """Whether a refresh of ``service_id`` is queued or running"""
        with self._lock:
            return service_id in self._running

    def refresh(self, service_id: Hashable, job: Callable[[], object]) -> Future:
        """
        Schedules ``job``, unless a refresh of ``service_id`` is
        already pending; then the pending job's future is returned and
        ``job`` is dropped.
        """
        with self._lock:
            future = self._running.get(service_id)
            if future is not None:
                log.debug("Refresh of %s already pending", service_id)
                return future
            future = Future()
            self._running[service_id] = future
        try:
            self._executor.submit(self._run, service_id, job, future)
        except RuntimeError:
            ## executor shut down
            with self._lock:
                del self._running[service_id]
            raise
        return future

    def _run(self, service_id: Hashable, job: Callable[[], object], future: Future) -> None:
        if not future.set_running_or_notify_cancel():
            with self._lock:
                self._running.pop(service_id, None)
            return

        self._notify(service_id, True)
        result = None
        failure: Optional[BaseException] = None
        try:
            result = job()
        except Exception as e:
            log.info("Refresh of %s failed", service_id, exc_info=True)
            failure = e
        finally:
            with self._lock:
                if self._running.get(service_id) is future:
                    del self._running[service_id]
            self._notify(service_id, False)

        if failure is not None:
            future.set_exception(failure)
        else:
            future.set_result(result)

    def _notify(self, service_id: Hashable, running: bool) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(service_id, running)
            except Exception:
                log.exception("Refresh listener %r failed", listener)
