import threading
from concurrent.futures import Future

import pytest

from davkit.collection import CollectionInfo
from davkit.collection import CollectionType
from davkit.davclient import DAVClient
from davkit.discovery import ServiceInfo
from davkit.lib.error import HTTPError
from davkit.lib.url import URL
from davkit.protocol import ServiceType
from davkit.refresh import RefreshManager
from davkit.refresh import ServiceRefresher

BASE = "https://dav.example.com/"
CALENDAR = "<d:resourcetype><d:collection/><c:calendar/></d:resourcetype>"


def calendar(path):
    return CollectionInfo(url=URL(BASE + path), type=CollectionType.CALENDAR)


class TestServiceRefresher:
    def test_refresh(self, fake_server):
        fake_server.add_multistatus(
            BASE + "p/jane/",
            ("/p/jane/", "<c:calendar-home-set><d:href>/cal/jane/</d:href><d:href>/cal/shared</d:href></c:calendar-home-set>"),
        )
        fake_server.add_multistatus(
            BASE + "cal/jane/",
            ("/cal/jane/", "<d:resourcetype><d:collection/></d:resourcetype>"),
            ("/cal/jane/work/", CALENDAR + "<d:displayname>Work</d:displayname>"),
            ("/cal/jane/inbox/", "<d:resourcetype><d:collection/><c:schedule-inbox/></d:resourcetype>"),
            ("/cal/jane/broken/", "", "HTTP/1.1 500 Internal Server Error"),
        )
        fake_server.add("PROPFIND", BASE + "cal/shared/", 403)
        fake_server.add("PROPFIND", BASE + "cal/old/", 410)
        fake_server.add_multistatus(BASE + "cal/lonely/", ("/cal/lonely/", CALENDAR))
        fake_server.add_multistatus(BASE + "cal/plain/", ("/cal/plain/", "<d:resourcetype><d:collection/></d:resourcetype>"))

        info = ServiceInfo(
            principal=URL(BASE + "p/jane/"),
            home_sets={URL(BASE + "cal/old/")},
            collections={
                URL(BASE + "cal/lonely/"): calendar("cal/lonely/"),
                URL(BASE + "cal/gone/"): calendar("cal/gone/"),
                URL(BASE + "cal/plain/"): calendar("cal/plain/"),
            },
        )
        result = ServiceRefresher(DAVClient(), ServiceType.CALDAV, info).refresh()

        assert result.home_sets == {URL(BASE + "cal/jane/")}
        assert set(result.collections) == {URL(BASE + "cal/jane/work/"), URL(BASE + "cal/lonely/")}
        assert result.collections[URL(BASE + "cal/jane/work/")].display_name == "Work"
        ## the input is left alone
        assert len(info.collections) == 3
        assert info.home_sets == {URL(BASE + "cal/old/")}

    def test_principal_client_error_is_ignored(self, fake_server):
        fake_server.add("PROPFIND", BASE + "p/jane/", 403)
        info = ServiceInfo(principal=URL(BASE + "p/jane/"))
        result = ServiceRefresher(DAVClient(), ServiceType.CARDDAV, info).refresh()
        assert result.principal == info.principal
        assert result.home_sets == set()

    def test_server_error_propagates(self, fake_server):
        fake_server.add("PROPFIND", BASE + "cal/jane/", 500)
        info = ServiceInfo(home_sets={URL(BASE + "cal/jane/")})
        with pytest.raises(HTTPError):
            ServiceRefresher(DAVClient(), ServiceType.CALDAV, info).refresh()


class TestRefreshManager:
    def test_runs_job(self):
        events = []
        with RefreshManager() as manager:
            manager.add_listener(lambda service_id, running: events.append((service_id, running)))
            future = manager.refresh("caldav", lambda: 42)
            assert future.result(timeout=5) == 42
        assert events == [("caldav", True), ("caldav", False)]
        assert not manager.running("caldav")

    def test_one_refresh_per_service(self):
        started = threading.Event()
        release = threading.Event()
        calls = []

        def job():
            calls.append(1)
            started.set()
            release.wait(5)
            return "done"

        with RefreshManager() as manager:
            first = manager.refresh(1, job)
            started.wait(5)
            assert manager.running(1)
            second = manager.refresh(1, job)
            assert second is first
            other = manager.refresh(2, lambda: "other")
            assert other is not first
            release.set()
            assert first.result(timeout=5) == "done"
            assert other.result(timeout=5) == "other"
        assert calls == [1]

    def test_refresh_again_after_completion(self):
        with RefreshManager() as manager:
            assert manager.refresh("x", lambda: 1).result(timeout=5) == 1
            assert manager.refresh("x", lambda: 2).result(timeout=5) == 2

    def test_failure(self):
        events = []

        def job():
            raise HTTPError(url=BASE, status=500)

        with RefreshManager() as manager:
            manager.add_listener(lambda service_id, running: events.append(running))
            future = manager.refresh("x", job)
            with pytest.raises(HTTPError):
                future.result(timeout=5)
        assert events == [True, False]
        assert not manager.running("x")

    def test_broken_listener(self):
        def listener(service_id, running):
            raise RuntimeError("bug")

        with RefreshManager() as manager:
            manager.add_listener(listener)
            assert manager.refresh("x", lambda: 1).result(timeout=5) == 1
            manager.remove_listener(listener)
            manager.remove_listener(listener)

    def test_running_is_cleared_before_result(self):
        with RefreshManager() as manager:
            seen = []
            future = manager.refresh("x", lambda: None)
            future.add_done_callback(lambda f: seen.append(manager.running("x")))
            future.result(timeout=5)
        assert seen == [False]
        assert isinstance(future, Future)
