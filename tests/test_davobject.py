import pytest
from lxml import etree

from conftest import multistatus
from davkit import properties as p
from davkit.davclient import DAVClient
from davkit.davobject import DAVObject
from davkit.lib import error
from davkit.protocol import PropfindPurpose
from davkit.protocol import PutMode
from davkit.protocol import ServiceType

CAL = "https://dav.example.com/cal/jane/work/"


@pytest.fixture
def calendar(fake_server):
    return DAVObject(DAVClient(), CAL, ServiceType.CALDAV)


class TestPropfind:
    def test_members(self, fake_server, calendar):
        fake_server.add_multistatus(
            CAL,
            ("/cal/jane/work/", "<d:resourcetype><d:collection/><c:calendar/></d:resourcetype><cs:getctag>7</cs:getctag>"),
            ("/cal/jane/work/a.ics", '<d:getetag>"a"</d:getetag>'),
            ("/cal/jane/work/b.ics", '<d:getetag>"b"</d:getetag>'),
        )
        calendar.propfind(PropfindPurpose.MEMBER_ETAGS)
        assert calendar.ctag == "7"
        assert [x.properties[p.GETETAG] for x in calendar.members] == ['"a"', '"b"']
        (sent,) = fake_server.requests
        assert sent.headers["Depth"] == "1"

    def test_properties_are_replaced(self, fake_server, calendar):
        fake_server.add_multistatus(CAL, ("/cal/jane/work/", "<d:displayname>Work</d:displayname>"))
        fake_server.add_multistatus(CAL, ("/cal/jane/work/", "<cs:getctag>8</cs:getctag>"))
        calendar.propfind([p.DISPLAYNAME])
        assert calendar.properties[p.DISPLAYNAME] == "Work"
        calendar.propfind(PropfindPurpose.CTAG)
        assert calendar.ctag == "8"
        assert p.DISPLAYNAME not in calendar.properties

    def test_depth_0_keeps_members(self, fake_server, calendar):
        fake_server.add_multistatus(
            CAL,
            ("/cal/jane/work/", "<cs:getctag>1</cs:getctag>"),
            ("/cal/jane/work/a.ics", '<d:getetag>"a"</d:getetag>'),
        )
        fake_server.add_multistatus(CAL, ("/cal/jane/work/", "<cs:getctag>2</cs:getctag>"))
        calendar.propfind(PropfindPurpose.MEMBER_ETAGS)
        calendar.propfind(PropfindPurpose.CTAG)
        assert len(calendar.members) == 1

    def test_redirect_updates_location(self, fake_server):
        fake_server.add("PROPFIND", "https://dav.example.com/old/", 301, {"Location": "/new/"})
        fake_server.add_multistatus(
            "https://dav.example.com/new/", ("/new/", "<d:resourcetype><d:collection/></d:resourcetype>")
        )
        resource = DAVObject(DAVClient(), "https://dav.example.com/old/")
        result = resource.propfind([p.RESOURCETYPE])
        assert str(resource.location) == "https://dav.example.com/new/"
        assert result.properties.is_collection()
        assert fake_server.requests[1].method == "PROPFIND"

    def test_content_location(self, fake_server):
        fake_server.add(
            "PROPFIND",
            "https://dav.example.com/alias",
            207,
            {"Content-Location": "/real/"},
            multistatus(("/real/", "<d:displayname>x</d:displayname>")),
        )
        resource = DAVObject(DAVClient(), "https://dav.example.com/alias")
        resource.propfind([p.DISPLAYNAME])
        assert str(resource.location) == "https://dav.example.com/real/"
        assert resource.properties[p.DISPLAYNAME] == "x"

    def test_errors(self, fake_server, calendar):
        fake_server.add("PROPFIND", CAL, 401)
        with pytest.raises(error.NotAuthorizedError):
            calendar.propfind()

    def test_not_multistatus(self, fake_server, calendar):
        fake_server.add("PROPFIND", CAL, 200, {}, b"<html/>")
        with pytest.raises(error.DavNoMultiStatusError):
            calendar.propfind()

    def test_relative_to_client_url(self, fake_server):
        fake_server.add_multistatus(CAL, ("/cal/jane/work/", "<d:displayname>x</d:displayname>"))
        resource = DAVObject(DAVClient(url="https://dav.example.com/cal/jane/"), "work/")
        assert str(resource.location) == CAL
        resource.propfind([p.DISPLAYNAME])
        assert resource.properties[p.DISPLAYNAME] == "x"


class TestOptions:
    def test_options(self, fake_server, calendar):
        fake_server.add_options(CAL, dav="1, 2, calendar-access")
        calendar.options()
        assert calendar.supports("calendar-access")
        assert not calendar.supports("addressbook")
        assert "REPORT" in calendar.methods


class TestMultiget:
    def test_multiget(self, fake_server, calendar):
        fake_server.add_multistatus(
            CAL,
            ("/cal/jane/work/a.ics", '<d:getetag>"a"</d:getetag><c:calendar-data>BEGIN:VCALENDAR</c:calendar-data>'),
            method="REPORT",
        )
        members = calendar.multiget(["a.ics"])
        assert members[0].properties[p.CALENDAR_DATA] == "BEGIN:VCALENDAR"
        (sent,) = fake_server.requests
        assert sent.method == "REPORT"
        hrefs = [x.text for x in etree.fromstring(sent.body).iter("{DAV:}href")]
        assert hrefs == ["/cal/jane/work/a.ics"]

    def test_empty(self, fake_server, calendar):
        assert calendar.multiget([]) == []
        assert fake_server.requests == []

    def test_needs_service(self, fake_server):
        with pytest.raises(ValueError):
            DAVObject(DAVClient(), CAL).multiget(["a.ics"])


class TestWrite:
    URL = CAL + "a.ics"

    def test_create(self, fake_server):
        fake_server.add("PUT", self.URL, 201, {"ETag": '"1"'})
        event = DAVObject(DAVClient(), self.URL, ServiceType.CALDAV)
        assert event.put("BEGIN:VCALENDAR") == '"1"'
        assert event.etag == '"1"'
        (sent,) = fake_server.requests
        assert sent.headers["If-None-Match"] == "*"
        assert sent.headers["Content-Type"].startswith("text/calendar")

    def test_update(self, fake_server):
        fake_server.add("PUT", self.URL, 204)
        event = DAVObject(DAVClient(), self.URL, ServiceType.CALDAV)
        event.properties[p.GETETAG] = '"1"'
        assert event.put("BEGIN:VCALENDAR") is None
        assert event.etag is None
        assert fake_server.requests[0].headers["If-Match"] == '"1"'

    def test_conflict(self, fake_server):
        fake_server.add("PUT", self.URL, 412)
        event = DAVObject(DAVClient(), self.URL, ServiceType.CALDAV)
        with pytest.raises(error.PreconditionFailedError):
            event.put("BEGIN:VCALENDAR", mode=PutMode.CREATE)

    def test_delete(self, fake_server):
        fake_server.add("DELETE", self.URL, 204)
        event = DAVObject(DAVClient(), self.URL, ServiceType.CALDAV)
        event.properties[p.GETETAG] = '"2"'
        event.delete()
        assert fake_server.requests[0].headers["If-Match"] == '"2"'
        assert event.etag is None

    def test_delete_gone(self, fake_server):
        event = DAVObject(DAVClient(), self.URL, ServiceType.CALDAV)
        with pytest.raises(error.NotFoundError):
            event.delete()
        assert "If-Match" not in fake_server.requests[0].headers

    def test_invalidate_ctag(self, calendar):
        calendar.properties[p.GETCTAG] = "5"
        calendar.properties[p.DISPLAYNAME] = "Work"
        calendar.invalidate_ctag()
        assert calendar.ctag is None
        assert calendar.properties[p.DISPLAYNAME] == "Work"
