"""
Rule: None of the tests should initiate any internet communication.
HTTP is answered by the FakeServer below, patched in at
requests.Session.request; DNS is patched at dns.resolver.resolve.
"""
from collections import namedtuple
from http.client import responses as reason_phrases
from unittest import mock

import pytest
import requests
from requests.structures import CaseInsensitiveDict

SentRequest = namedtuple("SentRequest", "method url body headers")


def make_response(status=200, headers=None, body=b"", url=None, reason=None):
    r = requests.Response()
    r.status_code = status
    r.headers = CaseInsensitiveDict(headers or {})
    r._content = body.encode("utf-8") if isinstance(body, str) else body
    r.reason = reason if reason is not None else reason_phrases.get(status, "")
    r.url = url
    r._content_consumed = True
    return r


def multistatus(*responses):
    """A multistatus document from ``(href, props_xml)`` or ``(href, props_xml, status)``"""
    parts = []
    for response in responses:
        href, props = response[0], response[1]
        status = response[2] if len(response) > 2 else "HTTP/1.1 200 OK"
        parts.append(
            "<d:response><d:href>%s</d:href><d:propstat><d:prop>%s</d:prop>"
            "<d:status>%s</d:status></d:propstat></d:response>" % (href, props, status)
        )
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        '<d:multistatus xmlns:d="DAV:" xmlns:c="urn:ietf:params:xml:ns:caldav" '
        'xmlns:cr="urn:ietf:params:xml:ns:carddav" xmlns:cs="http://calendarserver.org/ns/" '
        'xmlns:i="http://apple.com/ns/ical/">%s</d:multistatus>' % "".join(parts)
    )


class FakeServer:
    """
    Answers requests by (method, url).  Unknown routes get a 404.  A
    route may be a list of responses, which are handed out in order.
    """

    def __init__(self):
        self.routes = {}
        self.requests = []

    def add(self, method, url, status=200, headers=None, body=b""):
        self.routes.setdefault((method, url), []).append((status, headers, body))

    def add_multistatus(self, url, *responses, method="PROPFIND"):
        self.add(method, url, 207, {"Content-Type": "text/xml"}, multistatus(*responses))

    def add_options(self, url, dav="1, 2, 3"):
        self.add("OPTIONS", url, 200, {"DAV": dav, "Allow": "OPTIONS, PROPFIND, REPORT"})

    def add_failure(self, method, url, exc):
        """Requests to ``url`` raise ``exc``, like a transport failure"""
        self.routes.setdefault((method, url), []).append((exc, None, None))

    def sent(self, method=None):
        return [x for x in self.requests if method is None or x.method == method]

    def __call__(self, method, url, data=None, headers=None, auth=None, **kwargs):
        headers = dict(headers or {})
        if auth is not None:
            ## what a preemptive auth object would have added
            prepared = auth(requests.Request(method, url, headers=headers).prepare())
            if "Authorization" in prepared.headers:
                headers["Authorization"] = prepared.headers["Authorization"]
        self.requests.append(SentRequest(method, url, data, headers))
        answers = self.routes.get((method, url))
        if not answers:
            return make_response(404, url=url)
        status, headers, body = answers[0] if len(answers) == 1 else answers.pop(0)
        if isinstance(status, Exception):
            raise status
        return make_response(status, headers, body, url=url)


@pytest.fixture
def fake_server():
    server = FakeServer()
    with mock.patch("davkit.davclient.requests.Session.request", side_effect=server):
        yield server
