import httpx
import pytest

from rewriteproxy import app as app_module


class FakeUpstream:
    """Records outbound requests and answers them with a canned response."""

    def __init__(self):
        self.requests = []
        self.status_code = 200
        self.headers = {"Content-Type": "text/html; charset=utf-8"}
        self.content = b"<html><body>ok</body></html>"
        self.error = None

    def respond(self, content, headers=None, status_code=200):
        self.content = content
        if headers is not None:
            self.headers = headers
        self.status_code = status_code

    def handler(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, headers=self.headers, content=self.content)

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture
def upstream(monkeypatch):
    fake = FakeUpstream()
    mock_client = httpx.Client(transport=httpx.MockTransport(fake.handler), follow_redirects=True)
    monkeypatch.setattr(app_module, "client", mock_client)
    yield fake
    mock_client.close()


@pytest.fixture
def client():
    app_module.app.config["TESTING"] = True
    with app_module.app.test_client() as test_client:
        yield test_client
