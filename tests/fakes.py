import requests

from birdroute.http import HttpClient


class FakeResponse:
    def __init__(self, payload, status_code=200, headers=None):
        self._payload = payload
        self.status_code = status_code
        self.headers = headers or {}

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)
        return None


class FakeSession:
    """Routes GET calls by URL substring; each value is a payload or a list of responses."""

    def __init__(self, responses_by_url):
        self.responses_by_url = responses_by_url
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append((url, dict(params or {})))
        for needle, payload in self.responses_by_url.items():
            if needle in url:
                if isinstance(payload, list):
                    item = payload.pop(0) if len(payload) > 1 else payload[0]
                    return item if isinstance(item, FakeResponse) else FakeResponse(item)
                if isinstance(payload, FakeResponse):
                    return payload
                return FakeResponse(payload)
        return FakeResponse({}, status_code=404)


def make_http_client(responses_by_url, retry_max=1):
    client = HttpClient(
        timeout=1,
        retry_max=retry_max,
        backoff_base=0.0,
        backoff_max=0.0,
    )
    client.session = FakeSession(responses_by_url)
    return client
