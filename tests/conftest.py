"""Shared fixtures for the Auvo connector tests."""

import os
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

# Set test environment variables before importing server
os.environ["AUVO_API_KEY"] = "test_api_key"
os.environ["AUVO_API_TOKEN"] = "test_api_token"
os.environ["AUVO_API_URL"] = "https://api.auvo.com.br/v2"
os.environ["AUVO_ALLOW_WRITES"] = "true"

BASE_URL = "https://api.auvo.com.br/v2"
LOGIN_URL = f"{BASE_URL}/login/?apiKey=test_api_key&apiToken=test_api_token"
ACCESS_TOKEN = "test_access_token"


@pytest.fixture
def httpx_mock(monkeypatch):
    """Mock httpx for testing without making real API calls.

    Every request seen by the transport is kept in ``requests`` in the order
    it was sent.
    """
    class MockTransport(httpx.MockTransport):
        def __init__(self):
            self.responses = []
            self.requests = []
            super().__init__(self._handler)

        def _handler(self, request):
            self.requests.append(request)
            for response_config in self.responses:
                if self._matches(request, response_config):
                    if response_config.get("exception") is not None:
                        raise response_config["exception"](
                            "Mocked network failure", request=request
                        )
                    return httpx.Response(
                        status_code=response_config.get("status_code", 200),
                        json=response_config.get("json"),
                        text=response_config.get("text"),
                    )
            raise Exception(f"No mock configured for {request.method} {request.url}")

        def _matches(self, request, config):
            if config["method"] != request.method:
                return False
            expected_url = config["url"]
            actual_url = str(request.url)
            # Normalize URLs for comparison (handle query param order)
            return expected_url == actual_url or self._urls_match(expected_url, actual_url)

        def _urls_match(self, expected, actual):
            exp_parsed = urlparse(expected)
            act_parsed = urlparse(actual)

            if exp_parsed.scheme != act_parsed.scheme:
                return False
            if exp_parsed.netloc != act_parsed.netloc:
                return False
            if exp_parsed.path != act_parsed.path:
                return False

            return parse_qs(exp_parsed.query) == parse_qs(act_parsed.query)

        def add_response(self, url, json=None, status_code=200, method="GET", text=None):
            self.responses.append({
                "method": method,
                "url": url,
                "json": json,
                "text": text,
                "status_code": status_code,
            })

        def add_exception(self, url, exception=httpx.ConnectError, method="GET"):
            self.responses.append({
                "method": method,
                "url": url,
                "exception": exception,
            })

        def add_login(self, access_token=ACCESS_TOKEN):
            self.add_response(LOGIN_URL, json={"result": {"accessToken": access_token}})

    mock = MockTransport()

    original_init = httpx.AsyncClient.__init__

    def patched_init(self, *args, **kwargs):
        kwargs['transport'] = mock
        original_init(self, *args, **kwargs)

    monkeypatch.setattr(httpx.AsyncClient, "__init__", patched_init)

    return mock
