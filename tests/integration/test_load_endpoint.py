"""
Integration tests for the /test load endpoint.

These tests drive the assembled FastAPI application through TestClient
(and through raw ASGI calls where httpx would re-encode the query string).

Tests verify:
- Payload length, content and content type
- GET and POST (form-encoded and other bodies)
- Malformed form input answered with the decoder's text and status 200
- Deterministic output across requests
- Independent output under concurrent requests
- Logging of parsed parameters
- Load metrics
"""

import asyncio
from unittest.mock import patch

import httpx
import pytest

FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}


class TestPayload:
    """Test the successful response contract."""

    def test_end_to_end_get(self, client, expected_payload):
        """Test GET /test?x=1 returns the full digit payload."""
        response = client.get("/test?x=1")

        assert response.status_code == 200
        assert len(response.content) == 19999
        assert response.content.startswith(b"123456789012345678")
        assert response.content == expected_payload

    def test_content_type(self, client):
        response = client.get("/test")

        assert response.headers["content-type"] == "text/plain; charset=utf-8"

    def test_byte_at_each_position(self, client):
        """Test byte i (1-indexed) equals ASCII '0' + i % 10."""
        body = client.get("/test").content

        assert all(byte == ord("0") + i % 10 for i, byte in enumerate(body, start=1))

    @pytest.mark.parametrize("params", [
        {},
        {"x": "1"},
        {"name": "value with spaces", "unicode": "été"},
        {"k": ["1", "2", "3"]},
    ])
    def test_length_independent_of_parameters(self, client, params):
        response = client.get("/test", params=params)

        assert response.status_code == 200
        assert len(response.content) == 19999

    def test_post_form_body(self, client, expected_payload):
        response = client.post("/test?q=1", content=b"a=1&b=2", headers=FORM_HEADERS)

        assert response.status_code == 200
        assert response.content == expected_payload

    def test_post_json_body_is_ignored(self, client, expected_payload):
        """Test that non-form bodies are left unread."""
        response = client.post("/test", content=b"{not form; %zz}", headers={"Content-Type": "application/json"})

        assert response.status_code == 200
        assert response.content == expected_payload

    def test_post_without_content_type(self, client, expected_payload):
        response = client.post("/test", content=b"%zz")

        assert response.status_code == 200
        assert response.content == expected_payload

    def test_repeated_requests_identical(self, client):
        """Test that repeated requests return byte-identical bodies."""
        bodies = {client.get("/test?x=1").content for _ in range(5)}

        assert len(bodies) == 1

    def test_method_not_allowed(self, client):
        response = client.put("/test")

        assert response.status_code == 405
        assert response.json() == {"detail": "Method Not Allowed"}


class TestMalformedInput:
    """Test that decoding failures reach the client as plain text with 200."""

    def test_bad_percent_escape_in_query(self, raw_request):
        status, headers, body = raw_request("GET", "/test", query_string=b"x=%zz")

        assert status == 200
        assert body == b'invalid URL escape "%zz"'
        assert headers["content-type"] == "text/plain; charset=utf-8"

    def test_truncated_escape_in_query(self, raw_request):
        status, _, body = raw_request("GET", "/test", query_string=b"x=1&y=%4")

        assert status == 200
        assert body == b'invalid URL escape "%4"'

    def test_semicolon_in_query(self, client):
        response = client.get("/test?x=1;y=2")

        assert response.status_code == 200
        assert response.text == "invalid semicolon separator in query"

    def test_bad_escape_in_form_body(self, client):
        response = client.post("/test", content=b"a=%zz", headers=FORM_HEADERS)

        assert response.status_code == 200
        assert response.text == 'invalid URL escape "%zz"'

    def test_body_error_reported_before_query_error(self, raw_request):
        status, _, body = raw_request(
            "POST",
            "/test",
            query_string=b"q=%yy",
            body=b"a=%zz",
            headers=[("Content-Type", "application/x-www-form-urlencoded")],
        )

        assert status == 200
        assert body == b'invalid URL escape "%zz"'

    def test_missing_media_type(self, client):
        response = client.post("/test", content=b"a=1", headers={"Content-Type": "; charset=utf-8"})

        assert response.status_code == 200
        assert response.text == "mime: no media type"

    @pytest.mark.parametrize("content_type, message", [
        ("text plain", "mime: expected slash after first token"),
        ("text/", "mime: expected token after slash"),
        ("a/b/c", "mime: unexpected content after media type"),
        ("application/x-www-form-urlencoded; charset", "mime: invalid media parameter"),
    ])
    def test_malformed_content_type(self, client, content_type, message):
        response = client.post("/test", content=b"a=1", headers={"Content-Type": content_type})

        assert response.status_code == 200
        assert response.text == message

    def test_invalid_media_parameter_beats_body_error(self, raw_request):
        status, _, body = raw_request(
            "POST",
            "/test",
            query_string=b"q=%yy",
            body=b"a=%zz",
            headers=[("Content-Type", "application/x-www-form-urlencoded; charset")],
        )

        assert status == 200
        assert body == b"mime: invalid media parameter"

    def test_malformed_content_type_ignored_for_get(self, client, expected_payload):
        response = client.get("/test?a=1", headers={"Content-Type": "text plain"})

        assert response.content == expected_payload

    def test_parse_error_not_logged_as_parsed(self, client):
        with patch("api.src.routers.load.logger") as mock_logger:
            client.get("/test?x=1;y=2")

        mock_logger.info.assert_not_called()


class TestFormSizeLimit:
    """Test the maximum form body size."""

    @pytest.fixture
    def settings_overrides(self):
        return {"max_form_size": 16}

    def test_body_at_limit_accepted(self, client, expected_payload):
        response = client.post("/test", content=b"a=" + b"1" * 14, headers=FORM_HEADERS)

        assert response.content == expected_payload

    def test_body_over_limit_rejected(self, client):
        response = client.post("/test", content=b"a=" + b"1" * 15, headers=FORM_HEADERS)

        assert response.status_code == 200
        assert response.text == "http: POST too large"

    def test_too_large_beats_invalid_media_parameter(self, client):
        response = client.post(
            "/test",
            content=b"a=" + b"1" * 15,
            headers={"Content-Type": "application/x-www-form-urlencoded; charset"},
        )

        assert response.text == "http: POST too large"


class TestCustomWorkload:
    """Test that workload settings reach the endpoint."""

    @pytest.fixture
    def settings_overrides(self):
        return {"burn_iterations": 0, "payload_length": 25}

    def test_payload_length_setting(self, client):
        response = client.get("/test")

        assert response.content == b"1234567890123456789012345"


class TestParameterLogging:
    """Test that parsed parameters are logged."""

    def test_logs_query_parameters(self, client):
        with patch("api.src.routers.load.logger") as mock_logger:
            client.get("/test?x=1&x=2&y=a+b")

        mock_logger.info.assert_called_once_with("form_parsed", form={"x": ["1", "2"], "y": ["a b"]})

    def test_logs_body_before_query(self, client):
        with patch("api.src.routers.load.logger") as mock_logger:
            client.post("/test?k=query", content=b"k=body", headers=FORM_HEADERS)

        mock_logger.info.assert_called_once_with("form_parsed", form={"k": ["body", "query"]})


class TestConcurrency:
    """Test that concurrent requests do not share state."""

    def test_concurrent_requests_get_independent_payloads(self, app, expected_payload):
        async def fetch_all():
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http_client:
                return await asyncio.gather(
                    *(http_client.get("/test", params={"n": str(i)}) for i in range(16))
                )

        responses = asyncio.run(fetch_all())

        assert len(responses) == 16
        for response in responses:
            assert response.status_code == 200
            assert response.content == expected_payload


class TestLoadMetrics:
    """Test load metrics exposed on /metrics."""

    def test_served_and_parse_error_outcomes(self, client):
        client.get("/test?x=1")
        client.get("/test?x=1;y=2")

        text = client.get("/metrics").text

        assert 'load_requests_total{outcome="served"}' in text
        assert 'load_requests_total{outcome="parse_error"}' in text
        assert "load_burn_duration_seconds_bucket" in text
        assert "load_payload_bytes_total" in text
