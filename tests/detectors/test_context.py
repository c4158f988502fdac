"""Tests for context-sensitive detectors."""

from __future__ import annotations

from redactyl.detectors.context import (
    CONTEXT_PATTERNS,
    ContextDetector,
    EntropyContextDetector,
    build_context_detectors,
)

HEX32 = "9f86d081884c7d659a2feaa0c55ad015"
QDRANT_KEY = "Zk8pQ2rT5vX9yB3dF6hJ1mN4sW7uA0cE"


def _detector(detector_id: str) -> ContextDetector:
    spec = next(p for p in CONTEXT_PATTERNS if p.id == detector_id)
    return ContextDetector(spec)


class TestContextDetector:
    """Tests for marker-gated detection."""

    def test_bearer_header_without_service_hint(self):
        """Test an anonymous bearer token produces no context findings."""
        data = f"Authorization: Bearer {HEX32}\n".encode()

        for detector in build_context_detectors():
            assert detector.detect("request.http", data) == []

    def test_twilio_marker_on_same_line(self):
        """Test a hex token next to a Twilio marker is reported."""
        findings = _detector("twilio_auth_token").detect(
            ".env", f"TWILIO_AUTH_TOKEN={HEX32}\n".encode()
        )

        assert [f.match for f in findings] == [HEX32]
        assert findings[0].line == 1

    def test_candidate_without_marker(self):
        """Test the same token with no marker is ignored."""
        assert _detector("twilio_auth_token").detect(".env", f"SUM={HEX32}\n".encode()) == []

    def test_window_boundary(self):
        """Test candidates three lines away match and four lines away do not."""
        detector = _detector("twilio_auth_token")
        near = f"# twilio\na=1\nb=2\nTOKEN={HEX32}\n".encode()
        far = f"# twilio\na=1\nb=2\nc=3\nTOKEN={HEX32}\n".encode()

        assert [f.line for f in detector.detect(".env", near)] == [4]
        assert detector.detect(".env", far) == []

    def test_marker_after_candidate(self):
        """Test the window extends upward from the marker as well."""
        data = f"value: {HEX32}\nprovider: datadog\n".encode()

        assert [f.line for f in _detector("datadog_api_key").detect("dd.yaml", data)] == [1]

    def test_qdrant_key(self):
        """Test a Qdrant key below its endpoint is reported with high confidence."""
        data = f"QDRANT_URL=https://db.qdrant.io\nQDRANT_API_KEY={QDRANT_KEY}\n".encode()
        findings = _detector("qdrant_api_key").detect(".env", data)

        assert [f.match for f in findings] == [QDRANT_KEY]
        assert findings[0].line == 2
        assert findings[0].confidence == 0.9

    def test_qdrant_low_entropy_rejected(self):
        """Test repetitive strings fail the minimum entropy check."""
        data = ("qdrant_key=" + "ab" * 20 + "\n").encode()

        assert _detector("qdrant_api_key").detect(".env", data) == []

    def test_heroku_uuid(self):
        """Test Heroku API keys are UUID shaped."""
        key = "3f2c8a1e-7b4d-4e9a-9c3b-1d2e3f4a5b6c"
        findings = _detector("heroku_api_key").detect(".env", f"HEROKU_API_KEY={key}".encode())

        assert [f.match for f in findings] == [key]


class TestEntropyContextDetector:
    """Tests for the entropy_context detector."""

    def test_high_entropy_secret_assignment(self):
        """Test a random value assigned to a secret-like key is reported."""
        findings = EntropyContextDetector().detect(
            "app.env", b"SECRET_TOKEN=q8Zr4LmX2vN7pK1sT9wB3yF6\n"
        )

        assert [f.match for f in findings] == ["q8Zr4LmX2vN7pK1sT9wB3yF6"]
        assert findings[0].detector == "entropy_context"

    def test_low_entropy_value_ignored(self):
        """Test repetitive values under the entropy floor are ignored."""
        data = b"DB_PASSWORD=hunter2hunter2hunter2hunter2\n"

        assert EntropyContextDetector().detect("app.env", data) == []

    def test_key_name_required(self):
        """Test random values under unrelated keys are ignored."""
        data = b"BUILD_ID=q8Zr4LmX2vN7pK1sT9wB3yF6\n"

        assert EntropyContextDetector().detect("app.env", data) == []
