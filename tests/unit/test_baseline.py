"""Tests for baseline fingerprints and fail policy."""

from __future__ import annotations

import hashlib
import json

import pytest

from redactyl.baseline import (
    Baseline,
    filter_new_findings,
    finding_key,
    is_baselined,
    legacy_finding_key,
    load_baseline,
    save_baseline,
    should_fail,
    update_baseline,
)
from redactyl.errors import BaselineError
from redactyl.scanner.base import FINGERPRINT_METADATA_KEY, Severity


class TestFingerprints:
    """Tests for finding_key and legacy keys."""

    def test_key_is_sha256_of_triple(self, make_finding):
        """Test the key hashes path, detector and match."""
        finding = make_finding(path="a.py", detector="jwt", match="tok")

        assert finding_key(finding) == hashlib.sha256(b"a.py|jwt|tok").hexdigest()

    def test_key_ignores_line_and_confidence(self, make_finding):
        """Test moving a secret to another line keeps its fingerprint."""
        assert finding_key(make_finding(line=1, confidence=0.5)) == finding_key(
            make_finding(line=40, confidence=0.9)
        )

    def test_precomputed_fingerprint(self, make_finding):
        """Test a fingerprint in metadata takes precedence."""
        finding = make_finding(**{FINGERPRINT_METADATA_KEY: "custom-fp"})

        assert finding_key(finding) == "custom-fp"

    def test_legacy_key_still_matches(self, make_finding):
        """Test baselines holding unhashed keys still suppress findings."""
        finding = make_finding(path="a.py", detector="jwt", match="tok")

        assert legacy_finding_key(finding) == "a.py|jwt|tok"
        assert is_baselined(finding, {"a.py|jwt|tok": True})

    def test_empty_items(self, make_finding):
        """Test nothing is baselined against empty or missing items."""
        assert not is_baselined(make_finding(), {})
        assert not is_baselined(make_finding(), None)


class TestFilterNewFindings:
    """Tests for filter_new_findings."""

    def test_preserves_order(self, make_finding):
        """Test new findings keep their input order."""
        a = make_finding(path="a")
        b = make_finding(path="b")
        c = make_finding(path="c")
        baseline = Baseline.from_findings([b])

        assert filter_new_findings([a, b, c], baseline) == [a, c]

    def test_idempotent(self, make_finding):
        """Test filtering twice gives the same result as once."""
        findings = [make_finding(path=p) for p in ("a", "b", "c")]
        baseline = Baseline.from_findings(findings[:1])
        once = filter_new_findings(findings, baseline)

        assert filter_new_findings(once, baseline) == once

    def test_contains(self, make_finding):
        """Test Baseline supports membership checks on findings."""
        finding = make_finding()

        assert finding in Baseline.from_findings([finding])
        assert "not a finding" not in Baseline.from_findings([finding])


class TestPersistence:
    """Tests for loading and saving baseline files."""

    def test_missing_file_is_empty(self, tmp_path):
        """Test a missing baseline is empty."""
        assert len(load_baseline(tmp_path / "none.json")) == 0

    def test_save_format(self, tmp_path, make_finding):
        """Test the file holds an items mapping of fingerprints."""
        path = tmp_path / "redactyl.baseline.json"
        finding = make_finding()

        save_baseline(path, [finding])

        assert json.loads(path.read_text()) == {"items": {finding_key(finding): True}}

    def test_save_replaces(self, tmp_path, make_finding):
        """Test saving drops entries that are no longer present."""
        path = tmp_path / "b.json"
        save_baseline(path, [make_finding(path="old")])
        save_baseline(path, [make_finding(path="new")])

        baseline = load_baseline(path)
        assert make_finding(path="new") in baseline
        assert make_finding(path="old") not in baseline

    def test_update_merge(self, tmp_path, make_finding):
        """Test update with merge keeps existing entries."""
        path = tmp_path / "b.json"
        save_baseline(path, [make_finding(path="old")])

        merged = update_baseline(path, [make_finding(path="new")], merge=True)

        assert len(merged) == 2
        assert make_finding(path="old") in load_baseline(path)

    def test_malformed_file(self, tmp_path):
        """Test a corrupt baseline raises BaselineError."""
        path = tmp_path / "b.json"
        path.write_text("[1, 2")

        with pytest.raises(BaselineError):
            load_baseline(path)

    def test_wrong_shape(self, tmp_path):
        """Test a baseline without an items object raises BaselineError."""
        path = tmp_path / "b.json"
        path.write_text('{"items": []}')

        with pytest.raises(BaselineError):
            load_baseline(path)


class TestShouldFail:
    """Tests for should_fail."""

    @pytest.mark.parametrize(
        ("severity", "fail_on", "expected"),
        [
            (Severity.LOW, "low", True),
            (Severity.LOW, "medium", False),
            (Severity.MEDIUM, "medium", True),
            (Severity.MEDIUM, "high", False),
            (Severity.HIGH, "high", True),
            (Severity.HIGH, "HIGH", True),
            (Severity.MEDIUM, Severity.MEDIUM, True),
        ],
    )
    def test_threshold(self, make_finding, severity, fail_on, expected):
        """Test findings at or above the threshold fail."""
        assert should_fail([make_finding(severity=severity)], fail_on) is expected

    def test_unknown_threshold_defaults_to_medium(self, make_finding):
        """Test an unrecognized threshold behaves like medium."""
        assert should_fail([make_finding(severity=Severity.MEDIUM)], "bogus")
        assert not should_fail([make_finding(severity=Severity.LOW)], "bogus")

    def test_no_findings(self):
        """Test an empty result never fails."""
        assert not should_fail([], "low")
