"""Tests for the in-flight job registry."""

import pytest

from warporch.job_registry import AlreadyInFlightError, InFlightRegistry


class TestInFlightRegistry:
    def test_claim_and_release(self):
        registry = InFlightRegistry()
        entry = registry.claim("sha256:abc", "job-1")

        assert entry.job_id == "job-1"
        assert registry.is_in_flight("sha256:abc")
        assert len(registry) == 1

        registry.release("sha256:abc", "job-1")
        assert not registry.is_in_flight("sha256:abc")
        assert len(registry) == 0

    def test_duplicate_fingerprint_rejected(self):
        registry = InFlightRegistry()
        registry.claim("sha256:abc", "job-1")

        with pytest.raises(AlreadyInFlightError) as excinfo:
            registry.claim("sha256:abc", "job-2")
        assert excinfo.value.job_id == "job-1"
        assert excinfo.value.kind == "AlreadyInFlight"

    def test_different_fingerprints_coexist(self):
        registry = InFlightRegistry()
        registry.claim("sha256:abc", "job-1")
        registry.claim("sha256:def", "job-2")
        assert len(registry) == 2

    def test_release_by_other_job_is_ignored(self):
        registry = InFlightRegistry()
        registry.claim("sha256:abc", "job-1")
        registry.release("sha256:abc", "job-2")
        assert registry.is_in_flight("sha256:abc")

    def test_hold_releases_on_error(self):
        registry = InFlightRegistry()
        with pytest.raises(RuntimeError):
            with registry.hold("sha256:abc", "job-1"):
                assert registry.is_in_flight("sha256:abc")
                raise RuntimeError("executor crashed")
        assert not registry.is_in_flight("sha256:abc")
