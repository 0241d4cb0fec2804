"""Tests for warporch error classes.

Tests cover:
- Error hierarchy under WarporchError
- Error kinds carried by ConfigError, PlanError and StepError
- Retry and abort classification of step error kinds
"""

import pytest

from warporch.errors import (
    ConfigError,
    ConfigErrorKind,
    PermanentError,
    PlanError,
    PlanErrorKind,
    SettingsError,
    StepError,
    StepErrorKind,
    TransientError,
    TransportError,
    WarporchError,
)


class TestHierarchy:
    """Every warporch error can be caught as WarporchError."""

    @pytest.mark.parametrize(
        "error",
        [
            TransientError("rpc timeout"),
            PermanentError("reverted"),
            ConfigError(ConfigErrorKind.MALFORMED, "bad"),
            PlanError(PlanErrorKind.NO_CHAINS_DECLARED, "empty"),
            StepError(StepErrorKind.TIMEOUT, "slow"),
            TransportError("connection reset"),
            SettingsError("bad setting"),
        ],
    )
    def test_is_warporch_error(self, error):
        with pytest.raises(WarporchError):
            raise error

    def test_transient_and_permanent_are_distinct(self):
        """A PermanentError must never be caught as TransientError."""
        assert not issubclass(PermanentError, TransientError)
        assert not issubclass(TransientError, PermanentError)


class TestConfigError:
    """Tests for ConfigError."""

    def test_carries_kind(self):
        error = ConfigError(ConfigErrorKind.INVALID_REFERENCE, "chain 'x' is not declared")
        assert error.kind == ConfigErrorKind.INVALID_REFERENCE

    def test_message_is_prefixed_with_kind(self):
        error = ConfigError(ConfigErrorKind.SCHEMA_VERSION_UNSUPPORTED, "got warp-route/9")
        assert str(error) == "SchemaVersionUnsupported: got warp-route/9"


class TestPlanError:
    def test_carries_kind(self):
        error = PlanError(PlanErrorKind.CYCLIC_DEPENDENCY, "stuck")
        assert error.kind == PlanErrorKind.CYCLIC_DEPENDENCY
        assert "CyclicDependency" in str(error)


class TestStepErrorKind:
    """Retry and abort classification."""

    def test_retryable_kinds(self):
        retryable = {k for k in StepErrorKind if k.retryable}
        assert retryable == {StepErrorKind.TIMEOUT, StepErrorKind.TRANSIENT}

    def test_fatal_kinds(self):
        fatal = {k for k in StepErrorKind if k.fatal}
        assert fatal == {StepErrorKind.INVARIANT_VIOLATION, StepErrorKind.INVALID_GATEWAY_RESPONSE}

    def test_step_scoped_kinds_are_neither(self):
        for kind in (StepErrorKind.PERMANENT, StepErrorKind.VALIDATION_FAILED):
            assert not kind.retryable
            assert not kind.fatal


class TestStepError:
    def test_to_dict(self):
        error = StepError(StepErrorKind.PERMANENT, "transaction reverted", step_id="deploy_core:holesky")
        assert error.step_id == "deploy_core:holesky"
        assert error.to_dict() == {
            "kind": "Permanent",
            "message": "Permanent: transaction reverted",
        }
