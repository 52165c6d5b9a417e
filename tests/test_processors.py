"""Tests for the transform stages."""

import pytest
import structlog

from servicelog.constants import CORRELATION_ID_KEY, DEGRADED_KEY, MASK_VALUE, RECORD_KEY, STACK_KEY, Stages
from servicelog.context import correlation_scope
from servicelog.levels import LogLevel
from servicelog.processors import (
    RedactSensitiveFields,
    SuppressInProduction,
    add_correlation_id,
    build_processors,
    guarded,
    interpolate_message,
    normalize_error,
    serialize_record,
)
from servicelog.records import LogRecord


class TestSuppressInProduction:
    """Tests for the suppression stage."""

    @pytest.mark.parametrize("method_name", ["silly", "debug", "verbose"])
    def test_drops_verbose_levels_in_prod(self, method_name):
        """Test that debug-grade records are dropped in production."""
        stage = SuppressInProduction("prod")
        with pytest.raises(structlog.DropEvent):
            stage(None, method_name, {"event": "noise"})

    @pytest.mark.parametrize("method_name", ["http", "info", "warn", "error"])
    def test_keeps_other_levels_in_prod(self, method_name):
        """Test that other levels pass in production."""
        event_dict = {"event": "kept"}
        assert SuppressInProduction("prod")(None, method_name, event_dict) is event_dict

    @pytest.mark.parametrize("environment", ["dev", "test", "stage"])
    def test_keeps_everything_outside_prod(self, environment):
        """Test that suppression only applies to production."""
        event_dict = {"event": "kept"}
        assert SuppressInProduction(environment)(None, "debug", event_dict) is event_dict


class TestRedactSensitiveFields:
    """Tests for the redaction stage."""

    def test_redacts_each_container_arg(self):
        """Test that every structured positional payload is redacted."""
        payload = {"ssn": "123-45-6789", "amount": 42}
        second = [{"password": "p"}]
        stage = RedactSensitiveFields(["ssn"])

        result = stage(None, "info", {"event": "charged", "positional_args": (payload, "plain", second)})

        assert result["positional_args"] == ({"ssn": MASK_VALUE, "amount": 42}, "plain", [{"password": MASK_VALUE}])
        assert payload == {"ssn": "123-45-6789", "amount": 42}
        assert second == [{"password": "p"}]

    def test_redacts_keyword_context(self):
        """Test that keyword context keys are masked too."""
        stage = RedactSensitiveFields(["ssn"])
        result = stage(None, "info", {"event": "login", "password": "p", "user": {"ssn": "1"}, "ok": True})
        assert result["password"] == MASK_VALUE
        assert result["user"] == {"ssn": MASK_VALUE}
        assert result["ok"] is True

    def test_pipeline_keys_untouched(self):
        """Test that reserved keys are not treated as caller context."""
        stage = RedactSensitiveFields(["service", "event"])
        result = stage(None, "info", {"event": "hello", "service": "billing"})
        assert result == {"event": "hello", "service": "billing"}


class TestAddCorrelationId:
    """Tests for correlation ID enrichment."""

    def test_adds_id_inside_scope(self):
        """Test that the bound identifier is attached."""
        with correlation_scope("req-9"):
            result = add_correlation_id(None, "info", {"event": "x"})
        assert result[CORRELATION_ID_KEY] == "req-9"

    def test_no_id_outside_scope(self):
        """Test that nothing is attached without a scope."""
        assert CORRELATION_ID_KEY not in add_correlation_id(None, "info", {"event": "x"})


class TestInterpolateMessage:
    """Tests for message template interpolation."""

    def test_formats_leading_scalars(self):
        """Test that placeholders consume scalars and keep the payload."""
        result = interpolate_message(
            None, "info", {"event": "user %s logged in after %d tries", "positional_args": ("alice", 3, {"ip": "x"})}
        )
        assert result["event"] == "user alice logged in after 3 tries"
        assert result["positional_args"] == ({"ip": "x"},)

    def test_payload_first_is_left_alone(self):
        """Test that a structured first arg is never used as a value."""
        event_dict = {"event": "GET /a%2Fb 200", "positional_args": ({"status_code": 200},)}
        assert interpolate_message(None, "info", dict(event_dict)) == event_dict

    def test_no_placeholders(self):
        """Test that plain messages are unchanged."""
        event_dict = {"event": "disk at 85%", "positional_args": ("extra",)}
        assert interpolate_message(None, "info", dict(event_dict)) == event_dict

    def test_literal_percent(self):
        """Test escaped percent signs."""
        result = interpolate_message(None, "info", {"event": "%d%% done", "positional_args": (40,)})
        assert result["event"] == "40% done"
        assert result["positional_args"] == ()

    def test_exception_value_stays_in_args(self):
        """Test that an interpolated exception still reaches error normalization."""
        error = KeyError("card")
        result = interpolate_message(None, "error", {"event": "lookup failed: %r", "positional_args": (error,)})
        assert result["event"] == "lookup failed: KeyError('card')"
        assert result["positional_args"] == (error,)

    def test_mismatch_raises(self):
        """Test that too few values is an error for the guard to contain."""
        with pytest.raises(TypeError):
            interpolate_message(None, "info", {"event": "%s and %s", "positional_args": ("one",)})

    def test_mismatch_marks_degraded(self):
        """Test the guarded stage on a bad template."""
        event_dict = {"event": "%s and %s", "positional_args": ("one",)}
        result = guarded(interpolate_message, Stages.INTERPOLATION)(None, "info", event_dict)
        assert result["event"] == "%s and %s"
        assert result[DEGRADED_KEY] == ("interpolation",)


class TestNormalizeError:
    """Tests for error normalization."""

    def test_exception_as_message(self):
        """Test an exception passed in place of the message."""
        result = normalize_error(None, "error", {"event": ValueError("boom")})
        assert result["event"] == "boom"
        assert "ValueError: boom" in result[STACK_KEY]

    def test_exception_in_args_is_moved_to_stack(self):
        """Test an exception passed as a positional argument."""
        result = normalize_error(
            None, "error", {"event": "payment failed", "positional_args": ({"id": 1}, KeyError("card"))}
        )
        assert result["event"] == "payment failed"
        assert result["positional_args"] == ({"id": 1},)
        assert "KeyError" in result[STACK_KEY]

    def test_exc_info_true_inside_handler(self):
        """Test exc_info=True captures the exception being handled."""
        try:
            raise RuntimeError("db down")
        except RuntimeError:
            result = normalize_error(None, "error", {"event": "", "exc_info": True})
        assert result["event"] == "db down"
        assert result[STACK_KEY].startswith("Traceback")
        assert "RuntimeError: db down" in result[STACK_KEY]
        assert "exc_info" not in result

    def test_exc_info_true_without_exception(self):
        """Test exc_info=True outside a handler attaches nothing."""
        result = normalize_error(None, "error", {"event": "nothing", "exc_info": True})
        assert result == {"event": "nothing"}

    def test_no_error_is_noop(self):
        """Test that records without errors are unchanged."""
        assert normalize_error(None, "info", {"event": "ok"}) == {"event": "ok"}


class TestSerializeRecord:
    """Tests for the serialization stage."""

    def test_builds_record(self):
        """Test the canonical record built from an event dict."""
        result = serialize_record(
            None,
            "warn",
            {
                "event": "slow query",
                "service": "billing",
                "environment": "dev",
                "timestamp": "2024-01-01T00:00:00Z",
                "positional_args": ({"ms": 900},),
                "correlation_id": "req-1",
                "table": "invoices",
            },
        )
        record = result[RECORD_KEY]
        assert isinstance(record, LogRecord)
        assert record.level is LogLevel.WARN
        assert record.message == "slow query"
        assert record.args == ({"ms": 900},)
        assert record.meta == {"table": "invoices"}
        assert record.correlation_id == "req-1"
        assert record.auxiliary == {"ms": 900}


class TestGuarded:
    """Tests for stage failure containment."""

    def test_failure_skips_stage_and_marks_degraded(self):
        """Test that a failing stage passes its input on unchanged."""

        def broken(logger, method_name, event_dict):
            event_dict["partial"] = True
            raise RuntimeError("stage bug")

        event_dict = {"event": "x"}
        result = guarded(broken, "enrichment")(None, "info", event_dict)

        assert result == {"event": "x", DEGRADED_KEY: ("enrichment",)}
        assert event_dict == {"event": "x"}

    def test_degraded_marks_accumulate(self):
        """Test that several failed stages are all recorded."""

        def broken(logger, method_name, event_dict):
            raise RuntimeError("stage bug")

        first = guarded(broken, "a")(None, "info", {"event": "x"})
        second = guarded(broken, "b")(None, "info", first)
        assert second[DEGRADED_KEY] == ("a", "b")

    def test_drop_event_propagates(self):
        """Test that a drop verdict is not treated as a failure."""
        with pytest.raises(structlog.DropEvent):
            guarded(SuppressInProduction("prod"), Stages.SUPPRESSION)(None, "debug", {"event": "x"})

    def test_stage_gets_its_own_copy(self):
        """Test that a stage cannot mutate the caller's event dict."""

        def mutate(logger, method_name, event_dict):
            event_dict["added"] = 1
            return event_dict

        event_dict = {"event": "x"}
        result = guarded(mutate, "m")(None, "info", event_dict)
        assert result == {"event": "x", "added": 1}
        assert event_dict == {"event": "x"}


class TestBuildProcessors:
    """Tests for stage assembly."""

    def test_order_without_sanitize(self):
        """Test that redaction is absent unless configured."""
        names = [stage.__name__ for stage in build_processors("dev")]
        assert names == [
            "guarded_suppression",
            "guarded_correlation",
            "guarded_timestamp",
            "guarded_interpolation",
            "guarded_errors",
            "guarded_serialization",
        ]

    def test_order_with_sanitize(self):
        """Test that redaction runs right after suppression."""
        names = [stage.__name__ for stage in build_processors("dev", sensitive_fields=[])]
        assert names[:2] == ["guarded_suppression", "guarded_redaction"]
        assert names[-1] == "guarded_serialization"

    def test_full_run_produces_record(self):
        """Test that the stages chain into one record."""
        event_dict = {
            "event": "charged",
            "service": "billing",
            "environment": "dev",
            "positional_args": ({"token": "t"},),
        }
        for stage in build_processors("dev", sensitive_fields=[]):
            event_dict = stage(None, "info", event_dict)

        record = event_dict[RECORD_KEY]
        assert record.args == ({"token": MASK_VALUE},)
        assert record.timestamp.endswith("Z")
        assert record.degraded == ()
