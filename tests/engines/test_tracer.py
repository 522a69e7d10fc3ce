"""Tests for the engine tracer (TRANCHE_ENGINE_TRACE)."""

from tranche_engines.tracer import compute_input_fingerprint, traced_engine
from tranche_kernel.domain.fixed_point import NAV, Ratio


class TestInputFingerprint:
    def test_deterministic(self):
        kwargs = {"st_raw_nav": NAV.of("800"), "beta": Ratio.of("0.5")}
        fields = ("st_raw_nav", "beta")

        assert compute_input_fingerprint(fields, kwargs) == compute_input_fingerprint(fields, kwargs)
        assert len(compute_input_fingerprint(fields, kwargs)) == 16

    def test_sensitive_to_single_unit(self):
        a = compute_input_fingerprint(("nav",), {"nav": NAV.of("800")})
        b = compute_input_fingerprint(("nav",), {"nav": NAV(NAV.of("800").units + 1)})

        assert a != b

    def test_missing_field_is_null(self):
        assert compute_input_fingerprint(("x",), {}) == compute_input_fingerprint(
            ("x",), {"x": None}
        )


class TestTracedEngine:
    def test_emits_trace_record(self, captured_logs):
        @traced_engine("demo", "2.1", fingerprint_fields=("value",))
        def double(*, value: int) -> int:
            return value * 2

        assert double(value=21) == 42

        traces = [r for r in captured_logs() if r["message"] == "TRANCHE_ENGINE_TRACE"]
        assert len(traces) == 1
        trace = traces[0]
        assert trace["engine_name"] == "demo"
        assert trace["engine_version"] == "2.1"
        assert trace["input_fingerprint"] == compute_input_fingerprint(("value",), {"value": 21})
        assert "duration_ms" in trace

    def test_preserves_function_metadata(self):
        @traced_engine("demo", "1.0")
        def documented():
            """Docstring."""

        assert documented.__name__ == "documented"
        assert documented.__doc__ == "Docstring."
