"""Tests for the ENGINE_TRACE decorator and input fingerprints."""

from decimal import Decimal

from inventory_engines.sale_line import SaleLine
from inventory_engines.tracer import compute_input_fingerprint, traced_engine


@traced_engine("sample", "2.1", fingerprint_fields=("qty", "lines"))
def _sample_engine(qty, lines=(), note=None):
    return qty


class TestFingerprint:

    def test_mapping_order_does_not_matter(self):
        a = compute_input_fingerprint(("m",), {"m": {"x": 1, "y": 2}})
        b = compute_input_fingerprint(("m",), {"m": {"y": 2, "x": 1}})
        assert a == b
        assert len(a) == 16

    def test_dataclass_contents_change_fingerprint(self):
        one = SaleLine(item="Widget", qty=Decimal("1"))
        two = SaleLine(item="Widget", qty=Decimal("2"))
        assert (
            compute_input_fingerprint(("lines",), {"lines": [one]})
            != compute_input_fingerprint(("lines",), {"lines": [two]})
        )

    def test_missing_field_recorded_as_null(self):
        assert compute_input_fingerprint(("a",), {}) == compute_input_fingerprint(("a",), {"a": None})


class TestTracedEngine:

    def test_result_passes_through(self):
        assert _sample_engine(Decimal("3")) == Decimal("3")

    def test_positional_and_keyword_calls_match(self, captured_logs):
        _sample_engine(Decimal("3"), [])
        _sample_engine(lines=[], qty=Decimal("3"))

        traces = [r for r in captured_logs() if r["message"] == "ENGINE_TRACE"]
        assert len(traces) == 2
        assert traces[0]["input_fingerprint"] == traces[1]["input_fingerprint"]
        assert traces[0]["engine_name"] == "sample"
        assert traces[0]["engine_version"] == "2.1"

    def test_unlisted_argument_ignored(self, captured_logs):
        _sample_engine(Decimal("3"), [], note="a")
        _sample_engine(Decimal("3"), [], note="b")

        traces = [r for r in captured_logs() if r["message"] == "ENGINE_TRACE"]
        assert traces[0]["input_fingerprint"] == traces[1]["input_fingerprint"]
