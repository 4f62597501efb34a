"""
Quantities, dimensions, hashing and the exception hierarchy.
"""

from decimal import Decimal

import pytest

from progress_kernel.domain.dimensions import (
    REPORTING_DIMENSIONS,
    DimensionType,
    parse_reporting_dimension,
)
from progress_kernel.domain.quantities import percent_of, round_hours, round_percent
from progress_kernel.exceptions import (
    IntegrityAlertError,
    InvalidDimensionError,
    InvariantViolationError,
    ProgressKernelError,
    SchemaInvalidError,
    TemplateConflictError,
    TemplateError,
    UntrackedProgressError,
)
from progress_kernel.invariants import check_budget_once_per_item, check_budgeted_hours, check_weight_sum
from progress_kernel.utils.hashing import hash_identity_key, hash_payload


class TestQuantities:
    def test_round_half_up(self):
        assert round_hours(Decimal("4.125")) == Decimal("4.13")
        assert round_percent(Decimal("33.3349"), places=1) == Decimal("33.3")

    def test_percent_of_zero_whole(self):
        assert percent_of(Decimal("5"), Decimal("0")) == Decimal("0")

    def test_percent_of(self):
        assert percent_of(Decimal("4.5"), Decimal("10")) == Decimal("45")


class TestDimensions:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("area", DimensionType.AREA),
            ("System", DimensionType.SYSTEM),
            ("test package", DimensionType.TEST_PACKAGE),
            ("test-package", DimensionType.TEST_PACKAGE),
            (DimensionType.WELDER, DimensionType.WELDER),
        ],
    )
    def test_parse(self, raw, expected):
        assert parse_reporting_dimension(raw) == expected

    @pytest.mark.parametrize("raw", ["drawing", "phase", ""])
    def test_parse_rejects(self, raw):
        with pytest.raises(InvalidDimensionError) as exc:
            parse_reporting_dimension(raw)
        assert exc.value.code == "INVALID_DIMENSION"

    def test_drawing_is_not_a_reporting_axis(self):
        assert DimensionType.DRAWING not in REPORTING_DIMENSIONS
        assert len(REPORTING_DIMENSIONS) == 4


class TestHashing:
    def test_identity_key_normalized(self):
        assert hash_identity_key({"Drawing": "p-001 ", "weld": "w1"}) == hash_identity_key(
            {"weld": "W1", "drawing": "P-001"}
        )

    def test_decimal_scale_ignored(self):
        assert hash_payload({"w": Decimal("5")}) == hash_payload({"w": Decimal("5.0000")})


class TestInvariantChecks:
    def test_weight_sum_returns_total(self):
        assert check_weight_sum("spool", [Decimal("50"), Decimal("50")]) == Decimal("100")

    def test_weight_sum_out_of_tolerance(self):
        with pytest.raises(SchemaInvalidError):
            check_weight_sum("spool", [Decimal("50"), Decimal("49.98")])

    def test_budget_once_per_item(self, captured_logs):
        with pytest.raises(InvariantViolationError) as exc:
            check_budget_once_per_item(["a", "b", "a"])
        assert exc.value.invariant == "budget_once_per_item"
        assert any(r["message"] == "budget_double_count_detected" for r in captured_logs())

    @pytest.mark.parametrize("raw, expected", [("12.5", Decimal("12.5")), (0, Decimal("0"))])
    def test_budgeted_hours_accepted(self, raw, expected):
        assert check_budgeted_hours(raw) == expected


class TestExceptionHierarchy:
    def test_codes(self):
        assert SchemaInvalidError("spool", Decimal("95")).code == "SCHEMA_INVALID"
        assert TemplateConflictError("p", "spool").code == "TEMPLATE_CONFLICT"

    def test_families(self):
        assert issubclass(TemplateConflictError, TemplateError)
        assert issubclass(UntrackedProgressError, IntegrityAlertError)
        assert issubclass(IntegrityAlertError, ProgressKernelError)

    def test_schema_message_names_total(self):
        err = SchemaInvalidError("spool", Decimal("95"))
        assert "95" in str(err)
        assert "spool" in str(err)
