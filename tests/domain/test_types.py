"""Tests for the batching DTOs and input parsing helpers."""

from datetime import date, datetime, timezone
from uuid import uuid4

import pytest

from produce_kernel.exceptions import InvalidDateError, InvalidIdentifierError, ValidationError

from produce_batch.domain.types import (
    Batch,
    BatchStatus,
    BatchType,
    BillError,
    ConfirmResult,
    OrderCountReport,
    parse_identifier,
    parse_local_date,
)


def _batch(status=BatchStatus.OPEN) -> Batch:
    return Batch(
        batch_id=uuid4(),
        batch_number="B260115-1",
        date=datetime(2026, 1, 14, 18, 30, tzinfo=timezone.utc),
        batch_type=BatchType.FIRST,
        status=status,
        cutoff_time=datetime(2026, 1, 15, 2, 30, tzinfo=timezone.utc),
    )


class TestParseIdentifier:
    def test_uuid_passes_through(self):
        value = uuid4()
        assert parse_identifier("batch", value) is value

    def test_string_form(self):
        value = uuid4()
        assert parse_identifier("batch", f"  {value}  ") == value

    @pytest.mark.parametrize("raw", ["", "not-a-uuid", "123", None])
    def test_malformed_is_validation_error(self, raw):
        with pytest.raises(InvalidIdentifierError) as exc_info:
            parse_identifier("batch", raw)
        assert isinstance(exc_info.value, ValidationError)
        assert exc_info.value.kind == "batch"
        assert "Invalid batch ID" in str(exc_info.value)


class TestParseLocalDate:
    def test_iso_string(self):
        assert parse_local_date("2026-01-15") == date(2026, 1, 15)

    def test_date_passes_through(self):
        assert parse_local_date(date(2026, 1, 15)) == date(2026, 1, 15)

    @pytest.mark.parametrize("raw", ["15/01/2026", "2026-02-30", "tomorrow"])
    def test_invalid(self, raw):
        with pytest.raises(InvalidDateError):
            parse_local_date(raw)

    def test_datetime_rejected(self):
        with pytest.raises(InvalidDateError):
            parse_local_date(datetime(2026, 1, 15, 10, 0))


class TestBatch:
    def test_is_open(self):
        assert _batch().is_open
        assert not _batch(BatchStatus.CONFIRMED).is_open

    def test_batch_type_number(self):
        assert BatchType.FIRST.number == 1
        assert BatchType.SECOND.number == 2


class TestConfirmResult:
    def test_bills_not_requested(self):
        assert not ConfirmResult(batch=_batch(), orders_confirmed=2).bills_succeeded

    def test_clean_bill_run(self):
        result = ConfirmResult(
            batch=_batch(), orders_confirmed=2, bills_requested=True, bills_generated=3,
        )
        assert result.bills_succeeded

    def test_per_order_errors(self):
        result = ConfirmResult(
            batch=_batch(),
            orders_confirmed=2,
            bills_requested=True,
            bill_errors=(BillError("ORD26010001", "boom"),),
        )
        assert not result.bills_succeeded

    def test_stage_error(self):
        result = ConfirmResult(
            batch=_batch(), orders_confirmed=2, bills_requested=True, bill_stage_error="down",
        )
        assert not result.bills_succeeded


class TestOrderCountReport:
    def test_drift(self):
        report = OrderCountReport(uuid4(), "B260115-1", cached_count=5, actual_count=3)
        assert report.drift == 2

    def test_no_drift(self):
        report = OrderCountReport(uuid4(), "B260115-1", cached_count=3, actual_count=3)
        assert report.drift == 0
