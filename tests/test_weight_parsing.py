"""Tests for extracting weights from protocol lines."""

import logging

import pytest

from scale_reader.errors import WeightParseError
from scale_reader.parsing import (
    WeightLineParser,
    is_weight_line,
    looks_like_scale_line,
    parse_weight_value,
)


def test_freeform_line_takes_second_number() -> None:
    """Test free-form layout picks the weight after the channel number."""
    assert parse_weight_value("WGT:1  2.90P  0.00") == pytest.approx(2.90)


def test_freeform_line_is_doubled_by_default() -> None:
    """Test the calibration multiplier defaults to 2."""
    parser = WeightLineParser()

    assert parser.parse("WGT:1  2.90P  0.00") == pytest.approx(5.80)


def test_comma_line_takes_third_field() -> None:
    """Test comma layout reads the first number in field three."""
    assert parse_weight_value("WGT,GS,+00012lb") == pytest.approx(12.0)
    assert parse_weight_value("WGT,NT,-00003.5lb,extra") == pytest.approx(-3.5)


def test_comma_line_calibrated() -> None:
    """Test comma layout goes through the same multiplier."""
    assert WeightLineParser().parse("WGT,GS,+00012lb") == pytest.approx(24.0)
    assert WeightLineParser(multiplier=1.0).parse("WGT,GS,+00012lb") == pytest.approx(12.0)


def test_tag_is_case_insensitive() -> None:
    """Test lowercase tags are telemetry too."""
    assert is_weight_line("wgt:1 1.0 0.0")
    assert parse_weight_value("wgt:1 1.5 0.0") == pytest.approx(1.5)


def test_non_weight_line_yields_no_sample(caplog) -> None:
    """Test chatter without the WGT tag is ignored quietly."""
    parser = WeightLineParser()

    with caplog.at_level(logging.DEBUG, logger="scale_reader.parsing"):
        assert parse_weight_value("ST,GS,+00012lb") is None
        assert parser.parse("ST,GS,+00012lb") is None

    assert not [r for r in caplog.records if r.levelno >= logging.WARNING]


def test_single_number_freeform_line_fails() -> None:
    """Test a WGT line with one number is a parse failure."""
    with pytest.raises(WeightParseError):
        parse_weight_value("WGT:1")


def test_comma_line_without_number_fails() -> None:
    """Test a comma line whose weight field has no digits is a parse failure."""
    with pytest.raises(WeightParseError):
        parse_weight_value("WGT,GS,lb")

    with pytest.raises(WeightParseError):
        parse_weight_value("WGT,GS")


def test_parser_logs_warning_and_returns_none_on_failure(caplog) -> None:
    """Test malformed WGT lines are a warning, not an exception."""
    parser = WeightLineParser()

    with caplog.at_level(logging.WARNING, logger="scale_reader.parsing"):
        assert parser.parse("WGT:1 ---") is None

    assert any("Failed to parse weight" in r.message for r in caplog.records)


def test_zero_line() -> None:
    """Test an empty-platform line parses to zero."""
    assert WeightLineParser().parse("WGT:1 0.00 0.00") == 0.0


def test_multiplier_must_be_positive() -> None:
    """Test nonsense calibration is rejected."""
    with pytest.raises(ValueError):
        WeightLineParser(multiplier=0)


def test_looks_like_scale_line() -> None:
    """Test the port-sniffing heuristic accepts any number."""
    assert looks_like_scale_line("12.5")
    assert looks_like_scale_line("ST,GS,+00012lb")
    assert not looks_like_scale_line("OK")
    assert not looks_like_scale_line("")
