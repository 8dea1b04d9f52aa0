from datetime import date, datetime, timedelta

import pytest

from app.security_utils import create_jwt_token, mask_sensitive_data, verify_jwt_token
from app.shared.validators import (
    combine_slot_datetime,
    normalize_msisdn,
    parse_date,
    parse_gateway_timestamp,
)


class TestNormalizeMsisdn:
    @pytest.mark.parametrize(
        "raw",
        ["0712345678", "+254712345678", "254712345678", "712345678", "+254 712 345 678", "0712-345-678"],
    )
    def test_normalizes_to_international_digits(self, raw):
        assert normalize_msisdn(raw) == "254712345678"

    def test_custom_country_code(self):
        assert normalize_msisdn("0712345678", country_code="255") == "255712345678"

    @pytest.mark.parametrize("raw", ["", None, "0712", "+254 71"])
    def test_rejects_missing_or_short_numbers(self, raw):
        with pytest.raises(ValueError):
            normalize_msisdn(raw)


class TestDates:
    def test_parse_date(self):
        assert parse_date("2030-01-15") == date(2030, 1, 15)

    @pytest.mark.parametrize("raw", ["15-01-2030", "2030-13-01", "tomorrow"])
    def test_parse_date_rejects_other_formats(self, raw):
        with pytest.raises(ValueError, match="YYYY-MM-DD"):
            parse_date(raw)

    def test_combine_slot_datetime(self):
        assert combine_slot_datetime(date(2030, 1, 15), "09:30") == datetime(2030, 1, 15, 9, 30)

    def test_gateway_timestamp_accepts_int_and_str(self):
        expected = datetime(2019, 12, 19, 10, 21, 15)
        assert parse_gateway_timestamp(20191219102115) == expected
        assert parse_gateway_timestamp("20191219102115") == expected

    def test_gateway_timestamp_invalid(self):
        assert parse_gateway_timestamp(None) is None
        assert parse_gateway_timestamp("yesterday") is None


class TestSecurityUtils:
    def test_jwt_round_trip(self):
        token = create_jwt_token({"sub": "42"})
        assert verify_jwt_token(token)["sub"] == "42"

    def test_expired_jwt_is_rejected(self):
        token = create_jwt_token({"sub": "42"}, expires_delta=timedelta(seconds=-10))
        assert verify_jwt_token(token) is None

    def test_mask_sensitive_data(self):
        assert mask_sensitive_data("254712345678") == "********5678"
        assert mask_sensitive_data("123") == "***"
        assert mask_sensitive_data(None) == ""
