"""Shared validation utilities"""

import re
from datetime import date, datetime, time
from typing import Optional

from ..config import MPESA_COUNTRY_CODE


def normalize_msisdn(phone: Optional[str], country_code: str = MPESA_COUNTRY_CODE) -> str:
    """
    Normalize a mobile number to the international digits-only form the
    gateway expects (e.g. 0712345678 -> 254712345678).

    Args:
        phone: Phone number string in various formats (+254..., 07..., 7...)
        country_code: Dialing code without "+"

    Returns:
        Digits-only number prefixed with the country code

    Raises:
        ValueError: If the number is missing or too short
    """
    if not phone:
        raise ValueError("Phone number is required")

    # Remove all non-digit characters
    digits = re.sub(r"\D", "", phone)

    if digits.startswith(country_code):
        subscriber = digits[len(country_code):]
    elif digits.startswith("0"):
        subscriber = digits[1:]
    else:
        subscriber = digits

    if len(subscriber) < 9:
        raise ValueError("Phone number is too short")

    return f"{country_code}{subscriber}"


def parse_date(value: str) -> date:
    """Parse a YYYY-MM-DD date string"""
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise ValueError("Date must be in YYYY-MM-DD format") from e


def parse_slot_time(value: str) -> time:
    """Parse an HH:MM (or HH:MM:SS) slot time"""
    try:
        return time.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid slot time: {value}") from e


def combine_slot_datetime(day: date, start_time: str) -> datetime:
    """Appointment start = slot date + slot start time"""
    return datetime.combine(day, parse_slot_time(start_time))


def parse_gateway_timestamp(value) -> Optional[datetime]:
    """Parse M-Pesa's YYYYMMDDHHMMSS timestamps (sent as int or str)"""
    if value is None:
        return None
    try:
        return datetime.strptime(str(value), "%Y%m%d%H%M%S")
    except ValueError:
        return None
