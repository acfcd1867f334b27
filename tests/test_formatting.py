"""Tests for chat timestamps and money formatting."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from pocketledger.formatting import (
    format_chat_timestamp,
    format_file_size,
    format_full_timestamp,
    format_money,
)


NOW = datetime(2024, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


class TestChatTimestamp:

    @pytest.mark.parametrize("delta,text", [
        (timedelta(seconds=5), "Just now"),
        (timedelta(seconds=45), "45s ago"),
        (timedelta(minutes=12), "12m ago"),
        (timedelta(hours=3), "3h ago"),
        (timedelta(days=2), "2d ago"),
        (timedelta(days=10), "Jun 5"),
    ])
    def test_relative(self, delta, text):
        assert format_chat_timestamp(NOW - delta, now=NOW) == text

    def test_previous_year(self):
        ts = datetime(2023, 1, 5, tzinfo=timezone.utc)
        assert format_chat_timestamp(ts, now=NOW) == "Jan 5, 2023"

    def test_iso_string(self):
        assert format_chat_timestamp("2024-06-15T11:58:00Z", now=NOW) == "2m ago"

    def test_naive_datetime_is_utc(self):
        assert format_chat_timestamp(datetime(2024, 6, 15, 11, 0), now=NOW) == "1h ago"

    @pytest.mark.parametrize("empty", [None, ""])
    def test_empty(self, empty):
        assert format_chat_timestamp(empty, now=NOW) == ""


class TestFullTimestamp:

    def test_format(self):
        ts = datetime(2024, 1, 15, 14, 30, 45, tzinfo=timezone.utc)
        assert format_full_timestamp(ts) == "Monday, January 15, 2024 at 02:30:45 PM"

    def test_empty(self):
        assert format_full_timestamp(None) == ""


class TestMoney:

    @pytest.mark.parametrize("amount,text", [
        (Decimal("1234.5"), "$1,234.50"),
        (Decimal("-1234.5"), "-$1,234.50"),
        (Decimal("0"), "$0.00"),
    ])
    def test_format(self, amount, text):
        assert format_money(amount) == text


class TestFileSize:

    @pytest.mark.parametrize("size,text", [
        (None, "0 Bytes"),
        (0, "0 Bytes"),
        (512, "512 Bytes"),
        (2048, "2 KB"),
        (1500, "1.46 KB"),
        (5 * 1024 * 1024, "5 MB"),
        (3 * 1024 ** 3, "3 GB"),
    ])
    def test_format(self, size, text):
        assert format_file_size(size) == text
