"""Tests for byte count formatting, progress percentages and size parsing."""

import pytest

from mmccopy.storage.sizes import (
    ONE_GiB,
    ONE_KiB,
    ONE_MiB,
    SIZE_SUFFIXES,
    calculate_progress,
    parse_size,
    pretty_size,
)


class TestPrettySize:
    """Tests for pretty_size()."""

    def test_bytes(self):
        assert pretty_size(0) == "0 bytes"
        assert pretty_size(1023) == "1023 bytes"

    def test_kibibytes_are_truncated(self):
        assert pretty_size(ONE_KiB) == "1 KiB"
        assert pretty_size(1536) == "1 KiB"
        assert pretty_size(ONE_MiB - 1) == "1023 KiB"

    def test_mebibytes(self):
        assert pretty_size(ONE_MiB) == "1.00 MiB"
        assert pretty_size(ONE_MiB + ONE_MiB // 2) == "1.50 MiB"

    def test_gibibytes(self):
        assert pretty_size(ONE_GiB) == "1.00 GiB"
        assert pretty_size(15 * ONE_GiB // 2) == "7.50 GiB"
        assert pretty_size(64 * ONE_GiB) == "64.00 GiB"


class TestCalculateProgress:
    """Tests for calculate_progress()."""

    def test_unknown_total_is_zero(self):
        assert calculate_progress(12345, 0) == 0

    def test_floors_percentage(self):
        assert calculate_progress(1, 3) == 33
        assert calculate_progress(2, 3) == 66
        assert calculate_progress(999, 1000) == 99

    def test_complete(self):
        assert calculate_progress(1000, 1000) == 100

    def test_large_values_do_not_lose_precision(self):
        total = 31 * ONE_GiB + 17
        assert calculate_progress(total - 1, total) == 99
        assert calculate_progress(total, total) == 100


class TestParseSize:
    """Tests for parse_size()."""

    def test_plain_number(self):
        assert parse_size("512") == 512
        assert parse_size("0") == 0

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("2b", 1024),
            ("4kB", 4000),
            ("4K", 4096),
            ("4KiB", 4096),
            ("3MB", 3_000_000),
            ("3M", 3 * ONE_MiB),
            ("3MiB", 3 * ONE_MiB),
            ("2GB", 2_000_000_000),
            ("2G", 2 * ONE_GiB),
            ("2GiB", 2 * ONE_GiB),
        ],
    )
    def test_suffixes(self, text, expected):
        assert parse_size(text) == expected

    def test_suffix_table_is_complete(self):
        names = [name for name, _ in SIZE_SUFFIXES]
        assert names == ["b", "kB", "K", "KiB", "MB", "M", "MiB", "GB", "G", "GiB"]

    def test_missing_number(self):
        with pytest.raises(ValueError, match="Expecting number but got 'abc'"):
            parse_size("abc")

    def test_negative_is_not_a_number(self):
        with pytest.raises(ValueError, match="Expecting number"):
            parse_size("-5")

    def test_unknown_suffix(self):
        with pytest.raises(ValueError, match="Unknown size multiplier 'kb'"):
            parse_size("10kb")
