"""Tests for Go-style value formatting used by templates."""

from datetime import datetime, timedelta, timezone

import pytest

from ssl_eol.formatting import (
    Month,
    Weekday,
    format_value,
    go_quote,
    go_sprintf,
    go_time_format,
)

PACIFIC = timezone(timedelta(hours=-7), "PDT")
SAMPLE = datetime(2030, 3, 9, 14, 5, 7, 123400, tzinfo=PACIFIC)


class TestGoTimeFormat:
    @pytest.mark.parametrize(
        "layout, expected",
        [
            ("2006-01-02T15:04:05Z07:00", "2030-03-09T14:05:07-07:00"),
            ("Jan _2 3:04PM", "Mar  9 2:05PM"),
            ("Monday, 02-Jan-06 15:04:05 MST", "Saturday, 09-Mar-30 14:05:07 PDT"),
            ("January 2, 2006", "March 9, 2030"),
            ("15:04:05.000", "14:05:07.123"),
            ("15:04:05.999999", "14:05:07.1234"),
            ("15:04:05,000000", "14:05:07,123400"),
            ("002 __2", "068  68"),
            ("-0700 -07 -07:00:00", "-0700 -07 -07:00:00"),
            ("1/2/06 pm", "3/9/30 pm"),
            ("_2006", "_2030"),
            ("Monte Janx", "Monte Janx"),
        ],
    )
    def test_layouts(self, layout, expected):
        assert go_time_format(SAMPLE, layout) == expected

    def test_utc_zulu(self):
        value = datetime(2030, 1, 1, tzinfo=timezone.utc)
        assert go_time_format(value, "2006-01-02T15:04:05Z07:00") == "2030-01-01T00:00:00Z"

    def test_all_nines_drop_the_separator(self):
        value = datetime(2030, 1, 1, 12, tzinfo=timezone.utc)
        assert go_time_format(value, "15:04:05.999") == "12:00:00"


class TestGoSprintf:
    @pytest.mark.parametrize(
        "template, args, expected",
        [
            ("%d", (42,), "42"),
            ("%5d|%-5d|%05d", (42, 42, -42), "   42|42   |-0042"),
            ("%+d", (5,), "+5"),
            ("%x %X %#x %o %b", (255, 255, 255, 8, 5), "ff FF 0xff 10 101"),
            ("%s|%q", ("hi", "hi"), 'hi|"hi"'),
            ("%x", ("hi",), "6869"),
            ("%v %v %v", (True, 1.5, None), "true 1.5 <nil>"),
            ("%t", (False,), "false"),
            ("%T %T %T", (1, "a", 1.0), "int string float64"),
            ("%c", (65,), "A"),
            ("%.2f", (3.14159,), "3.14"),
            ("%6.2f|", (3.14159,), "  3.14|"),
            ("%e", (1234.5678,), "1.234568e+03"),
            ("%g %g", (1e6, 100000.0), "1e+06 100000"),
            ("%v %v", (0.0001, 0.00001), "0.0001 1e-05"),
            ("%v", (float("inf"),), "+Inf"),
            ("%s %d", (Month(3), Month(3)), "March 3"),
            ("100%%", (), "100%"),
            ("abc%", (), "abc%!(NOVERB)"),
            ("%d", (), "%!d(MISSING)"),
            ("%d", ("x",), "%!d(string=x)"),
            ("%d", (1, 2), "1%!(EXTRA int=2)"),
        ],
    )
    def test_verbs(self, template, args, expected):
        assert go_sprintf(template, *args) == expected


class TestFormatValue:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (True, "true"),
            (None, "<nil>"),
            (2.0, "2"),
            (86400, "86400"),
            (Month(12), "December"),
            (Weekday(0), "Sunday"),
            ({"a": 1, "b": "x"}, "{1 x}"),
        ],
    )
    def test_values(self, value, expected):
        assert format_value(value) == expected

    def test_go_quote(self):
        assert go_quote('a"b\n') == '"a\\"b\\n"'
        assert go_quote("\x01") == '"\\x01"'
