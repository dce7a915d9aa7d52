"""Diagnostic logging and value formatting."""

import logging
import math
import re
import sys
from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, TextIO

from termcolor import colored

LOGGER = logging.getLogger("ssl_eol")

LOG_FORMAT = "%(asctime)s %(message)s"
LOG_DATE_FORMAT = "%Y/%m/%d %H:%M:%S"

MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)
WEEKDAY_NAMES = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)


class DiagnosticFormatter(logging.Formatter):
    """Plain log lines, with a [DEBUG] tag on debug records."""

    def __init__(self, color_output: bool = True) -> None:
        super().__init__(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
        self.color_output = color_output

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if record.levelno <= logging.DEBUG:
            tag = colored("DEBUG", "red") if self.color_output else "DEBUG"
            message = f"[{tag}] {message}"
        line = f"{self.formatTime(record, self.datefmt)} {message}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    nolog: bool = False,
    debug: bool = False,
    color_output: bool = True,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Configure the ``ssl_eol`` logger for one run.

    Diagnostics go to stderr unless ``nolog`` is set. Calling this again
    replaces the handlers installed by the previous call.
    """
    for handler in list(LOGGER.handlers):
        LOGGER.removeHandler(handler)
    LOGGER.propagate = False

    if nolog:
        LOGGER.addHandler(logging.NullHandler())
        LOGGER.setLevel(logging.CRITICAL + 1)
        return LOGGER

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(DiagnosticFormatter(color_output))
    LOGGER.addHandler(handler)
    LOGGER.setLevel(logging.DEBUG if debug else logging.INFO)
    return LOGGER


class Month(int):
    """Month of the year (1-12); prints as its English name."""

    def __str__(self) -> str:
        return MONTH_NAMES[self - 1]


class Weekday(int):
    """Day of the week with Sunday = 0; prints as its English name."""

    def __str__(self) -> str:
        return WEEKDAY_NAMES[self]


# Leftmost alternative wins, so longer layout elements come first.
_LAYOUT_RE = re.compile(
    r"January|Jan(?![a-z])|Monday|Mon(?![a-z])|MST"
    r"|002|0[1-6]"
    r"|15|1"
    r"|2006|2"
    r"|_2006|__2|_2"
    r"|3|4|5"
    r"|PM|pm"
    r"|-07:00:00|-070000|-07:00|-0700|-07"
    r"|Z07:00:00|Z070000|Z07:00|Z0700|Z07"
    r"|[.,](?:0+|9+)(?!\d)"
)


def _utc_offset(value: datetime) -> int:
    offset = value.utcoffset()
    return int(offset.total_seconds()) if offset is not None else 0


def _format_offset(seconds: int, element: str) -> str:
    if element.startswith("Z") and seconds == 0:
        return "Z"
    sign = "-" if seconds < 0 else "+"
    hours, rest = divmod(abs(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    pattern = element[1:]
    if pattern == "07":
        return f"{sign}{hours:02d}"
    if pattern == "0700":
        return f"{sign}{hours:02d}{minutes:02d}"
    if pattern == "070000":
        return f"{sign}{hours:02d}{minutes:02d}{secs:02d}"
    if pattern == "07:00":
        return f"{sign}{hours:02d}:{minutes:02d}"
    return f"{sign}{hours:02d}:{minutes:02d}:{secs:02d}"


def _layout_element(value: datetime, element: str) -> str:
    weekday = (value.weekday() + 1) % 7
    hour12 = value.hour % 12 or 12
    fixed = {
        "January": lambda: MONTH_NAMES[value.month - 1],
        "Jan": lambda: MONTH_NAMES[value.month - 1][:3],
        "Monday": lambda: WEEKDAY_NAMES[weekday],
        "Mon": lambda: WEEKDAY_NAMES[weekday][:3],
        "002": lambda: f"{value.timetuple().tm_yday:03d}",
        "__2": lambda: f"{value.timetuple().tm_yday:3d}",
        "01": lambda: f"{value.month:02d}",
        "02": lambda: f"{value.day:02d}",
        "03": lambda: f"{hour12:02d}",
        "04": lambda: f"{value.minute:02d}",
        "05": lambda: f"{value.second:02d}",
        "06": lambda: f"{value.year % 100:02d}",
        "15": lambda: f"{value.hour:02d}",
        "1": lambda: str(value.month),
        "2006": lambda: f"{value.year:04d}",
        "_2006": lambda: f"_{value.year:04d}",
        "2": lambda: str(value.day),
        "_2": lambda: f"{value.day:2d}",
        "3": lambda: str(hour12),
        "4": lambda: str(value.minute),
        "5": lambda: str(value.second),
        "PM": lambda: "PM" if value.hour >= 12 else "AM",
        "pm": lambda: "pm" if value.hour >= 12 else "am",
    }
    if element in fixed:
        return fixed[element]()

    if element == "MST":
        name = value.tzname()
        if name:
            return name
        return _format_offset(_utc_offset(value), "-0700")
    if element[0] in "-Z":
        return _format_offset(_utc_offset(value), element)

    # Fractional seconds: ".000" keeps every digit, ".999" drops trailing zeros.
    digits = f"{value.microsecond * 1000:09d}"[: len(element) - 1]
    if element[1] == "9":
        digits = digits.rstrip("0")
        if not digits:
            return ""
    return element[0] + digits


def go_time_format(value: datetime, layout: str) -> str:
    """
    Format ``value`` with a Go reference-time layout.

    The layout spells out how Mon Jan 2 15:04:05 MST 2006 would be shown,
    e.g. ``2006-01-02`` or ``Jan _2 15:04:05.000 -07:00``.
    """
    return _LAYOUT_RE.sub(lambda match: _layout_element(value, match.group()), layout)


def format_datetime(value: datetime) -> str:
    """
    Display a timestamp as ``2006-01-02 15:04:05 -0700 MST``.

    Sub-second precision is shown only when present; naive values have no
    offset or zone name.
    """
    if value.tzinfo is None:
        return go_time_format(value, "2006-01-02 15:04:05.999999999")
    return go_time_format(value, "2006-01-02 15:04:05.999999999 -0700 MST")


def _shortest_float(value: float) -> str:
    if value == 0:
        return "-0" if math.copysign(1.0, value) < 0 else "0"
    sign = "-" if value < 0 else ""
    _, digit_tuple, exponent = Decimal(repr(abs(value))).as_tuple()
    digits = "".join(str(digit) for digit in digit_tuple)
    point = len(digits) + exponent
    digits = digits.rstrip("0")
    exp = point - 1
    if exp < -4 or exp >= 6:
        mantissa = digits[0] + ("." + digits[1:] if len(digits) > 1 else "")
        return f"{sign}{mantissa}e{'-' if exp < 0 else '+'}{abs(exp):02d}"
    if point <= 0:
        return f"{sign}0.{'0' * -point}{digits}"
    if point >= len(digits):
        return sign + digits + "0" * (point - len(digits))
    return f"{sign}{digits[:point]}.{digits[point:]}"


def format_float(
    value: float, verb: str = "g", precision: Optional[int] = None, flags: str = ""
) -> str:
    """Format a float the way Go's fmt does for %e, %f and %g."""
    if math.isnan(value):
        text = "NaN"
    elif math.isinf(value):
        text = "+Inf" if value > 0 else "-Inf"
    elif verb in "gG" and precision is None:
        text = _shortest_float(value)
        if verb == "G":
            text = text.upper()
    else:
        python_verb = "f" if verb == "F" else verb
        text = format(value, f".{6 if precision is None else precision}{python_verb}")
    if "+" in flags and not text.startswith(("+", "-")):
        text = "+" + text
    return text


def go_type_name(value: Any) -> str:
    """Name of the Go type a template value stands for."""
    if value is None:
        return "<nil>"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, Month):
        return "time.Month"
    if isinstance(value, Weekday):
        return "time.Weekday"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float64"
    if isinstance(value, str):
        return "string"
    if isinstance(value, datetime):
        return "time.Time"
    if isinstance(value, Mapping):
        return "map[string]interface {}"
    return type(value).__name__


_QUOTE_ESCAPES = {
    '"': '\\"',
    "\\": "\\\\",
    "\a": "\\a",
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\v": "\\v",
}


def go_quote(text: str) -> str:
    """Double-quoted string with Go escapes for non-printable characters."""
    out = []
    for char in text:
        code = ord(char)
        if char in _QUOTE_ESCAPES:
            out.append(_QUOTE_ESCAPES[char])
        elif char.isprintable():
            out.append(char)
        elif code < 0x80:
            out.append(f"\\x{code:02x}")
        elif code < 0x10000:
            out.append(f"\\u{code:04x}")
        else:
            out.append(f"\\U{code:08x}")
    return '"' + "".join(out) + '"'


def format_value(value: Any) -> str:
    """Display a template value as Go's %v would."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "<nil>"
    if isinstance(value, float):
        return format_float(value)
    if isinstance(value, datetime):
        return format_datetime(value)
    if isinstance(value, Mapping):
        return "{" + " ".join(format_value(item) for item in value.values()) + "}"
    return str(value)


_VERB_RE = re.compile(r"%([-+# 0]*)(\d*)(?:\.(\d*))?(.?)", re.DOTALL)
_INTEGER_PREFIXES = {"b": "0b", "o": "0", "x": "0x", "X": "0X"}


def _format_verb(verb: str, flags: str, precision: Optional[int], arg: Any) -> str:
    if verb == "v":
        if isinstance(arg, float):
            return format_float(arg, "g", precision, flags)
        return format_value(arg)
    if verb == "T":
        return go_type_name(arg)

    if isinstance(arg, (datetime, Month, Weekday)) and verb in "sq":
        text = format_value(arg)
        if precision is not None:
            text = text[:precision]
        return go_quote(text) if verb == "q" else text

    if isinstance(arg, bool):
        if verb == "t":
            return "true" if arg else "false"
    elif isinstance(arg, int):
        number = int(arg)
        sign = "-" if number < 0 else ("+" if "+" in flags else "")
        if verb == "d":
            return f"{sign}{abs(number)}"
        if verb in _INTEGER_PREFIXES:
            prefix = _INTEGER_PREFIXES[verb] if "#" in flags else ""
            return sign + prefix + format(abs(number), verb)
        if verb == "c":
            return chr(number)
        if verb == "q":
            body = go_quote(chr(number))[1:-1].replace('\\"', '"').replace("'", "\\'")
            return f"'{body}'"
        if verb == "U":
            return f"U+{number:04X}"
    elif isinstance(arg, float):
        if verb in "eEfFgG":
            return format_float(arg, verb, precision, flags)
    elif isinstance(arg, str):
        text = arg if precision is None else arg[:precision]
        if verb == "s":
            return text
        if verb == "q":
            return go_quote(text)
        if verb == "x":
            return text.encode("utf-8").hex()
        if verb == "X":
            return text.encode("utf-8").hex().upper()

    if arg is None:
        return f"%!{verb}(<nil>)"
    return f"%!{verb}({go_type_name(arg)}={format_value(arg)})"


def _pad(text: str, flags: str, width: str, arg: Any) -> str:
    if not width or len(text) >= int(width):
        return text
    size = int(width)
    if "-" in flags:
        return text.ljust(size)
    if "0" in flags:
        numeric = isinstance(arg, (int, float)) and not isinstance(arg, bool)
        sign = text[0] if numeric and text.startswith(("+", "-")) else ""
        return sign + text[len(sign):].rjust(size - len(sign), "0")
    return text.rjust(size)


def go_sprintf(template: str, *args: Any) -> str:
    """
    Format ``args`` according to a Go fmt format string.

    Mismatches are reported inline the way Go does: ``%!d(MISSING)`` for a
    verb with no argument left, ``%!d(string=x)`` for a wrong type and
    ``%!(EXTRA int=1)`` for arguments no verb consumed.
    """
    index = 0

    def replace(match: "re.Match[str]") -> str:
        nonlocal index
        flags, width, precision, verb = match.groups()
        if verb == "%":
            return "%"
        if not verb:
            return "%!(NOVERB)"
        if index >= len(args):
            return f"%!{verb}(MISSING)"
        arg = args[index]
        index += 1
        if precision is None:
            digits = None
        else:
            digits = int(precision) if precision else 0
        return _pad(_format_verb(verb, flags, digits, arg), flags, width, arg)

    text = _VERB_RE.sub(replace, template)
    if index < len(args):
        extra = ", ".join(
            f"{go_type_name(arg)}={format_value(arg)}" for arg in args[index:]
        )
        text += f"%!(EXTRA {extra})"
    return text
