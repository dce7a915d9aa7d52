"""Output templates using Go text/template syntax.

The subset understood here covers what is useful for one certificate:

    EOL: {{.EOL_DATETIME}}                       field reference
    {{.EOL_DATETIME.Format "2006-01-02"}}        time.Time methods
    {{printf "%d days" .EOL_TTL}}                function call
    {{.EOL_TTL | printf "%08d"}}                 pipelines
    {{if lt .EOL_TTL 86400}}WARN{{else}}OK{{end}} conditionals (also with)
    {{- .EOL_TTL -}}                             trim surrounding whitespace
    {{/* a comment */}}                          ignored

Functions: printf print println eq ne lt le gt ge and or not len.
``range``, ``define``, ``template``, ``block`` and variables are rejected
when the template is compiled, so a bad ``--format`` is reported before
any connection is made.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .exceptions import RenderError, TemplateSyntaxError
from .formatting import (
    Month,
    Weekday,
    format_datetime,
    format_value,
    go_sprintf,
    go_time_format,
    go_type_name,
)

LEFT_DELIM = "{{"
RIGHT_DELIM = "}}"
_SPACE = " \t\r\n"

_TOKEN_RE = re.compile(
    r"""
    (?P<space>[ \t\r\n]+)
  | (?P<string>"(?:[^"\\\n]|\\.)*")
  | (?P<raw>`[^`]*`)
  | (?P<number>[+-]?(?:0[xX][0-9a-fA-F_]+|0[oObB][0-7_]+
        |(?:\d[\d_]*(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?))
  | (?P<field>(?:\.[A-Za-z_]\w*)+|\.)
  | (?P<variable>\$\w*(?:\.[A-Za-z_]\w*)*)
  | (?P<ident>[A-Za-z_]\w*)
  | (?P<punct>[|()])
    """,
    re.VERBOSE,
)
_ESCAPE_RE = re.compile(
    r"""\\(?:([abfnrtv\\"'])|x([0-9a-fA-F]{2})|u([0-9a-fA-F]{4})"""
    r"""|U([0-9a-fA-F]{8})|([0-7]{3})|(.))""",
    re.DOTALL,
)
_SIMPLE_ESCAPES = {
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "v": "\v",
    "\\": "\\",
    '"': '"',
    "'": "'",
}
_KEYWORDS = {"if", "else", "end", "with"}
_UNSUPPORTED = {"range", "define", "template", "block", "break", "continue"}

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class _Missing:
    def __repr__(self) -> str:
        return "<missing>"


_MISSING = _Missing()


@dataclass(frozen=True)
class _Token:
    kind: str
    text: str


@dataclass(frozen=True)
class _Field:
    path: Tuple[str, ...]
    source: str
    from_root: bool = False


@dataclass(frozen=True)
class _Literal:
    value: Any
    source: str


@dataclass(frozen=True)
class _Function:
    name: str

    @property
    def source(self) -> str:
        return self.name


@dataclass(frozen=True)
class _Command:
    args: Tuple[Any, ...]
    source: str


@dataclass(frozen=True)
class _Pipeline:
    commands: Tuple[_Command, ...]
    line: int
    source: str


@dataclass
class _Action:
    pipe: _Pipeline


@dataclass
class _Branch:
    keyword: str
    pipe: _Pipeline
    body: List[Any] = field(default_factory=list)
    else_body: Optional[List[Any]] = None


_Node = Union[str, _Action, _Branch]


class _CallError(Exception):
    """Raised by template functions; reported as "error calling NAME"."""


def is_true(value: Any) -> bool:
    """Truth of a value as ``if`` sees it: zero values are false."""
    if value is None or value is _MISSING:
        return False
    if isinstance(value, (bool, int, float, str)):
        return bool(value)
    return True


def _basic_kind(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float"
    if isinstance(value, str):
        return "string"
    return None


def _eq(first: Any, *others: Any) -> bool:
    if not others:
        raise _CallError("missing argument for comparison")
    kind = _basic_kind(first)
    for other in others:
        other_kind = _basic_kind(other)
        if kind is None or other_kind is None:
            if type(first) is not type(other):
                raise _CallError("incompatible types for comparison")
        elif kind != other_kind:
            raise _CallError("incompatible types for comparison")
        if first == other:
            return True
    return False


def _lt(left: Any, right: Any) -> bool:
    kind, other_kind = _basic_kind(left), _basic_kind(right)
    if kind is None or other_kind is None:
        raise _CallError("invalid type for comparison")
    if kind != other_kind:
        raise _CallError("incompatible types for comparison")
    if kind == "bool":
        raise _CallError("invalid type for comparison")
    return left < right


def _le(left: Any, right: Any) -> bool:
    return _lt(left, right) or _eq(left, right)


def _printf(template: Any, *args: Any) -> str:
    if not isinstance(template, str):
        raise _CallError(f"format must be string, not {go_type_name(template)}")
    return go_sprintf(template, *args)


def _print(*args: Any) -> str:
    parts = []
    for index, arg in enumerate(args):
        if index and not isinstance(arg, str) and not isinstance(args[index - 1], str):
            parts.append(" ")
        parts.append(format_value(arg))
    return "".join(parts)


def _println(*args: Any) -> str:
    return " ".join(format_value(arg) for arg in args) + "\n"


def _len(value: Any) -> int:
    if isinstance(value, str):
        return len(value.encode("utf-8"))
    if isinstance(value, Mapping):
        return len(value)
    raise _CallError(f"len of type {go_type_name(value)}")


# name -> (function, minimum args, maximum args or None)
_FUNCS: Dict[str, Tuple[Optional[Callable[..., Any]], int, Optional[int]]] = {
    "and": (None, 1, None),
    "or": (None, 1, None),
    "not": (lambda value: not is_true(value), 1, 1),
    "len": (_len, 1, 1),
    "print": (_print, 0, None),
    "println": (_println, 0, None),
    "printf": (_printf, 1, None),
    "eq": (_eq, 1, None),
    "ne": (lambda left, right: not _eq(left, right), 2, 2),
    "lt": (_lt, 2, 2),
    "le": (_le, 2, 2),
    "gt": (lambda left, right: not _le(left, right), 2, 2),
    "ge": (lambda left, right: not _lt(left, right), 2, 2),
}


def _unix(value: datetime) -> int:
    return (value - _EPOCH) // timedelta(seconds=1)


# name -> (method, parameter types)
_TIME_METHODS: Dict[str, Tuple[Callable[..., Any], Tuple[type, ...]]] = {
    "Format": (go_time_format, (str,)),
    "String": (format_datetime, ()),
    "Unix": (_unix, ()),
    "UnixMilli": (lambda t: _unix(t) * 1000 + t.microsecond // 1000, ()),
    "UTC": (lambda t: t.astimezone(timezone.utc), ()),
    "Local": (lambda t: t.astimezone(), ()),
    "Year": (lambda t: t.year, ()),
    "Month": (lambda t: Month(t.month), ()),
    "Day": (lambda t: t.day, ()),
    "Hour": (lambda t: t.hour, ()),
    "Minute": (lambda t: t.minute, ()),
    "Second": (lambda t: t.second, ()),
    "Nanosecond": (lambda t: t.microsecond * 1000, ()),
    "YearDay": (lambda t: t.timetuple().tm_yday, ()),
    "Weekday": (lambda t: Weekday((t.weekday() + 1) % 7), ()),
    "Before": (lambda t, u: t < u, (datetime,)),
    "After": (lambda t, u: t > u, (datetime,)),
    "Equal": (lambda t, u: t == u, (datetime,)),
}
_PARAM_NAMES = {str: "string", datetime: "time.Time"}


class _Executor:
    """Walks a parsed template against one set of field values."""

    def __init__(self, name: str, root: Mapping) -> None:
        self.name = name
        self.root = root

    def error(self, line: int, source: str, message: str) -> RenderError:
        return RenderError(
            f'template: {self.name}:{line}: executing "{self.name}" '
            f"at <{source}>: {message}"
        )

    def walk(self, nodes: List[_Node], dot: Any, out: List[str]) -> None:
        for node in nodes:
            if isinstance(node, str):
                out.append(node)
            elif isinstance(node, _Action):
                out.append(format_value(self.pipeline(node.pipe, dot)))
            else:
                value = self.pipeline(node.pipe, dot)
                if is_true(value):
                    inner_dot = value if node.keyword == "with" else dot
                    self.walk(node.body, inner_dot, out)
                elif node.else_body is not None:
                    self.walk(node.else_body, dot, out)

    def pipeline(self, pipe: _Pipeline, dot: Any) -> Any:
        value: Any = _MISSING
        for command in pipe.commands:
            value = self.command(command, dot, pipe.line, value)
        return value

    def command(self, command: _Command, dot: Any, line: int, final: Any) -> Any:
        first, args = command.args[0], command.args[1:]
        if isinstance(first, _Field):
            return self.field_chain(first, dot, line, args, final)
        if isinstance(first, _Function):
            return self.call(first.name, args, dot, line, final, command.source)
        if args or final is not _MISSING:
            raise self.error(
                line, command.source, f"can't give argument to non-function {first.source}"
            )
        return self.arg(first, dot, line)

    def arg(self, node: Any, dot: Any, line: int) -> Any:
        if isinstance(node, _Literal):
            return node.value
        if isinstance(node, _Field):
            return self.field_chain(node, dot, line, (), _MISSING)
        if isinstance(node, _Pipeline):
            return self.pipeline(node, dot)
        return self.call(node.name, (), dot, line, _MISSING, node.source)

    def field_chain(
        self, node: _Field, dot: Any, line: int, args: Tuple[Any, ...], final: Any
    ) -> Any:
        receiver = self.root if node.from_root else dot
        if not node.path:
            if args or final is not _MISSING:
                raise self.error(
                    line, node.source, f"can't give argument to non-function {node.source}"
                )
            return receiver
        last = len(node.path) - 1
        for index, name in enumerate(node.path):
            if index < last:
                receiver = self.field(receiver, name, (), _MISSING, dot, line, node)
            else:
                receiver = self.field(receiver, name, args, final, dot, line, node)
        return receiver

    def field(
        self,
        receiver: Any,
        name: str,
        args: Tuple[Any, ...],
        final: Any,
        dot: Any,
        line: int,
        node: _Field,
    ) -> Any:
        if isinstance(receiver, Mapping):
            if name not in receiver:
                raise self.error(line, node.source, f"can't evaluate field {name}")
            if args or final is not _MISSING:
                raise self.error(
                    line,
                    node.source,
                    f"{name} has arguments but cannot be invoked as function",
                )
            return receiver[name]

        if not isinstance(receiver, datetime) or name not in _TIME_METHODS:
            raise self.error(
                line,
                node.source,
                f"can't evaluate field {name} in type {go_type_name(receiver)}",
            )
        method, params = _TIME_METHODS[name]
        values = [self.arg(arg, dot, line) for arg in args]
        if final is not _MISSING:
            values.append(final)
        if len(values) != len(params):
            raise self.error(
                line,
                node.source,
                f"wrong number of args for {name}: want {len(params)} got {len(values)}",
            )
        for value, expected in zip(values, params):
            if not isinstance(value, expected):
                raise self.error(
                    line,
                    node.source,
                    f"wrong type for value; expected {_PARAM_NAMES[expected]}; "
                    f"got {go_type_name(value)}",
                )
        return method(receiver, *values)

    def call(
        self,
        name: str,
        args: Tuple[Any, ...],
        dot: Any,
        line: int,
        final: Any,
        source: str,
    ) -> Any:
        function, least, most = _FUNCS[name]
        count = len(args) + (final is not _MISSING)
        if count < least or (most is not None and count > most):
            want = f"at least {least}" if most is None else str(least)
            raise self.error(
                line, source, f"wrong number of args for {name}: want {want} got {count}"
            )

        if function is None:
            # and/or stop at the first operand that decides the result
            value: Any = None
            for arg in args:
                value = self.arg(arg, dot, line)
                if is_true(value) != (name == "and"):
                    return value
            return final if final is not _MISSING else value

        values = [self.arg(arg, dot, line) for arg in args]
        if final is not _MISSING:
            values.append(final)
        try:
            return function(*values)
        except _CallError as exc:
            raise self.error(line, source, f"error calling {name}: {exc}") from exc


class Template:
    """A compiled output template."""

    def __init__(self, name: str, nodes: List[_Node]) -> None:
        self.name = name
        self._nodes = nodes

    def render(self, context: Mapping[str, Any]) -> str:
        """
        Evaluate the template against ``context``.

        The whole output is built before returning, so a failing field
        never leaves partial text behind.

        Raises:
            RenderError: a field is not in ``context``, a method or function
                gets arguments it cannot use, or a comparison mixes types
        """
        parts: List[str] = []
        _Executor(self.name, context).walk(self._nodes, context, parts)
        return "".join(parts)


def _line_at(source: str, pos: int) -> int:
    return source.count("\n", 0, pos) + 1


def _find_action_end(source: str, pos: int) -> int:
    """Index of the closing delimiter, skipping over quoted strings."""
    while pos < len(source):
        char = source[pos]
        if char == '"':
            pos += 1
            while pos < len(source) and source[pos] not in '"\n':
                pos += 2 if source[pos] == "\\" else 1
        elif char == "`":
            pos = source.find("`", pos + 1)
            if pos < 0:
                return -1
        elif source.startswith(RIGHT_DELIM, pos):
            return pos
        pos += 1
    return -1


class _ActionParser:
    """Turns the text between one pair of delimiters into tokens and a pipeline."""

    def __init__(self, action: str, error: Callable[[str], TemplateSyntaxError]) -> None:
        self.error = error
        self.tokens = self._lex(action)
        self.pos = 0

    def _lex(self, action: str) -> List[_Token]:
        tokens = []
        pos = 0
        while pos < len(action):
            match = _TOKEN_RE.match(action, pos)
            if match is None:
                char = action[pos]
                if char == '"':
                    raise self.error("unterminated quoted string")
                if char in "+-":
                    raise self.error(f'bad number syntax: "{char}"')
                if char in ":=":
                    raise self.error("unsupported action: variable declaration")
                raise self.error(f"unexpected {char!r} in command")
            pos = match.end()
            if match.lastgroup == "space":
                continue
            if match.lastgroup == "number" and pos < len(action):
                if action[pos].isalnum() or action[pos] in "._":
                    word = re.match(r"[\w.]*", action[pos:]).group()
                    raise self.error(f'bad number syntax: "{match.group()}{word}"')
            tokens.append(_Token(match.lastgroup, match.group()))
        return tokens

    def peek(self) -> Optional[_Token]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def next(self) -> Optional[_Token]:
        token = self.peek()
        self.pos += 1
        return token

    def keyword(self) -> Optional[str]:
        token = self.peek()
        if token is None or token.kind != "ident":
            return None
        if token.text in _KEYWORDS or token.text in _UNSUPPORTED:
            return token.text
        return None

    def parse(self, line: int, context: str = "command") -> _Pipeline:
        if self.peek() is None:
            raise self.error(f"missing value for {context}")
        pipe = self._pipeline(line)
        token = self.peek()
        if token is not None:
            raise self.error(f"unexpected {token.text!r} in operand")
        return pipe

    def _pipeline(self, line: int) -> _Pipeline:
        commands = [self._command(line)]
        while self.peek() is not None and self.peek().text == "|":
            self.next()
            commands.append(self._command(line))
        source = " | ".join(command.source for command in commands)
        return _Pipeline(tuple(commands), line, source)

    def _command(self, line: int) -> _Command:
        args = []
        while self.peek() is not None and self.peek().text not in ("|", ")"):
            args.append(self._operand(line))
        if not args:
            raise self.error("missing value for command")
        first = args[0]
        if isinstance(first, _Literal) and first.value is None:
            raise self.error("nil is not a command")
        sources = [
            f"({arg.source})" if isinstance(arg, _Pipeline) else arg.source for arg in args
        ]
        return _Command(tuple(args), " ".join(sources))

    def _operand(self, line: int) -> Any:
        token = self.next()
        kind, text = token.kind, token.text
        if text == "(":
            pipe = self._pipeline(line)
            closing = self.next()
            if closing is None or closing.text != ")":
                raise self.error("unclosed left paren")
            return pipe
        if kind == "string":
            return _Literal(self._unquote(text), text)
        if kind == "raw":
            return _Literal(text[1:-1], text)
        if kind == "number":
            return _Literal(self._number(text), text)
        if kind == "field":
            path = tuple(text[1:].split(".")) if text != "." else ()
            return _Field(path, text)
        if kind == "variable":
            if text != "$" and not text.startswith("$."):
                raise self.error(f"unsupported action: variable {text}")
            return _Field(tuple(text[2:].split(".")) if text != "$" else (), text, True)
        if text in ("true", "false"):
            return _Literal(text == "true", text)
        if text == "nil":
            return _Literal(None, text)
        if text in _FUNCS:
            return _Function(text)
        raise self.error(f'function "{text}" not defined')

    def _unquote(self, text: str) -> str:
        def replace(match: "re.Match[str]") -> str:
            simple, hex_byte, short, long, octal, bad = match.groups()
            if simple:
                return _SIMPLE_ESCAPES[simple]
            if bad is not None:
                raise self.error(f"invalid syntax: {text}")
            code = hex_byte or short or long
            return chr(int(code, 16) if code else int(octal, 8))

        return _ESCAPE_RE.sub(replace, text[1:-1])

    def _number(self, text: str) -> Union[int, float]:
        body = text.lstrip("+-").replace("_", "")
        negative = text.startswith("-")
        try:
            if body[:2].lower() == "0x":
                value: Union[int, float] = int(body, 16)
            elif re.search(r"[.eE]", body):
                value = float(body)
            elif len(body) > 1 and body[0] == "0" and body[1].isdigit():
                value = int(body, 8)
            else:
                value = int(body, 0)
        except ValueError:
            raise self.error(f'bad number syntax: "{text}"') from None
        return -value if negative else value


def _scan(source: str, error: Callable[[int, str], TemplateSyntaxError]):
    """Yield literal text and ``(action, position)`` pairs, applying trim markers."""
    pos = 0
    trim_next = False
    while True:
        start = source.find(LEFT_DELIM, pos)
        text = source[pos:] if start < 0 else source[pos:start]
        if trim_next:
            text = text.lstrip(_SPACE)
            trim_next = False
        if start < 0:
            if text:
                yield text
            return

        inner_start = start + len(LEFT_DELIM)
        if (
            source.startswith("-", inner_start)
            and len(source) > inner_start + 1
            and source[inner_start + 1] in _SPACE
        ):
            text = text.rstrip(_SPACE)
            inner_start += 2
        if text:
            yield text

        body = source[inner_start:].lstrip(_SPACE)
        if body.startswith("/*"):
            comment_end = source.find("*/", inner_start)
            if comment_end < 0:
                raise error(start, "unclosed comment")
            pos = comment_end + 2
            rest = source[pos:]
            if rest.startswith(" -" + RIGHT_DELIM) or rest.startswith("\t-" + RIGHT_DELIM):
                trim_next = True
                pos += 2 + len(RIGHT_DELIM)
            elif rest.lstrip(_SPACE).startswith(RIGHT_DELIM):
                pos += len(rest) - len(rest.lstrip(_SPACE)) + len(RIGHT_DELIM)
            else:
                raise error(start, "comment ends before closing delimiter")
            continue

        end = _find_action_end(source, inner_start)
        if end < 0:
            raise error(start, "unclosed action")
        inner = source[inner_start:end]
        pos = end + len(RIGHT_DELIM)
        if len(inner) >= 2 and inner[-1] == "-" and inner[-2] in _SPACE:
            trim_next = True
            inner = inner[:-1]
        yield (inner, start)


def compile_template(source: str, name: str = "template") -> Template:
    """
    Parse a template string.

    Raises:
        TemplateSyntaxError: unclosed action or comment, empty action,
            unknown function, malformed literal, unbalanced if/with/else/end,
            or an unsupported action such as range or a variable
    """

    def error(at: int, message: str) -> TemplateSyntaxError:
        return TemplateSyntaxError(f"template: {name}:{_line_at(source, at)}: {message}")

    root: List[_Node] = []
    current = root
    # (branch, closes_parent) for every open if/with; else-if chains close together
    stack: List[Tuple[_Branch, bool]] = []

    def enclosing() -> List[_Node]:
        if not stack:
            return root
        branch = stack[-1][0]
        return branch.else_body if branch.else_body is not None else branch.body

    for item in _scan(source, error):
        if isinstance(item, str):
            current.append(item)
            continue

        action, start = item
        line = _line_at(source, start)
        parser = _ActionParser(action, lambda message, at=start: error(at, message))
        keyword = parser.keyword()

        if keyword in ("if", "with"):
            parser.next()
            branch = _Branch(keyword, parser.parse(line, keyword))
            current.append(branch)
            stack.append((branch, False))
            current = branch.body
        elif keyword == "else":
            if not stack:
                raise error(start, "unexpected {{else}}")
            branch = stack[-1][0]
            if branch.else_body is not None:
                raise error(start, "expected end; found {{else}}")
            branch.else_body = []
            parser.next()
            chained = parser.keyword()
            if chained in ("if", "with"):
                parser.next()
                nested = _Branch(chained, parser.parse(line, chained))
                branch.else_body.append(nested)
                stack.append((nested, True))
                current = nested.body
            elif parser.peek() is not None:
                raise error(start, f"unexpected {parser.peek().text!r} in else")
            else:
                current = branch.else_body
        elif keyword == "end":
            if not stack:
                raise error(start, "unexpected {{end}}")
            parser.next()
            if parser.peek() is not None:
                raise error(start, f"unexpected {parser.peek().text!r} in end")
            _, chained = stack.pop()
            while chained:
                _, chained = stack.pop()
            current = enclosing()
        elif keyword in _UNSUPPORTED:
            raise error(
                start,
                f"unsupported action {LEFT_DELIM}{action.strip(_SPACE)}{RIGHT_DELIM}",
            )
        else:
            current.append(_Action(parser.parse(line)))

    if stack:
        raise error(len(source), "unexpected EOF")
    return Template(name, root)
