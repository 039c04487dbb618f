from __future__ import annotations

import abc
import enum
import logging
import re
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Any

from lark import Lark, LarkError, Token, Transformer
from lark.exceptions import VisitError

from .prometheus_grammars import PROMQL


LOGGER = logging.getLogger(__name__)


promql_parser = Lark(PROMQL, parser="lalr")

METRIC_NAME_LABEL = "__name__"

DURATION_RE = re.compile(r"([0-9]+(ms|[smhdwy]))+")
_DURATION_PART_RE = re.compile(r"([0-9]+)(ms|[smhdwy])")
_DURATION_UNITS = {
    "ms": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
    "y": timedelta(days=365),
}

_ESCAPE_RE = re.compile(
    r"\\(x[0-9a-fA-F]{2}|u[0-9a-fA-F]{4}|U[0-9a-fA-F]{8}|[0-7]{3}|.)", re.DOTALL
)
_ESCAPES = {
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "v": "\v",
}

FUNCTIONS = frozenset(
    (
        "abs",
        "absent",
        "absent_over_time",
        "acos",
        "acosh",
        "asin",
        "asinh",
        "atan",
        "atanh",
        "avg_over_time",
        "ceil",
        "changes",
        "clamp",
        "clamp_max",
        "clamp_min",
        "cos",
        "cosh",
        "count_over_time",
        "day_of_month",
        "day_of_week",
        "day_of_year",
        "days_in_month",
        "deg",
        "delta",
        "deriv",
        "double_exponential_smoothing",
        "exp",
        "floor",
        "histogram_avg",
        "histogram_count",
        "histogram_fraction",
        "histogram_quantile",
        "histogram_stddev",
        "histogram_stdvar",
        "histogram_sum",
        "holt_winters",
        "hour",
        "idelta",
        "increase",
        "info",
        "irate",
        "label_join",
        "label_replace",
        "last_over_time",
        "ln",
        "log10",
        "log2",
        "mad_over_time",
        "max_over_time",
        "min_over_time",
        "minute",
        "month",
        "pi",
        "predict_linear",
        "present_over_time",
        "quantile_over_time",
        "rad",
        "rate",
        "resets",
        "round",
        "scalar",
        "sgn",
        "sin",
        "sinh",
        "sort",
        "sort_by_label",
        "sort_by_label_desc",
        "sort_desc",
        "sqrt",
        "stddev_over_time",
        "stdvar_over_time",
        "sum_over_time",
        "tan",
        "tanh",
        "time",
        "timestamp",
        "vector",
        "year",
    )
)

# Aggregation operators taking a parameter in front of the aggregated vector
PARAMETRIZED_AGGREGATIONS = frozenset(
    ("bottomk", "count_values", "limit_ratio", "limitk", "quantile", "topk")
)


class PromQLException(ValueError):
    pass


class LabelMatcherOperator(enum.Enum):
    EQ = "="
    NE = "!="
    RE = "=~"
    NRE = "!~"

    @property
    def is_eq(self) -> bool:
        return self == self.EQ


@dataclass(frozen=True)
class LabelMatcher:
    name: str
    value: str
    operator: LabelMatcherOperator

    def __repr__(self) -> str:
        return repr(f"{self.name}{self.operator.value}{self.value}")

    @property
    def is_eq(self) -> bool:
        return self.operator.is_eq

    def matches(self, label_value: str) -> bool:
        if self.operator == LabelMatcherOperator.EQ:
            return self.value == label_value
        if self.operator == LabelMatcherOperator.NE:
            return self.value != label_value
        if self.operator == LabelMatcherOperator.RE:
            return bool(re.fullmatch(self.value, label_value))
        if self.operator == LabelMatcherOperator.NRE:
            return not re.fullmatch(self.value, label_value)
        return False

    @classmethod
    def equal(cls, name: str, value: str) -> LabelMatcher:
        return cls(name=name, value=value, operator=LabelMatcherOperator.EQ)

    @classmethod
    def not_equal(cls, name: str, value: str) -> LabelMatcher:
        return cls(name=name, value=value, operator=LabelMatcherOperator.NE)

    @classmethod
    def regex(cls, name: str, value: str) -> LabelMatcher:
        return cls(name=name, value=value, operator=LabelMatcherOperator.RE)

    @classmethod
    def not_regex(cls, name: str, value: str) -> LabelMatcher:
        return cls(name=name, value=value, operator=LabelMatcherOperator.NRE)


class Expr(abc.ABC):  # noqa: B024
    @property
    def children(self) -> Sequence[Expr]:
        return ()


@dataclass(frozen=True)
class VectorSelector(Expr):
    name: str = ""
    label_matchers: Sequence[LabelMatcher] = ()
    offset: timedelta | None = None
    at: float | str | None = None

    def get_label_matcher(
        self, name: str, *operators: LabelMatcherOperator
    ) -> LabelMatcher | None:
        for matcher in self.label_matchers:
            if matcher.name != name:
                continue
            if not operators or matcher.operator in operators:
                return matcher
        return None


@dataclass(frozen=True)
class MatrixSelector(Expr):
    vector: VectorSelector
    range: timedelta

    @property
    def children(self) -> Sequence[Expr]:
        return (self.vector,)


@dataclass(frozen=True)
class Subquery(Expr):
    expr: Expr
    range: timedelta
    step: timedelta | None = None
    offset: timedelta | None = None
    at: float | str | None = None

    @property
    def children(self) -> Sequence[Expr]:
        return (self.expr,)


@dataclass(frozen=True)
class Call(Expr):
    func: str
    args: Sequence[Expr] = ()

    @property
    def children(self) -> Sequence[Expr]:
        return tuple(self.args)


@dataclass(frozen=True)
class Aggregation(Expr):
    operator: str
    expr: Expr
    param: Expr | None = None
    grouping: Sequence[str] = ()
    without: bool = False

    @property
    def children(self) -> Sequence[Expr]:
        if self.param is None:
            return (self.expr,)
        return (self.param, self.expr)


@dataclass(frozen=True)
class VectorMatching:
    on: Sequence[str] | None = None
    ignoring: Sequence[str] | None = None
    group_left: Sequence[str] | None = None
    group_right: Sequence[str] | None = None


@dataclass(frozen=True)
class BinaryExpr(Expr):
    left: Expr
    operator: str
    right: Expr
    return_bool: bool = False
    matching: VectorMatching | None = None

    @property
    def children(self) -> Sequence[Expr]:
        return (self.left, self.right)


@dataclass(frozen=True)
class UnaryExpr(Expr):
    operator: str
    expr: Expr

    @property
    def children(self) -> Sequence[Expr]:
        return (self.expr,)


@dataclass(frozen=True)
class ParenExpr(Expr):
    expr: Expr

    @property
    def children(self) -> Sequence[Expr]:
        return (self.expr,)


@dataclass(frozen=True)
class NumberLiteral(Expr):
    value: float


@dataclass(frozen=True)
class StringLiteral(Expr):
    value: str


@dataclass(frozen=True)
class DurationLiteral(Expr):
    value: timedelta


@dataclass(frozen=True)
class _AggregationModifier:
    labels: Sequence[str] = ()
    without: bool = False


def parse_query(query: str) -> Expr:
    try:
        ast = promql_parser.parse(query)
    except LarkError as ex:
        LOGGER.debug("Failed to parse PromQL query: %s", ex)
        msg = f"Failed to parse PromQL query: {_format_lark_error(ex)}"
        raise PromQLException(msg) from ex
    transformer = ExprTransformer()
    try:
        return transformer.transform(ast)
    except VisitError as ex:
        if isinstance(ex.orig_exc, PromQLException):
            raise ex.orig_exc from None
        raise


def walk(node: Expr) -> Iterator[Expr]:
    """Yield every node reachable from node, depth-first, parents first."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def parse_duration(value: str) -> timedelta:
    if not DURATION_RE.fullmatch(value):
        msg = f"Invalid duration {value!r}"
        raise PromQLException(msg)
    result = timedelta()
    for amount, unit in _DURATION_PART_RE.findall(value):
        result += int(amount) * _DURATION_UNITS[unit]
    return result


def _format_lark_error(ex: LarkError) -> str:
    lines = str(ex).strip().splitlines()
    return lines[0] if lines else type(ex).__name__


def _parse_number(value: str) -> float:
    if value[:2] in ("0x", "0X"):
        return float(int(value, 16))
    return float(value)


def _unquote(value: str) -> str:
    if value.startswith("`"):
        return value[1:-1]
    return _ESCAPE_RE.sub(_unescape, value[1:-1])


def _unescape(match: re.Match[str]) -> str:
    sequence = match.group(1)
    if len(sequence) > 1 and sequence[0] in "xuU":
        return chr(int(sequence[1:], 16))
    if len(sequence) == 3:
        return chr(int(sequence, 8))
    return _ESCAPES.get(sequence, sequence)


class ExprTransformer(Transformer[Token, Expr]):
    def start(self, children: list[Expr]) -> Expr:
        return children[0]

    def number_literal(self, children: list[Token]) -> Expr:
        return NumberLiteral(_parse_number(children[0]))

    def duration_literal(self, children: list[Token]) -> Expr:
        return DurationLiteral(parse_duration(children[0]))

    def string_literal(self, children: list[Token]) -> Expr:
        return StringLiteral(_unquote(children[0]))

    def paren_expr(self, children: list[Expr]) -> Expr:
        return ParenExpr(children[0])

    def label_matcher(self, children: list[Token]) -> LabelMatcher:
        name, operator, value = children
        matcher = LabelMatcher(
            name=str(name),
            operator=LabelMatcherOperator(str(operator)),
            value=_unquote(value),
        )
        if matcher.operator in (LabelMatcherOperator.RE, LabelMatcherOperator.NRE):
            try:
                re.compile(matcher.value)
            except re.error as ex:
                msg = f"invalid regular expression {matcher.value!r}: {ex}"
                raise PromQLException(msg) from ex
        return matcher

    def label_matchers(self, children: list[LabelMatcher]) -> tuple[LabelMatcher, ...]:
        return tuple(children)

    def label_name_list(self, children: list[Token]) -> tuple[str, ...]:
        return tuple(str(child) for child in children)

    def parameter_list(self, children: list[Expr]) -> tuple[Expr, ...]:
        return tuple(children)

    def vector_selector(self, children: list[Any]) -> Expr:
        name = ""
        label_matchers: tuple[LabelMatcher, ...] = ()
        if isinstance(children[0], Token):
            name = str(children[0])
            if len(children) > 1:
                label_matchers = children[1]
        else:
            label_matchers = children[0]
        # A selector without a name must not match every series
        if not name and all(matcher.matches("") for matcher in label_matchers):
            msg = "vector selector must contain at least one non-empty matcher"
            raise PromQLException(msg)
        return VectorSelector(name=name, label_matchers=label_matchers)

    def function_call(self, children: list[Any]) -> Expr:
        name, args = children
        if str(name) not in FUNCTIONS:
            msg = f"unknown function with name {str(name)!r}"
            raise PromQLException(msg)
        return Call(func=str(name), args=args)

    def aggregation_modifier(self, children: list[Any]) -> _AggregationModifier:
        keyword, labels = children
        return _AggregationModifier(labels=labels, without=keyword.type == "WITHOUT")

    def aggregation(self, children: list[Any]) -> Expr:
        operator = str(children[0])
        params: tuple[Expr, ...] = ()
        modifier = _AggregationModifier()
        for child in children[1:]:
            if isinstance(child, _AggregationModifier):
                modifier = child
            else:
                params = child
        expected = 2 if operator in PARAMETRIZED_AGGREGATIONS else 1
        if len(params) != expected:
            msg = (
                f"wrong number of arguments for aggregate expression provided, "
                f"expected {expected}, got {len(params)}"
            )
            raise PromQLException(msg)
        return Aggregation(
            operator=operator,
            expr=params[-1],
            param=params[0] if expected == 2 else None,
            grouping=modifier.labels,
            without=modifier.without,
        )

    def on(self, children: list[Any]) -> tuple[str, Sequence[str]]:
        return "on", children[1]

    def ignoring(self, children: list[Any]) -> tuple[str, Sequence[str]]:
        return "ignoring", children[1]

    def group_left(self, children: list[Any]) -> tuple[str, Sequence[str]]:
        return "group_left", children[1] if len(children) > 1 else ()

    def group_right(self, children: list[Any]) -> tuple[str, Sequence[str]]:
        return "group_right", children[1] if len(children) > 1 else ()

    def grouping(self, children: list[tuple[str, Sequence[str]]]) -> VectorMatching:
        return VectorMatching(**dict(children))

    def binary_expr(self, children: list[Any]) -> Expr:
        left, operator, *modifiers, right = children
        return_bool = False
        matching = None
        for modifier in modifiers:
            if isinstance(modifier, VectorMatching):
                matching = modifier
            else:
                return_bool = True
        return BinaryExpr(
            left=left,
            operator=str(operator),
            right=right,
            return_bool=return_bool,
            matching=matching,
        )

    def unary_expr(self, children: list[Any]) -> Expr:
        operator, expr = children
        return UnaryExpr(operator=str(operator), expr=expr)

    def matrix_selector(self, children: list[Any]) -> Expr:
        expr, duration = children
        if not isinstance(expr, VectorSelector):
            msg = "ranges only allowed for vector selectors"
            raise PromQLException(msg)
        if expr.offset is not None or expr.at is not None:
            msg = "no offset or @ modifiers allowed before range"
            raise PromQLException(msg)
        return MatrixSelector(vector=expr, range=parse_duration(duration))

    def subquery(self, children: list[Any]) -> Expr:
        expr, duration, *step = children
        return Subquery(
            expr=expr,
            range=parse_duration(duration),
            step=parse_duration(step[0]) if step else None,
        )

    def offset_expr(self, children: list[Any]) -> Expr:
        expr, _, *sign, duration = children
        offset = parse_duration(duration)
        if sign:
            offset = -offset
        return self._set_modifier(expr, "offset", offset)

    def at_expr(self, children: list[Any]) -> Expr:
        expr, at = children
        return self._set_modifier(expr, "at", at)

    def at_timestamp(self, children: list[Token]) -> float:
        *sign, number = children
        value = _parse_number(number)
        return -value if sign else value

    def at_function(self, children: list[Token]) -> str:
        name = str(children[0])
        if name not in ("start", "end"):
            msg = f"@ modifier must be a timestamp, start() or end(), got {name}()"
            raise PromQLException(msg)
        return name

    @classmethod
    def _set_modifier(cls, expr: Expr, name: str, value: Any) -> Expr:
        if isinstance(expr, MatrixSelector):
            return replace(
                expr, vector=cls._set_modifier(expr.vector, name, value)  # type: ignore
            )
        if isinstance(expr, VectorSelector | Subquery):
            if getattr(expr, name) is not None:
                msg = f"{name} may not be set multiple times"
                raise PromQLException(msg)
            return replace(expr, **{name: value})
        msg = (
            f"{name} modifier must be preceded by an instant vector selector "
            "or range vector selector or a subquery"
        )
        raise PromQLException(msg)
