from __future__ import annotations

import logging
import re
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field

from .prometheus_query_parser import (
    METRIC_NAME_LABEL,
    Expr,
    LabelMatcherOperator,
    PromQLException,
    VectorSelector,
    parse_query,
    walk,
)


LOGGER = logging.getLogger(__name__)

DEFAULT_MACRO_PLACEHOLDER = "5m"

# Dashboard variables such as $node, $__interval or $__rate_interval
_MACRO_RE = re.compile(r"\$[a-zA-Z0-9_]+")


@dataclass(frozen=True)
class MetricNamesExtraction:
    metrics: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def __iter__(self) -> Iterator[list[str]]:
        return iter((self.metrics, self.errors))

    @property
    def has_errors(self) -> bool:
        return any(self.errors)


def normalize_macros(expr: str, placeholder: str = DEFAULT_MACRO_PLACEHOLDER) -> str:
    """Replace dashboard macros with a literal the parser accepts.

    Every macro maps to the same placeholder, a duration by default, so
    the result is syntactically valid wherever a range or a scalar fits.
    """
    return _MACRO_RE.sub(lambda _: placeholder, expr)


def extract_metric_names(
    exprs: Sequence[str], *, placeholder: str = DEFAULT_MACRO_PLACEHOLDER
) -> MetricNamesExtraction:
    """Collect the distinct metric names referenced by a batch of queries.

    Metric names are returned in first-seen order. Errors are index aligned
    with exprs, an empty string meaning the expression was parsed.
    """
    seen: set[str] = set()
    metrics: list[str] = []
    errors = [""] * len(exprs)

    for index, raw_expr in enumerate(exprs):
        try:
            ast = parse_query(normalize_macros(raw_expr, placeholder))
        except PromQLException as ex:
            LOGGER.info("Failed to parse expression #%d %r: %s", index, raw_expr, ex)
            errors[index] = str(ex)
            continue
        for name in iter_metric_names(ast):
            if name not in seen:
                seen.add(name)
                metrics.append(name)

    LOGGER.debug(
        "Extracted %d metric names from %d expressions", len(metrics), len(exprs)
    )
    return MetricNamesExtraction(metrics=metrics, errors=errors)


def iter_metric_names(ast: Expr) -> Iterator[str]:
    for node in walk(ast):
        match node:
            case VectorSelector():
                name = get_metric_name(node)
                if name:
                    yield name


def get_metric_name(selector: VectorSelector) -> str:
    if selector.name:
        return selector.name
    matcher = selector.get_label_matcher(
        METRIC_NAME_LABEL, LabelMatcherOperator.EQ, LabelMatcherOperator.RE
    )
    # A regex matcher may select any number of metrics
    if matcher and matcher.is_eq:
        return matcher.value
    return ""
