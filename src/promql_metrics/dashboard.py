from __future__ import annotations

import logging
import re
from collections.abc import Iterator, Mapping
from typing import Any


LOGGER = logging.getLogger(__name__)

_LABEL_VALUES_RE = re.compile(
    r"^\s*label_values\((?P<expr>.+),\s*[a-zA-Z_][a-zA-Z0-9_]*\s*\)\s*$", re.DOTALL
)
_QUERY_RESULT_RE = re.compile(r"^\s*query_result\((?P<expr>.+)\)\s*$", re.DOTALL)


class DashboardPanelNotFound(LookupError):
    pass


def iter_panels(dashboard: Mapping[str, Any]) -> Iterator[Mapping[str, Any]]:
    # Collapsed rows keep their panels nested under the row panel
    for panel in dashboard.get("panels") or ():
        if not isinstance(panel, Mapping):
            continue
        yield panel
        yield from iter_panels(panel)


def find_panel(dashboard: Mapping[str, Any], panel_id: int) -> Mapping[str, Any] | None:
    for panel in iter_panels(dashboard):
        if panel.get("id") == panel_id:
            return panel
    return None


def get_panel_expressions(panel: Mapping[str, Any]) -> list[str]:
    targets = panel.get("targets")
    if not isinstance(targets, list):
        return []
    result: list[str] = []
    for target in targets:
        if not isinstance(target, Mapping):
            continue
        expr = target.get("expr")
        if isinstance(expr, str) and expr:
            result.append(expr)
    return result


def get_variable_expressions(dashboard: Mapping[str, Any]) -> list[str]:
    templating = dashboard.get("templating")
    if not isinstance(templating, Mapping):
        return []
    result: list[str] = []
    for variable in templating.get("list") or ():
        if not isinstance(variable, Mapping) or variable.get("type") != "query":
            continue
        query = variable.get("query")
        if isinstance(query, Mapping):
            query = query.get("query")
        if not isinstance(query, str):
            continue
        expr = _get_variable_query_expression(query)
        if expr:
            result.append(expr)
    return result


def get_dashboard_expressions(
    dashboard: Mapping[str, Any],
    *,
    panel_id: int | None = None,
    include_variables: bool = True,
) -> list[str]:
    """Collect the query expressions of a Grafana dashboard model.

    Accepts either the dashboard model itself or the
    ``{"dashboard": ..., "meta": ...}`` envelope returned by the Grafana API.
    Panel target expressions come first, in panel order, followed by the
    expressions embedded in templating variables.
    """
    dashboard = _unwrap(dashboard)
    if panel_id is None:
        panels = list(iter_panels(dashboard))
    else:
        panel = find_panel(dashboard, panel_id)
        if panel is None:
            msg = f"Panel {panel_id} not found in dashboard"
            raise DashboardPanelNotFound(msg)
        panels = [panel]

    result: list[str] = []
    for panel in panels:
        result.extend(get_panel_expressions(panel))
    if include_variables:
        result.extend(get_variable_expressions(dashboard))
    LOGGER.debug(
        "Collected %d expressions from %d panels of dashboard %r",
        len(result),
        len(panels),
        dashboard.get("uid"),
    )
    return result


def _unwrap(dashboard: Mapping[str, Any]) -> Mapping[str, Any]:
    inner = dashboard.get("dashboard")
    if "panels" not in dashboard and isinstance(inner, Mapping):
        return inner
    return dashboard


def _get_variable_query_expression(query: str) -> str:
    # label_values(label) and metrics(regex) carry no expression
    for regex in (_LABEL_VALUES_RE, _QUERY_RESULT_RE):
        match = regex.match(query)
        if match:
            return match.group("expr").strip()
    return ""
