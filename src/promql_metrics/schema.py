from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from marshmallow import Schema, ValidationError, fields, post_load


class ClientErrorSchema(Schema):
    error = fields.String(required=True)


_EXPRESSIONS_FIELD = fields.List(fields.String(), required=True)


def load_expressions(payload: Any) -> list[str]:
    try:
        return _EXPRESSIONS_FIELD.deserialize(payload)
    except ValidationError as ex:
        msg = f"request body must be a JSON array of strings: {ex.messages}"
        raise ValueError(msg) from ex


@dataclass(frozen=True)
class ParseExpressionsResponse:
    exprs: Sequence[str]
    metrics: Sequence[str]
    parse_errors_by_idx: Sequence[str]
    ok: bool = True

    @property
    def queries_received(self) -> int:
        return len(self.exprs)

    @property
    def metrics_count(self) -> int:
        return len(self.metrics)


class ParseExpressionsResponseSchema(Schema):
    ok = fields.Boolean(required=True)
    queries_received = fields.Integer(required=True, data_key="queriesReceived")
    exprs = fields.List(fields.String(), required=True)
    metrics = fields.List(fields.String(), required=True)
    metrics_count = fields.Integer(required=True, data_key="metricsCount")
    parse_errors_by_idx = fields.List(
        fields.String(), required=True, data_key="parseErrorsByIdx"
    )


@dataclass(frozen=True)
class ParseDashboardRequest:
    dashboard: Mapping[str, Any]
    panel_id: int | None = None
    include_variables: bool = True


class ParseDashboardRequestSchema(Schema):
    dashboard = fields.Dict(required=True)
    panel_id = fields.Integer(strict=True, allow_none=True)
    include_variables = fields.Boolean()

    @post_load
    def make_object(
        self, data: Mapping[str, Any], **kwargs: Any
    ) -> ParseDashboardRequest:
        return ParseDashboardRequest(**data)
