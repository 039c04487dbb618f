import pytest

from promql_metrics.schema import (
    ParseDashboardRequest,
    ParseDashboardRequestSchema,
    ParseExpressionsResponse,
    ParseExpressionsResponseSchema,
    load_expressions,
)


class TestLoadExpressions:
    def test_load(self) -> None:
        assert load_expressions(["up", ""]) == ["up", ""]

    def test_load__empty(self) -> None:
        assert load_expressions([]) == []

    @pytest.mark.parametrize("payload", [{"exprs": ["up"]}, "up", None, [1, "up"]])
    def test_load__invalid(self, payload: object) -> None:
        with pytest.raises(ValueError, match="must be a JSON array of strings"):
            load_expressions(payload)


class TestParseExpressionsResponseSchema:
    def test_dump(self) -> None:
        data = ParseExpressionsResponseSchema().dump(
            ParseExpressionsResponse(
                exprs=["up", "foo(", 'up{job="x"}'],
                metrics=["up"],
                parse_errors_by_idx=["", "parse error", ""],
            )
        )

        assert data == {
            "ok": True,
            "queriesReceived": 3,
            "exprs": ["up", "foo(", 'up{job="x"}'],
            "metrics": ["up"],
            "metricsCount": 1,
            "parseErrorsByIdx": ["", "parse error", ""],
        }


class TestParseDashboardRequestSchema:
    def test_validate__required_fields(self) -> None:
        errors = ParseDashboardRequestSchema().validate({})

        assert errors == {"dashboard": ["Missing data for required field."]}

    def test_validate__panel_id_not_integer(self) -> None:
        errors = ParseDashboardRequestSchema().validate(
            {"dashboard": {}, "panel_id": "1"}
        )

        assert errors == {"panel_id": ["Not a valid integer."]}

    def test_load(self) -> None:
        result = ParseDashboardRequestSchema().load(
            {"dashboard": {"panels": []}, "panel_id": 2, "include_variables": False}
        )

        assert result == ParseDashboardRequest(
            dashboard={"panels": []}, panel_id=2, include_variables=False
        )

    def test_load__defaults(self) -> None:
        result = ParseDashboardRequestSchema().load({"dashboard": {"panels": []}})

        assert result == ParseDashboardRequest(dashboard={"panels": []})
