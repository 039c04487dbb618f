import os
from collections.abc import Iterator

import pydantic
import pytest

from promql_metrics.config import ParserApiConfig


@pytest.fixture(autouse=True)
def _reset_os_environ() -> Iterator[None]:
    environ = os.environ.copy()

    yield

    os.environ.clear()
    os.environ.update(environ)


class TestParserApiConfig:
    def test_create_defaults(self) -> None:
        result = ParserApiConfig()

        assert result == ParserApiConfig(
            server=ParserApiConfig.Server(host="0.0.0.0", port=8080),
            macro_placeholder="5m",
            max_expressions=1000,
        )

    def test_create_custom(self) -> None:
        os.environ["SERVER__HOST"] = "parser"
        os.environ["SERVER__PORT"] = "9500"
        os.environ["MACRO_PLACEHOLDER"] = "1h30m"
        os.environ["MAX_EXPRESSIONS"] = "10"

        result = ParserApiConfig()

        assert result == ParserApiConfig(
            server=ParserApiConfig.Server(host="parser", port=9500),
            macro_placeholder="1h30m",
            max_expressions=10,
        )

    def test_create__invalid_macro_placeholder(self) -> None:
        os.environ["MACRO_PLACEHOLDER"] = "$__interval"

        with pytest.raises(pydantic.ValidationError, match="must be a duration"):
            ParserApiConfig()

    def test_create__invalid_max_expressions(self) -> None:
        os.environ["MAX_EXPRESSIONS"] = "0"

        with pytest.raises(pydantic.ValidationError):
            ParserApiConfig()
