from __future__ import annotations

import pydantic
from pydantic_settings import BaseSettings, SettingsConfigDict

from .metric_names import DEFAULT_MACRO_PLACEHOLDER
from .prometheus_query_parser import DURATION_RE


class ParserApiConfig(BaseSettings):
    model_config = SettingsConfigDict(env_nested_delimiter="__")

    class Server(pydantic.BaseModel):
        host: str = "0.0.0.0"
        port: int = 8080

    server: Server = Server()
    macro_placeholder: str = DEFAULT_MACRO_PLACEHOLDER
    max_expressions: int = pydantic.Field(default=1000, gt=0)

    @pydantic.field_validator("macro_placeholder")
    @classmethod
    def validate_macro_placeholder(cls, value: str) -> str:
        if not DURATION_RE.fullmatch(value):
            msg = f"macro placeholder must be a duration, e.g. 5m, got {value!r}"
            raise ValueError(msg)
        return value
