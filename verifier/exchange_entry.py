from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from contract.operation_entry import normalize_status_code


class QueryParameter(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    value: Optional[str] = None

    @field_validator("value", mode="before")
    @classmethod
    def stringify_value(cls, v):
        if v is None or isinstance(v, str):
            return v
        if isinstance(v, bool):
            return "true" if v else "false"
        return str(v)


class RequestBody(BaseModel):
    """Payload of a request as the collection recorded it (mode is raw, formdata, urlencoded, graphql, file...)."""
    model_config = ConfigDict(frozen=True)

    mode: str = "raw"
    content: Any = None

    @property
    def is_raw(self) -> bool:
        return self.mode == "raw"

    @property
    def is_empty(self) -> bool:
        if self.content is None:
            return True
        if isinstance(self.content, (str, bytes)):
            return not self.content.strip()
        if isinstance(self.content, (list, dict)):
            return len(self.content) == 0
        return False


class AssertionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    passed: bool = True
    error: Optional[Any] = None


class ObservedExchange(BaseModel):
    """One concrete request plus whatever verification evidence came with it."""
    model_config = ConfigDict(frozen=True)

    name: str = "Unnamed Request"
    folder: str = ""
    method: str = "GET"
    raw_url: str = ""
    query_params: List[QueryParameter] = Field(default_factory=list)
    body: Optional[RequestBody] = None
    tested_status_codes: List[str] = Field(default_factory=list)
    test_scripts: str = ""
    executed: bool = False
    response_code: Optional[int] = None
    response_status: Optional[str] = None
    response_time: Optional[float] = None
    assertions: List[AssertionResult] = Field(default_factory=list)

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, v):
        if not isinstance(v, str) or not v.strip():
            return "GET"
        return v.strip().upper()

    @field_validator("raw_url", mode="before")
    @classmethod
    def none_url(cls, v):
        return "" if v is None else v

    @field_validator("tested_status_codes", mode="before")
    @classmethod
    def normalize_codes(cls, v):
        if v is None:
            return []
        if not isinstance(v, (list, tuple, set)):
            v = [v]
        codes = []
        for raw in v:
            code = normalize_status_code(raw)
            if code and code not in codes:
                codes.append(code)
        return codes

    @field_validator("query_params", "assertions", mode="before")
    @classmethod
    def none_to_list(cls, v):
        return v or []

    @field_validator("test_scripts", mode="before")
    @classmethod
    def none_to_text(cls, v):
        return v or ""

    def query_value(self, key: str) -> Optional[str]:
        for param in self.query_params:
            if param.key == key and param.value is not None:
                return param.value
        return None

    def has_query_key(self, key: str) -> bool:
        return any(param.key == key for param in self.query_params)


class InvalidExchange(ObservedExchange):
    """Stands in for an exchange record that failed validation; it never matches."""
    validation_error: str = ""
