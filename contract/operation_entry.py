from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from router.path_matcher import PathTemplate, compile_path_template

NO_OPERATION_NAME = "(No operationId in spec)"


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"
    TRACE = "TRACE"
    CONNECT = "CONNECT"


class Protocol(str, Enum):
    REST = "rest"
    RPC = "rpc"
    QUERY_LANGUAGE = "query-language"


PROTOCOL_ALIASES = {
    "rest": Protocol.REST.value,
    "http": Protocol.REST.value,
    "openapi": Protocol.REST.value,
    "rpc": Protocol.RPC.value,
    "grpc": Protocol.RPC.value,
    "query-language": Protocol.QUERY_LANGUAGE.value,
    "query_language": Protocol.QUERY_LANGUAGE.value,
    "graphql": Protocol.QUERY_LANGUAGE.value,
}


class ParameterLocation(str, Enum):
    QUERY = "query"
    PATH = "path"
    BODY = "body"
    HEADER = "header"
    COOKIE = "cookie"
    FORM_DATA = "formData"


LOCATIONS = {location.value for location in ParameterLocation}


class DeclaredParameter(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    location: Optional[ParameterLocation] = Field(ParameterLocation.QUERY, alias="in")
    required: bool = False
    value_schema: Dict[str, Any] = Field(default_factory=dict, alias="schema")

    @field_validator("location", mode="before")
    @classmethod
    def unknown_location(cls, v):
        # parameters in an unrecognised location take part in no check
        if v is None or (isinstance(v, str) and v in LOCATIONS):
            return v
        return None

    @field_validator("value_schema", mode="before")
    @classmethod
    def default_schema(cls, v):
        return v or {}


def normalize_status_code(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    code = str(value).strip()
    return code or None


def is_success_status_code(code: Any) -> bool:
    try:
        value = int(str(code).strip())
    except (TypeError, ValueError):
        return False
    return 200 <= value < 300


class DeclaredOperation(BaseModel):
    """One (method, path template, outcome) record taken from a contract."""
    model_config = ConfigDict(frozen=True)

    method: HttpMethod = HttpMethod.GET
    path_template: Optional[str] = Field(None, description="Path such as /users/{userId}")
    outcome_status_code: Optional[str] = None
    expected_status_codes: List[str] = Field(default_factory=list)
    parameters: List[DeclaredParameter] = Field(default_factory=list)
    request_body_content: List[str] = Field(default_factory=list)
    operation_id: Optional[str] = None
    summary: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    api_name: str = ""
    source_file: str = ""

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return cls.model_fields["method"].default
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("outcome_status_code", mode="before")
    @classmethod
    def normalize_outcome(cls, v):
        return normalize_status_code(v)

    @field_validator("expected_status_codes", mode="before")
    @classmethod
    def normalize_expected(cls, v):
        if v is None:
            return []
        return [code for code in (normalize_status_code(c) for c in v) if code]

    @field_validator("request_body_content", "tags", mode="before")
    @classmethod
    def none_to_list(cls, v):
        return v or []

    @property
    def display_name(self) -> str:
        return self.operation_id or self.summary or NO_OPERATION_NAME

    @property
    def compiled_path(self) -> Optional[PathTemplate]:
        if not self.path_template or not self.path_template.strip():
            return None
        return compile_path_template(self.path_template)

    @property
    def query_parameters(self) -> List[DeclaredParameter]:
        return [p for p in self.parameters if p.location == ParameterLocation.QUERY]

    @property
    def accepts_json_body(self) -> bool:
        return any("application/json" in ct for ct in self.request_body_content)

    @property
    def has_success_outcome(self) -> bool:
        return is_success_status_code(self.outcome_status_code)

    @property
    def group_key(self) -> Tuple[str, ...]:
        return (Protocol.REST.value, self.method.value, self.path_template or "")


class RestOperation(DeclaredOperation):
    protocol: Literal["rest"] = "rest"


class RpcOperation(DeclaredOperation):
    protocol: Literal["rpc"] = "rpc"
    method: HttpMethod = HttpMethod.POST
    rpc_service: Optional[str] = None
    rpc_method: Optional[str] = None
    qualified_name: Optional[str] = None

    @property
    def has_identity(self) -> bool:
        return bool(self.rpc_service and self.rpc_method)

    @property
    def fully_qualified_name(self) -> str:
        if self.qualified_name:
            return self.qualified_name
        return f"{self.rpc_service}.{self.rpc_method}" if self.has_identity else ""

    @property
    def candidate_paths(self) -> List[str]:
        candidates = []
        if self.has_identity:
            candidates = [
                f"/{self.rpc_service}/{self.rpc_method}",
                f"/{self.fully_qualified_name}",
                f"/{self.rpc_method}",
            ]
        if self.path_template:
            candidates.append(self.path_template)
        return candidates

    @property
    def group_key(self) -> Tuple[str, ...]:
        return (Protocol.RPC.value, self.fully_qualified_name)


class QueryLanguageOperation(DeclaredOperation):
    protocol: Literal["query-language"] = "query-language"
    method: HttpMethod = HttpMethod.POST
    operation_kind: Literal["query", "mutation", "subscription"] = "query"
    field_name: Optional[str] = None

    @field_validator("operation_kind", mode="before")
    @classmethod
    def lower_kind(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @property
    def has_identity(self) -> bool:
        return bool(self.field_name)

    @property
    def group_key(self) -> Tuple[str, ...]:
        return (Protocol.QUERY_LANGUAGE.value, self.operation_kind, self.field_name or "")


class InvalidOperation(DeclaredOperation):
    """
    Stands in for a record that failed validation. It keeps the descriptive
    fields that could be read so the record still shows up as not covered,
    and it never matches an exchange.
    """
    protocol: str = Protocol.REST.value
    validation_error: str = ""

    @property
    def group_key(self) -> Tuple[str, ...]:
        return ("invalid", self.protocol, self.method.value, self.path_template or "")


AnyOperation = Annotated[
    Union[RestOperation, RpcOperation, QueryLanguageOperation],
    Field(discriminator="protocol"),
]
