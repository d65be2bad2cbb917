import re
import json
import math
import logging
from typing import Any, Dict, Optional, Tuple

from jsonschema import Draft7Validator, ValidationError as JsonSchemaError
from jsonschema.exceptions import SchemaError

from contract.operation_entry import DeclaredOperation, DeclaredParameter
from verifier.exchange_entry import ObservedExchange

logger = logging.getLogger(__name__)

JSON_SCHEMA_TYPES = {"string", "number", "integer", "boolean", "array", "object", "null"}

CheckResult = Tuple[bool, Optional[str]]


class CoercionError(ValueError):
    """Raised when a query string value cannot be read as the declared type."""
    pass


def _coerce_number(value: str, integer: bool) -> Any:
    text = value.strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        raise CoercionError(f"'{value}' is not numeric")
    if math.isnan(number) or math.isinf(number):
        raise CoercionError(f"'{value}' is not a finite number")
    if integer and number.is_integer():
        return int(number)
    return number


def _coerce_boolean(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    raise CoercionError(f"'{value}' is not a boolean")


def build_value_schema(param_schema: Dict[str, Any]) -> Dict[str, Any]:
    declared_type = param_schema.get("type")
    schema: Dict[str, Any] = {
        "type": declared_type if declared_type in JSON_SCHEMA_TYPES else "string"
    }
    if param_schema.get("enum") is not None:
        schema["enum"] = param_schema["enum"]
    if param_schema.get("pattern") is not None:
        schema["pattern"] = param_schema["pattern"]
    return schema


def coerce_value(value: str, schema: Dict[str, Any]) -> Any:
    declared_type = schema.get("type")
    if declared_type in ("number", "integer"):
        return _coerce_number(value, integer=declared_type == "integer")
    if declared_type == "boolean":
        return _coerce_boolean(value)
    return value


def validate_param_with_schema(value: str, param_schema: Dict[str, Any]) -> bool:
    """Check one raw query string value against a declared type/enum/pattern schema."""
    schema = build_value_schema(param_schema)
    try:
        data = coerce_value(value, schema)
    except CoercionError as e:
        logger.debug(f"Query value rejected: {e}")
        return False

    try:
        errors = list(Draft7Validator(schema).iter_errors(data))
    except (SchemaError, JsonSchemaError, TypeError, re.error) as e:
        logger.debug(f"Unusable parameter schema {param_schema}: {e}")
        return False
    return not errors


class QueryParameterValidator:
    """Strict checks for the query parameters a declared operation requires."""

    @staticmethod
    def validate_parameter(param: DeclaredParameter, exchange: ObservedExchange) -> CheckResult:
        if param.required and not exchange.has_query_key(param.name):
            return False, "missing_query_param"

        if param.value_schema:
            value = exchange.query_value(param.name)
            if value is not None:
                if not validate_param_with_schema(value, param.value_schema):
                    return False, "invalid_query_param"
            elif param.required:
                return False, "missing_query_param"

        return True, None

    @staticmethod
    def validate(operation: DeclaredOperation, exchange: ObservedExchange, enabled: bool = True) -> CheckResult:
        if not enabled:
            return True, None
        for param in operation.query_parameters:
            passed, reason = QueryParameterValidator.validate_parameter(param, exchange)
            if not passed:
                logger.debug(f"Strict query check failed for '{param.name}': {reason}")
                return False, reason
        return True, None


class RequestBodyValidator:
    """Strict checks for operations that accept a JSON request body."""

    @staticmethod
    def parse_json_safely(content: Any) -> Tuple[Any, bool]:
        if not isinstance(content, (str, bytes, bytearray)):
            return None, False
        try:
            return json.loads(content), True
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None, False

    @staticmethod
    def validate(operation: DeclaredOperation, exchange: ObservedExchange, enabled: bool = True) -> CheckResult:
        if not enabled or not operation.accepts_json_body:
            return True, None

        body = exchange.body
        if body is None:
            return False, "missing_body"
        if not body.is_raw:
            return False, "non_raw_body"

        _, ok = RequestBodyValidator.parse_json_safely(body.content)
        if not ok:
            return False, "invalid_json_body"
        return True, None
