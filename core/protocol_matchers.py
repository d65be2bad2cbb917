"""
Protocol-specific matching strategies.

Each matcher turns a (declared operation, observed exchange) pair into an
ordered list of predicate stages. Structural stages establish identity
(method, path or protocol framing) plus the opt-in strict checks; outcome
stages correlate status codes. Stages run in order and stop at the first
failure, so the reason tag always names the earliest rule that rejected
the pair.
"""
import re
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from contract.operation_entry import (
    DeclaredOperation,
    HttpMethod,
    InvalidOperation,
    QueryLanguageOperation,
    RestOperation,
    RpcOperation,
)
from core.run_config import MatchOptions
from router.path_matcher import strip_query, url_matches_template
from schema.field_validators import QueryParameterValidator, RequestBodyValidator
from verifier.exchange_entry import InvalidExchange, ObservedExchange

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageResult:
    passed: bool
    reason: str = "matched"


PASSED = StageResult(True)

Stage = Callable[[DeclaredOperation, ObservedExchange, MatchOptions], StageResult]


def run_stages(stages: List[Stage], operation: DeclaredOperation,
               exchange: ObservedExchange, options: MatchOptions) -> StageResult:
    for stage in stages:
        result = stage(operation, exchange, options)
        if not result.passed:
            return result
    return PASSED


def _check(passed: bool, reason: Optional[str]) -> StageResult:
    return PASSED if passed else StageResult(False, reason or "failed")


# --- shared stages ---------------------------------------------------------

def records_are_valid(operation, exchange, options) -> StageResult:
    valid = not isinstance(operation, InvalidOperation) and not isinstance(exchange, InvalidExchange)
    return _check(valid, "invalid_record")


def identity_present(operation, exchange, options) -> StageResult:
    return _check(getattr(operation, "has_identity", True), "missing_identity")


def method_matches(operation, exchange, options) -> StageResult:
    return _check(exchange.method.upper() == operation.method.value, "method_mismatch")


def method_is_post(operation, exchange, options) -> StageResult:
    return _check(exchange.method.upper() == HttpMethod.POST.value, "method_mismatch")


def strict_query(operation, exchange, options) -> StageResult:
    return _check(*QueryParameterValidator.validate(operation, exchange, options.strict_query_params))


def strict_json_body(operation, exchange, options) -> StageResult:
    return _check(*RequestBodyValidator.validate(operation, exchange, options.strict_request_body))


# --- rest ------------------------------------------------------------------

def rest_path_matches(operation, exchange, options) -> StageResult:
    return _check(url_matches_template(exchange.raw_url, operation.path_template), "path_mismatch")


def outcome_status_tested(operation, exchange, options) -> StageResult:
    if not operation.outcome_status_code:
        return PASSED
    return _check(operation.outcome_status_code in exchange.tested_status_codes, "status_not_tested")


# --- rpc -------------------------------------------------------------------

def rpc_path_matches(operation: RpcOperation, exchange, options) -> StageResult:
    for candidate in operation.candidate_paths:
        if url_matches_template(exchange.raw_url, candidate):
            return PASSED
    return StageResult(False, "path_mismatch")


def rpc_body_present(operation, exchange, options) -> StageResult:
    if not options.strict_request_body or exchange.body is None:
        return PASSED
    return _check(not exchange.body.is_empty, "empty_body")


# --- query language --------------------------------------------------------

def endpoint_matches(operation, exchange, options) -> StageResult:
    url = strip_query(exchange.raw_url)
    if url is None:
        return StageResult(False, "endpoint_mismatch")
    return _check(options.query_language_endpoint in url, "endpoint_mismatch")


def field_selection_pattern(field_name: str) -> "re.Pattern":
    return re.compile(r"(?<![A-Za-z0-9_])" + re.escape(field_name) + r"\s*[({]")


def query_document_selects_field(operation: QueryLanguageOperation, exchange, options) -> StageResult:
    if not options.strict_request_body:
        return PASSED
    if exchange.body is None:
        return StageResult(False, "missing_body")

    payload, ok = RequestBodyValidator.parse_json_safely(exchange.body.content)
    if not ok or not isinstance(payload, dict):
        return StageResult(False, "invalid_json_body")

    query_text = payload.get("query")
    if not isinstance(query_text, str) or not query_text.strip():
        return StageResult(False, "missing_query_text")
    if operation.operation_kind not in query_text.lower():
        return StageResult(False, "operation_kind_mismatch")
    if not field_selection_pattern(operation.field_name).search(query_text):
        return StageResult(False, "field_not_selected")
    return PASSED


class ProtocolMatcher:
    structural_stages: List[Stage] = []
    outcome_stages: List[Stage] = []

    def structural(self, operation, exchange, options: MatchOptions) -> StageResult:
        return run_stages(self.structural_stages, operation, exchange, options)

    def outcome(self, operation, exchange, options: MatchOptions) -> StageResult:
        return run_stages(self.outcome_stages, operation, exchange, options)

    def evaluate(self, operation, exchange, options: MatchOptions) -> StageResult:
        result = self.structural(operation, exchange, options)
        if not result.passed:
            return result
        return self.outcome(operation, exchange, options)


class RestMatcher(ProtocolMatcher):
    structural_stages = [records_are_valid, method_matches, rest_path_matches, strict_query, strict_json_body]
    outcome_stages = [outcome_status_tested]


class RpcMatcher(ProtocolMatcher):
    structural_stages = [records_are_valid, identity_present, method_is_post, rpc_path_matches, rpc_body_present]


class QueryLanguageMatcher(ProtocolMatcher):
    structural_stages = [records_are_valid, identity_present, method_is_post, endpoint_matches,
                         query_document_selects_field]


REST_MATCHER = RestMatcher()
RPC_MATCHER = RpcMatcher()
QUERY_LANGUAGE_MATCHER = QueryLanguageMatcher()


def matcher_for(operation: DeclaredOperation) -> ProtocolMatcher:
    if isinstance(operation, RpcOperation):
        return RPC_MATCHER
    if isinstance(operation, QueryLanguageOperation):
        return QUERY_LANGUAGE_MATCHER
    if isinstance(operation, (RestOperation, DeclaredOperation)):
        return REST_MATCHER
    raise TypeError(f"Unsupported operation type: {type(operation).__name__}")
