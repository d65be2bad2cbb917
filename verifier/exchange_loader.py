import json
import re
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from core.exceptions import ExchangeLoadError
from verifier.exchange_entry import InvalidExchange, ObservedExchange

logger = logging.getLogger(__name__)

STATUS_ASSERTION_PATTERNS = [
    re.compile(r"to\.have\.status\((\d+)\)"),
    re.compile(r"pm\.expect\(pm\.response\.code\)\.to\.eql\((\d+)\)"),
    re.compile(r"pm\.response\.code\s*={1,3}\s*(\d+)"),
    re.compile(r"pm\.response\.status\s*={1,3}\s*(\d+)"),
]
ONE_OF_PATTERN = re.compile(r"pm\.expect\(pm\.response\.code\)\.to\.be\.oneOf\(\[\s*([^\]]+)\]")


def extract_status_codes(script: str) -> List[str]:
    """Collect the status codes a Postman test script asserts, in order of appearance."""
    found = []
    for pattern in STATUS_ASSERTION_PATTERNS:
        for match in pattern.finditer(script):
            found.append((match.start(), [match.group(1)]))
    for match in ONE_OF_PATTERN.finditer(script):
        found.append((match.start(), re.findall(r"\d+", match.group(1))))

    codes: List[str] = []
    for _, group in sorted(found, key=lambda f: f[0]):
        for code in group:
            if code not in codes:
                codes.append(code)
    return codes


def _url_part(value: Any, separator: str) -> str:
    if isinstance(value, list):
        return separator.join(str(part) for part in value if part is not None)
    return str(value) if value is not None else ""


def _raw_url(url: Any) -> str:
    if not isinstance(url, dict):
        return url or ""
    if url.get("raw"):
        return url["raw"]

    # Newman reports often serialize the URL without "raw"
    host = _url_part(url.get("host"), ".")
    path = _url_part(url.get("path"), "/").lstrip("/")
    if host and url.get("port"):
        host = f"{host}:{url['port']}"
    if host:
        host = f"{url.get('protocol') or 'http'}://{host}"
    if not host and not path:
        return ""
    return f"{host}/{path}"


def _query_params(url: Any) -> List[Dict[str, Any]]:
    if not isinstance(url, dict):
        return []
    params = []
    for q in url.get("query") or []:
        if isinstance(q, dict) and q.get("key") is not None and not q.get("disabled", False):
            params.append({"key": q["key"], "value": q.get("value")})
    return params


def _body_info(body: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(body, dict) or not body.get("mode"):
        return None
    mode = body["mode"]
    content = body.get(mode)
    if mode == "graphql" and isinstance(content, dict):
        variables = content.get("variables")
        if isinstance(variables, str):
            try:
                variables = json.loads(variables) if variables.strip() else None
            except json.JSONDecodeError:
                pass
        content = json.dumps({"query": content.get("query", ""), "variables": variables})
    return {"mode": mode, "content": content}


def _read_json(file_path: Path, kind: str) -> Any:
    if not file_path.exists():
        raise ExchangeLoadError(f"{kind} file not found", str(file_path))
    raw = file_path.read_text(encoding="utf-8")
    if not raw.strip():
        raise ExchangeLoadError(f"{kind} file is empty", str(file_path))
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ExchangeLoadError(f"Unable to parse {kind} JSON", str(file_path), e)


class ExchangeLoader:
    """Loads observed exchanges from Postman collections and Newman run reports."""

    @staticmethod
    def parse_exchange(record: Dict[str, Any]) -> ObservedExchange:
        data = dict(record)
        for old, new in (("rawUrl", "raw_url"), ("url", "raw_url"), ("queryParams", "query_params"),
                         ("bodyInfo", "body"), ("testedStatusCodes", "tested_status_codes"),
                         ("testScripts", "test_scripts")):
            if old in data and new not in data:
                data[new] = data.pop(old)
        return ObservedExchange.model_validate(data)

    @staticmethod
    def degraded_exchange(record: Dict[str, Any], error: ValidationError) -> InvalidExchange:
        """Keep the readable descriptive fields of an exchange record that failed validation."""
        data: Dict[str, Any] = {"validation_error": f"{error.error_count()} validation error(s)"}
        url = record.get("raw_url", record.get("rawUrl", record.get("url")))
        for key, value in (("name", record.get("name")), ("method", record.get("method")),
                           ("folder", record.get("folder")), ("raw_url", url)):
            if isinstance(value, str):
                data[key] = value
        return InvalidExchange(**data)

    @staticmethod
    def is_newman_report(data: Any) -> bool:
        return isinstance(data, dict) and isinstance(data.get("run"), dict) and "executions" in data["run"]

    @staticmethod
    def is_postman_collection(data: Any) -> bool:
        return isinstance(data, dict) and "info" in data and "item" in data

    @staticmethod
    def load_from_file(file_path: Union[str, Path]) -> List[ObservedExchange]:
        file_path = Path(file_path)
        data = _read_json(file_path, "Collection")

        if ExchangeLoader.is_newman_report(data):
            return ExchangeLoader.extract_from_newman(data, str(file_path))
        if ExchangeLoader.is_postman_collection(data):
            return ExchangeLoader.extract_from_postman(data, str(file_path))

        raise ExchangeLoadError(
            "Incorrect format: expected a Postman collection (info, item) or a Newman report (run.executions)",
            str(file_path),
        )

    @staticmethod
    def collection_name(data: Any) -> str:
        if ExchangeLoader.is_newman_report(data):
            data = data.get("collection") or {}
        info = data.get("info") if isinstance(data, dict) else None
        return info.get("name", "") if isinstance(info, dict) else ""

    @staticmethod
    def extract_from_postman(collection: Dict[str, Any], source: str = "collection") -> List[ObservedExchange]:
        records: List[Dict[str, Any]] = []

        def traverse(items: List[Any], folder: str = "") -> None:
            for item in items:
                if not isinstance(item, dict):
                    continue
                if "item" in item:
                    traverse(item.get("item") or [], item.get("name", ""))
                    continue

                request = item.get("request") or {}
                if isinstance(request, str):
                    request = {"url": request}
                url = request.get("url")

                scripts = []
                for event in item.get("event") or []:
                    if not isinstance(event, dict):
                        continue
                    script = event.get("script") or {}
                    if event.get("listen") == "test" and script.get("exec"):
                        exec_lines = script["exec"]
                        scripts.append("\n".join(exec_lines) if isinstance(exec_lines, list) else str(exec_lines))
                test_scripts = "\n".join(scripts)

                records.append({
                    "name": item.get("name") or "Unnamed Request",
                    "folder": folder,
                    "method": request.get("method") or "GET",
                    "raw_url": _raw_url(url),
                    "query_params": _query_params(url),
                    "body": _body_info(request.get("body")),
                    "tested_status_codes": extract_status_codes(test_scripts),
                    "test_scripts": test_scripts.strip(),
                })

        traverse(collection.get("item") or [])
        exchanges = ExchangeLoader._build(records, source)
        logger.info(f"Requests found in the Postman collection: {len(exchanges)}")
        return exchanges

    @staticmethod
    def extract_from_newman(report: Dict[str, Any], source: str = "report") -> List[ObservedExchange]:
        records: List[Dict[str, Any]] = []

        for execution in report["run"].get("executions") or []:
            item = execution.get("item") or {}
            request = execution.get("request") or {}
            response = execution.get("response") or {}
            url = request.get("url")

            tested = [str(response["code"])] if response.get("code") else []

            evidence = []
            assertions = []
            for assertion in execution.get("assertions") or []:
                name = assertion.get("assertion")
                if not name:
                    continue
                evidence.append(f"// {name}")
                assertions.append({"name": name, "passed": not assertion.get("error"), "error": assertion.get("error")})

            records.append({
                "name": item.get("name") or "Unnamed Request",
                "method": request.get("method") or "GET",
                "raw_url": _raw_url(url),
                "query_params": _query_params(url),
                "body": _body_info(request.get("body")),
                "tested_status_codes": tested,
                "test_scripts": "\n".join(evidence),
                "executed": True,
                "response_code": response.get("code"),
                "response_status": response.get("status"),
                "response_time": response.get("responseTime"),
                "assertions": assertions,
            })

        exchanges = ExchangeLoader._build(records, source)
        logger.info(f"Requests found in the Newman report: {len(exchanges)}")
        return exchanges

    @staticmethod
    def _build(records: List[Dict[str, Any]], source: str) -> List[ObservedExchange]:
        exchanges = []
        errors = []
        for i, record in enumerate(records):
            try:
                exchanges.append(ExchangeLoader.parse_exchange(record))
            except ValidationError as e:
                errors.append(f"Request #{i + 1} ({record.get('name')}):\n{str(e)}")
        if errors:
            raise ExchangeLoadError(f"Request validation failed with {len(errors)} error(s)", source, "\n\n".join(errors))
        return exchanges
