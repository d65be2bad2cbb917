import csv
import json
import re
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union
from zipfile import BadZipFile

import yaml
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from pydantic import TypeAdapter, ValidationError

from contract.operation_entry import (
    PROTOCOL_ALIASES,
    AnyOperation,
    DeclaredOperation,
    HttpMethod,
    InvalidOperation,
)
from core.exceptions import OperationLoadError

logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "post", "put", "patch", "delete", "options", "head", "trace")
STATUS_CODE = re.compile(r"^\d{3}$")
YAML_EXTENSIONS = (".yaml", ".yml")
WORKBOOK_EXTENSIONS = (".xlsx", ".xlsm")

_operation_adapter = TypeAdapter(AnyOperation)


def resolve_pointer(document: Any, ref: str) -> Any:
    """Follow a local JSON pointer such as #/components/parameters/Limit."""
    if not ref.startswith("#/"):
        raise KeyError(ref)
    node = document
    for token in ref[2:].split("/"):
        token = token.replace("~1", "/").replace("~0", "~")
        node = node[int(token)] if isinstance(node, list) else node[token]
    return node


def dereference(document: Any, node: Any, seen: Tuple[str, ...] = ()) -> Any:
    """
    Return a copy of node with every local $ref replaced by its target.
    Remote, unresolvable and circular references become empty mappings.
    """
    if isinstance(node, list):
        return [dereference(document, item, seen) for item in node]
    if not isinstance(node, dict):
        return node

    ref = node.get("$ref")
    if isinstance(ref, str):
        if ref in seen:
            return {}
        try:
            target = resolve_pointer(document, ref)
        except (KeyError, IndexError, ValueError, TypeError):
            logger.warning(f"Unresolvable reference {ref!r}")
            return {}
        return dereference(document, target, seen + (ref,))

    return {key: dereference(document, value, seen) for key, value in node.items()}


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


class OperationLoader:
    """Loads declared operations from OpenAPI documents, CSV exports or normalized operation files."""

    @staticmethod
    def parse_operation(record: Dict[str, Any]) -> DeclaredOperation:
        data = dict(record)
        protocol = str(data.get("protocol") or "rest").strip().lower()
        data["protocol"] = PROTOCOL_ALIASES.get(protocol, protocol)
        if "path_template" not in data and "path" in data:
            data["path_template"] = data.pop("path")
        if "outcome_status_code" not in data and "status_code" in data:
            data["outcome_status_code"] = data.pop("status_code")
        if data.get("method") is None:
            data.pop("method", None)
        operation = _operation_adapter.validate_python(data)
        # compile the path template once, up front
        operation.compiled_path
        return operation

    @staticmethod
    def degraded_operation(record: Dict[str, Any], error: ValidationError) -> InvalidOperation:
        """Keep the readable descriptive fields of a record that failed validation."""
        data: Dict[str, Any] = {
            "validation_error": f"{error.error_count()} validation error(s)",
        }
        protocol = str(record.get("protocol") or "rest").strip().lower()
        data["protocol"] = PROTOCOL_ALIASES.get(protocol, protocol)

        method = record.get("method")
        if isinstance(method, str) and method.strip().upper() in HttpMethod.__members__:
            data["method"] = method.strip().upper()

        path = record.get("path_template", record.get("path"))
        if isinstance(path, str):
            data["path_template"] = path

        code = record.get("outcome_status_code", record.get("status_code"))
        if isinstance(code, (str, int)) and not isinstance(code, bool):
            data["outcome_status_code"] = code

        for key in ("operation_id", "summary", "api_name", "source_file"):
            if isinstance(record.get(key), str):
                data[key] = record[key]
        return InvalidOperation(**data)

    @staticmethod
    def load_from_file(file_path: Union[str, Path]) -> List[DeclaredOperation]:
        file_path = Path(file_path)
        if not file_path.exists():
            raise OperationLoadError("Spec file not found", str(file_path))

        suffix = file_path.suffix.lower()
        if suffix == ".csv":
            return OperationLoader.load_from_csv(file_path)
        if suffix in WORKBOOK_EXTENSIONS:
            return OperationLoader.load_from_xlsx(file_path)
        if suffix == ".xls":
            raise OperationLoadError("Legacy .xls workbooks are not supported, save the file as .xlsx", str(file_path))

        try:
            with file_path.open("r", encoding="utf-8") as f:
                if suffix in YAML_EXTENSIONS:
                    document = yaml.safe_load(f)
                else:
                    document = json.load(f)
        except yaml.YAMLError as e:
            raise OperationLoadError("Failed to parse YAML", str(file_path), e)
        except json.JSONDecodeError as e:
            raise OperationLoadError("Failed to parse JSON", str(file_path), e)

        return OperationLoader.load_from_dict(document, file_path)

    @staticmethod
    def load_from_dict(document: Any, source: Optional[Union[str, Path]] = None) -> List[DeclaredOperation]:
        source_str = str(source) if source else "dictionary"
        if not isinstance(document, dict):
            raise OperationLoadError("Spec document must be a mapping", source_str)

        if isinstance(document.get("paths"), dict):
            return OperationLoader.load_openapi(document, source)
        if isinstance(document.get("operations"), list):
            return OperationLoader.load_normalized(document, source)

        raise OperationLoadError(
            "Document is neither an OpenAPI spec (no 'paths') nor an operation list (no 'operations')",
            source_str,
        )

    @staticmethod
    def _provenance(document: Dict[str, Any], source: Optional[Union[str, Path]]) -> Dict[str, str]:
        source_file = Path(source).name if source else ""
        info = document.get("info") if isinstance(document.get("info"), dict) else {}
        api_name = document.get("name") or info.get("title") or source_file
        return {"api_name": str(api_name or ""), "source_file": source_file}

    @staticmethod
    def _build(records: Iterable[Dict[str, Any]], source_str: str) -> List[DeclaredOperation]:
        operations = []
        errors = []
        for i, record in enumerate(records):
            try:
                operations.append(OperationLoader.parse_operation(record))
            except ValidationError as e:
                errors.append(f"Operation #{i + 1}:\n{str(e)}")

        if errors:
            raise OperationLoadError(
                f"Operation validation failed with {len(errors)} error(s)",
                source_str,
                "\n\n".join(errors),
            )
        return operations

    @staticmethod
    def load_normalized(document: Dict[str, Any], source: Optional[Union[str, Path]] = None) -> List[DeclaredOperation]:
        source_str = str(source) if source else "dictionary"
        provenance = OperationLoader._provenance(document, source)

        records = []
        for i, record in enumerate(document["operations"]):
            if not isinstance(record, dict):
                raise OperationLoadError(f"Operation #{i + 1} must be a mapping", source_str)
            records.append({**provenance, **record})

        operations = OperationLoader._build(records, source_str)
        logger.info(f"✅ Loaded {len(operations)} operations from {source_str}")
        return operations

    @staticmethod
    def _map_parameters(raw_parameters: Iterable[Any]) -> List[Dict[str, Any]]:
        mapped = []
        for p in raw_parameters:
            if not isinstance(p, dict) or "name" not in p:
                continue
            schema = p.get("schema")
            if not schema:
                # Swagger 2 keeps type/enum/pattern on the parameter itself
                schema = {k: p[k] for k in ("type", "enum", "pattern", "format") if k in p}
            mapped.append({
                "name": p["name"],
                "in": p.get("in", "query"),
                "required": bool(p.get("required", False)),
                "schema": schema if isinstance(schema, dict) else {},
            })
        return mapped

    @staticmethod
    def load_openapi(document: Dict[str, Any], source: Optional[Union[str, Path]] = None) -> List[DeclaredOperation]:
        source_str = str(source) if source else "dictionary"
        provenance = OperationLoader._provenance(document, source)
        global_consumes = document.get("consumes") or []

        records = []
        paths = dereference(document, document["paths"])
        for path_key, path_item in paths.items():
            if not isinstance(path_item, dict):
                continue
            path_parameters = path_item.get("parameters") or []

            for method_key, op in path_item.items():
                if method_key.lower() not in HTTP_METHODS or not isinstance(op, dict):
                    continue

                raw_parameters = list(op.get("parameters") or []) + list(path_parameters)
                parameters = OperationLoader._map_parameters(raw_parameters)

                request_body_content = []
                request_body = op.get("requestBody")
                if isinstance(request_body, dict) and isinstance(request_body.get("content"), dict):
                    request_body_content = list(request_body["content"].keys())
                elif any(p["in"] == "body" for p in parameters):
                    request_body_content = list(op.get("consumes") or global_consumes or ["application/json"])

                responses = op.get("responses") or {}
                expected = [str(code) for code in responses.keys() if STATUS_CODE.match(str(code))]

                base = {
                    "protocol": "rest",
                    "method": method_key,
                    "path_template": path_key,
                    "operation_id": op.get("operationId"),
                    "summary": op.get("summary"),
                    "tags": op.get("tags") or [],
                    "expected_status_codes": expected,
                    "parameters": parameters,
                    "request_body_content": request_body_content,
                    **provenance,
                }

                if expected:
                    records.extend({**base, "outcome_status_code": code} for code in expected)
                else:
                    records.append({**base, "outcome_status_code": None})

        operations = OperationLoader._build(records, source_str)
        logger.info(f"✅ Extracted {len(operations)} operations from {provenance['api_name'] or source_str}")
        return operations

    @staticmethod
    def load_from_csv(file_path: Union[str, Path]) -> List[DeclaredOperation]:
        """
        Read a spreadsheet export with METHOD, URI, NAME, TAGS, STATUS CODE and
        BODY columns, one operation per row.
        """
        file_path = Path(file_path)
        try:
            with file_path.open("r", encoding="utf-8-sig", newline="") as f:
                rows = list(csv.DictReader(f))
        except (OSError, csv.Error) as e:
            raise OperationLoadError("Failed to read CSV", str(file_path), e)

        return OperationLoader._load_rows(rows, file_path)

    @staticmethod
    def load_from_xlsx(file_path: Union[str, Path]) -> List[DeclaredOperation]:
        """Read every sheet of a workbook; the first row of each sheet names the columns."""
        file_path = Path(file_path)
        try:
            workbook = load_workbook(file_path, read_only=True, data_only=True)
        except (OSError, KeyError, BadZipFile, InvalidFileException) as e:
            raise OperationLoadError("Failed to read workbook", str(file_path), e)

        rows = []
        try:
            for sheet in workbook.worksheets:
                values = sheet.iter_rows(values_only=True)
                header = next(values, None)
                if not header:
                    continue
                columns = [_cell_text(cell) for cell in header]
                for row in values:
                    if not row or all(cell is None for cell in row):
                        continue
                    rows.append(dict(zip(columns, (_cell_text(cell) for cell in row))))
        finally:
            workbook.close()

        return OperationLoader._load_rows(rows, file_path)

    @staticmethod
    def _load_rows(rows: List[Dict[Any, Any]], file_path: Path) -> List[DeclaredOperation]:
        records = []
        for row in rows:
            row = {str(k or "").strip().upper(): v.strip() if isinstance(v, str) else "" for k, v in row.items()}
            status_code = row.get("STATUS CODE") or None
            records.append({
                "protocol": "rest",
                "method": row.get("METHOD") or "GET",
                "path_template": row.get("URI") or None,
                "operation_id": row.get("NAME") or None,
                "summary": row.get("NAME") or None,
                "tags": [t.strip() for t in row.get("TAGS", "").split(",") if t.strip()],
                "outcome_status_code": status_code,
                "expected_status_codes": [status_code] if status_code else [],
                "request_body_content": ["application/json"] if row.get("BODY") else [],
                "api_name": file_path.name,
                "source_file": file_path.name,
            })

        operations = OperationLoader._build(records, str(file_path))
        logger.info(f"✅ Loaded {len(operations)} operations from {file_path}")
        return operations

    @staticmethod
    def load_many(file_paths: Iterable[Union[str, Path]]) -> List[DeclaredOperation]:
        all_operations: List[DeclaredOperation] = []
        for file_path in file_paths:
            all_operations.extend(OperationLoader.load_from_file(file_path))
        return all_operations
