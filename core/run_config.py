import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from core.exceptions import ConfigLoadError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = ".apicov.yaml"
DEFAULT_QUERY_LANGUAGE_ENDPOINT = "/graphql"


class MatchOptions(BaseModel):
    """Run-level switches for the matching engine."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    strict_query_params: bool = False
    strict_request_body: bool = False
    smart_mapping: bool = False
    query_language_endpoint: str = DEFAULT_QUERY_LANGUAGE_ENDPOINT

    @field_validator("query_language_endpoint")
    @classmethod
    def validate_endpoint(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("query_language_endpoint must not be empty")
        return v

    @property
    def strict_requested(self) -> bool:
        return self.strict_query_params or self.strict_request_body


class ReportOptions(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    output: Optional[str] = None
    format: str = Field("html", pattern="^(html|json|markdown|csv)$")


class RunConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    matching: MatchOptions = Field(default_factory=MatchOptions)
    report: ReportOptions = Field(default_factory=ReportOptions)


def load_run_config(path: Optional[Union[str, Path]] = None) -> RunConfig:
    """
    Load the run configuration.

    With no explicit path, a .apicov.yaml in the working directory is used when
    present; otherwise defaults apply. An explicit path that does not exist is
    an error.
    """
    if path is None:
        default_path = Path(DEFAULT_CONFIG_FILE)
        if not default_path.exists():
            return RunConfig()
        path = default_path

    path = Path(path)
    if not path.exists():
        raise ConfigLoadError("Config file not found", str(path))

    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigLoadError("Failed to parse YAML", str(path), e)

    if not isinstance(data, dict):
        raise ConfigLoadError("Config file must contain a mapping", str(path))

    try:
        config = RunConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigLoadError("Invalid run configuration", str(path), e)

    logger.debug(f"Loaded run configuration from {path}: {config.model_dump()}")
    return config


def apply_cli_overrides(args: Any, config: RunConfig) -> RunConfig:
    """Let explicitly passed CLI flags win over values from the config file."""
    matching: Dict[str, Any] = {}
    if getattr(args, "strict_query", False):
        matching["strict_query_params"] = True
    if getattr(args, "strict_body", False):
        matching["strict_request_body"] = True
    if getattr(args, "smart_mapping", False):
        matching["smart_mapping"] = True
    if getattr(args, "graphql_endpoint", None):
        matching["query_language_endpoint"] = args.graphql_endpoint

    report: Dict[str, Any] = {}
    if getattr(args, "output", None):
        report["output"] = args.output
    if getattr(args, "format", None):
        report["format"] = args.format

    return RunConfig(
        matching=MatchOptions.model_validate({**config.matching.model_dump(), **matching}),
        report=ReportOptions.model_validate({**config.report.model_dump(), **report}),
    )
