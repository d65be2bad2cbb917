import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from core.coverage_analyzer import CoverageSummary
from core.coverage_item import CoverageItem
from report.coverage_section import CoverageSection

logger = logging.getLogger(__name__)


def build_report_payload(coverage_items: List[CoverageItem], summary: CoverageSummary,
                         options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    payload = CoverageSection(coverage_items, summary).to_json()
    payload["generated_at"] = datetime.now().isoformat(timespec="seconds")
    if options is not None:
        payload["options"] = options
    return payload


def export_json(coverage_items: List[CoverageItem], summary: CoverageSummary,
                output_path: Union[str, Path], options: Optional[Dict[str, Any]] = None) -> Path:
    """Write the coverage items and summary to a JSON file and return its path."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    payload = build_report_payload(coverage_items, summary, options)
    with output_path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)
    logger.info(f"✅ Coverage JSON written to {output_path}")
    return output_path
