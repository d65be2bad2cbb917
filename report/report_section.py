from abc import ABC, abstractmethod
from typing import Any, Dict, Union

REPORT_FORMATS = ("markdown", "html", "json", "csv")


class ReportSection(ABC):
    """
    Base class for report sections with format-specific renderers.
    Subclasses implement one renderer per entry in REPORT_FORMATS.
    """

    def __init__(self, title: str, description: str, data: Any):
        self.title = title
        self.description = description
        self.data = data

    @abstractmethod
    def to_markdown(self) -> str:
        raise NotImplementedError("Markdown renderer not implemented")

    @abstractmethod
    def to_json(self) -> Dict:
        raise NotImplementedError("JSON renderer not implemented")

    @abstractmethod
    def to_html(self) -> str:
        """Render an HTML fragment; the page shell comes from HtmlReportGenerator."""
        raise NotImplementedError("HTML renderer not implemented")

    @abstractmethod
    def to_csv(self) -> str:
        raise NotImplementedError("CSV renderer not implemented")

    def render(self, output_format: str) -> Union[str, Dict]:
        if output_format not in REPORT_FORMATS:
            raise ValueError(f"Unsupported report format: {output_format}")
        return getattr(self, f"to_{output_format}")()
