from datetime import datetime
from typing import Any, Dict, Optional

import jinja2

PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>{{ title }}</title>
    <style>
        body { font-family: Arial, sans-serif; margin: 40px; background-color: #f7f7f7; color: #333; }
        h1, h2, h3 { color: #2c3e50; }
        table { width: 100%; border-collapse: collapse; margin-bottom: 30px; }
        th, td { border: 1px solid #ccc; padding: 10px; text-align: left; }
        th { background-color: #eee; }
        .section { margin-bottom: 50px; }
        .covered { color: #27ae60; }
        .uncovered { color: #c0392b; font-weight: bold; }
        .warning { color: #d35400; font-weight: bold; }
        .evidence pre { background-color: #eef6f0; padding: 8px; white-space: pre-wrap; }
    </style>
</head>
<body>
<h1>{{ title }}</h1>
<p><strong>Generated:</strong> {{ generated_at | format_datetime }}</p>
{% if api_names %}<p><strong>APIs analyzed:</strong> {{ api_names | join(", ") }}</p>{% endif %}
{% for section_id, section_html in sections.items() %}
<div class="section" id="{{ section_id }}">{{ section_html | safe }}</div>
{% endfor %}
</body>
</html>
"""

COVERAGE_TEMPLATE = """<section class="coverage-section">
<h2>{{ title }}</h2>
<p>{{ description }}</p>
<p><strong>Overall Coverage:</strong> {{ summary.percentage | percentage }} ({{ summary.matched }}/{{ summary.total }} operations covered)</p>
{% if summary.primary_matches is not none %}
<p><strong>Smart mapping:</strong> {{ summary.primary_matches }} primary, {{ summary.secondary_matches }} secondary</p>
{% endif %}
{% if summary.unmatched_items %}
<h3>⚠️ Operations Not Covered</h3>
<ul>
{% for item in summary.unmatched_items %}
<li><code>{{ item.method }} {{ item.path }}</code>{% if item.status_code %} [{{ item.status_code }}]{% endif %} {{ item.name }}</li>
{% endfor %}
</ul>
{% endif %}
{% if summary.tag_coverage %}
<h3>Coverage By Tag</h3>
<table>
<thead><tr><th>Tag</th><th>Covered</th><th>Total</th><th>Coverage</th></tr></thead>
<tbody>
{% for tag in summary.tag_coverage %}
<tr><td>{{ tag.tag }}</td><td>{{ tag.matched }}</td><td>{{ tag.total }}</td><td>{{ tag.percentage | percentage }}</td></tr>
{% endfor %}
</tbody>
</table>
{% endif %}
<h3>Operation Coverage Details</h3>
<table>
<thead><tr><th>Method</th><th>Path</th><th>Status</th><th>Name</th><th>Covered</th><th>Requests</th>{% if smart %}<th>Primary</th><th>Confidence</th>{% endif %}</tr></thead>
<tbody>
{% for item in items %}
<tr>
<td>{{ item.method }}</td><td><code>{{ item.path }}</code></td><td>{{ item.status_code or "-" }}</td><td>{{ item.name }}</td>
<td class="{{ 'uncovered' if item.unmatched else 'covered' }}">{{ "⛔ No" if item.unmatched else "✅ Yes" }}</td>
<td>
{% for ex in item.matched_exchanges %}
<details class="evidence">
<summary>{{ ex.name }}{% if ex.tested_status_codes %} [{{ ex.tested_status_codes | join(", ") }}]{% endif %}</summary>
<p><code>{{ ex.method }} {{ ex.raw_url }}</code>{% if ex.executed %} responded {{ ex.response_code or "-" }}{% endif %}</p>
{% if ex.test_scripts %}<pre>{{ ex.test_scripts }}</pre>{% endif %}
</details>
{% endfor %}
</td>
{% if smart %}<td>{{ "yes" if item.is_primary_match else "" }}</td><td>{{ "%.2f" | format(item.match_confidence or 0) }}</td>{% endif %}
</tr>
{% endfor %}
</tbody>
</table>
{% if summary.undocumented_exchanges %}
<h3>Requests Not In The Contract</h3>
<ul>
{% for ex in summary.undocumented_exchanges %}
<li><code>{{ ex.method }} {{ ex.raw_url }}</code> {{ ex.name }}</li>
{% endfor %}
</ul>
{% endif %}
</section>
"""


def _create_environment() -> jinja2.Environment:
    env = jinja2.Environment(
        loader=jinja2.DictLoader({"page.html": PAGE_TEMPLATE, "coverage.html": COVERAGE_TEMPLATE}),
        autoescape=jinja2.select_autoescape(["html", "xml"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["format_datetime"] = lambda dt: dt.strftime("%Y-%m-%d %H:%M:%S") if dt else ""
    env.filters["percentage"] = lambda val: f"{val:.1f}%" if isinstance(val, (int, float)) else val
    return env


_environment = _create_environment()


def render_template(name: str, **context: Any) -> str:
    return _environment.get_template(name).render(**context)


class HtmlReportGenerator:
    def __init__(self, report_data: Dict[str, str], title: str = "API Coverage Report",
                 api_names: Optional[list] = None):
        """
        :param report_data: section id -> pre-rendered HTML fragment, in display order.
        """
        self.report_data = report_data
        self.title = title
        self.api_names = api_names or []

    def generate(self, generated_at: Optional[datetime] = None) -> str:
        return render_template(
            "page.html",
            title=self.title,
            generated_at=generated_at or datetime.now(),
            api_names=self.api_names,
            sections=self.report_data,
        )
