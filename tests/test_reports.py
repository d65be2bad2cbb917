import csv
import io
import json

import pytest

from core.coverage_analyzer import CoverageAnalyzer
from core.run_config import MatchOptions
from report.coverage_section import CSV_COLUMNS, CoverageSection
from report.html_report_generator import HtmlReportGenerator
from report.json_exporter import export_json


@pytest.fixture
def coverage(make_operation, make_exchange):
    analyzer = CoverageAnalyzer(MatchOptions(smart_mapping=True))
    operations = [
        make_operation(path_template="/users/{id}", outcome_status_code="200", operation_id="getUser",
                       api_name="Users", tags=["users"]),
        make_operation(path_template="/users/{id}", outcome_status_code="404", operation_id="getUser",
                       api_name="Users", tags=["users"]),
    ]
    exchanges = [
        make_exchange(name="Get <user>", raw_url="http://h/users/1", tested_status_codes=["200"],
                      test_scripts="pm.response.to.have.status(200);"),
        make_exchange(name="Health", raw_url="http://h/health"),
    ]
    items = analyzer.map_operations(operations, exchanges)
    return items, analyzer.summarize(items, exchanges)


def test_markdown(coverage):
    items, summary = coverage
    md = CoverageSection(items, summary).to_markdown()
    assert "**Overall Coverage: 50.0%** (1/2 operations covered)" in md
    assert "Smart mapping: 1 primary, 0 secondary matches" in md
    assert "- `GET /users/{id}` [404] getUser" in md
    assert "- `GET http://h/health` Health" in md


def test_html_fragment_is_escaped(coverage):
    items, summary = coverage
    html = CoverageSection(items, summary).to_html()
    assert "Get &lt;user&gt;" in html
    assert "Get <user>" not in html
    assert "50.0%" in html


def test_html_page_embeds_sections(coverage):
    items, summary = coverage
    fragment = CoverageSection(items, summary).to_html()
    page = HtmlReportGenerator({"coverage": fragment}, api_names=summary.api_names).generate()
    assert page.startswith("<!DOCTYPE html>")
    assert '<div class="section" id="coverage"><section class="coverage-section">' in page
    assert "APIs analyzed:</strong> Users" in page


def test_json(coverage):
    items, summary = coverage
    data = CoverageSection(items, summary).to_json()
    assert data["summary"]["matched"] == 1
    assert data["summary"]["primary_matches"] == 1
    assert data["summary"]["undocumented_requests"] == [{"name": "Health", "method": "GET", "url": "http://h/health"}]
    assert data["details"][0]["is_primary_match"] is True
    json.dumps(data)


def test_csv(coverage):
    items, summary = coverage
    rows = list(csv.reader(io.StringIO(CoverageSection(items, summary).to_csv())))
    assert rows[0] == CSV_COLUMNS
    assert rows[1][:7] == ["Users", "rest", "GET", "/users/{id}", "200", "getUser", "yes"]
    assert rows[1][8:] == ["yes", "0.90"]
    assert rows[2][6] == "no"


def test_render_dispatch(coverage):
    section = CoverageSection(*coverage)
    assert section.render("markdown") == section.to_markdown()
    with pytest.raises(ValueError):
        section.render("pdf")


def test_export_json(coverage, tmp_path):
    items, summary = coverage
    path = export_json(items, summary, tmp_path / "out" / "coverage.json", options={"smart_mapping": True})
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["options"] == {"smart_mapping": True}
    assert len(data["details"]) == 2
    assert "generated_at" in data


def test_tag_breakdown(coverage):
    items, summary = coverage
    [users] = summary.tag_coverage
    assert (users.tag, users.matched, users.total, users.percentage) == ("users", 1, 2, 50.0)

    section = CoverageSection(items, summary)
    assert "| users | 1 | 2 | 50.0% |" in section.to_markdown()
    assert "<td>users</td><td>1</td><td>2</td><td>50.0%</td>" in section.to_html()
    assert section.to_json()["summary"]["tags"] == [{"tag": "users", "matched": 1, "total": 2, "percentage": 50.0}]


def test_html_details_show_request_evidence(coverage):
    html = CoverageSection(*coverage).to_html()
    assert "<summary>Get &lt;user&gt; [200]</summary>" in html
    assert "<pre>pm.response.to.have.status(200);</pre>" in html
