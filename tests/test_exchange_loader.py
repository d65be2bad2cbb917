import json

import pytest

from core.coverage_analyzer import CoverageAnalyzer
from core.exceptions import ExchangeLoadError
from verifier.exchange_loader import ExchangeLoader, extract_status_codes

NEWMAN_REPORT = {
    "collection": {"info": {"name": "Users"}},
    "run": {
        "executions": [
            {
                "item": {"name": "Get user"},
                "request": {"method": "GET", "url": {"raw": "https://api.example.com/users/42", "query": []}},
                "response": {"code": 404, "status": "Not Found", "responseTime": 12},
                "assertions": [
                    {"assertion": "Status code is 404"},
                    {"assertion": "Body has error", "error": {"message": "expected error"}},
                ],
            },
            {
                "item": {"name": "Ping"},
                "request": {"method": "HEAD", "url": "https://api.example.com/ping"},
            },
        ]
    },
}


@pytest.mark.parametrize("script, expected", [
    ("pm.response.to.have.status(201);", ["201"]),
    ("pm.expect(pm.response.code).to.eql(204);", ["204"]),
    ("if (pm.response.code === 200) {}", ["200"]),
    ("pm.expect(pm.response.code).to.be.oneOf([200, 201]);", ["200", "201"]),
    ("pm.response.to.have.status(404);\npm.response.to.have.status(200);", ["404", "200"]),
    ("pm.response.to.have.status(200); pm.response.to.have.status(200);", ["200"]),
    ("pm.expect(jsonData.id).to.eql(5);", []),
])
def test_extract_status_codes(script, expected):
    assert extract_status_codes(script) == expected


def test_postman_collection(postman_file):
    exchanges = ExchangeLoader.load_from_file(postman_file)
    assert [ex.name for ex in exchanges] == ["List users", "Get user", "Health"]

    list_users, get_user, health = exchanges
    assert list_users.folder == "users"
    assert list_users.raw_url == "{{baseUrl}}/users?limit=10"
    assert list_users.query_value("limit") == "10"
    assert list_users.tested_status_codes == ["200"]
    assert "have.status(200)" in list_users.test_scripts
    assert not list_users.executed

    assert get_user.tested_status_codes == ["200", "404"]
    assert health.folder == ""
    assert health.raw_url == "https://api.example.com/health"
    assert health.tested_status_codes == []


def test_postman_bodies(tmp_path):
    collection = {
        "info": {"name": "Bodies"},
        "item": [
            {"name": "raw", "request": {"method": "POST", "url": "/a",
                                        "body": {"mode": "raw", "raw": "{\"a\": 1}"}}},
            {"name": "form", "request": {"method": "POST", "url": "/a",
                                         "body": {"mode": "urlencoded", "urlencoded": [{"key": "a", "value": "1"}]}}},
            {"name": "gql", "request": {"method": "POST", "url": "/graphql",
                                        "body": {"mode": "graphql",
                                                 "graphql": {"query": "query { user { id } }", "variables": ""}}}},
            {"name": "disabled query", "request": {"method": "GET", "url": {
                "raw": "/a?x=1", "query": [{"key": "x", "value": "1", "disabled": True}]}}},
        ],
    }
    path = tmp_path / "bodies.json"
    path.write_text(json.dumps(collection), encoding="utf-8")

    raw, form, gql, disabled = ExchangeLoader.load_from_file(path)
    assert raw.body.is_raw and raw.body.content == "{\"a\": 1}"
    assert form.body.mode == "urlencoded"
    assert json.loads(gql.body.content) == {"query": "query { user { id } }", "variables": None}
    assert disabled.query_params == []
    assert not disabled.has_query_key("x")


def test_newman_report(tmp_path):
    path = tmp_path / "report.json"
    path.write_text(json.dumps(NEWMAN_REPORT), encoding="utf-8")

    get_user, ping = ExchangeLoader.load_from_file(path)
    assert get_user.executed
    assert get_user.response_code == 404
    assert get_user.tested_status_codes == ["404"]
    assert get_user.test_scripts == "// Status code is 404\n// Body has error"
    assert [a.passed for a in get_user.assertions] == [True, False]

    assert ping.method == "HEAD"
    assert ping.tested_status_codes == []
    assert ExchangeLoader.collection_name(NEWMAN_REPORT) == "Users"


def test_parse_exchange_accepts_camel_case_keys():
    ex = ExchangeLoader.parse_exchange({
        "rawUrl": "http://h/users",
        "queryParams": [{"key": "page", "value": 2}, {"key": "all", "value": True}],
        "testedStatusCodes": [200, "200", " 201 "],
    })
    assert ex.method == "GET"
    assert ex.query_value("page") == "2"
    assert ex.query_value("all") == "true"
    assert ex.tested_status_codes == ["200", "201"]


@pytest.mark.parametrize("content, message", [
    ("", "empty"),
    ("{not json", "Unable to parse"),
    ('{"some": "thing"}', "Incorrect format"),
])
def test_bad_collection_files(tmp_path, content, message):
    path = tmp_path / "collection.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ExchangeLoadError, match=message):
        ExchangeLoader.load_from_file(path)


def test_missing_collection_file(tmp_path):
    with pytest.raises(ExchangeLoadError, match="not found"):
        ExchangeLoader.load_from_file(tmp_path / "nope.json")


@pytest.mark.parametrize("codes, expected", [
    ("200", ["200"]),
    (404, ["404"]),
    (None, []),
])
def test_scalar_tested_status_code(codes, expected):
    ex = ExchangeLoader.parse_exchange({"rawUrl": "http://h/users", "testedStatusCodes": codes})
    assert ex.tested_status_codes == expected


@pytest.mark.parametrize("url, expected", [
    ({"protocol": "https", "host": ["api", "example", "com"], "path": ["users"]}, "https://api.example.com/users"),
    ({"host": ["{{baseUrl}}"], "path": ["users", ":id"]}, "http://{{baseUrl}}/users/:id"),
    ({"host": "localhost", "port": "8080", "path": "/health"}, "http://localhost:8080/health"),
    ({"path": ["orders"]}, "/orders"),
    ({"query": [{"key": "a", "value": "1"}]}, ""),
])
def test_url_without_raw_is_rebuilt(url, expected):
    collection = {"info": {"name": "c"}, "item": [{"name": "r", "request": {"method": "GET", "url": url}}]}
    [exchange] = ExchangeLoader.extract_from_postman(collection)
    assert exchange.raw_url == expected


def test_newman_url_without_raw_still_matches(tmp_path, make_operation):
    report = {"run": {"executions": [{
        "item": {"name": "List users"},
        "request": {"method": "GET", "url": {"protocol": "https", "host": ["api", "example", "com"],
                                             "path": ["users"], "query": []}},
        "response": {"code": 200},
    }]}}
    path = tmp_path / "report.json"
    path.write_text(json.dumps(report), encoding="utf-8")

    [exchange] = ExchangeLoader.load_from_file(path)
    items = CoverageAnalyzer().map_operations([make_operation(outcome_status_code="200")], [exchange])
    assert not items[0].unmatched
