import pytest

from core.coverage_analyzer import CoverageAnalyzer
from core.exceptions import EngineInputError
from core.run_config import MatchOptions


@pytest.fixture
def analyzer():
    return CoverageAnalyzer()


def test_empty_operations_give_empty_coverage(analyzer, make_exchange):
    assert analyzer.map_operations([], [make_exchange()]) == []
    summary = analyzer.summarize([], [])
    assert summary.total == 0
    assert summary.percentage == 0.0


def test_empty_exchanges_leave_everything_uncovered(analyzer, make_operation):
    items = analyzer.map_operations([make_operation(), make_operation(method="POST")], [])
    assert len(items) == 2
    assert all(item.unmatched for item in items)
    assert all(item.matched_exchanges == [] for item in items)


@pytest.mark.parametrize("operations, exchanges", [
    (None, []),
    ([], None),
    ({"method": "GET"}, []),
    ([], "collection.json"),
    ([42], []),
])
def test_non_list_inputs_raise(analyzer, operations, exchanges):
    with pytest.raises(EngineInputError):
        analyzer.map_operations(operations, exchanges)


def test_unparseable_records_degrade_instead_of_aborting(analyzer, make_exchange, caplog):
    operations = [{"path": "/users"}, {"method": "FETCH", "path": "/users", "operation_id": "fetchUsers"}]
    with caplog.at_level("WARNING"):
        items = analyzer.map_operations(operations, [make_exchange()])
    assert [item.unmatched for item in items] == [False, True]
    assert items[1].name == "fetchUsers"
    assert items[1].path == "/users"
    assert "Operation #2" in caplog.text


@pytest.mark.parametrize("record", [
    {"method": "CONNECT", "path": "/tunnel"},
    {"protocol": "rpc", "rpc_method": "GetUser"},
    {"protocol": "graphql", "operation_kind": "query"},
    {"path": "/users", "parameters": [{"name": "limit", "in": "matrix", "required": True}]},
])
def test_incomplete_records_never_abort_the_run(analyzer, make_exchange, record):
    ok = {"path": "/users", "operation_id": "listUsers"}
    items = analyzer.map_operations([ok, record], [make_exchange()])
    assert len(items) == 2
    assert not items[0].unmatched


def test_incomplete_records_never_match(analyzer, make_exchange):
    records = [
        {"protocol": "rpc", "rpc_method": "GetUser", "path": "/GetUser"},
        {"protocol": "graphql", "operation_kind": "query"},
    ]
    exchanges = [
        make_exchange(method="POST", raw_url="http://h/GetUser"),
        make_exchange(method="POST", raw_url="http://h/graphql"),
    ]
    items = analyzer.map_operations(records, exchanges)
    assert all(item.unmatched for item in items)


def test_unknown_parameter_location_is_ignored(make_exchange):
    analyzer = CoverageAnalyzer(MatchOptions(strict_query_params=True))
    record = {"path": "/users", "parameters": [{"name": "limit", "in": "matrix", "required": True}]}
    items = analyzer.map_operations([record], [make_exchange()])
    assert not items[0].unmatched


def test_unparseable_exchange_stays_undocumented(analyzer):
    exchanges = [
        {"name": "Broken", "method": "GET", "url": "http://h/users", "queryParams": [{"value": "no key"}]},
        {"name": "Fine", "method": "GET", "url": "http://h/users"},
    ]
    items = analyzer.map_operations([{"path": "/users"}], exchanges)
    assert [ex.name for ex in items[0].matched_exchanges] == ["Fine"]
    summary = analyzer.summarize(items, exchanges)
    assert [ex.name for ex in summary.undocumented_exchanges] == ["Broken"]


def test_plain_dict_records_are_accepted(analyzer):
    items = analyzer.map_operations(
        [{"method": "get", "path": "/users/{id}", "status_code": 200, "operation_id": "getUser"}],
        [{"method": "GET", "url": "http://h/users/5", "testedStatusCodes": [200]}],
    )
    assert len(items) == 1
    assert not items[0].unmatched
    assert items[0].name == "getUser"
    assert items[0].status_code == "200"


def test_status_outcomes_are_evaluated_independently(analyzer, make_operation, make_exchange):
    ops = [make_operation(outcome_status_code="200"), make_operation(outcome_status_code="400")]
    items = analyzer.map_operations(ops, [make_exchange(tested_status_codes=["200"])])
    assert [item.unmatched for item in items] == [False, True]
    assert items[0].is_primary_match is None
    assert items[0].match_confidence is None


def test_every_matching_exchange_is_kept(analyzer, make_operation, make_exchange):
    exchanges = [make_exchange(name=f"call {i}", raw_url=f"http://h/users/{i}") for i in range(3)]
    items = analyzer.map_operations([make_operation(path_template="/users/{id}")], exchanges)
    assert [ex.name for ex in items[0].matched_exchanges] == ["call 0", "call 1", "call 2"]


def test_output_order_mirrors_input(analyzer, make_operation):
    paths = ["/c", "/a", "/b"]
    items = analyzer.map_operations([make_operation(path_template=p) for p in paths], [])
    assert [item.path for item in items] == paths


def test_strict_modes_only_narrow_the_result(make_operation, make_exchange):
    ops = [
        make_operation(parameters=[{"name": "limit", "in": "query", "required": True}]),
        make_operation(method="POST", request_body_content=["application/json"]),
        make_operation(path_template="/health"),
    ]
    exchanges = [
        make_exchange(),
        make_exchange(method="POST", body={"mode": "raw", "content": "not json"}),
        make_exchange(raw_url="http://h/health"),
    ]

    def covered(options):
        return [not item.unmatched for item in CoverageAnalyzer(options).map_operations(ops, exchanges)]

    lenient = covered(MatchOptions())
    strict = covered(MatchOptions(strict_query_params=True, strict_request_body=True))

    assert lenient == [True, True, True]
    assert strict == [False, False, True]
    assert all(l or not s for l, s in zip(lenient, strict))


def test_smart_mapping_marks_primary(make_operation, make_exchange):
    analyzer = CoverageAnalyzer(MatchOptions(smart_mapping=True))
    ops = [make_operation(path_template="/users/{id}", outcome_status_code=c) for c in ("200", "404")]
    items = analyzer.map_operations(ops, [make_exchange(raw_url="http://h/users/42", tested_status_codes=["200"])])

    summary = analyzer.summarize(items)
    assert summary.matched == 1
    assert summary.primary_matches == 1
    assert summary.secondary_matches == 0


def test_summary_counts_and_undocumented_requests(analyzer, make_operation, make_exchange):
    ops = [
        make_operation(outcome_status_code="200", api_name="Users"),
        make_operation(path_template="/orders", api_name="Orders"),
    ]
    exchanges = [make_exchange(tested_status_codes=["200"]), make_exchange(name="health", raw_url="http://h/health")]
    items = analyzer.map_operations(ops, exchanges)
    summary = analyzer.summarize(items, exchanges)

    assert (summary.total, summary.matched, summary.unmatched) == (2, 1, 1)
    assert summary.percentage == pytest.approx(50.0)
    assert [item.path for item in summary.unmatched_items] == ["/orders"]
    assert [ex.name for ex in summary.undocumented_exchanges] == ["health"]
    assert summary.api_names == ["Users", "Orders"]
    assert summary.primary_matches is None


def test_near_misses(analyzer, make_operation, make_exchange):
    ops = [make_operation(path_template="/users/{id}", outcome_status_code="404")]
    exchanges = [
        make_exchange(name="hit", raw_url="http://h/users/1", tested_status_codes=["200"]),
        make_exchange(name="far", raw_url="http://h/orders/1"),
    ]
    items = analyzer.map_operations(ops, exchanges)
    misses = analyzer.near_misses(analyzer.summarize(items).unmatched_items, exchanges)

    assert len(misses) == 1
    item, candidates = misses[0]
    assert item.status_code == "404"
    assert [(ex.name, score) for ex, score in candidates] == [("hit", 1.0)]


def test_coverage_item_serialization(analyzer, make_operation, make_exchange):
    items = analyzer.map_operations([make_operation(tags=["users"])], [make_exchange(name="list")])
    data = items[0].to_dict()
    assert data["matched_exchanges"][0]["name"] == "list"
    assert data["tags"] == ["users"]
    assert "exchange_indices" not in data
    assert "is_primary_match" not in data
