"""Tests for the HTTP routes."""

import pytest
from fastapi.testclient import TestClient

from querygate.api import create_app, get_tenant
from querygate.engine import QueryEngine

RANGE = {"website_id": "site-1", "start_date": "2024-01-01", "end_date": "2024-01-31"}


@pytest.fixture
def client(engine: QueryEngine) -> TestClient:
    return TestClient(create_app(engine))


class TestIntrospectionRoutes:
    def test_types(self, client: TestClient):
        """GET /query/types lists the catalog."""
        response = client.get("/query/types")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert "top_pages" in body["types"]
        assert body["configs"]["page_performance"]["customizable"] is True

    def test_tables(self, client: TestClient):
        """GET /query/tables lists tables and columns."""
        body = client.get("/query/tables").json()
        names = [t["name"] for t in body["tables"]]
        assert "pageviews" in names


class TestCompileRoute:
    def test_compile(self, client: TestClient):
        """POST /query/compile returns SQL and params without running anything."""
        response = client.post(
            "/query/compile",
            params={"website_id": "site-1"},
            json={
                "table": "pageviews",
                "selects": [{"field": "*", "aggregate": "count"}],
                "groupBy": ["path"],
                "filters": [{"field": "country", "operator": "eq", "value": "US"}],
                "startDate": "2024-01-01",
                "endDate": "2024-01-31",
                "timeUnit": "day",
                "limit": 50000,
                "offset": 10,
            },
        )
        body = response.json()

        assert body["success"] is True
        assert "date_trunc('day', time) AS \"date\"" in body["sql"]
        assert body["sql"].endswith("LIMIT 10000\nOFFSET 10")
        assert body["params"]["website_id"] == "site-1"
        assert body["params"]["filter_0"] == "US"

    def test_compile_invalid(self, client: TestClient):
        """Invalid configs come back as an error envelope."""
        body = client.post(
            "/query/compile",
            params={"website_id": "site-1"},
            json={
                "table": "users",
                "selects": [{"field": "*", "aggregate": "count"}],
                "startDate": "2024-01-01",
                "endDate": "2024-01-31",
            },
        ).json()

        assert body["success"] is False
        assert body["error"].startswith("Invalid table.")


class TestCustomRoute:
    def test_custom(self, client: TestClient):
        """POST /query/custom runs a custom query for the website."""
        body = client.post(
            "/query/custom",
            params={"website_id": "site-1"},
            json={
                "query": {
                    "table": "pageviews",
                    "selects": [{"field": "anonymous_id", "aggregate": "uniq", "alias": "visitors"}],
                },
                "startDate": "2024-01-01",
                "endDate": "2024-01-31",
            },
        ).json()

        assert body["success"] is True
        assert body["data"] == [{"visitors": 4}]
        assert body["meta"]["rowCount"] == 1

    def test_custom_invalid_is_masked(self, client: TestClient):
        """Validation details are not exposed."""
        body = client.post(
            "/query/custom",
            params={"website_id": "site-1"},
            json={
                "query": {"table": "pageviews", "selects": []},
                "startDate": "2024-01-01",
                "endDate": "2024-01-31",
            },
        ).json()

        assert body == {
            "success": False,
            "error": "Invalid query configuration. Please check your query parameters.",
        }


class TestBatchRoute:
    def test_single_request(self, client: TestClient):
        """A single request returns one envelope."""
        body = client.post(
            "/query",
            params=RANGE,
            json={"id": "q1", "parameters": ["top_pages", "not_a_real_type"]},
        ).json()

        assert body["success"] is True
        assert body["queryId"] == "q1"
        assert body["data"][0]["success"] is True
        assert body["data"][1] == {
            "parameter": "not_a_real_type",
            "success": False,
            "data": [],
            "error": "Unknown query type: not_a_real_type",
        }
        assert body["meta"]["total_parameters"] == 2

    def test_list_of_requests(self, client: TestClient):
        """A list of requests returns a batch of envelopes in order."""
        body = client.post(
            "/query",
            params=RANGE,
            json=[
                {"id": "a", "parameters": ["countries"]},
                {"id": "b", "parameters": ["summary_metrics"], "limit": 5},
            ],
        ).json()

        assert body["success"] is True
        assert body["batch"] is True
        assert [r["queryId"] for r in body["results"]] == ["a", "b"]
        assert body["results"][1]["meta"]["limit"] == 5

    def test_missing_website(self, client: TestClient):
        """The website id is required."""
        response = client.post(
            "/query",
            params={"start_date": "2024-01-01", "end_date": "2024-01-31"},
            json={"parameters": ["top_pages"]},
        )
        assert response.status_code == 422

    def test_timezone_header_wins(self):
        """The x-timezone header takes precedence over the query parameter."""
        tenant = get_tenant(
            website_id="s",
            start_date="2024-01-01",
            end_date="2024-01-31",
            timezone="UTC",
            x_timezone="Europe/Berlin",
        )
        assert tenant.timezone == "Europe/Berlin"
        assert get_tenant("s", "a", "b").timezone == "UTC"


class TestCreateApp:
    def test_engine_from_settings(self, definitions_dir, monkeypatch: pytest.MonkeyPatch):
        """Without an engine the app builds one from QUERYGATE_ settings."""
        monkeypatch.setenv("QUERYGATE_DEFINITIONS_PATH", str(definitions_dir))
        monkeypatch.setenv("QUERYGATE_LOG_LEVEL", "debug")

        app = create_app()
        body = TestClient(app).get("/query/types").json()

        assert body["types"] == ["durations", "top_paths", "visits_by_date"]
        app.state.engine.close()
