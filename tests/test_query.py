"""Search query construction tests."""

from datetime import UTC, datetime
from typing import Any

from webstrate_search.search.query import build_query
from webstrate_search.search.schemas import ANONYMOUS_USER


def must_clauses(query: dict[str, Any]) -> list[dict[str, Any]]:
    return query["query"]["bool"]["must"]


def permission_terms(query: dict[str, Any]) -> list[dict[str, Any]]:
    return must_clauses(query)[1]["bool"]["should"]


class TestTextClause:
    """The search term must hit body, title or id."""

    def test_fields_and_boosts(self) -> None:
        """Title and id matches weigh twice as much as body matches."""
        clause = must_clauses(build_query(None, "hello"))[0]["bool"]

        assert clause["minimum_should_match"] == 1
        assert clause["should"] == [
            {"match": {"body": {"query": "hello", "boost": 1}}},
            {"match": {"title": {"query": "hello", "boost": 2}}},
            {"term": {"_id": {"value": "hello", "boost": 2}}},
        ]


class TestPermissionClause:
    """Only documents visible to the caller may match."""

    def test_anonymous_caller_sees_only_public_documents(self) -> None:
        """Anonymous callers only match public documents."""
        query = build_query(None, "hello")

        assert permission_terms(query) == [{"term": {"permissions": ANONYMOUS_USER}}]
        assert must_clauses(query)[1]["bool"]["minimum_should_match"] == 1

    def test_empty_user_id_counts_as_anonymous(self) -> None:
        """An empty user id is treated as anonymous."""
        assert len(permission_terms(build_query("", "hello"))) == 1

    def test_known_caller_also_sees_own_documents(self) -> None:
        """Logged-in callers also match documents shared with them."""
        query = build_query("kbadk:github", "hello")

        assert permission_terms(query) == [
            {"term": {"permissions": ANONYMOUS_USER}},
            {"term": {"permissions": {"value": "kbadk:github", "boost": 3}}},
        ]


class TestRecency:
    """Recent modifications boost the score without filtering."""

    def test_recency_is_scoring_only(self) -> None:
        """Recency clauses boost without filtering."""
        query = build_query(None, "hello")

        should = query["query"]["bool"]["should"]
        assert should == [
            {"range": {"mtime": {"gte": "now-1d", "boost": 5}}},
            {"range": {"mtime": {"gte": "now-30d", "boost": 2}}},
            {"range": {"mtime": {"gte": "now-90d", "boost": 1}}},
            {"exists": {"field": "mtime", "boost": 0}},
        ]
        assert "minimum_should_match" not in query["query"]["bool"]
        assert all("range" not in clause for clause in must_clauses(query))


class TestDateRange:
    """A date window filters on either timestamp."""

    def test_absent_without_dates(self) -> None:
        """No date clause is added without a window."""
        assert len(must_clauses(build_query(None, "hello"))) == 2

    def test_window_on_mtime_or_ctime(self) -> None:
        """Either timestamp inside the window matches."""
        from_date = datetime(2024, 1, 1, tzinfo=UTC)
        to_date = datetime(2024, 2, 1, tzinfo=UTC)

        clause = must_clauses(build_query(None, "hello", from_date=from_date, to_date=to_date))[2]

        bounds = {"gte": "2024-01-01T00:00:00+00:00", "lte": "2024-02-01T00:00:00+00:00"}
        assert clause == {
            "bool": {
                "should": [
                    {"range": {"mtime": bounds}},
                    {"range": {"ctime": bounds}},
                ],
                "minimum_should_match": 1,
            }
        }

    def test_open_ended_window(self) -> None:
        """A single bound leaves the other side open."""
        from_date = datetime(2024, 1, 1, tzinfo=UTC)

        clause = must_clauses(build_query(None, "hello", from_date=from_date))[2]

        for condition in clause["bool"]["should"]:
            (bounds,) = next(iter(condition.values())).values()
            assert bounds == {"gte": "2024-01-01T00:00:00+00:00"}


class TestPresentation:
    """Highlighting, pagination and returned fields."""

    def test_pagination(self) -> None:
        """Limit and page translate into size and offset."""
        query = build_query(None, "hello", limit=25, page=3)

        assert query["from"] == 50
        assert query["size"] == 25

    def test_first_page_starts_at_zero(self) -> None:
        """The first page starts at offset zero."""
        assert build_query(None, "hello")["from"] == 0

    def test_highlight_falls_back_to_start_of_body(self) -> None:
        """Body excerpts are returned even without a body match."""
        highlight = build_query(None, "hello")["highlight"]

        assert highlight["pre_tags"] == ["<strong>"]
        assert highlight["post_tags"] == ["</strong>"]
        assert highlight["fields"]["body"]["no_match_size"] == 150
        assert highlight["fields"]["body"]["fragment_size"] == 150
        assert "title" in highlight["fields"]

    def test_source_fields(self) -> None:
        """Only the listed fields are returned from the source."""
        assert build_query(None, "hello")["_source"] == [
            "title",
            "permissions",
            "ctime",
            "mtime",
        ]
