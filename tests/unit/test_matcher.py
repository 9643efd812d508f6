"""Tests for URL normalization and deduplication."""

from profile_search.core.schemas import SearchResult
from profile_search.pipeline.matcher import DeduplicationFilter, dedupe_results, normalize_url


def _result(url: str, title: str = "") -> SearchResult:
    return SearchResult(url=url, title=title, source="google")


class TestNormalizeUrl:
    def test_strips_query_and_fragment(self) -> None:
        assert (
            normalize_url("https://www.linkedin.com/in/jane?trk=abc#about")
            == "https://www.linkedin.com/in/jane"
        )

    def test_keeps_path(self) -> None:
        assert normalize_url("http://example.com/a/b/") == "http://example.com/a/b/"

    def test_unparseable_returned_unchanged(self) -> None:
        assert normalize_url("not a url") == "not a url"
        assert normalize_url("") == ""


class TestDedupeResults:
    def test_keeps_first_occurrence(self) -> None:
        results = [
            _result("https://x.com/in/a?x=1", "first"),
            _result("https://x.com/in/b"),
            _result("https://x.com/in/a#frag", "second"),
        ]
        unique = dedupe_results(results)
        assert [r.url for r in unique] == ["https://x.com/in/a?x=1", "https://x.com/in/b"]
        assert unique[0].title == "first"

    def test_idempotent(self) -> None:
        results = [_result("https://x.com/a"), _result("https://x.com/a?q"), _result("https://x.com/b")]
        once = dedupe_results(results)
        assert dedupe_results(once) == once

    def test_empty(self) -> None:
        assert dedupe_results([]) == []


class TestDeduplicationFilter:
    def test_stateful_across_calls(self) -> None:
        dedup = DeduplicationFilter()
        assert len(dedup([_result("https://x.com/a")])) == 1
        second = dedup([_result("https://x.com/a?page=2"), _result("https://x.com/b")])
        assert [r.url for r in second] == ["https://x.com/b"]

    def test_reset(self) -> None:
        dedup = DeduplicationFilter()
        dedup([_result("https://x.com/a")])
        dedup.reset()
        assert len(dedup([_result("https://x.com/a")])) == 1
