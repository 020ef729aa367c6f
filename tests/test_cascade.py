import time

from fakes import FakeFetcher, work_entries

from related_books.catalog import InMemoryCatalog
from related_books.core.models import BookRecord
from related_books.discovery.cascade import RelatedWorkResolver
from related_books.discovery.strategies import Strategy
from related_books.integrations import openlibrary as ol

ORIGINAL = "9780306406157"


def _graph(**work_fields) -> FakeFetcher:
    """Query book ORIGINAL belongs to work OL1W with the given fields."""
    f = FakeFetcher()
    f.add_work("OL1W", ORIGINAL, title="Query", **work_fields)
    return f


def _isbns(records):
    return [r.isbn for r in records]


def test_invalid_input_makes_no_calls() -> None:
    f = FakeFetcher()
    resolver = RelatedWorkResolver(f)
    assert resolver.resolve_related("", 5) == []
    assert resolver.resolve_related("---", 5) == []
    assert resolver.resolve_related(ORIGINAL, 0) == []
    assert resolver.resolve_related(ORIGINAL, -3) == []
    assert f.calls == []


def test_isbn_without_work_returns_empty_and_runs_no_stage() -> None:
    f = FakeFetcher()
    f.add_edition(ORIGINAL, None, title="Orphan edition")

    report = RelatedWorkResolver(f).resolve_with_report(ORIGINAL, 5)

    assert report.results == ()
    assert report.work_key is None
    assert report.stages == ()
    assert f.calls == [ol.edition_url(ORIGINAL)]


def test_series_fills_small_quota_without_searching() -> None:
    f = _graph(
        series=[{"key": "/series/OL1L"}],
        authors=[{"author": {"key": "/authors/OL1A"}}],
        subjects=["Robots"],
    )
    f.add_json(ol.key_url("/series/OL1L"), {"works": work_entries(["OL2W", "OL3W", "OL4W"])})
    for i in range(2, 5):
        f.add_work(f"OL{i}W", f"97800000000{i:02d}")

    report = RelatedWorkResolver(f).resolve_with_report(ORIGINAL, 2)

    assert _isbns(report.results) == ["9780000000002", "9780000000003"]
    assert f.count("/search.json") == 0
    assert f.count("/related/") == 0
    assert f.count("/authors/") == 0
    assert [(s.name, s.ran) for s in report.stages] == [
        ("series", True),
        ("author", False),
        ("links", False),
        ("subjects", False),
    ]


def test_short_series_falls_through_to_links_and_subjects() -> None:
    f = _graph(
        series=[{"key": "/series/OL1L"}],
        links=[{"title": "Companion", "url": "https://openlibrary.org/works/OL5W", "type": "related"}],
        subjects=["Robots"],
    )
    f.add_json(ol.key_url("/series/OL1L"), {"works": work_entries(["OL1W", "OL2W"])})
    f.add_work("OL2W", "9780000000002")
    f.add_work("OL5W", "9780000000005")
    f.add_json(ol.related_inside_url("Robots"), {"works": work_entries(["OL6W"])})
    f.add_work("OL6W", "9780000000006")

    results = RelatedWorkResolver(f).resolve_related(ORIGINAL, 5)

    assert _isbns(results) == ["9780000000002", "9780000000005", "9780000000006"]
    assert f.count("/related/inside.json") == 1


def test_results_are_unique_and_never_the_query_book() -> None:
    f = _graph(
        series=[{"key": "/series/OL1L"}],
        authors=[{"author": {"key": "/authors/OL1A"}}],
    )
    f.add_edition("0306406152", "OL1W")
    f.add_json(ol.key_url("/series/OL1L"), {"works": work_entries(["OL2W"])})
    f.add_json(ol.works_listing_url("/authors/OL1A", 5), {"entries": work_entries(["OL1W", "OL2W", "OL3W"])})
    f.add_work("OL2W", "9780000000002")
    f.add_work("OL3W", "9780000000003")

    results = RelatedWorkResolver(f).resolve_related("0-306-40615-2", 5)

    assert _isbns(results) == ["9780000000002", "9780000000003"]


def test_failing_stage_does_not_stop_later_stages() -> None:
    f = _graph(
        authors=[{"author": {"key": "/authors/OL1A"}}],
        links=[{"title": "Companion", "url": "https://openlibrary.org/works/OL5W", "type": "related"}],
    )
    f.failures.add(ol.works_listing_url("/authors/OL1A", 5))
    f.add_work("OL5W", "9780000000005")

    report = RelatedWorkResolver(f).resolve_with_report(ORIGINAL, 5)

    assert _isbns(report.results) == ["9780000000005"]
    author = [s for s in report.stages if s.name == "author"][0]
    assert author.ran and author.error


def test_unexpected_stage_error_is_contained() -> None:
    class Exploding(Strategy):
        name = "exploding"

        def run(self, work, original_isbn, remaining):
            raise KeyError("bad payload")

    class Fixed(Strategy):
        name = "fixed"

        def run(self, work, original_isbn, remaining):
            return [BookRecord(isbn="9780000000009", title="Fixed")]

    f = _graph()
    resolver = RelatedWorkResolver(f)
    resolver.strategies = [Exploding(resolver.works), Fixed(resolver.works)]

    assert _isbns(resolver.resolve_related(ORIGINAL, 3)) == ["9780000000009"]


def test_subject_fanout_respects_deadline() -> None:
    f = _graph(subjects=["Robots", "Aliens"])
    f.add_json(ol.related_inside_url("Robots"), {"works": work_entries(["OL2W"])})
    f.add_json(ol.related_inside_url("Aliens"), {"works": work_entries(["OL3W"])})
    f.add_work("OL2W", "9780000000002")
    f.add_work("OL3W", "9780000000003")
    f.delays[ol.related_inside_url("Aliens")] = 1.5

    started = time.monotonic()
    results = RelatedWorkResolver(f, deadline_s=0.3).resolve_related(ORIGINAL, 5)
    elapsed = time.monotonic() - started

    assert _isbns(results) == ["9780000000002"]
    assert elapsed < 1.2


def test_catalog_records_are_used_for_candidates() -> None:
    f = _graph(series=[{"key": "/series/OL1L"}])
    f.add_json(ol.key_url("/series/OL1L"), {"works": work_entries(["OL2W"])})
    f.add_work("OL2W", "9780000000002")
    catalog = InMemoryCatalog([BookRecord(isbn="9780000000002", title="Local title", authors=("Local Author",))])

    results = RelatedWorkResolver(f, catalog).resolve_related(ORIGINAL, 5)

    assert results[0].title == "Local title"
    assert f.count(ol.edition_url("9780000000002")) == 0


def test_stage_output_is_merged_in_cascade_order() -> None:
    f = _graph(
        series=[{"key": "/series/OL1L"}],
        authors=[{"author": {"key": "/authors/OL1A"}}],
        links=[{"title": "Companion", "url": "https://openlibrary.org/works/OL5W", "type": "Related"}],
        subject_people=["Ada Lovelace"],
        subjects=["Robots", "Aliens"],
    )
    f.add_json(ol.key_url("/series/OL1L"), {"works": work_entries(["OL2W"])})
    f.add_json(ol.works_listing_url("/authors/OL1A", 5), {"entries": work_entries(["OL2W", "OL1W", "OL3W"])})
    f.add_json(ol.field_search_url("subject_people", "Ada Lovelace"), {"docs": [{"key": "/works/OL7W"}]})
    f.add_json(ol.related_inside_url("Robots"), {"works": work_entries(["OL6W"])})
    f.add_json(ol.related_inside_url("Aliens"), {"works": work_entries(["OL8W"])})
    f.delays[ol.related_inside_url("Robots")] = 0.3
    for i in (2, 3, 5, 6, 7, 8):
        f.add_work(f"OL{i}W", f"97800000000{i:02d}")

    report = RelatedWorkResolver(f, deadline_s=5.0).resolve_with_report(ORIGINAL, 6)

    assert _isbns(report.results) == [
        "9780000000002",
        "9780000000003",
        "9780000000005",
        "9780000000007",
        "9780000000006",
        "9780000000008",
    ]
    assert [(s.name, s.added) for s in report.stages] == [
        ("series", 1),
        ("author", 1),
        ("links", 1),
        ("subjects", 3),
    ]
