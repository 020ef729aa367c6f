import json

import pytest

from related_books import cli
from related_books.core.models import BookRecord
from related_books.discovery.cascade import ResolutionReport


class _StubResolver:
    def __init__(self) -> None:
        self.calls = []

        class _Stats:
            def snapshot_dict(self):
                return {}

        class _Fetcher:
            stats = _Stats()

            def cache_size(self):
                return 0

        self.fetcher = _Fetcher()

    def resolve_with_report(self, isbn, max_results):
        self.calls.append((isbn, max_results))
        return ResolutionReport(
            isbn=isbn,
            max_results=max_results,
            work_key="/works/OL1W",
            results=(BookRecord(isbn="9780000000002", title="Two"),),
            stages=(),
        )


@pytest.fixture
def stub(monkeypatch):
    resolver = _StubResolver()
    monkeypatch.setattr(cli.RelatedWorkResolver, "from_config", classmethod(lambda cls, cfg, catalog=None: resolver))
    monkeypatch.setattr(cli, "load_dotenv", lambda path=".env": None)
    return resolver


def test_json_output_to_file(stub, tmp_path) -> None:
    out = tmp_path / "out.json"
    cli.main(["9780306406157", "--max", "3", "--format", "json", "--out", str(out)])

    assert stub.calls == [("9780306406157", 3)]
    data = json.loads(out.read_text(encoding="utf-8"))
    assert data[0]["results"][0]["isbn"] == "9780000000002"


def test_isbn_file_and_csv(stub, tmp_path) -> None:
    isbns = tmp_path / "isbns.txt"
    isbns.write_text("# list\n9780306406157\n\n0306406152\n", encoding="utf-8")
    out = tmp_path / "out.csv"

    cli.main(["--isbn-file", str(isbns), "--format", "csv", "--out", str(out)])

    assert [c[0] for c in stub.calls] == ["9780306406157", "0306406152"]
    assert out.read_text(encoding="utf-8").count("9780000000002") == 2


def test_usage_errors(stub) -> None:
    with pytest.raises(SystemExit):
        cli.main([])
    with pytest.raises(SystemExit):
        cli.main(["9780306406157", "--format", "csv"])
    assert stub.calls == []


def test_resolve_config_applies_flags(monkeypatch) -> None:
    monkeypatch.delenv("OPENLIBRARY_BASE_URL", raising=False)
    args = cli.build_parser().parse_args(["x", "--base-url", "http://localhost:9000", "--no-cache", "--deadline", "1.5"])
    cfg = cli.resolve_config(args)
    assert cfg.base_url == "http://localhost:9000"
    assert cfg.use_cache is False
    assert cfg.fanout_deadline_s == 1.5
