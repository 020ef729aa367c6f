# related_books/cli.py
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .catalog import InMemoryCatalog
from .config import ResolverConfig, config_from_env, load_config_file, load_dotenv
from .discovery.cascade import RelatedWorkResolver, ResolutionReport
from .io.export import read_catalog_csv, report_to_dict, write_results_csv, write_results_json

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

DEFAULT_MAX_RESULTS = 5


def _read_isbn_file(path: str) -> List[str]:
    try:
        lines = Path(path).read_text(encoding="utf-8").splitlines()
    except OSError as e:
        raise SystemExit(f"Failed to read ISBN file: {path} ({e})") from e
    return [ln.strip() for ln in lines if ln.strip() and not ln.strip().startswith("#")]


def _render_table(console: Console, report: ResolutionReport) -> None:
    table = Table(title=f"Related to {report.isbn} (work {report.work_key or '-'})")
    table.add_column("#", justify="right")
    table.add_column("ISBN")
    table.add_column("Title")
    table.add_column("Authors")
    table.add_column("Publisher")
    table.add_column("Published")
    for rank, r in enumerate(report.results, start=1):
        table.add_row(str(rank), r.isbn, r.title, ", ".join(r.authors), r.publisher, r.date_published)
    console.print(table)
    if not report.results:
        console.print("[dim]no related books found[/dim]")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="related-books",
        description="Find books related to an ISBN via the OpenLibrary work graph (series, author, links, subjects)",
    )
    ap.add_argument("isbns", nargs="*", help="ISBN-10 or ISBN-13 values to resolve")
    ap.add_argument("--isbn-file", default=None, help="File with one ISBN per line (# comments allowed)")
    ap.add_argument("--max", dest="max_results", type=int, default=DEFAULT_MAX_RESULTS, help="Max related books per ISBN")
    ap.add_argument("--catalog", default=None, help="CSV of local book records consulted before the network")

    # Output
    ap.add_argument("--format", choices=("table", "json", "csv"), default="table", help="Output format")
    ap.add_argument("--out", default=None, help="Write json/csv output to this path instead of stdout")

    # Resolver tuning
    ap.add_argument("--config", default=None, help="YAML config file (keys of the 'resolver' section)")
    ap.add_argument("--base-url", default=None, help="OpenLibrary base URL")
    ap.add_argument("--no-cache", action="store_true", help="Disable the in-memory request cache")
    ap.add_argument("--connect-timeout-ms", type=int, default=None, help="HTTP connect timeout (ms)")
    ap.add_argument("--read-timeout-ms", type=int, default=None, help="HTTP read timeout (ms)")
    ap.add_argument("--deadline", type=float, default=None, help="Subject fan-out deadline (seconds)")
    ap.add_argument("--rate-per-sec", type=float, default=None, help="Request rate limit (0 disables)")
    ap.add_argument("--log-level", default="warning", help="Log level: debug, info, warning, error")
    return ap


def resolve_config(args: argparse.Namespace) -> ResolverConfig:
    cfg = config_from_env()
    if args.config:
        cfg = load_config_file(args.config, cfg)
    cfg = cfg.with_overrides(
        {
            "base_url": args.base_url,
            "connect_timeout_ms": args.connect_timeout_ms,
            "read_timeout_ms": args.read_timeout_ms,
            "fanout_deadline_s": args.deadline,
            "rate_per_sec": args.rate_per_sec,
            "use_cache": False if args.no_cache else None,
        },
        source="command line",
    )
    cfg.validate()
    return cfg


def main(argv: Optional[List[str]] = None) -> None:
    logger = logging.getLogger(__name__)
    args = build_parser().parse_args(argv)

    level = LOG_LEVELS.get(args.log_level.lower(), logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
    )

    used = load_dotenv(".env")
    if used:
        logger.info("loaded .env: %s", used)

    isbns = list(args.isbns)
    if args.isbn_file:
        isbns.extend(_read_isbn_file(args.isbn_file))
    if not isbns:
        raise SystemExit("No ISBNs given (pass them as arguments or via --isbn-file).")
    if args.format == "csv" and not args.out:
        raise SystemExit("--format csv requires --out PATH.")

    cfg = resolve_config(args)
    logger.info(
        "Resolver: base=%s | timeouts=%s/%sms | cache=%s | deadline=%ss",
        cfg.base_url,
        cfg.connect_timeout_ms,
        cfg.read_timeout_ms,
        cfg.use_cache,
        cfg.fanout_deadline_s,
    )

    catalog = None
    if args.catalog:
        try:
            catalog = InMemoryCatalog(read_catalog_csv(args.catalog))
        except OSError as e:
            raise SystemExit(f"Failed to read catalog CSV: {args.catalog} ({e})") from e
        logger.info("Catalog: %s records", catalog.size())

    resolver = RelatedWorkResolver.from_config(cfg, catalog)
    reports = [resolver.resolve_with_report(isbn, args.max_results) for isbn in isbns]

    if args.format == "table":
        console = Console()
        for rep in reports:
            _render_table(console, rep)
    elif args.format == "json":
        if args.out:
            write_results_json(reports, args.out)
        else:
            json.dump([report_to_dict(r) for r in reports], sys.stdout, ensure_ascii=False, indent=2)
            sys.stdout.write("\n")
    else:
        write_results_csv(reports, args.out)

    logger.info(
        "Fetch stats: %s | cached_urls=%s",
        resolver.fetcher.stats.snapshot_dict(),
        resolver.fetcher.cache_size(),
    )


if __name__ == "__main__":
    main()
