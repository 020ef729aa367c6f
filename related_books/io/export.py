from __future__ import annotations

import csv
import json
import logging
from typing import Dict, Iterable, List

from related_books.core.models import BookRecord
from related_books.core.normalize import normalize_isbn
from related_books.discovery.cascade import ResolutionReport
from related_books.io.utils import atomic_write_csv, atomic_write_text

logger = logging.getLogger(__name__)

AUTHOR_SEP = "; "

RESULT_CSV_FIELDS = [
    "query_isbn",
    "rank",
    "isbn",
    "title",
    "authors",
    "publisher",
    "date_published",
]

CATALOG_CSV_FIELDS = ["isbn", "title", "authors", "publisher", "date_published"]


def record_to_dict(r: BookRecord) -> Dict[str, object]:
    return {
        "isbn": r.isbn,
        "title": r.title,
        "authors": list(r.authors),
        "publisher": r.publisher,
        "date_published": r.date_published,
    }


def report_to_dict(report: ResolutionReport) -> Dict[str, object]:
    return {
        "isbn": report.isbn,
        "max_results": report.max_results,
        "work_key": report.work_key,
        "elapsed_s": round(report.elapsed_s, 3),
        "results": [record_to_dict(r) for r in report.results],
        "stages": [
            {
                "name": s.name,
                "ran": s.ran,
                "found": s.found,
                "added": s.added,
                "elapsed_s": round(s.elapsed_s, 3),
                "error": s.error,
            }
            for s in report.stages
        ],
    }


def write_results_csv(reports: Iterable[ResolutionReport], out_path: str) -> int:
    reports = list(reports)
    count = [0]

    def _write(path: str) -> None:
        with open(path, "w", newline="", encoding="utf-8") as f:
            w = csv.DictWriter(f, fieldnames=RESULT_CSV_FIELDS)
            w.writeheader()
            for rep in reports:
                for rank, r in enumerate(rep.results, start=1):
                    w.writerow({
                        "query_isbn": rep.isbn,
                        "rank": rank,
                        "isbn": r.isbn,
                        "title": r.title,
                        "authors": AUTHOR_SEP.join(r.authors),
                        "publisher": r.publisher,
                        "date_published": r.date_published,
                    })
                    count[0] += 1

    atomic_write_csv(_write, out_path)
    logger.info("Wrote results CSV: %s rows=%s", out_path, count[0])
    return count[0]


def write_results_json(reports: Iterable[ResolutionReport], out_path: str) -> None:
    payload = [report_to_dict(r) for r in reports]

    def _write(path: str) -> None:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)

    atomic_write_text(_write, out_path)
    logger.info("Wrote results JSON: %s reports=%s", out_path, len(payload))


def _split_authors(val: str) -> List[str]:
    return [a.strip() for a in (val or "").split(";") if a.strip()]


def read_catalog_csv(path: str) -> List[BookRecord]:
    """Book records from a CSV with CATALOG_CSV_FIELDS columns; rows without an ISBN are skipped."""
    rows: List[BookRecord] = []
    skipped = 0
    with open(path, "r", newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        for rec in reader:
            isbn = normalize_isbn(rec.get("isbn", ""))
            if not isbn:
                skipped += 1
                continue
            rows.append(
                BookRecord(
                    isbn=isbn,
                    title=(rec.get("title") or "").strip(),
                    publisher=(rec.get("publisher") or "").strip(),
                    date_published=(rec.get("date_published") or "").strip(),
                    authors=tuple(dict.fromkeys(_split_authors(rec.get("authors") or ""))),
                )
            )
    logger.info("Read catalog CSV: %s rows=%s skipped=%s", path, len(rows), skipped)
    return rows
