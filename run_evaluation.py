"""
run_evaluation.py — command-line driver for the website rubric evaluator.

Works against the local catalog file (CATALOG_PATH, default data/catalog.json):
  sites add URL [--name NAME]      add a website to the catalog
  sites list                       list websites and their last evaluation
  criteria export [FILE]           print or write the rubric as JSON
  criteria import FILE             replace the rubric from a JSON file
  batch                            scrape + evaluate every catalog website
  url URL [--all-sections]         scrape + evaluate one URL, print the result

Ctrl+C during an evaluation stops before the next criterion.

Usage:
    python run_evaluation.py batch
    python run_evaluation.py url https://example.com --all-sections
"""

import argparse
import asyncio
import json
import signal
import sys
from pathlib import Path

from app.catalog.models import Website
from app.catalog.repository import CatalogRepository
from app.catalog.store import JsonFileStore
from app.core.config import settings, validate_settings
from app.core.exceptions import EvaluatorError
from app.core.logging import setup_logging
from app.evaluation.llm_client import WatsonxClient
from app.evaluation.orchestrator import EvaluationOrchestrator
from app.scraper.sections import scrape_website_sections
from app.services.batch_evaluator import BatchEvaluator, auto_select_sections, build_request


def _banner(title: str) -> None:
    print("\n" + "=" * 60)
    print(f"  {title}")
    print("=" * 60)


def _repository() -> CatalogRepository:
    return CatalogRepository(JsonFileStore(settings.catalog_path))


def _orchestrator() -> EvaluationOrchestrator:
    validate_settings()
    return EvaluationOrchestrator.from_settings(WatsonxClient.from_settings())


def _cancel_on_sigint() -> asyncio.Event:
    cancel = asyncio.Event()

    def _handler():
        if not cancel.is_set():
            print("\n  Cancelling after the current criterion...")
        cancel.set()

    try:
        asyncio.get_running_loop().add_signal_handler(signal.SIGINT, _handler)
    except NotImplementedError:
        # add_signal_handler is unavailable on Windows event loops
        pass
    return cancel


# ── Catalog commands ─────────────────────────────────────────────


def cmd_sites_add(args) -> int:
    website = _repository().add_website(args.url, args.name or "")
    print(f"  Added {website.name} ({website.id})")
    return 0


def cmd_sites_list(args) -> int:
    websites = _repository().list_websites()
    if not websites:
        print("  Catalog is empty")
        return 0
    for website in websites:
        last = website.last_evaluated.isoformat() if website.last_evaluated else "never"
        print(f"  [{website.id}] {website.name:30s} evaluated: {last}")
        for evaluation in website.evaluations:
            print(f"      {evaluation.criterion_id:20s} {evaluation.alignment.value}")
    return 0


def cmd_criteria_export(args) -> int:
    exported = _repository().export_criteria()
    if args.file:
        Path(args.file).write_text(exported, encoding="utf-8")
        print(f"  Wrote {args.file}")
    else:
        print(exported)
    return 0


def cmd_criteria_import(args) -> int:
    criteria = _repository().import_criteria(Path(args.file).read_text(encoding="utf-8"))
    print(f"  Imported {len(criteria)} criteria")
    return 0


# ── Evaluation commands ──────────────────────────────────────────


async def cmd_batch(args) -> int:
    repository = _repository()
    evaluator = BatchEvaluator(repository, _orchestrator())

    _banner(f"Batch evaluation of {len(repository.list_websites())} websites")
    progress = await evaluator.run(cancel_event=_cancel_on_sigint())

    print(f"\n  Completed: {progress.completed}/{progress.total}")
    print(f"  Without AI-related sections: {len(progress.skipped)}")
    print(f"  Failed: {len(progress.failed)}")
    if progress.cancelled:
        print("  Cancelled before finishing")
    return 1 if progress.failed else 0


async def cmd_url(args) -> int:
    repository = _repository()
    criteria = repository.selected_criteria()
    if not criteria:
        print("  No criteria selected; use 'criteria import' first")
        return 1

    _banner(f"Scraping {args.url}")
    sections = await scrape_website_sections(args.url)
    for section in sections:
        print(f"  - {section.title}")

    selected = sections if args.all_sections else auto_select_sections(sections)
    if not selected:
        print("\n  No AI-related sections found (use --all-sections to evaluate everything)")
        return 1

    website = repository.add_website(args.url) if args.save else None
    request = build_request(website or Website(id="adhoc", url=args.url, name=args.url), selected, criteria)

    _banner(f"Evaluating {len(selected)} sections against {len(criteria)} criteria")
    run = await _orchestrator().run(request, cancel_event=_cancel_on_sigint())

    if website is not None and not run.cancelled:
        repository.record_evaluation(website.id, run.results)

    print(json.dumps(
        {"results": [r.to_dict() for r in run.results], "summary": run.summary.to_dict()},
        indent=4,
        ensure_ascii=False,
    ))
    return 0


# ── Entry point ──────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Website rubric evaluator")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sites = sub.add_parser("sites", help="manage catalog websites").add_subparsers(dest="action", required=True)
    add = sites.add_parser("add")
    add.add_argument("url")
    add.add_argument("--name")
    add.set_defaults(func=cmd_sites_add)
    sites.add_parser("list").set_defaults(func=cmd_sites_list)

    criteria = sub.add_parser("criteria", help="import/export the rubric").add_subparsers(dest="action", required=True)
    export = criteria.add_parser("export")
    export.add_argument("file", nargs="?")
    export.set_defaults(func=cmd_criteria_export)
    imp = criteria.add_parser("import")
    imp.add_argument("file")
    imp.set_defaults(func=cmd_criteria_import)

    sub.add_parser("batch", help="evaluate every catalog website").set_defaults(func=cmd_batch)

    url = sub.add_parser("url", help="evaluate a single URL")
    url.add_argument("url")
    url.add_argument("--all-sections", action="store_true", help="skip AI keyword auto-selection")
    url.add_argument("--save", action="store_true", help="add the URL to the catalog and record results")
    url.set_defaults(func=cmd_url)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(level="DEBUG" if args.verbose else None)

    try:
        result = args.func(args)
        if asyncio.iscoroutine(result):
            result = asyncio.run(result)
        return result
    except EvaluatorError as e:
        print(f"\n  Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
