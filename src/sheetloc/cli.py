# -*- coding: utf-8 -*-
"""
sheetloc - Spreadsheet cleaning and translation CLI

Usage:
    sheetloc ingest    -i data/questions.xlsx [--save]
    sheetloc analyze   -i data/questions.xlsx [--report report.json] [--ai]
    sheetloc translate -i data/questions.xlsx -o data/questions_ru.xlsx -l ru
    sheetloc export    -o data/saved.xlsx
    sheetloc ping
    sheetloc cache stats|clear
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from .cache_manager import TranslationCache
from .config import load_pipeline_config
from .errors import Cancelled, InvalidTargetLanguage, LLMError, ParseError
from .ingest import export_grid
from .llm_client import ping
from .models import Grid
from .rehydrate import rehydrate
from .session import Session
from .store import GridStore

logger = logging.getLogger("sheetloc")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CANCELLED = 130


def _export_format(path: str) -> str:
    return "csv" if Path(path).suffix.lower() == ".csv" else "xlsx"


def _write_grid(grid: Grid, path: str) -> None:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(export_grid(grid, _export_format(path)))


def _print_progress(done: int, total: int, stats) -> None:
    print(f"[PROGRESS] batch {done}/{total} "
          f"(translated {stats.items_translated}, fallback {stats.items_fallback})")


async def _load_input(session: Session, path: str) -> Grid:
    return await session.ingest(Path(path).read_bytes())


async def cmd_ingest(args) -> int:
    async with Session.from_config(args.config) as session:
        grid = await _load_input(session, args.input)
        meta = grid.metadata
        print(f"[OK] {meta.sheet_name}: {grid.n_rows} rows x {grid.n_cols} columns "
              f"(source columns {meta.source_columns}, dropped blank rows {meta.dropped_rows})")
        if args.save:
            await GridStore(session.config.store.path).save_grid(grid)
            print(f"[OK] Saved to {session.config.store.path}")
    return EXIT_OK


async def cmd_analyze(args) -> int:
    async with Session.from_config(args.config) as session:
        grid = await _load_input(session, args.input)
        report = session.quality_report(grid)
        result = {"dataset_quality": report.to_dict()}
        print(f"[OK] Quality tier: {report.tier} "
              f"({report.records_with_issues}/{report.total_records} records with issues)")
        for issue in report.issues[:10]:
            print(f"  [{issue.severity}] row {issue.row + 1}: {issue.title} - {issue.detail}")
        if args.ai:
            analysis = await session.analyze(grid)
            result["content_analysis"] = analysis.to_dict()
            print(f"[OK] Content quality: {analysis.content_quality.quality} "
                  f"({analysis.content_quality.source})")
            for rec in analysis.recommendations:
                print(f"  - {rec}")
    if args.report:
        Path(args.report).parent.mkdir(parents=True, exist_ok=True)
        with open(args.report, "w", encoding="utf-8") as f:
            json.dump(result, f, ensure_ascii=False, indent=2, default=str)
        print(f"[OK] Report written to {args.report}")
    return EXIT_OK


async def cmd_translate(args) -> int:
    config = load_pipeline_config(args.config)
    if args.model:
        config.translation.model = args.model
    if args.batch_size:
        config.translation.batch_size = args.batch_size
    if args.max_inflight:
        config.translation.max_inflight = args.max_inflight
    cache = TranslationCache(config.cache) if config.cache.enabled else None

    async with Session(config=config, translation_cache=cache) as session:
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, session.cancel)
        except NotImplementedError:
            logger.debug("SIGINT handler unavailable; Ctrl+C stops the process")

        grid = await _load_input(session, args.input)
        try:
            outcome = await session.translate_grid(
                grid, args.language,
                progress_callback=_print_progress,
                timeout_s=args.timeout,
            )
        except Cancelled as e:
            print(f"[CANCELLED] {e} after {e.completed_batches} batches")
            if args.output:
                _write_grid(rehydrate(grid, e.partial), args.output)
                print(f"[OK] Partial result written to {args.output}")
            return EXIT_CANCELLED

        _write_grid(outcome.grid, args.output)
        stats = outcome.stats
        print(f"[DONE] {stats.items_translated} translated, {stats.items_cached} cached, "
              f"{stats.items_fallback} kept as source, {stats.batches_failed} failed batches")
        print(f"[OK] Written to {args.output}")
    return EXIT_OK


async def cmd_export(args) -> int:
    config = load_pipeline_config(args.config)
    grid = await GridStore(config.store.path).load_grid()
    if grid is None:
        print(f"[ERROR] No saved grid in {config.store.path}")
        return EXIT_ERROR
    _write_grid(grid, args.output)
    print(f"[OK] Exported {grid.n_rows}x{grid.n_cols} to {args.output}")
    return EXIT_OK


def cmd_ping(args) -> int:
    result = ping(model=args.model)
    print(f"[OK] {result.model} replied in {result.latency_ms}ms: {result.text.strip()[:80]}")
    return EXIT_OK


def cmd_cache(args) -> int:
    config = load_pipeline_config(args.config)
    with TranslationCache(config.cache) as cache:
        if args.action == "clear":
            removed = cache.clear()
            print(f"[OK] Removed {removed} cached translations")
        else:
            print(json.dumps(cache.get_size(), indent=2))
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sheetloc",
        description="Clean, analyze and translate spreadsheet content",
    )
    parser.add_argument("-c", "--config", help="Pipeline YAML (default: config/pipeline.yaml)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    ingest_parser = subparsers.add_parser("ingest", help="Read and normalize a spreadsheet")
    ingest_parser.add_argument("-i", "--input", required=True, help="Input xlsx/csv")
    ingest_parser.add_argument("--save", action="store_true", help="Save the grid to the store")

    analyze_parser = subparsers.add_parser("analyze", help="Dataset quality report")
    analyze_parser.add_argument("-i", "--input", required=True, help="Input xlsx/csv")
    analyze_parser.add_argument("-r", "--report", help="Write the report as JSON")
    analyze_parser.add_argument("--ai", action="store_true", help="Add the model's content verdict")

    translate_parser = subparsers.add_parser("translate", help="Translate every cell")
    translate_parser.add_argument("-i", "--input", required=True, help="Input xlsx/csv")
    translate_parser.add_argument("-o", "--output", required=True, help="Output xlsx or csv")
    translate_parser.add_argument("-l", "--language", required=True, help="Target language code")
    translate_parser.add_argument("-m", "--model", help="Model override")
    translate_parser.add_argument("--batch-size", type=int, help="Items per request")
    translate_parser.add_argument("--max-inflight", type=int, help="Concurrent requests")
    translate_parser.add_argument("--timeout", type=float, help="Cancel after N seconds")

    export_parser = subparsers.add_parser("export", help="Export the saved grid")
    export_parser.add_argument("-o", "--output", required=True, help="Output xlsx or csv")

    ping_parser = subparsers.add_parser("ping", help="Check LLM connectivity")
    ping_parser.add_argument("-m", "--model", help="Model to ping")

    cache_parser = subparsers.add_parser("cache", help="Translation cache maintenance")
    cache_parser.add_argument("action", choices=["stats", "clear"])
    return parser


ASYNC_COMMANDS = {
    "ingest": cmd_ingest,
    "analyze": cmd_analyze,
    "translate": cmd_translate,
    "export": cmd_export,
}
SYNC_COMMANDS = {
    "ping": cmd_ping,
    "cache": cmd_cache,
}


def main(argv: Optional[list] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return EXIT_ERROR

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        if args.command in ASYNC_COMMANDS:
            return asyncio.run(ASYNC_COMMANDS[args.command](args))
        return SYNC_COMMANDS[args.command](args)
    except (ParseError, InvalidTargetLanguage, LLMError, FileNotFoundError) as e:
        print(f"[ERROR] {e}")
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
