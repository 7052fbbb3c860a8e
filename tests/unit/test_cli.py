#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
test_cli.py - Command line entry points.
"""

import json

import pytest

from sheetloc import cli
from sheetloc.errors import LLMError
from sheetloc.llm_client import LLMResult

CSV = (
    "1,Q1,What is a &lt;b&gt;grid&lt;/b&gt;?,Alpha,1,Beta,0,Gamma,0,Delta,0\n"
    "2,Q2,Hi &amp; bye,,,,,,,,\n"
    ",,,,,,,,,,\n"
).encode("utf-8")


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    for name in ("LLM_BASE_URL", "LLM_API_KEY", "LLM_API_KEY_FILE", "LLM_MODEL", "LLM_TRACE_PATH"):
        monkeypatch.delenv(name, raising=False)
    config = tmp_path / "pipeline.yaml"
    config.write_text(
        "translation:\n"
        "  retries: 0\n"
        "  retry_backoff_s: 0\n"
        "cache:\n"
        f"  location: {tmp_path / 'cache' / 'translations.db'}\n"
        "store:\n"
        f"  path: {tmp_path / 'store' / 'saved-data.json'}\n",
        encoding="utf-8",
    )
    source = tmp_path / "questions.csv"
    source.write_bytes(CSV)
    return tmp_path, str(config), str(source)


class TestCli:
    def test_no_command(self, capsys):
        assert cli.main([]) == cli.EXIT_ERROR

    def test_ingest(self, workspace, capsys):
        _, config, source = workspace
        assert cli.main(["-c", config, "ingest", "-i", source]) == cli.EXIT_OK
        out = capsys.readouterr().out
        assert "2 rows x 11 columns" in out
        assert "dropped blank rows 1" in out

    def test_ingest_save_then_export(self, workspace, capsys):
        tmp_path, config, source = workspace
        assert cli.main(["-c", config, "ingest", "-i", source, "--save"]) == cli.EXIT_OK
        out_path = tmp_path / "out" / "saved.csv"
        assert cli.main(["-c", config, "export", "-o", str(out_path)]) == cli.EXIT_OK
        assert "Hi & bye" in out_path.read_bytes().decode("utf-8-sig")

    def test_export_without_saved_grid(self, workspace, capsys):
        tmp_path, config, _ = workspace
        assert cli.main(["-c", config, "export", "-o", str(tmp_path / "x.xlsx")]) == cli.EXIT_ERROR
        assert "[ERROR]" in capsys.readouterr().out

    def test_analyze_report(self, workspace, capsys):
        tmp_path, config, source = workspace
        report_path = tmp_path / "report.json"
        assert cli.main(["-c", config, "analyze", "-i", source, "-r", str(report_path)]) == cli.EXIT_OK
        report = json.loads(report_path.read_text(encoding="utf-8"))
        quality = report["dataset_quality"]
        assert quality["total_records"] == 2
        assert quality["questions_with_missing_variants"] == 1

    def test_translate_without_llm_keeps_source(self, workspace, capsys):
        tmp_path, config, source = workspace
        out_path = tmp_path / "questions_ru.csv"
        code = cli.main(["-c", config, "translate", "-i", source, "-o", str(out_path), "-l", "ru"])
        assert code == cli.EXIT_OK
        assert "What is a grid?" in out_path.read_bytes().decode("utf-8-sig")
        assert "[DONE]" in capsys.readouterr().out

    def test_translate_invalid_language(self, workspace, capsys):
        tmp_path, config, source = workspace
        code = cli.main(["-c", config, "translate", "-i", source,
                         "-o", str(tmp_path / "x.csv"), "-l", "not a language"])
        assert code == cli.EXIT_ERROR
        assert "[ERROR]" in capsys.readouterr().out

    def test_missing_input(self, workspace, capsys):
        tmp_path, config, _ = workspace
        code = cli.main(["-c", config, "ingest", "-i", str(tmp_path / "missing.csv")])
        assert code == cli.EXIT_ERROR

    def test_cache_stats(self, workspace, capsys):
        _, config, _ = workspace
        assert cli.main(["-c", config, "cache", "stats"]) == cli.EXIT_OK
        stats = json.loads(capsys.readouterr().out)
        assert stats["entry_count"] == 0

    def test_ping(self, monkeypatch, capsys):
        monkeypatch.setattr(cli, "ping", lambda model=None: LLMResult(
            text="pong", latency_ms=12, model="gpt-4o"))
        assert cli.main(["ping"]) == cli.EXIT_OK
        assert "gpt-4o replied in 12ms" in capsys.readouterr().out

    def test_ping_failure(self, monkeypatch, capsys):
        def failing(model=None):
            raise LLMError("config", "LLM_BASE_URL is not set")
        monkeypatch.setattr(cli, "ping", failing)
        assert cli.main(["ping"]) == cli.EXIT_ERROR
