from __future__ import annotations

import json
from pathlib import Path

import pytest
import structlog
from typer.testing import CliRunner

from labormatch.cli import app

OBGYN_JOB = {
    "job_id": "J-OB",
    "title": "OB/GYN Physician Reviewer",
    "fields": {
        "Requirements_Additional": "Must hold an MD and have completed residency in obstetrics; 5+ years of clinical experience",
        "Data_SubjectMatter": "Obstetrics and Gynecology",
        "LabelTypes": ["Text classification"],
        "AvailableCountries": ["United States"],
    },
}


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setenv("LABORMATCH_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}")


def write_json(path: Path, payload: object) -> None:
    path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")


def test_score_ranks_precomputed_similarities(tmp_path: Path, runner: CliRunner) -> None:
    candidates = tmp_path / "candidates.json"
    write_json(
        candidates,
        [
            {"user_id": "U-2", "domain_score": 0.2, "task_score": 0.1},
            {"user_id": "U-1", "domain_score": 0.9, "task_score": 0.6},
        ],
    )

    result = runner.invoke(app, ["score", str(candidates), "--job-class", "specialized"])

    assert result.exit_code == 0, result.output
    report = json.loads(result.stdout)
    assert report["threshold"] == pytest.approx(0.5)
    assert report["count_gte_threshold"] == 1
    assert [row["user_id"] for row in report["results"]] == ["U-1", "U-2"]
    assert report["results"][0]["final_score"] == pytest.approx(0.855)
    assert report["results"][0]["rank"] == 1


def test_score_applies_small_pool_leniency(tmp_path: Path, runner: CliRunner) -> None:
    candidates = tmp_path / "candidates.json"
    write_json(candidates, [{"user_id": "U-1", "domain_score": 0.4, "task_score": 0.4}])

    result = runner.invoke(app, ["score", str(candidates), "--job-class", "generic", "--pool-size", "10"])

    assert result.exit_code == 0, result.output
    report = json.loads(result.stdout)
    assert report["threshold"] == pytest.approx(0.21)
    assert report["count_gte_threshold"] == 1


def test_score_rejects_unknown_job_class(tmp_path: Path, runner: CliRunner) -> None:
    candidates = tmp_path / "candidates.json"
    write_json(candidates, [])

    result = runner.invoke(app, ["score", str(candidates), "--job-class", "premium"])

    assert result.exit_code != 0


def test_classify_job_offline(tmp_path: Path, runner: CliRunner) -> None:
    job = tmp_path / "job.json"
    write_json(job, OBGYN_JOB)

    result = runner.invoke(app, ["classify-job", str(job), "--offline"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["job_class"] == "specialized"
    assert payload["requirements"]["credentials"] == ["MD"]
    assert payload["requirements"]["countries"] == ["US"]


def test_classify_job_reports_invalid_record(tmp_path: Path, runner: CliRunner) -> None:
    job = tmp_path / "job.json"
    write_json(job, {"title": "No id"})

    result = runner.invoke(app, ["classify-job", str(job), "--offline"])

    assert result.exit_code == 1
    assert "job_id is required" in result.stdout


def test_extract_evidence_domain_and_labeling(tmp_path: Path, runner: CliRunner) -> None:
    source = tmp_path / "source.txt"
    source.write_text("Must hold an MD. Drew bounding boxes in Labelbox for HIPAA cardiology scans.", encoding="utf-8")

    domain = runner.invoke(app, ["extract-evidence", str(source)])
    labeling = runner.invoke(app, ["extract-evidence", str(source), "--kind", "labeling"])

    assert domain.exit_code == 0, domain.output
    assert "MD" in json.loads(domain.stdout)["tokens"]
    assert labeling.exit_code == 0, labeling.output
    assert "bounding box" in json.loads(labeling.stdout)["phrases"]


def test_extract_evidence_text_rendering_reads_back(tmp_path: Path, runner: CliRunner) -> None:
    source = tmp_path / "source.txt"
    source.write_text("Review Spanish medical content. Must hold an MD.", encoding="utf-8")

    first = runner.invoke(app, ["extract-evidence", str(source), "--as-text"])
    rendered = tmp_path / "rendered.txt"
    rendered.write_text(first.stdout, encoding="utf-8")
    second = runner.invoke(app, ["extract-evidence", str(rendered), "--as-text"])

    assert first.exit_code == 0, first.output
    assert first.stdout.startswith("Evidence tokens: ")
    assert "spanish" in first.stdout
    assert second.stdout == first.stdout


def test_tracker_commands_share_database(runner: CliRunner) -> None:
    init = runner.invoke(app, ["init-db"])
    synced = runner.invoke(app, ["sync-jobs", "J-1", "J-2"])
    summary = runner.invoke(app, ["summary"])

    assert init.exit_code == 0, init.output
    assert "Database initialized." in init.stdout
    assert synced.exit_code == 0, synced.output
    assert json.loads(synced.stdout)["created"] == 2
    assert summary.exit_code == 0, summary.output
    assert json.loads(summary.stdout)["active_jobs"] == 2


def test_init_db_reports_unreachable_database(
    tmp_path: Path, runner: CliRunner, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("LABORMATCH_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'cli.db'}")

    result = runner.invoke(app, ["init-db"])

    assert result.exit_code == 1
    assert json.loads(result.stdout)["error"]["code"] == "PERSISTENCE_ERROR"


def test_console_logs_switch_renderer(runner: CliRunner) -> None:
    plain = runner.invoke(app, ["init-db", "--console-logs"])
    console_renderer = structlog.get_config()["processors"][-1]
    default = runner.invoke(app, ["init-db"])
    json_renderer = structlog.get_config()["processors"][-1]

    assert plain.exit_code == 0, plain.output
    assert default.exit_code == 0, default.output
    assert isinstance(console_renderer, structlog.dev.ConsoleRenderer)
    assert isinstance(json_renderer, structlog.processors.JSONRenderer)
