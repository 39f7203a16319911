"""Typer CLI entrypoint for the matching pipeline."""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Any, List, Optional

import typer
import yaml
from pydantic import ValidationError

from .container import create_container
from .core.validation import DomainCapsuleValidator
from .errors import MatchingError, to_error_response
from .logging import configure_logging
from .schemas import NormalizedJobPosting, NormalizedUserProfile
from .schemas.config import load_config
from .storage import init_models

app = typer.Typer(help="Labor-marketplace matching CLI.")

ConfigOption = typer.Option(None, exists=True, readable=True, dir_okay=False, help="YAML config path.")
LogLevelOption = typer.Option("WARNING", help="Log level for structured logging.")
ConsoleLogsOption = typer.Option(False, "--console-logs", help="Render logs for a terminal instead of JSON.")


def _load_settings(config: Path | None) -> dict[str, Any]:
    settings: dict[str, Any] = {}
    if config:
        with config.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
            if not isinstance(loaded, dict):
                raise typer.BadParameter("Config file must be a YAML object", param_name="config")
        try:
            settings = load_config(loaded).to_settings()
        except ValidationError as exc:
            raise typer.BadParameter(str(exc), param_name="config") from exc
    core = settings.setdefault("core", {})
    if os.environ.get("OPENAI_API_KEY"):
        core.setdefault("openai_api_key", os.environ["OPENAI_API_KEY"])
    if os.environ.get("LABORMATCH_DATABASE_URL"):
        settings.setdefault("database", {}).setdefault("url", os.environ["LABORMATCH_DATABASE_URL"])
    return settings


def _build(config: Path | None, log_level: str, console_logs: bool = False):
    configure_logging(log_level, json_output=not console_logs)
    return create_container(settings=_load_settings(config))


def _read_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def _read_jsonl(path: Path) -> list[dict[str, Any]]:
    records: list[dict[str, Any]] = []
    with path.open("r", encoding="utf-8") as handle:
        for line in handle:
            line = line.strip()
            if line:
                records.append(json.loads(line))
    return records


def _echo(payload: Any) -> None:
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def _run(coro) -> Any:
    try:
        return asyncio.run(coro)
    except MatchingError as exc:
        _echo(to_error_response(exc))
        raise typer.Exit(code=1) from exc


def _run_db(container, work) -> Any:
    async def run():
        try:
            return await work
        finally:
            await container.engine().dispose()

    return _run(run())


def _normalize(model, raw: Any):
    try:
        return model.from_record(raw)
    except MatchingError as exc:
        _echo(to_error_response(exc))
        raise typer.Exit(code=1) from exc


@app.command("classify-job")
def classify_job(
    job: Path = typer.Argument(..., exists=True, readable=True, dir_okay=False, help="Job posting JSON path."),
    offline: bool = typer.Option(False, help="Use the rule-based classifier only."),
    config: Optional[Path] = ConfigOption,
    log_level: str = LogLevelOption,
    console_logs: bool = ConsoleLogsOption,
) -> None:
    """Classify a job posting as specialized or generic."""
    container = _build(config, log_level, console_logs)
    posting = _normalize(NormalizedJobPosting, _read_json(job))
    classifier = container.heuristic_job_classifier() if offline else container.job_classifier()
    result = _run(classifier.classify(posting))
    _echo(result.model_dump(mode="json"))


@app.command("classify-user")
def classify_user(
    profile: Path = typer.Argument(..., exists=True, readable=True, dir_okay=False, help="User profile JSON path."),
    offline: bool = typer.Option(False, help="Use the rule-based classifier only."),
    config: Optional[Path] = ConfigOption,
    log_level: str = LogLevelOption,
    console_logs: bool = ConsoleLogsOption,
) -> None:
    """Classify a user as domain expert, general labeler or mixed."""
    container = _build(config, log_level, console_logs)
    user = _normalize(NormalizedUserProfile, _read_json(profile))
    classifier = container.heuristic_user_classifier() if offline else container.user_classifier()
    result = _run(classifier.classify(user))
    _echo({**result.model_dump(mode="json"), "expertise_tier": result.expertise_tier})


@app.command("extract-evidence")
def extract_evidence(
    source: Path = typer.Argument(..., exists=True, readable=True, dir_okay=False, help="Plain text path."),
    kind: str = typer.Option("domain", help="Evidence kind: domain or labeling."),
    as_text: bool = typer.Option(False, "--as-text", help="Print the two-line text rendering instead of JSON."),
    config: Optional[Path] = ConfigOption,
    log_level: str = LogLevelOption,
    console_logs: bool = ConsoleLogsOption,
) -> None:
    """Print the evidence tokens and phrases found in a text file."""
    if kind not in ("domain", "labeling"):
        raise typer.BadParameter("kind must be 'domain' or 'labeling'", param_name="kind")
    container = _build(config, log_level, console_logs)
    extractor = container.domain_evidence() if kind == "domain" else container.labeling_evidence()
    evidence = extractor.extract(source.read_text(encoding="utf-8"))
    if as_text:
        typer.echo(evidence.to_text())
        return
    _echo(evidence.model_dump(mode="json"))


@app.command("validate-capsule")
def validate_capsule(
    capsule: Path = typer.Argument(..., exists=True, readable=True, dir_okay=False, help="Capsule text path."),
    kind: str = typer.Option("task", help="Capsule kind: task or domain."),
    evidence_source: Optional[Path] = typer.Option(
        None, "--evidence-source", exists=True, readable=True, dir_okay=False, help="Text the task evidence comes from."
    ),
    config: Optional[Path] = ConfigOption,
    log_level: str = LogLevelOption,
    console_logs: bool = ConsoleLogsOption,
) -> None:
    """Validate a task capsule against labeling evidence or normalize a domain capsule offline."""
    container = _build(config, log_level, console_logs)
    text = capsule.read_text(encoding="utf-8")
    if kind == "task":
        source = evidence_source.read_text(encoding="utf-8") if evidence_source else ""
        evidence = container.labeling_evidence().extract(source)
        result = container.task_validator().validate(text, evidence)
    elif kind == "domain":
        result = _run(DomainCapsuleValidator().validate(text))
    else:
        raise typer.BadParameter("kind must be 'task' or 'domain'", param_name="kind")
    _echo({"text": result.text, "accepted": result.accepted, "violations": list(result.violations)})


@app.command()
def score(
    candidates: Path = typer.Argument(
        ..., exists=True, readable=True, dir_okay=False, help="JSON list of {user_id, domain_score, task_score}."
    ),
    job_class: str = typer.Option("generic", help="specialized or generic."),
    tier: Optional[str] = typer.Option(None, help="Expertise tier for per-tier thresholds."),
    pool_size: Optional[int] = typer.Option(None, help="Candidate pool size for small-pool leniency."),
    config: Optional[Path] = ConfigOption,
    log_level: str = LogLevelOption,
    console_logs: bool = ConsoleLogsOption,
) -> None:
    """Score precomputed similarities and rank them."""
    if job_class not in ("specialized", "generic"):
        raise typer.BadParameter("job-class must be 'specialized' or 'generic'", param_name="job_class")
    container = _build(config, log_level, console_logs)
    rows = _read_json(candidates)
    triples = [(str(row["user_id"]), float(row["domain_score"]), float(row["task_score"])) for row in rows]
    threshold = container.thresholds().resolve(job_class, tier, pool_size=pool_size)
    report = container.scoring().score_matches(job_class, triples, threshold=threshold)
    _echo(report.model_dump(mode="json"))


@app.command()
def notify(
    job: Path = typer.Argument(..., exists=True, readable=True, dir_okay=False, help="Job posting JSON path."),
    users: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="User profiles JSONL path."),
    max_notifications: Optional[int] = typer.Option(None, help="Cap on users to notify."),
    mark_notified: bool = typer.Option(False, help="Stamp notified users in the tracker."),
    config: Optional[Path] = ConfigOption,
    log_level: str = LogLevelOption,
    console_logs: bool = ConsoleLogsOption,
) -> None:
    """Index user profiles, then find who should hear about a job."""
    container = _build(config, log_level, console_logs)
    pipeline = container.pipeline()

    async def work():
        await init_models(container.engine())
        for record in _read_jsonl(users):
            await pipeline.upsert_user(record)
        return await pipeline.notify(
            _read_json(job), max_notifications=max_notifications, mark_notified=mark_notified
        )

    outcome = _run_db(container, work())
    _echo(outcome.to_dict())


@app.command("init-db")
def init_db(
    config: Optional[Path] = ConfigOption,
    log_level: str = LogLevelOption,
    console_logs: bool = ConsoleLogsOption,
) -> None:
    """Create the qualification tables."""
    container = _build(config, log_level, console_logs)
    _run_db(container, init_models(container.engine()))
    typer.echo("Database initialized.")


@app.command("sync-jobs")
def sync_jobs(
    job_ids: List[str] = typer.Argument(..., help="Job ids that are currently active."),
    config: Optional[Path] = ConfigOption,
    log_level: str = LogLevelOption,
    console_logs: bool = ConsoleLogsOption,
) -> None:
    """Mark the listed jobs active and every other known job inactive."""
    container = _build(config, log_level, console_logs)
    summary = _run_db(container, container.tracker().sync_active_jobs(job_ids))
    _echo(summary.model_dump(mode="json"))


@app.command()
def pending(
    limit: int = typer.Option(100, help="Page size."),
    offset: int = typer.Option(0, help="Page offset."),
    config: Optional[Path] = ConfigOption,
    log_level: str = LogLevelOption,
    console_logs: bool = ConsoleLogsOption,
) -> None:
    """List qualified users on active jobs who have not been notified."""
    container = _build(config, log_level, console_logs)
    page = _run_db(container, container.tracker().get_all_pending_notifications(limit=limit, offset=offset))
    _echo(page.model_dump(mode="json"))


@app.command()
def summary(
    config: Optional[Path] = ConfigOption,
    log_level: str = LogLevelOption,
    console_logs: bool = ConsoleLogsOption,
) -> None:
    """Print qualification counters."""
    container = _build(config, log_level, console_logs)
    result = _run_db(container, container.tracker().get_qualification_summary())
    _echo(result.model_dump(mode="json"))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
