"""Tests for CLI commands."""

import pytest
from typer.testing import CliRunner
from architecta.cli import app

from fakes import FakeAgent, plan_reply, questions_reply, template_reply

runner = CliRunner()

TASKS = [
    {"id": 1, "title": "Add logout button", "description": "Header button",
     "acceptanceCriteria": ["Button visible in header"]},
]


@pytest.fixture
def scripted(tmp_project, monkeypatch):
    """Run in tmp_project with every agent replaced by one FakeAgent."""
    agent = FakeAgent()
    monkeypatch.chdir(tmp_project)
    monkeypatch.setattr("architecta.orchestrator.create_agent", lambda settings, config: agent)
    return agent


def test_init_creates_structure(tmp_path, monkeypatch):
    """architecta init creates .architecta/ + config.yaml + .gitignore."""
    monkeypatch.chdir(tmp_path)
    result = runner.invoke(app, ["init"])
    assert result.exit_code == 0
    assert (tmp_path / ".architecta" / "config.yaml").exists()
    assert (tmp_path / ".architecta" / "local.config.yaml").exists()
    gitignore = (tmp_path / ".gitignore").read_text()
    assert ".architecta/local.config.yaml" in gitignore
    assert ".architecta/state.db" in gitignore


def test_init_idempotent(tmp_path, monkeypatch):
    """Repeated init does not overwrite existing config."""
    monkeypatch.chdir(tmp_path)
    runner.invoke(app, ["init"])
    (tmp_path / ".architecta" / "config.yaml").write_text("custom: true")
    runner.invoke(app, ["init"])
    assert "custom: true" in (tmp_path / ".architecta" / "config.yaml").read_text()
    assert (tmp_path / ".gitignore").read_text().count("# architecta") == 1


def test_status_empty_project(tmp_project, monkeypatch):
    monkeypatch.chdir(tmp_project)
    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0
    assert "No workflows found" in result.output


def test_new_sets_current(tmp_project, monkeypatch):
    monkeypatch.chdir(tmp_project)
    result = runner.invoke(app, ["new"])
    assert result.exit_code == 0
    current = (tmp_project / ".architecta" / "current").read_text().strip()
    assert current.startswith("wfl_")

    result = runner.invoke(app, ["status"])
    assert current in result.output
    assert "Phase: idle" in result.output


def test_config_show(tmp_project, monkeypatch):
    monkeypatch.chdir(tmp_project)
    result = runner.invoke(app, ["config"])
    assert result.exit_code == 0
    assert "max_text_retries: 2" in result.output
    assert "gpt-4o" in result.output


def test_answer_rejects_bad_pair(tmp_project, monkeypatch):
    monkeypatch.chdir(tmp_project)
    result = runner.invoke(app, ["answer", "placement"])
    assert result.exit_code == 1
    assert "QUESTION_ID=VALUE" in result.output


def test_command_without_workflow(tmp_project, monkeypatch):
    monkeypatch.chdir(tmp_project)
    result = runner.invoke(app, ["accept"])
    assert result.exit_code == 1
    assert "No workflow selected" in result.output


def test_review_needs_one_target(tmp_project, monkeypatch):
    monkeypatch.chdir(tmp_project)
    result = runner.invoke(app, ["review", "--pr", "acme/web#1", "--branch", "feature"])
    assert result.exit_code == 1


def test_plan_then_approve(scripted, tmp_project):
    scripted.queue(plan_reply("Add logout", TASKS))
    result = runner.invoke(app, ["plan", "Add a logout control"])
    assert result.exit_code == 0, result.output
    assert "Plan: Add logout" in result.output
    assert "Add logout button" in result.output

    out = tmp_project / "plan.md"
    result = runner.invoke(app, ["approve", "--out", str(out)])
    assert result.exit_code == 0, result.output
    assert "- [ ] Button visible in header" in out.read_text()


def test_negotiation_commands(scripted):
    scripted.queue(
        questions_reply(("placement", "Where should logout go?", ["header", "settings"])),
        template_reply(),
        plan_reply("Add logout", TASKS),
    )
    result = runner.invoke(app, ["plan", "Add a logout control"])
    assert result.exit_code == 0, result.output
    assert "[placement] Where should logout go?" in result.output
    assert "header: Header" in result.output

    result = runner.invoke(app, ["answer", "placement=header"])
    assert result.exit_code == 0, result.output
    assert "Proposed playbook: New Feature" in result.output

    result = runner.invoke(app, ["accept"])
    assert result.exit_code == 0, result.output
    assert "Plan: Add logout" in result.output

    result = runner.invoke(app, ["logs"])
    assert "plan_ready" in result.output


def test_error_reported(scripted):
    scripted.queue(plan_reply("Add logout", TASKS))
    runner.invoke(app, ["plan", "Add a logout control"])

    result = runner.invoke(app, ["accept"])
    assert result.exit_code == 1
    assert "Error:" in result.output


def test_review_and_route(scripted, tmp_project):
    scripted.queue(plan_reply("Add logout", TASKS))
    scripted.review = (
        "**Confidence Score:** 95\n**Recommendation:** APPROVE\n\n"
        "| Button visible in header | ✅ PASS | Header.tsx:12 |\n"
    )
    runner.invoke(app, ["plan", "Add a logout control"])
    diff = tmp_project / "change.diff"
    diff.write_text("+<LogoutButton />\n")

    result = runner.invoke(app, ["review", "--pr", "acme/web#42", "--diff-file", str(diff)])
    assert result.exit_code == 0, result.output
    assert "Confidence: 95% (high)" in result.output
    assert "+<LogoutButton />" in scripted.prompts[-1]

    result = runner.invoke(app, ["route"])
    assert "human_review" in result.output
