"""architecta CLI — typer-based command interface."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import typer

from .config import CONFIG_DIR
from .errors import ArchitectaError

app = typer.Typer(
    name="architecta",
    help="architecta — negotiate a plan with an agent, then review the work against it",
    no_args_is_help=True,
)

# -------------------------------------------------------------------
# Templates
# -------------------------------------------------------------------

DEFAULT_CONFIG_TEMPLATE = """\
# .architecta/config.yaml — team-shared configuration
# work_dir defaults to the project root
agent:
  provider: anthropic
  model: claude-sonnet-4-5
  max_tokens: 4096
  timeout_sec: 120

# reviewer falls back to agent when provider is empty
reviewer:
  provider: ""

workflow:
  max_iterations: 3
  auto_approve_high_confidence: false
  max_text_retries: 3
  confidence_thresholds:
    high: 90
    medium: 70

notify:
  webhook_url: ""
  events:
    - plan_ready
    - review_ready
    - error
"""

DEFAULT_LOCAL_CONFIG_TEMPLATE = """\
# .architecta/local.config.yaml — personal overrides (DO NOT commit)
# providers:
#   anthropic:
#     api_key: sk-ant-xxx
#   openai:
#     api_key: sk-xxx
#   deepseek:
#     api_key: sk-xxx
"""

GITIGNORE_ENTRIES = [
    ".architecta/local.config.yaml",
    ".architecta/current",
    ".architecta/state.db",
    ".architecta/state.db-wal",
    ".architecta/state.db-shm",
]

WORKFLOW_OPTION = typer.Option(
    None, "--workflow", "-w", help="Workflow id (defaults to the last created one)"
)


# -------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------

def _get_project_root() -> Path:
    return Path.cwd()


def _run_async(coro):
    """Run an async coroutine from sync context."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None
    if loop and loop.is_running():
        import concurrent.futures
        with concurrent.futures.ThreadPoolExecutor() as pool:
            return pool.submit(asyncio.run, coro).result()
    return asyncio.run(coro)


async def _get_db(project_root: Path):
    from .db import Database
    db_path = project_root / CONFIG_DIR / "state.db"
    db_path.parent.mkdir(parents=True, exist_ok=True)
    db = Database(str(db_path))
    await db.init()
    return db


def _current_path(root: Path) -> Path:
    return root / CONFIG_DIR / "current"


def _read_current(root: Path) -> str | None:
    path = _current_path(root)
    if path.exists():
        return path.read_text().strip() or None
    return None


def _write_current(root: Path, workflow_id: str) -> None:
    path = _current_path(root)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(workflow_id + "\n")


def _with_orchestrator(fn):
    """Open config, database and orchestrator, run ``fn(orch, root)``, clean up.

    Architecta errors are reported on stderr with exit code 1.
    """
    root = _get_project_root()

    async def _main():
        from .config import load_config
        from .orchestrator import Orchestrator
        from .store import WorkflowStore

        config = load_config(root)
        db = await _get_db(root)
        orch = Orchestrator(config, WorkflowStore(db))
        try:
            return await fn(orch, root)
        finally:
            await orch.close()
            await db.close()

    try:
        return _run_async(_main())
    except ArchitectaError as exc:
        typer.echo(f"  Error: {exc}", err=True)
        raise typer.Exit(1)


def _resolve(root: Path, workflow: str | None) -> str:
    workflow_id = workflow or _read_current(root)
    if not workflow_id:
        typer.echo("  No workflow selected. Run `architecta new` or pass --workflow.", err=True)
        raise typer.Exit(1)
    return workflow_id


async def _show_outcome(orch, workflow_id: str, plan) -> None:
    if plan is not None:
        _show_plan(plan)
        typer.echo("\n  Run `architecta approve` to hand it off, or `architecta refine FEEDBACK`.")
        return

    from .conversation import AwaitingAnswers, AwaitingTemplateDecision

    pending = await orch.pending_call(workflow_id)
    if isinstance(pending, AwaitingAnswers):
        typer.echo("\n  The agent has questions:")
        for q in pending.questions:
            multi = " (multiple allowed)" if q.allow_multiple else ""
            typer.echo(f"\n  [{q.id}] {q.question}{multi}")
            for opt in q.options:
                desc = f" — {opt.description}" if opt.description else ""
                typer.echo(f"      {opt.value}: {opt.label}{desc}")
        typer.echo("\n  Answer with `architecta answer ID=VALUE ...`.")
    elif isinstance(pending, AwaitingTemplateDecision):
        t = pending.template
        typer.echo(f"\n  Proposed playbook: {t.name} ({t.type.value})")
        if t.description:
            typer.echo(f"  {t.description}")
        if t.reasoning:
            typer.echo(f"  Why: {t.reasoning}")
        typer.echo("\n  Run `architecta accept` or `architecta reject FEEDBACK`.")


def _show_plan(plan) -> None:
    typer.echo(f"\n  Plan: {plan.title}")
    typer.echo(f"  Playbook: {plan.template.name} · Flow: {' → '.join(plan.flow)}")
    typer.echo("  " + "─" * 50)
    for task in plan.tasks:
        role = "MUST DO" if task.human_role.value == "must_do" else "verify"
        deps = f" (after {', '.join(str(d) for d in task.depends_on)})" if task.depends_on else ""
        typer.echo(
            f"  {task.id:>3}. {task.title:<40} risk={task.risk.value:<6} [{role}]{deps}"
        )


# -------------------------------------------------------------------
# Commands
# -------------------------------------------------------------------

@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


@app.command()
def init():
    """Initialize architecta in the current project."""
    root = _get_project_root()

    config_dir = root / CONFIG_DIR
    config_dir.mkdir(exist_ok=True)

    config_path = config_dir / "config.yaml"
    if not config_path.exists():
        config_path.write_text(DEFAULT_CONFIG_TEMPLATE)
        typer.echo(f"  Created {config_path.relative_to(root)}")
    else:
        typer.echo(f"  Exists  {config_path.relative_to(root)}")

    local_path = config_dir / "local.config.yaml"
    if not local_path.exists():
        local_path.write_text(DEFAULT_LOCAL_CONFIG_TEMPLATE)
        typer.echo(f"  Created {local_path.relative_to(root)}")

    gitignore_path = root / ".gitignore"
    existing = ""
    if gitignore_path.exists():
        existing = gitignore_path.read_text()
    additions = [e for e in GITIGNORE_ENTRIES if e not in existing]
    if additions:
        with open(gitignore_path, "a") as f:
            if existing and not existing.endswith("\n"):
                f.write("\n")
            f.write("# architecta\n")
            for entry in additions:
                f.write(f"{entry}\n")
        typer.echo("  Updated .gitignore")

    typer.echo("\n  architecta initialized. Run `architecta plan REQUIREMENT` to start.")


@app.command()
def new():
    """Create a workflow and make it current."""
    async def _new(orch, root):
        wf = await orch.create_workflow()
        _write_current(root, wf.id)
        typer.echo(f"  Created {wf.id}")

    _with_orchestrator(_new)


@app.command()
def plan(
    requirement: str = typer.Argument(..., help="What should be built"),
    workflow: str = WORKFLOW_OPTION,
):
    """Submit a requirement and start negotiating a plan."""
    async def _plan(orch, root):
        from .models import Phase

        workflow_id = workflow or _read_current(root)
        if workflow_id is None or (
            workflow is None and (await orch.get_workflow(workflow_id)).phase is not Phase.IDLE
        ):
            workflow_id = (await orch.create_workflow()).id
            _write_current(root, workflow_id)
            typer.echo(f"  Created {workflow_id}")
        result = await orch.submit_requirement(workflow_id, requirement)
        await _show_outcome(orch, workflow_id, result)

    _with_orchestrator(_plan)


@app.command()
def answer(
    pairs: list[str] = typer.Argument(..., help="Answers as QUESTION_ID=VALUE"),
    workflow: str = WORKFLOW_OPTION,
):
    """Answer the agent's clarifying questions."""
    answers: dict[str, list[str]] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            typer.echo(f"  Invalid answer '{pair}', expected QUESTION_ID=VALUE", err=True)
            raise typer.Exit(1)
        answers.setdefault(key.strip(), []).append(value.strip())

    async def _answer(orch, root):
        workflow_id = _resolve(root, workflow)
        flat = {k: v[0] if len(v) == 1 else v for k, v in answers.items()}
        result = await orch.answer_questions(workflow_id, flat)
        await _show_outcome(orch, workflow_id, result)

    _with_orchestrator(_answer)


@app.command()
def accept(workflow: str = WORKFLOW_OPTION):
    """Accept the proposed playbook."""
    async def _accept(orch, root):
        workflow_id = _resolve(root, workflow)
        result = await orch.accept_template(workflow_id)
        await _show_outcome(orch, workflow_id, result)

    _with_orchestrator(_accept)


@app.command()
def reject(
    feedback: str = typer.Argument(..., help="Why the playbook does not fit"),
    workflow: str = WORKFLOW_OPTION,
):
    """Reject the proposed playbook."""
    async def _reject(orch, root):
        workflow_id = _resolve(root, workflow)
        result = await orch.reject_template(workflow_id, feedback)
        await _show_outcome(orch, workflow_id, result)

    _with_orchestrator(_reject)


@app.command()
def refine(
    feedback: str = typer.Argument(..., help="What to change in the plan"),
    workflow: str = WORKFLOW_OPTION,
):
    """Ask the agent to revise the current plan."""
    async def _refine(orch, root):
        workflow_id = _resolve(root, workflow)
        result = await orch.refine_plan(workflow_id, feedback)
        await _show_outcome(orch, workflow_id, result)

    _with_orchestrator(_refine)


@app.command()
def approve(
    out: Path = typer.Option(None, "--out", "-o", help="Write the plan document here"),
    workflow: str = WORKFLOW_OPTION,
):
    """Approve the plan and print (or write) the plan document."""
    async def _approve(orch, root):
        workflow_id = _resolve(root, workflow)
        document = await orch.approve_plan(workflow_id)
        if out:
            out.write_text(document, encoding="utf-8")
            typer.echo(f"  ✅ Plan approved, written to {out}")
        else:
            typer.echo(document)

    _with_orchestrator(_approve)


@app.command()
def review(
    pr: str = typer.Option(None, "--pr", help="Pull request URL"),
    branch: str = typer.Option(None, "--branch", help="Branch name"),
    local: Path = typer.Option(None, "--local", help="Path with local changes"),
    diff_file: Path = typer.Option(None, "--diff-file", help="Read the diff from this file"),
    base: str = typer.Option("main", "--base", help="Base branch for branch diffs"),
    workflow: str = WORKFLOW_OPTION,
):
    """Review an implementation against the plan."""
    chosen = [v for v in (pr, branch, local) if v]
    if len(chosen) != 1:
        typer.echo("  Pass exactly one of --pr, --branch or --local.", err=True)
        raise typer.Exit(1)

    async def _review(orch, root):
        from . import git_ops
        from .models import Implementation, ImplementationKind

        workflow_id = _resolve(root, workflow)
        diff = diff_file.read_text(encoding="utf-8") if diff_file else None
        files: list[str] = []
        if pr:
            impl = Implementation(ImplementationKind.PR, pr, diff=diff)
        elif branch:
            if diff is None:
                diff = await git_ops.get_diff_from_base(root, base, branch)
            files = await git_ops.get_branch_files(root, base, branch)
            impl = Implementation(ImplementationKind.BRANCH, branch, diff=diff or None, files=files)
        else:
            path = local.resolve()
            if diff is None:
                diff = await git_ops.get_local_diff(path)
            files = await git_ops.get_changed_files(path)
            impl = Implementation(ImplementationKind.LOCAL, str(path), diff=diff or None, files=files)

        result = await orch.submit_review(workflow_id, impl)
        typer.echo(f"\n  Confidence: {result.confidence}% ({result.confidence_level.value})")
        typer.echo(f"  Recommendation: {result.recommended_action.type.value}")
        for c in result.criteria_results:
            mark = "✅" if c.passed else "❌"
            typer.echo(f"    {mark} [{c.task_id}] {c.criterion}")
        if result.issues:
            typer.echo("\n  Issues:")
            for issue in result.issues:
                typer.echo(f"    - {issue}")
        if result.summary:
            typer.echo(f"\n  {result.summary}")
        decision = await orch.route_decision(workflow_id, result)
        typer.echo(f"\n  Route: {decision.action.value} — {decision.reason}")

    _with_orchestrator(_review)


@app.command()
def route(workflow: str = WORKFLOW_OPTION):
    """Show the routing decision for the latest review."""
    async def _route(orch, root):
        workflow_id = _resolve(root, workflow)
        decision = await orch.route_decision(workflow_id)
        typer.echo(f"  {decision.action.value}: {decision.reason}")
        for item in decision.feedback:
            typer.echo(f"    - {item}")

    _with_orchestrator(_route)


@app.command()
def iterate(
    feedback: str = typer.Argument("", help="Extra feedback for the revision"),
    workflow: str = WORKFLOW_OPTION,
):
    """Send the latest review back into planning."""
    async def _iterate(orch, root):
        workflow_id = _resolve(root, workflow)
        result = await orch.iterate(workflow_id, feedback)
        await _show_outcome(orch, workflow_id, result)

    _with_orchestrator(_iterate)


@app.command()
def complete(workflow: str = WORKFLOW_OPTION):
    """Mark the reviewed workflow complete."""
    async def _complete(orch, root):
        wf = await orch.complete(_resolve(root, workflow))
        typer.echo(f"  ✅ {wf.id} complete.")

    _with_orchestrator(_complete)


@app.command()
def reset(workflow: str = WORKFLOW_OPTION):
    """Start the workflow over from idle."""
    async def _reset(orch, root):
        wf = await orch.reset(_resolve(root, workflow))
        typer.echo(f"  🔄 {wf.id} reset to idle.")

    _with_orchestrator(_reset)


@app.command()
def discard(workflow: str = WORKFLOW_OPTION):
    """Abandon the workflow's conversation."""
    async def _discard(orch, root):
        workflow_id = _resolve(root, workflow)
        await orch.discard(workflow_id)
        typer.echo(f"  ⏭️  {workflow_id} conversation discarded.")

    _with_orchestrator(_discard)


@app.command()
def status(workflow_id: str = typer.Argument(None, help="Show details for a specific workflow")):
    """Show status overview."""
    async def _status(orch, root):
        from .state import state_summary

        target = workflow_id or _read_current(root)
        if target:
            wf = await orch.get_workflow(target)
            typer.echo("")
            for line in state_summary(wf).splitlines():
                typer.echo(f"  {line}")
            pending = await orch.pending_call(target)
            if pending is not None:
                typer.echo(f"  Waiting for: {type(pending).__name__}")
            return

        workflows = await orch.list_workflows()
        if not workflows:
            typer.echo("  No workflows found.")
            return
        typer.echo("\n  architecta — Status Overview")
        typer.echo("  " + "─" * 50)
        for wf in workflows:
            title = wf.plan.title if wf.plan else "—"
            typer.echo(f"  {wf.id}  {wf.phase.value:<10} {title}")

    _with_orchestrator(_status)


@app.command()
def logs(workflow_id: str = typer.Argument(None, help="Workflow ID")):
    """Show the event log."""
    async def _logs(orch, root):
        target = _resolve(root, workflow_id)
        entries = await orch.store.db.get_logs(target)
        if not entries:
            typer.echo(f"  No logs for '{target}'.")
            return
        typer.echo(f"\n  Logs — {target}")
        typer.echo("  " + "─" * 50)
        for entry in entries:
            typer.echo(f"  [{entry['created_at']}] {entry['event']}")
            if entry.get("detail"):
                typer.echo(f"    {json.dumps(entry['detail'], ensure_ascii=False)}")

    _with_orchestrator(_logs)


@app.command("config")
def config_show():
    """Show merged configuration."""
    root = _get_project_root()

    from .config import load_config
    import yaml

    try:
        config = load_config(root)
    except ArchitectaError as exc:
        typer.echo(f"  Error: {exc}", err=True)
        raise typer.Exit(1)

    from dataclasses import asdict
    data = asdict(config)
    if "providers" in data:
        for p in data["providers"].values():
            if isinstance(p, dict) and "api_key" in p and p["api_key"]:
                p["api_key"] = p["api_key"][:8] + "..."

    typer.echo("\n  architecta — Merged Configuration")
    typer.echo("  " + "─" * 40)
    typer.echo(yaml.dump(data, default_flow_style=False, allow_unicode=True))


if __name__ == "__main__":
    app()
