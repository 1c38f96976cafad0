"""Git helpers for building review descriptors, using subprocess / anyio."""

from __future__ import annotations

import subprocess
from pathlib import Path

import anyio


async def _run_git(args: list[str], cwd: Path) -> str:
    """Run a git command and return stdout."""
    result = await anyio.to_thread.run_sync(
        lambda: subprocess.run(
            ["git"] + args,
            cwd=str(cwd),
            capture_output=True,
            text=True,
            check=True,
        )
    )
    return result.stdout.strip()


async def get_changed_files(cwd: Path) -> list[str]:
    """Get list of changed files (staged + unstaged + untracked)."""
    try:
        diff_output = await _run_git(["diff", "--name-only", "HEAD"], cwd)
        files = [f for f in diff_output.splitlines() if f]
    except subprocess.CalledProcessError:
        files = []

    try:
        untracked = await _run_git(
            ["ls-files", "--others", "--exclude-standard"], cwd
        )
        files.extend(f for f in untracked.splitlines() if f)
    except subprocess.CalledProcessError:
        pass

    return sorted(set(files))


async def get_local_diff(cwd: Path) -> str:
    """Diff of the working tree against HEAD."""
    try:
        return await _run_git(["diff", "HEAD"], cwd)
    except subprocess.CalledProcessError:
        return ""


async def get_diff_from_base(cwd: Path, base_branch: str, branch: str = "HEAD") -> str:
    """Diff of ``branch`` since it forked from ``base_branch``."""
    try:
        return await _run_git(["diff", f"{base_branch}...{branch}"], cwd)
    except subprocess.CalledProcessError:
        return ""


async def get_branch_files(cwd: Path, base_branch: str, branch: str) -> list[str]:
    try:
        output = await _run_git(["diff", "--name-only", f"{base_branch}...{branch}"], cwd)
    except subprocess.CalledProcessError:
        return []
    return sorted({f for f in output.splitlines() if f})
