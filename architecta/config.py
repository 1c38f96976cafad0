"""Three-layer config loading and merging."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .errors import ConfigError

CONFIG_DIR = ".architecta"


# ---------------------------------------------------------------------------
# Config dataclasses
# ---------------------------------------------------------------------------

@dataclass
class ProviderCreds:
    api_key: str = ""


@dataclass
class ProvidersConfig:
    anthropic: ProviderCreds = field(default_factory=ProviderCreds)
    openai: ProviderCreds = field(default_factory=ProviderCreds)
    deepseek: ProviderCreds = field(default_factory=ProviderCreds)


@dataclass
class AgentConfig:
    provider: str = "anthropic"
    model: str = "claude-sonnet-4-5"
    max_tokens: int = 4096
    timeout_sec: float = 120.0


@dataclass
class ConfidenceThresholds:
    high: int = 90
    medium: int = 70


@dataclass
class WorkflowConfig:
    max_iterations: int = 3
    auto_approve_high_confidence: bool = False  # conservative default
    max_text_retries: int = 3
    confidence_thresholds: ConfidenceThresholds = field(
        default_factory=ConfidenceThresholds
    )


@dataclass
class NotifyConfig:
    webhook_url: str = ""
    events: list[str] = field(default_factory=lambda: [
        "plan_ready", "review_ready", "error",
    ])


@dataclass
class Config:
    work_dir: str = ""  # empty = project root
    agent: AgentConfig = field(default_factory=AgentConfig)
    reviewer: AgentConfig = field(
        default_factory=lambda: AgentConfig(provider="")  # "" → reuse agent
    )
    workflow: WorkflowConfig = field(default_factory=WorkflowConfig)
    notify: NotifyConfig = field(default_factory=NotifyConfig)
    providers: ProvidersConfig = field(default_factory=ProvidersConfig)
    project_root: str = ""

    def api_key_for(self, provider: str) -> str:
        creds = getattr(self.providers, provider, None)
        return creds.api_key if isinstance(creds, ProviderCreds) else ""

    def reviewer_agent(self) -> AgentConfig:
        """Reviewer settings, falling back to the planning agent."""
        if not self.reviewer.provider:
            return self.agent
        return self.reviewer


# ---------------------------------------------------------------------------
# Deep merge
# ---------------------------------------------------------------------------

def deep_merge(base: dict, override: dict) -> dict:
    """Field-level deep merge. Lists are replaced, None values ignored."""
    result = dict(base)
    for key, value in override.items():
        if value is None:
            continue
        if (
            key in result
            and isinstance(result[key], dict)
            and isinstance(value, dict)
        ):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


# ---------------------------------------------------------------------------
# Dict → Config mapping
# ---------------------------------------------------------------------------

def _build_agent(data: dict, default: AgentConfig) -> AgentConfig:
    return AgentConfig(
        provider=data.get("provider", default.provider),
        model=data.get("model", default.model),
        max_tokens=int(data.get("max_tokens", default.max_tokens)),
        timeout_sec=float(data.get("timeout_sec", default.timeout_sec)),
    )


def _dict_to_config(data: dict, project_root: str) -> Config:
    cfg = Config(project_root=project_root)

    if "work_dir" in data:
        cfg.work_dir = str(data["work_dir"])

    if isinstance(data.get("agent"), dict):
        cfg.agent = _build_agent(data["agent"], cfg.agent)

    if isinstance(data.get("reviewer"), dict):
        cfg.reviewer = _build_agent(data["reviewer"], cfg.reviewer)

    if isinstance(data.get("workflow"), dict):
        w = data["workflow"]
        thresholds = cfg.workflow.confidence_thresholds
        if isinstance(w.get("confidence_thresholds"), dict):
            t = w["confidence_thresholds"]
            thresholds = ConfidenceThresholds(
                high=int(t.get("high", thresholds.high)),
                medium=int(t.get("medium", thresholds.medium)),
            )
        if thresholds.medium > thresholds.high:
            raise ConfigError(
                "confidence_thresholds.medium must not exceed confidence_thresholds.high"
            )
        cfg.workflow = WorkflowConfig(
            max_iterations=int(w.get("max_iterations", cfg.workflow.max_iterations)),
            auto_approve_high_confidence=bool(
                w.get("auto_approve_high_confidence",
                      cfg.workflow.auto_approve_high_confidence)
            ),
            max_text_retries=int(w.get("max_text_retries", cfg.workflow.max_text_retries)),
            confidence_thresholds=thresholds,
        )

    if isinstance(data.get("notify"), dict):
        n = data["notify"]
        cfg.notify = NotifyConfig(
            webhook_url=n.get("webhook_url", "") or "",
            events=n.get("events", cfg.notify.events),
        )

    if isinstance(data.get("providers"), dict):
        p = data["providers"]
        cfg.providers = ProvidersConfig(
            anthropic=ProviderCreds(api_key=(p.get("anthropic") or {}).get("api_key", "")),
            openai=ProviderCreds(api_key=(p.get("openai") or {}).get("api_key", "")),
            deepseek=ProviderCreds(api_key=(p.get("deepseek") or {}).get("api_key", "")),
        )

    return cfg


def _read_yaml(path: Path, strict: bool) -> dict:
    if not path.exists():
        return {}
    parsed = yaml.safe_load(path.read_text())
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        if strict:
            raise ConfigError(
                f"Invalid {path.name}: expected mapping, got {type(parsed).__name__}"
            )
        return {}
    return parsed


# ---------------------------------------------------------------------------
# Load config (3-layer)
# ---------------------------------------------------------------------------

_ENV_KEYS = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
}


def load_config(project_root: str | Path) -> Config:
    """Load and merge config from up to 3 layers.

    Priority (highest first):
      1. Environment variables (API keys)
      2. .architecta/local.config.yaml
      3. .architecta/config.yaml
    """
    project_root = Path(project_root)
    config_dir = project_root / CONFIG_DIR

    base_data = _read_yaml(config_dir / "config.yaml", strict=True)
    local_data = _read_yaml(config_dir / "local.config.yaml", strict=False)

    merged = deep_merge(base_data, local_data)
    cfg = _dict_to_config(merged, str(project_root))

    if not cfg.work_dir:
        cfg.work_dir = str(project_root)

    for provider, env_name in _ENV_KEYS.items():
        value = os.environ.get(env_name)
        if value:
            getattr(cfg.providers, provider).api_key = value

    return cfg
