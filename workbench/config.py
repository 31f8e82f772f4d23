"""Workbench configuration with YAML support."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import Field

from sandbox import policy
from sandbox.executor import SandboxExecutor
from verification.coordinator import RunCoordinator
from verification.orchestrator import PatternVerifier
from verification.schemas import BaseSchema


class WorkbenchConfig(BaseSchema):
    """Runtime settings for the verification pipeline."""

    timeout_seconds: float = Field(default=RunCoordinator.DEFAULT_TIMEOUT_SECONDS, gt=0)
    memory_limit_mb: int = Field(default=SandboxExecutor.DEFAULT_MEMORY_LIMIT_MB, gt=0)
    catalog_path: str = "configs/patterns.yaml"
    allowed_modules: list[str] = Field(default_factory=lambda: list(policy.ALLOWED_MODULES))
    log_level: str = "WARNING"

    def build_verifier(self) -> PatternVerifier:
        executor = SandboxExecutor(
            memory_limit_mb=self.memory_limit_mb,
            allowed_modules=self.allowed_modules,
        )
        return PatternVerifier(RunCoordinator(executor, timeout_seconds=self.timeout_seconds))


def load_config(yaml_path: str | Path) -> WorkbenchConfig:
    """Read workbench settings from a YAML file.

    A relative ``catalog_path`` is resolved against the directory holding
    the config file, so a config can sit next to its catalog.

    Raises:
        FileNotFoundError: If the config file is missing
        ValueError: If the file is empty or a setting is out of range
    """
    yaml_path = Path(yaml_path)
    if not yaml_path.exists():
        raise FileNotFoundError(f"Config file not found: {yaml_path}")

    with open(yaml_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not data or not isinstance(data, dict):
        raise ValueError(f"Empty or invalid YAML file: {yaml_path}")

    catalog_path = data.get("catalog_path")
    if isinstance(catalog_path, str) and not Path(catalog_path).is_absolute():
        data["catalog_path"] = str(yaml_path.parent / catalog_path)

    try:
        return WorkbenchConfig.from_dict(data)
    except Exception as e:
        raise ValueError(f"Invalid workbench settings in {yaml_path}: {e}") from e


def save_config(config: WorkbenchConfig, yaml_path: str | Path) -> None:
    """Write workbench settings as YAML, keeping field order."""
    yaml_path = Path(yaml_path)
    yaml_path.parent.mkdir(parents=True, exist_ok=True)
    with open(yaml_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(config.to_dict(), f, default_flow_style=False, sort_keys=False, indent=2)
