"""
Configuration management and loading.

Loads budget limits and the model catalog from YAML with strict validation.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Tuple

import yaml

from ..core.catalog import DEFAULT_MODEL_CATALOG, ModelConfig
from ..core.guardrails import BudgetLimits


@dataclass(frozen=True)
class OrchestratorConfig:
    """Complete orchestration configuration."""
    budget: BudgetLimits
    models: Tuple[ModelConfig, ...]


def default_config() -> OrchestratorConfig:
    """Configuration used when no file is given."""
    return OrchestratorConfig(budget=BudgetLimits(), models=DEFAULT_MODEL_CATALOG)


def load_orchestrator_config(path: str) -> OrchestratorConfig:
    """Load and validate orchestration configuration from a YAML file.

    Both sections are optional; a missing ``budget`` section or key falls
    back to the default limits, a missing ``models`` section to the default
    catalog. Anything present is validated strictly.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated OrchestratorConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Orchestrator config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    allowed_top_keys = {'budget', 'models'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    budget = _parse_budget(raw_config.get('budget', {}))

    if 'models' in raw_config:
        models_data = raw_config['models']
        if not isinstance(models_data, list) or not models_data:
            raise ValueError("'models' must be a non-empty list")
        models = tuple(
            _parse_model(entry, f"models[{index}]")
            for index, entry in enumerate(models_data)
        )
    else:
        models = DEFAULT_MODEL_CATALOG

    return OrchestratorConfig(budget=budget, models=models)


def _parse_budget(data) -> BudgetLimits:
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError("'budget' must be a dictionary")

    allowed_budget_keys = {'daily', 'monthly'}
    unknown_budget_keys = set(data.keys()) - allowed_budget_keys
    if unknown_budget_keys:
        raise ValueError(f"Unknown budget keys: {unknown_budget_keys}")

    values: Dict[str, float] = {}
    for key in allowed_budget_keys & set(data.keys()):
        value = data[key]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"'budget.{key}' must be a number")
        values[key] = float(value)

    return BudgetLimits(**values)


def _parse_model(data, path: str) -> ModelConfig:
    """Parse and validate one catalog entry.

    Args:
        data: Model entry data
        path: Path for error messages

    Returns:
        Validated ModelConfig

    Raises:
        ValueError: If the entry is invalid
    """
    if not isinstance(data, dict):
        raise ValueError(f"{path} must be a dictionary")

    required_keys = {'provider', 'model', 'cost_per_1k_in', 'cost_per_1k_out', 'max_tokens'}
    allowed_keys = required_keys | {'capabilities', 'enabled'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    missing = required_keys - set(data.keys())
    if missing:
        raise ValueError(f"Missing required keys in {path}: {sorted(missing)}")

    for key in ('cost_per_1k_in', 'cost_per_1k_out'):
        if isinstance(data[key], bool) or not isinstance(data[key], (int, float)):
            raise ValueError(f"'{key}' in {path} must be a number")
    if isinstance(data['max_tokens'], bool) or not isinstance(data['max_tokens'], int):
        raise ValueError(f"'max_tokens' in {path} must be an integer")

    capabilities: List[str] = data.get('capabilities', [])
    if not isinstance(capabilities, list) or not all(isinstance(c, str) for c in capabilities):
        raise ValueError(f"'capabilities' in {path} must be a list of strings")

    enabled = data.get('enabled', True)
    if not isinstance(enabled, bool):
        raise ValueError(f"'enabled' in {path} must be a boolean")

    try:
        return ModelConfig(
            provider=data['provider'],
            model=str(data['model']),
            cost_per_1k_in=float(data['cost_per_1k_in']),
            cost_per_1k_out=float(data['cost_per_1k_out']),
            capabilities=frozenset(capabilities),
            max_tokens=data['max_tokens'],
            enabled=enabled,
        )
    except ValueError as e:
        raise ValueError(f"Invalid {path}: {e}")
