"""
Configuration for the island infant-mortality analysis.

One YAML file holds every path (relative to the project root), the declared
wide schema, the model priors, the MCMC settings and the reporting layout.
Required keys are read with require(); nothing falls back silently.
"""
import yaml
from pathlib import Path
from typing import Any, Dict, Optional, Union


def get_project_root() -> Path:
    """Repository root (the directory holding config/ and stan_models/)."""
    return Path(__file__).parent.parent


def load_config(config_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to config file. Defaults to config/config_default.yaml

    Returns:
        Dictionary containing all configuration settings
    """
    path = Path(config_path) if config_path is not None else (
        get_project_root() / "config" / "config_default.yaml"
    )
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, 'r') as f:
        return yaml.safe_load(f) or {}


def require(cfg: Dict[str, Any], dotted_key: str) -> Any:
    """
    Fetch a required nested value, e.g. ``require(cfg, "model.period_prior.mean")``.

    Raises:
        ValueError: if any part of the key path is missing or null
    """
    node: Any = cfg
    for part in dotted_key.split('.'):
        if not isinstance(node, dict) or node.get(part) is None:
            raise ValueError(f"Missing {dotted_key} in config.")
        node = node[part]
    return node


def config_path(cfg: Dict[str, Any], dotted_key: str, root: Optional[Path] = None) -> Path:
    """Required path setting, resolved against ``root`` (project root by default)."""
    base = Path(root) if root is not None else get_project_root()
    return base / require(cfg, dotted_key)
