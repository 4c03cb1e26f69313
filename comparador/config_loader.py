"""Configuration loader for the price comparison dashboard core."""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv


DEFAULT_API_CONFIG: Dict[str, Any] = {
    "base_url": "http://127.0.0.1:8000/api",
    "timeout_seconds": 30,
    "endpoints": {
        "chains": "z_cadenas",
        "labels": "z_etiqueta",
        "comparator": "z_comparador",
    },
}

DEFAULT_COMPARISON_CONFIG: Dict[str, Any] = {
    "debounce_ms": 350,
    "settle_ms": 800,
    "max_basket_items": 10,
    "default_enabled_stores": 3,
    "search_limit": 8,
    "tiers": {"best": 0.2, "fair": 0.6},
}

DEFAULT_DASHBOARD_CONFIG: Dict[str, Any] = {
    "max_products": 4,
    "default_period": "24m",
    "dataset": "consumidor",
    "granularity": "month",
    "page_size": 20,
}

DEFAULT_LOGGING_CONFIG: Dict[str, Any] = {
    "level": "INFO",
    "file": "data/logs/comparador.log",
    "rotation": "1 week",
    "retention": "1 month",
}


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from YAML file.
    
    Args:
        config_path: Path to config file. If None, uses default locations.
        
    Returns:
        Dictionary with configuration values.
    """
    load_dotenv()
    
    if config_path is None:
        locations = [
            "config.yaml",
            "config.yml",
            "../config.yaml",
            "../config.yml",
        ]
        for loc in locations:
            if Path(loc).exists():
                config_path = loc
                break
    
    if config_path is None or not Path(config_path).exists():
        raise FileNotFoundError("Configuration file not found. Please provide config.yaml")
    
    with open(config_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}
    
    return _substitute_env_vars(config)


def _substitute_env_vars(obj: Any) -> Any:
    """Recursively substitute environment variables in config.
    
    Supports syntax: ${VAR_NAME} or ${VAR_NAME:default_value}
    """
    if isinstance(obj, dict):
        return {k: _substitute_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_substitute_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        return _substitute_env_string(obj)
    else:
        return obj


def _substitute_env_string(value: str) -> str:
    pattern = r'\$\{([^}]+)\}'
    
    def replace(match):
        var_expr = match.group(1)
        if ':' in var_expr:
            var_name, default = var_expr.split(':', 1)
            return os.getenv(var_name, default)
        return os.getenv(var_expr, match.group(0))
    
    return re.sub(pattern, replace, value)


def _merged_section(config: Optional[Dict[str, Any]], name: str, defaults: Dict[str, Any]) -> Dict[str, Any]:
    section = dict(defaults)
    overrides = (config or {}).get(name) or {}
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(section.get(key), dict):
            section[key] = {**section[key], **value}
        else:
            section[key] = value
    return section


def get_api_config(config: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Get API client configuration."""
    return _merged_section(config, "api", DEFAULT_API_CONFIG)


def get_comparison_config(config: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Get basket comparison configuration."""
    return _merged_section(config, "comparison", DEFAULT_COMPARISON_CONFIG)


def get_dashboard_config(config: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Get series dashboard configuration."""
    return _merged_section(config, "dashboard", DEFAULT_DASHBOARD_CONFIG)


def get_logging_config(config: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Get logging configuration."""
    return _merged_section(config, "logging", DEFAULT_LOGGING_CONFIG)


def get_exports_dir(config: Optional[Dict[str, Any]]) -> str:
    return (config or {}).get("exports", {}).get("output_dir", "data/exports")


def ensure_directories(config: Dict[str, Any]):
    """Ensure all required directories exist."""
    log_path = get_logging_config(config).get("file") or DEFAULT_LOGGING_CONFIG["file"]
    Path(log_path).parent.mkdir(parents=True, exist_ok=True)
    
    Path(get_exports_dir(config)).mkdir(parents=True, exist_ok=True)
