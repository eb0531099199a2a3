import yaml
from pathlib import Path
from .models import AppConfig

def load_config(config_path: Path) -> AppConfig:
    """Loads YAML config and parses it into AppConfig Pydantic model."""
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        data = yaml.safe_load(f) or {}

    # Level tables may be written flat under the pipeline name ("image: {low: ...}")
    # or nested under "levels" like the example config.
    for section in ("image", "audio"):
        value = data.get(section)
        if isinstance(value, dict) and "levels" in value:
            data[section] = value["levels"]

    return AppConfig(**data)
