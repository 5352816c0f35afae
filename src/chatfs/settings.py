# chatfs: Lightweight YAML settings loader (<root>/.chatfs/settings.yaml) and the merge of its
# `limits` section over environment defaults.

from __future__ import annotations

import pathlib
from typing import Any, Dict

import yaml
from pydantic import ValidationError

from .models import SessionLimits


def load_settings(root: pathlib.Path) -> Dict[str, Any]:
    """
    Load chatfs settings from <root>/.chatfs/settings.yaml or settings.yml.

    Returns an empty dict {} when the settings file is missing, unreadable, or
    does not contain a mapping. The function never raises.
    """
    chatfs_dir = pathlib.Path(root) / ".chatfs"
    for p in (chatfs_dir / "settings.yaml", chatfs_dir / "settings.yml"):
        try:
            if not (p.exists() and p.is_file()):
                continue
            data = yaml.safe_load(p.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError):
            # Unreadable or malformed: try the next candidate.
            continue
        # Non-mapping YAML is treated as empty settings.
        return data if isinstance(data, dict) else {}
    return {}


def apply_limit_overrides(base: SessionLimits, settings: Dict[str, Any]) -> SessionLimits:
    """Overlay settings['limits'] on base; invalid overrides are ignored as a whole."""
    overrides = settings.get("limits") if isinstance(settings, dict) else None
    if not isinstance(overrides, dict) or not overrides:
        return base
    merged = base.model_dump()
    merged.update({k: v for k, v in overrides.items() if k in merged})
    try:
        return SessionLimits.model_validate(merged)
    except ValidationError:
        return base
