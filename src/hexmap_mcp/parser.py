"""YAML snapshot parser for Hexmap-MCP.

A snapshot is a saved copy of the module list, handy for rendering a map
without a running config API:

    title: Edge proxy
    modules:
      - name: server
        core: true
        settings:
          listen: "0.0.0.0:8080"
      - name: cache
        enabled: true
        settings:
          max_entries: 1000
          ttl_secs: 60

A bare list of modules is accepted as well.  Modules are ordered the same
way the config API orders them: core first, then alphabetically.
"""

from __future__ import annotations
from pathlib import Path

import yaml

from .client import order_modules
from .models import Module


def parse_yaml(yaml_str: str) -> list[Module]:
    """Parse a YAML snapshot string into an ordered module list."""
    data = yaml.safe_load(yaml_str)
    if not data:
        raise ValueError("Empty YAML input")

    if isinstance(data, dict):
        items = data.get("modules")
        if items is None:
            raise ValueError("YAML snapshot has no 'modules' list")
    else:
        items = data

    if not isinstance(items, list):
        raise ValueError("'modules' must be a list")

    return order_modules(_parse_module(item) for item in items)


def parse_file(path: str) -> list[Module]:
    """Parse a YAML snapshot file into an ordered module list."""
    content = Path(path).read_text()
    return parse_yaml(content)


def _parse_module(data: dict) -> Module:
    """Parse a single module entry."""
    if not isinstance(data, dict) or "name" not in data:
        raise ValueError(f"Module entry needs a name: {data!r}")
    settings = data.get("settings") or {}
    if not isinstance(settings, dict):
        raise ValueError(f"Settings of module '{data['name']}' must be a mapping: {settings!r}")
    is_core = bool(data.get("core", data.get("is_core", data.get("is_server", False))))
    return Module(
        name=str(data["name"]),
        enabled=bool(data.get("enabled", is_core)),
        is_core=is_core,
        settings=dict(settings),
    )


def modules_to_yaml(modules: list[Module], title: str | None = None) -> str:
    """Serialize a module list back to a YAML snapshot."""
    data: dict = {}
    if title:
        data["title"] = title
    data["modules"] = []
    for module in modules:
        entry = {"name": module.name, "enabled": module.enabled}
        if module.is_core:
            entry["core"] = True
        if module.settings:
            entry["settings"] = dict(module.settings)
        data["modules"].append(entry)
    return yaml.dump(data, default_flow_style=False, sort_keys=False)
