"""
Processor - Entry Module Rendering.

Renders the source of a runtime entry module for a list of
worker-definition modules and literal build-time defaults. The
rendered module follows the contract in ``processor.entry``.
"""

import pprint
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence, Union

from core.exceptions import ConfigurationError

from .config import ConnectionConfig


_TEMPLATE = '''\
"""Worker runtime entry. Generated file, do not edit."""

import sys

from processor.entry import create_entry, is_entry_point

WORKER_MODULES = {modules}

BUILD_DEFAULTS = {defaults}

entry = create_entry(WORKER_MODULES, BUILD_DEFAULTS)
create_workers_app = entry.create_workers_app

if __name__ == "__main__":
    sys.exit(entry.main(is_entry_point(__file__)))
'''


def _literal(value: Any) -> str:
    return pprint.pformat(value, indent=4, width=88, sort_dicts=True)


def render_entry_module(
    worker_modules: Sequence[str],
    defaults: Union[ConnectionConfig, Mapping[str, Any], None] = None,
) -> str:
    """
    Render the entry module source.

    Raises:
        ConfigurationError: If a module path is not a dotted identifier
    """
    modules = []
    for path in worker_modules:
        if not path or not all(part.isidentifier() for part in path.split(".")):
            raise ConfigurationError(
                f"Invalid worker module path: {path!r}",
                config_key="worker_modules",
                actual_value=path,
            )
        modules.append(path)

    if isinstance(defaults, ConnectionConfig):
        defaults = defaults.to_dict()

    return _TEMPLATE.format(
        modules=_literal(modules),
        defaults=_literal(dict(defaults or {})),
    )


def write_entry_module(
    target: Union[str, Path],
    worker_modules: Sequence[str],
    defaults: Union[ConnectionConfig, Mapping[str, Any], None] = None,
) -> Path:
    """Render the entry module and write it to ``target``."""
    path = Path(target)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_entry_module(worker_modules, defaults), encoding="utf-8")
    return path


__all__ = [
    "render_entry_module",
    "write_entry_module",
]
