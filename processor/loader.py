"""
Processor - Module Loader.

Runs worker-definition loaders one at a time, in order. Each
loader receives the registry and registers zero or more workers
into it, so registration order follows loader order.
"""

import importlib
import inspect
import logging
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Sequence, Union

from core.exceptions import ModuleLoadError

from .registry import WorkerRegistry


Loader = Callable[[WorkerRegistry], Union[Awaitable[Any], Any]]

REGISTER_HOOK = "register"


def loader_label(loader: Loader) -> str:
    """Human-readable name of a loader, for logs and errors."""
    return getattr(loader, "module_path", None) or getattr(
        loader, "__qualname__", repr(loader)
    )


def module_loader(module_path: str, hook: str = REGISTER_HOOK) -> Loader:
    """
    Build a loader that imports a worker-definition module.

    After import, the module's ``register(registry)`` function is
    called when it exists (sync or async).
    """
    async def load(registry: WorkerRegistry) -> None:
        module = importlib.import_module(module_path)
        register = getattr(module, hook, None)
        if register is None:
            return
        result = register(registry)
        if inspect.isawaitable(result):
            await result

    load.module_path = module_path
    load.__qualname__ = f"module_loader({module_path!r})"
    return load


def module_loaders(module_paths: Iterable[str]) -> List[Loader]:
    return [module_loader(path) for path in module_paths]


class ModuleLoader:
    """Sequential, deterministic loader runner."""

    def __init__(self, loaders: Optional[Sequence[Loader]] = None):
        self._loaders = list(loaders or [])
        self._logger = logging.getLogger(__name__)

    def __len__(self) -> int:
        return len(self._loaders)

    async def load_all(self, registry: WorkerRegistry) -> None:
        """
        Run every loader against the registry.

        Raises:
            ModuleLoadError: On the first failing loader; the
                remaining loaders are not run
        """
        for index, loader in enumerate(self._loaders):
            label = loader_label(loader)
            try:
                result = loader(registry)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                raise ModuleLoadError(
                    f"Failed to load worker module {label}: {e}",
                    loader=label,
                    index=index,
                    cause=e,
                ) from e
            self._logger.debug(f"Loaded worker module [{index}]: {label}")


__all__ = [
    "Loader",
    "ModuleLoader",
    "loader_label",
    "module_loader",
    "module_loaders",
]
