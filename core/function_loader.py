"""Loading of function modules from disk."""

import importlib.util
import logging
import sys
import threading
from typing import Callable, Dict, Optional, Tuple

from core.interfaces import FunctionResource
from core.scope import GlobalScope

logger = logging.getLogger(__name__)

HANDLER_NAME = "handler"


class FunctionLoadError(Exception):
    """Raised when a function module cannot be loaded."""

    pass


class FunctionLoader:
    """Imports function modules by path and returns their ``handler``.

    Modules are cached per file and re-imported when the file's mtime
    changes. Global scope bindings are placed in the module namespace before
    the module body runs, so top-level code can already use them.
    """

    def __init__(self, scope_provider: Callable[[], Optional[GlobalScope]]) -> None:
        self._scope_provider = scope_provider
        self._lock = threading.Lock()
        self._cache: Dict[str, Tuple[float, Callable]] = {}

    def load(self, resource: FunctionResource) -> Callable:
        """Return the handler defined by a function module.

        Raises:
            FunctionLoadError: If the file cannot be imported or has no
                callable ``handler``
        """
        file_path = resource.path
        try:
            mtime = file_path.stat().st_mtime
        except OSError as e:
            raise FunctionLoadError(f"Function file not found: {file_path}") from e

        cache_key = str(file_path)
        with self._lock:
            cached = self._cache.get(cache_key)
            if cached and cached[0] == mtime:
                return cached[1]

            handler = self._import_handler(resource)
            self._cache[cache_key] = (mtime, handler)
            logger.debug(f"Loaded function {resource.name} from {file_path}")
            return handler

    def _import_handler(self, resource: FunctionResource) -> Callable:
        module_name = f"functions_runtime.fn_{abs(hash(str(resource.path)))}"
        spec = importlib.util.spec_from_file_location(module_name, str(resource.path))
        if spec is None or spec.loader is None:
            raise FunctionLoadError(f"Cannot load module from {resource.path}")

        module = importlib.util.module_from_spec(spec)
        scope = self._scope_provider()
        if scope is not None:
            scope.install(module.__dict__)

        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            sys.modules.pop(module_name, None)
            raise FunctionLoadError(
                f"Failed to import function {resource.name}: {e}"
            ) from e

        handler = getattr(module, HANDLER_NAME, None)
        if not callable(handler):
            raise FunctionLoadError(
                f"Function {resource.name} does not define a callable '{HANDLER_NAME}'"
            )
        return handler

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
