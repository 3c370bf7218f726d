"""Filesystem discovery of functions and assets.

Handles the on-disk project layout:

    functions/hello.py              -> /hello          (public)
    functions/api/status.protected.py -> /api/status   (protected)
    functions/util.private.py       -> not routed      (private)
    assets/index.html               -> /index.html     (public)
    assets/data.private.json        -> not served      (private)
"""

import logging
from pathlib import Path
from typing import Dict, Iterator, Tuple

from core.config import RuntimeConfig
from core.interfaces import (
    AssetResource,
    FunctionResource,
    ResourceDiscovery,
    Visibility,
)

logger = logging.getLogger(__name__)

FUNCTION_SUFFIX = ".py"


def split_visibility(file_name: str) -> Tuple[str, Visibility]:
    """Strip a ``.protected``/``.private`` marker from a file name.

    ``logo.private.png`` becomes ``("logo.png", PRIVATE)``.
    """
    parts = file_name.split(".")
    for visibility in (Visibility.PROTECTED, Visibility.PRIVATE):
        if len(parts) > 1 and visibility.value in parts[1:]:
            idx = parts.index(visibility.value, 1)
            return ".".join(parts[:idx] + parts[idx + 1:]), visibility
    return file_name, Visibility.PUBLIC


def _walk(root: Path) -> Iterator[Path]:
    if not root.is_dir():
        return
    for path in sorted(root.rglob("*")):
        relative = path.relative_to(root)
        if any(part.startswith((".", "_")) for part in relative.parts):
            continue
        if path.is_file():
            yield path


class FileSystemDiscovery(ResourceDiscovery):
    """Discovers functions and assets below a project directory.

    The directories are scanned on every call, so files added while the
    server runs are picked up.
    """

    def __init__(self, functions_path: Path, assets_path: Path) -> None:
        self.functions_path = Path(functions_path)
        self.assets_path = Path(assets_path)

    @classmethod
    def from_config(cls, config: RuntimeConfig) -> "FileSystemDiscovery":
        return cls(config.functions_path, config.assets_path)

    def get_functions(self) -> Dict[str, FunctionResource]:
        functions: Dict[str, FunctionResource] = {}

        for path in _walk(self.functions_path):
            if path.suffix != FUNCTION_SUFFIX:
                continue
            relative = path.relative_to(self.functions_path)
            file_name, visibility = split_visibility(relative.name)
            name = str(relative.with_name(file_name).with_suffix("").as_posix())

            if name in functions:
                logger.warning(
                    f"Function {name} defined more than once, keeping {functions[name].path}"
                )
                continue

            functions[name] = FunctionResource(
                name=name,
                route=f"/{name}",
                path=path.resolve(),
                visibility=visibility,
            )

        logger.debug(f"Discovered {len(functions)} functions: {sorted(functions)}")
        return functions

    def get_assets(self) -> Dict[str, AssetResource]:
        assets: Dict[str, AssetResource] = {}

        for path in _walk(self.assets_path):
            relative = path.relative_to(self.assets_path)
            file_name, visibility = split_visibility(relative.name)
            route = "/" + relative.with_name(file_name).as_posix()

            if route in assets:
                logger.warning(
                    f"Asset {route} defined more than once, keeping {assets[route].path}"
                )
                continue

            assets[route] = AssetResource(
                route=route,
                path=path.resolve(),
                visibility=visibility,
            )

        logger.debug(f"Discovered {len(assets)} assets")
        return assets
