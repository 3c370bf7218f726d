"""Core interfaces and data models for the functions runtime.

This module defines the resource models handed to user code through the
``Runtime`` registry, the discovery interface that produces them, and the
outbound HTTP response protocol that the response dispatcher writes to.
"""

from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Protocol

from pydantic import BaseModel, Field


class Visibility(str, Enum):
    """Visibility of a function or asset, derived from its file name."""

    PUBLIC = "public"
    PROTECTED = "protected"
    PRIVATE = "private"


class FunctionResource(BaseModel):
    """A function file discovered on disk."""

    name: str = Field(..., description="Registry key (route without leading slash)")
    route: str = Field(..., description="HTTP route the function is served on")
    path: Path = Field(..., description="Absolute path to the function module")
    visibility: Visibility = Field(default=Visibility.PUBLIC)


class AssetResource(BaseModel):
    """A static asset discovered on disk."""

    route: str = Field(..., description="HTTP route the asset is served on")
    path: Path = Field(..., description="Absolute path to the asset file")
    visibility: Visibility = Field(default=Visibility.PUBLIC)

    def open(self, encoding: str = "utf-8") -> str:
        """Read the asset contents as text."""
        return self.path.read_text(encoding=encoding)


class ResourceDiscovery(ABC):
    """Source of the functions and assets available to the runtime.

    The global scope only consumes this interface; how resources are found
    (filesystem, remote service, fixtures in tests) is up to the implementation.
    """

    @abstractmethod
    def get_functions(self) -> Dict[str, FunctionResource]:
        """Return available functions keyed by name."""
        pass

    @abstractmethod
    def get_assets(self) -> Dict[str, AssetResource]:
        """Return available assets keyed by route."""
        pass


class HTTPResponse(Protocol):
    """Outbound response primitives used by the response dispatcher."""

    def status(self, code: int) -> Any:
        ...

    def send(self, body: Any) -> Any:
        ...

    def set(self, headers: Mapping[str, str]) -> Any:
        ...

    def type(self, media_type: str) -> Any:
        ...
