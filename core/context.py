"""Per-invocation execution context."""

import copy
from typing import Any, Mapping, Optional, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict
from twilio.rest import Client

from core.config import RuntimeConfig


class ExecutionContext(BaseModel):
    """Read-only record handed to a function as its ``context`` argument.

    Every environment variable is available as an attribute next to
    ``DOMAIN_NAME``, ``ACCOUNT_SID`` and ``AUTH_TOKEN``.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    DOMAIN_NAME: str
    ACCOUNT_SID: Optional[str] = None
    AUTH_TOKEN: Optional[str] = None

    def get_twilio_client(self, **options: Any) -> Client:
        """Build a REST client authenticated with this context's credentials.

        Missing credentials are not checked here; the client constructor
        raises its own error.
        """
        return Client(self.ACCOUNT_SID, self.AUTH_TOKEN, **options)

    def get(self, key: str, default: Any = None) -> Any:
        """Look up a context value by name."""
        return getattr(self, key, default)


def get_domain_name(url: str) -> str:
    """Return ``host:port`` of a URL, dropping scheme, credentials and path."""
    netloc = urlparse(url).netloc
    return netloc.rpartition("@")[2]


def construct_context(
    config: Union[RuntimeConfig, Mapping[str, Any]]
) -> ExecutionContext:
    """Build the execution context for one invocation.

    Args:
        config: Runtime configuration, or any mapping with ``url`` and ``env``

    Returns:
        A snapshot of the configuration; later changes to it are not seen
    """
    if isinstance(config, RuntimeConfig):
        url, env = config.url, config.env
    else:
        url, env = config.get("url"), config.get("env")

    values = copy.deepcopy(dict(env or {}))
    values["DOMAIN_NAME"] = get_domain_name(url or "")
    return ExecutionContext(**values)
