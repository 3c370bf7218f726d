"""Process-wide capabilities available to functions.

The global scope carries what functions written for the hosted runtime expect
to find without importing it: the ``Twilio`` namespace (with the ``Response``
builder attached), a shared ``twilio_client``, the ``Runtime`` registry and
the ``Functions`` mapping. It is an explicit object; ``GlobalScope.install``
copies its bindings into a function module's namespace for code that relies
on the ambient names.
"""

import logging
import threading
from types import SimpleNamespace
from typing import Any, Callable, Dict, Mapping, MutableMapping, Optional, Tuple, Union

from twilio import twiml
from twilio.request_validator import RequestValidator
from twilio.rest import Client
from twilio.twiml.fax_response import FaxResponse
from twilio.twiml.messaging_response import MessagingResponse
from twilio.twiml.voice_response import VoiceResponse

from core.config import RuntimeConfig
from core.interfaces import AssetResource, FunctionResource, ResourceDiscovery
from core.response import Response

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Optional[str], Optional[str]], Any]

_scope: Optional["GlobalScope"] = None
_scope_lock = threading.Lock()


class ClientHolder:
    """Lazily builds the shared REST client exactly once.

    Readers either see the finished client or take the lock and build it;
    concurrent first use results in a single construction.
    """

    def __init__(
        self,
        account_sid: Optional[str],
        auth_token: Optional[str],
        factory: Optional[ClientFactory] = None,
    ) -> None:
        self.account_sid = account_sid
        self.auth_token = auth_token
        self._factory = factory
        self._lock = threading.Lock()
        self._client: Any = None

    @property
    def credentials(self) -> Tuple[Optional[str], Optional[str]]:
        return (self.account_sid, self.auth_token)

    @property
    def is_constructed(self) -> bool:
        return self._client is not None

    def get(self) -> Any:
        client = self._client
        if client is None:
            with self._lock:
                if self._client is None:
                    factory = self._factory or Client
                    self._client = factory(self.account_sid, self.auth_token)
                    logger.info(
                        "Created shared Twilio client",
                        extra={"account_sid": self.account_sid},
                    )
                client = self._client
        return client


class ClientProxy:
    """Stand-in for the shared client that builds it on first attribute use."""

    def __init__(self, holder: ClientHolder) -> None:
        self._holder = holder

    def __getattr__(self, name: str) -> Any:
        return getattr(self._holder.get(), name)

    def __repr__(self) -> str:
        state = "constructed" if self._holder.is_constructed else "pending"
        return f"<ClientProxy {state}>"


class RuntimeRegistry:
    """The ``Runtime`` object: asset, function and Sync lookups."""

    def __init__(
        self, discovery: Optional[ResourceDiscovery], client_holder: ClientHolder
    ) -> None:
        self._discovery = discovery
        self._client_holder = client_holder

    def get_assets(self) -> Dict[str, AssetResource]:
        """All assets keyed by route, private ones included."""
        if self._discovery is None:
            return {}
        return self._discovery.get_assets()

    def get_functions(self) -> Dict[str, FunctionResource]:
        """All functions keyed by name, private ones included."""
        if self._discovery is None:
            return {}
        return self._discovery.get_functions()

    def get_sync(self, service_name: str = "default") -> Any:
        """Return the Sync service context for ``service_name``."""
        return self._client_holder.get().sync.v1.services(service_name)


def build_twilio_namespace() -> SimpleNamespace:
    """Vendor SDK namespace with the ``Response`` builder attached."""
    return SimpleNamespace(
        Client=Client,
        RequestValidator=RequestValidator,
        twiml=twiml,
        VoiceResponse=VoiceResponse,
        MessagingResponse=MessagingResponse,
        FaxResponse=FaxResponse,
        Response=Response,
    )


class GlobalScope:
    """Capabilities shared by every invocation in this process."""

    def __init__(
        self,
        client_holder: ClientHolder,
        runtime: RuntimeRegistry,
    ) -> None:
        self._client_holder = client_holder
        self.Twilio = build_twilio_namespace()
        self.Runtime = runtime
        self.Response = Response
        self.twilio_client = ClientProxy(client_holder)
        self.Functions = runtime.get_functions()

    @property
    def client_holder(self) -> ClientHolder:
        return self._client_holder

    def get_twilio_client(self) -> Any:
        return self._client_holder.get()

    def bindings(self) -> Dict[str, Any]:
        """Names exposed to function modules."""
        return {
            "Twilio": self.Twilio,
            "Runtime": self.Runtime,
            "Response": self.Response,
            "twilio_client": self.twilio_client,
            "Functions": self.Functions,
        }

    def install(self, namespace: MutableMapping[str, Any]) -> None:
        """Copy the bindings into a module namespace."""
        namespace.update(self.bindings())


def _credentials(
    config: Union[RuntimeConfig, Mapping[str, Any]]
) -> Tuple[Optional[str], Optional[str]]:
    if isinstance(config, RuntimeConfig):
        env = config.env
    else:
        env = config.get("env") or {}
    return env.get("ACCOUNT_SID"), env.get("AUTH_TOKEN")


def construct_global_scope(
    config: Union[RuntimeConfig, Mapping[str, Any]],
    discovery: Optional[ResourceDiscovery] = None,
    client_factory: Optional[ClientFactory] = None,
) -> GlobalScope:
    """Install the process-wide scope and return it.

    The shared client is kept across calls while the credentials stay the
    same; any other binding is rebuilt from the given configuration.

    Args:
        config: Runtime configuration, or any mapping with an ``env`` section
        discovery: Source for ``Runtime.get_assets``/``get_functions``
        client_factory: Builds the shared client (defaults to ``twilio.rest.Client``)

    Returns:
        The installed GlobalScope
    """
    global _scope

    account_sid, auth_token = _credentials(config)

    with _scope_lock:
        holder = _scope.client_holder if _scope is not None else None
        if holder is None or holder.credentials != (account_sid, auth_token):
            holder = ClientHolder(account_sid, auth_token, factory=client_factory)
            logger.debug("Prepared new shared client holder")

        _scope = GlobalScope(holder, RuntimeRegistry(discovery, holder))
        return _scope


def get_global_scope() -> Optional[GlobalScope]:
    """Return the installed scope, if any."""
    return _scope


def reset_global_scope() -> None:
    """Drop the installed scope and its cached client."""
    global _scope

    with _scope_lock:
        _scope = None
