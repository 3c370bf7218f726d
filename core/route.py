"""Invocation of a function for one request and serialization of its result.

Request -> ``construct_event`` + ``construct_context`` -> ``invoke_function``
-> ``handle_success`` or ``handle_error`` on the outbound response.
"""

import asyncio
import inspect
import logging
import threading
import traceback
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple

from core.context import ExecutionContext, construct_context
from core.interfaces import HTTPResponse
from core.response import Response
from core.scope import construct_global_scope
from core.twiml import XML_MEDIA_TYPE, is_twiml, to_xml

logger = logging.getLogger(__name__)

__all__ = [
    "ResultKind",
    "classify_result",
    "construct_context",
    "construct_event",
    "construct_global_scope",
    "handle_error",
    "handle_success",
    "invoke_function",
    "is_twiml",
]


class ResultKind(str, Enum):
    """Shapes of value a function can complete with."""

    STRUCTURED = "structured"
    TWIML = "twiml"
    STRING = "string"
    OTHER = "other"


def _source(request: Any, name: str) -> Mapping[str, Any]:
    if isinstance(request, Mapping):
        value = request.get(name)
    else:
        value = getattr(request, name, None)
    return value if isinstance(value, Mapping) else {}


def construct_event(request: Any) -> Dict[str, Any]:
    """Merge a request's query and body into the function event.

    Body values win over query values with the same key. A missing or
    non-mapping ``body``/``query`` counts as empty.
    """
    event: Dict[str, Any] = {}
    event.update(_source(request, "query"))
    event.update(_source(request, "body"))
    return event


def _is_structured(value: Any) -> bool:
    if isinstance(value, Response):
        return True
    return all(hasattr(value, attr) for attr in ("status_code", "headers", "body"))


def classify_result(value: Any, twiml_tags: Optional[Iterable[str]] = None) -> ResultKind:
    """Decide how a completion value is written; first match wins."""
    if _is_structured(value):
        return ResultKind.STRUCTURED
    if is_twiml(value, twiml_tags):
        return ResultKind.TWIML
    if isinstance(value, str):
        return ResultKind.STRING
    return ResultKind.OTHER


def handle_success(
    value: Any, res: HTTPResponse, twiml_tags: Optional[Iterable[str]] = None
) -> None:
    """Write a function's completion value onto the outbound response."""
    kind = classify_result(value, twiml_tags)

    if kind is ResultKind.STRUCTURED:
        res.status(value.status_code or 200)
        headers = dict(value.headers or {})
        if headers:
            res.set(headers)
        res.send(value.body)
    elif kind is ResultKind.TWIML:
        res.status(200)
        res.type(XML_MEDIA_TYPE)
        res.send(to_xml(value))
    else:
        res.status(200)
        res.send(value)


def format_error(error: Any) -> str:
    """Traceback for exceptions, text for anything else."""
    if isinstance(error, BaseException):
        return "".join(
            traceback.format_exception(type(error), error, error.__traceback__)
        )
    return str(error)


def handle_error(error: Any, res: HTTPResponse) -> None:
    """Write a failed invocation as a 500 carrying the error trace."""
    try:
        body = format_error(error)
    except Exception:
        body = "Internal Server Error"
    res.status(500)
    res.send(body)


class _Completion:
    """The ``callback`` passed to a function.

    Only the first completion counts; it may arrive from a worker thread.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        self._lock = threading.Lock()
        self._done = asyncio.Event()
        self._outcome: Optional[Tuple[Any, Any]] = None

    def __call__(self, error: Any = None, response: Any = None) -> None:
        with self._lock:
            if self._outcome is not None:
                logger.warning("Function completed more than once, ignoring later result")
                return
            self._outcome = (error, response)
        self._loop.call_soon_threadsafe(self._done.set)

    @property
    def called(self) -> bool:
        return self._outcome is not None

    async def wait(self) -> Tuple[Any, Any]:
        await self._done.wait()
        return self._outcome


async def invoke_function(
    handler: Callable, context: ExecutionContext, event: Dict[str, Any]
) -> Tuple[Any, Any]:
    """Run ``handler(context, event, callback)`` until it completes.

    Synchronous handlers run in a worker thread. A value returned without
    calling the callback is treated as ``callback(None, value)``.

    Returns:
        ``(error, response)`` as passed to the callback

    Raises:
        Exception: Whatever the handler raises
    """
    completion = _Completion(asyncio.get_running_loop())

    if inspect.iscoroutinefunction(handler):
        returned = await handler(context, event, completion)
    else:
        returned = await asyncio.to_thread(handler, context, event, completion)
        if inspect.isawaitable(returned):
            returned = await returned

    if returned is not None and not completion.called:
        completion(None, returned)

    return await completion.wait()
