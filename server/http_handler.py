"""HTTP handling for function routes.

Turns an aiohttp request into an invocation of one function and writes the
result back through an Express-style ``ResponseWriter``.
"""

import asyncio
import json
import logging
import time
import uuid
from typing import Any, Dict, Mapping, Optional, Tuple

from aiohttp import web
from multidict import MultiMapping
from twilio.request_validator import RequestValidator

from core.config import RuntimeConfig
from core.context import construct_context
from core.function_loader import FunctionLoader
from core.interfaces import FunctionResource, ResourceDiscovery, Visibility
from core.logging_utils import format_request_log, format_response_log
from core.route import construct_event, handle_error, handle_success, invoke_function
from core.scope import construct_global_scope, get_global_scope

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Twilio-Signature"
FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


class InvocationTimeoutError(Exception):
    """Raised when a function does not complete in time."""

    pass


class ResponseWriter:
    """Outbound response with the ``status``/``send``/``set``/``type`` primitives.

    Collects what the dispatcher writes and renders it as an aiohttp response:
    strings default to HTML, bytes to octet-stream, ``None`` to an empty body
    and anything else is JSON-encoded.
    """

    def __init__(self) -> None:
        self.status_code = 200
        self.headers: Dict[str, str] = {}
        self.content_type: Optional[str] = None
        self.body: Any = None
        self.sent = False

    def status(self, code: int) -> "ResponseWriter":
        self.status_code = int(code)
        return self

    def set(self, headers: Mapping[str, str]) -> "ResponseWriter":
        for key, value in headers.items():
            if key.lower() == "content-type":
                self.content_type = str(value)
            else:
                self.headers[key] = str(value)
        return self

    def type(self, media_type: str) -> "ResponseWriter":
        self.content_type = media_type
        return self

    def send(self, body: Any) -> "ResponseWriter":
        if self.sent:
            logger.warning("Response already sent, ignoring second body")
            return self
        self.body = body
        self.sent = True
        return self

    def _encode(self) -> Tuple[bytes, Optional[str]]:
        body = self.body
        content_type = self.content_type

        if body is None:
            return b"", content_type
        if isinstance(body, (bytes, bytearray)):
            return bytes(body), content_type or "application/octet-stream"
        if isinstance(body, str):
            content_type = content_type or "text/html"
            if "charset" not in content_type:
                content_type = f"{content_type}; charset=utf-8"
            return body.encode("utf-8"), content_type
        payload = json.dumps(body, default=str).encode("utf-8")
        return payload, content_type or "application/json; charset=utf-8"

    def to_web_response(self) -> web.Response:
        payload, content_type = self._encode()
        headers = dict(self.headers)
        if content_type:
            headers["Content-Type"] = content_type
        return web.Response(status=self.status_code, body=payload, headers=headers)


def multidict_to_dict(values: MultiMapping) -> Dict[str, Any]:
    """Flatten a multidict; keys that repeat map to a list of their values."""
    result: Dict[str, Any] = {}
    for key in dict.fromkeys(values.keys()):
        items = values.getall(key)
        result[key] = items[0] if len(items) == 1 else list(items)
    return result


async def read_body(request: web.Request) -> Tuple[Dict[str, Any], Any]:
    """Parse a form-encoded or JSON request body.

    Bodies that cannot be decoded count as empty.

    Returns:
        Tuple of (body mapping for the event, raw params for signature checks).
        Raw params are the parsed form, or the body bytes for anything else.
    """
    if not request.body_exists:
        return {}, {}

    if request.content_type in FORM_CONTENT_TYPES:
        try:
            form = await request.post()
        except ValueError as e:
            logger.warning(f"Ignoring undecodable form body: {e}")
            return {}, {}
        return multidict_to_dict(form), form

    raw = await request.read()
    if request.content_type != "application/json" or not raw:
        return {}, raw

    try:
        data = json.loads(raw.decode(request.charset or "utf-8"))
    except (UnicodeDecodeError, LookupError, json.JSONDecodeError) as e:
        logger.warning(f"Ignoring invalid JSON body: {e}")
        return {}, raw
    return (data if isinstance(data, dict) else {}), raw


class FunctionRouteHandler:
    """aiohttp handler serving one function."""

    def __init__(
        self,
        resource: FunctionResource,
        config: RuntimeConfig,
        loader: FunctionLoader,
        discovery: Optional[ResourceDiscovery] = None,
    ) -> None:
        self.resource = resource
        self.config = config
        self.loader = loader
        self.discovery = discovery

    def _has_valid_signature(self, request: web.Request, params: Any) -> bool:
        signature = request.headers.get(SIGNATURE_HEADER, "")
        auth_token = self.config.env.get("AUTH_TOKEN")
        if not signature or not auth_token:
            return False
        if isinstance(params, bytes):
            # Non-form bodies are only signed through the bodySHA256 query parameter
            if "bodySHA256" not in request.query:
                params = {}
            else:
                try:
                    params = params.decode("utf-8")
                except UnicodeDecodeError:
                    return False
        validator = RequestValidator(auth_token)
        return validator.validate(f"{self.config.url}{request.path_qs}", params, signature)

    async def _invoke(self, event: Dict[str, Any]) -> Tuple[Any, Any]:
        if get_global_scope() is None:
            construct_global_scope(self.config, self.discovery)
        context = construct_context(self.config)
        handler = await asyncio.to_thread(self.loader.load, self.resource)
        try:
            return await asyncio.wait_for(
                invoke_function(handler, context, event),
                timeout=self.config.invocation_timeout,
            )
        except asyncio.TimeoutError:
            raise InvocationTimeoutError(
                f"Function {self.resource.name} did not complete within "
                f"{self.config.invocation_timeout}s"
            )

    async def __call__(self, request: web.Request) -> web.Response:
        start_time = time.perf_counter()
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

        body, raw_params = await read_body(request)
        event = construct_event({"query": multidict_to_dict(request.query), "body": body})

        logger.info(
            "Incoming function request",
            extra=format_request_log(
                request_id=request_id,
                http_method=request.method,
                request_path=request.path,
                headers=request.headers,
                event=event,
                function_name=self.resource.name,
            ),
        )

        if (
            self.resource.visibility is Visibility.PROTECTED
            and self.config.validate_signatures
            and not self._has_valid_signature(request, raw_params)
        ):
            logger.warning(
                f"Rejected request to protected function {self.resource.name}",
                extra={"request_id": request_id},
            )
            return web.Response(
                status=401,
                text="Unauthorized - invalid or missing X-Twilio-Signature",
                headers={"X-Request-ID": request_id},
            )

        writer = ResponseWriter()
        try:
            error, result = await self._invoke(event)
        except Exception as e:
            error, result = e, None

        success = error is None
        response = None
        if success:
            try:
                handle_success(result, writer, self.config.twiml_tags)
                response = writer.to_web_response()
            except Exception as e:
                error, success = e, False
                writer = ResponseWriter()

        if response is None:
            logger.error(
                f"Function {self.resource.name} failed: {error}",
                extra={"request_id": request_id, "error_type": type(error).__name__},
                exc_info=error if isinstance(error, BaseException) else None,
            )
            handle_error(error, writer)
            response = writer.to_web_response()

        response.headers["X-Request-ID"] = request_id

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "Function request processed",
            extra=format_response_log(
                request_id=request_id,
                status_code=response.status,
                headers=response.headers,
                body=writer.body,
                duration_ms=duration_ms,
                success=success,
            ),
        )

        return response
