"""Explicit response builder handed to functions as ``Twilio.Response``."""

from typing import Any, Dict, Mapping, Optional


class Response:
    """Status code, headers and body returned by a function.

    Unset fields keep their defaults: status 200, no extra headers, no body.
    Setters return the instance so calls can be chained.
    """

    def __init__(
        self,
        status_code: int = 200,
        headers: Optional[Mapping[str, str]] = None,
        body: Any = None,
    ) -> None:
        self._status_code = status_code
        self._headers: Dict[str, str] = dict(headers or {})
        self._body = body

    @property
    def status_code(self) -> int:
        return self._status_code

    @property
    def headers(self) -> Dict[str, str]:
        return dict(self._headers)

    @property
    def body(self) -> Any:
        return self._body

    def set_status_code(self, status_code: int) -> "Response":
        self._status_code = int(status_code)
        return self

    def set_body(self, body: Any) -> "Response":
        self._body = body
        return self

    def set_headers(self, headers: Mapping[str, str]) -> "Response":
        """Replace all headers."""
        self._headers = dict(headers)
        return self

    def append_header(self, key: str, value: str) -> "Response":
        self._headers[key] = value
        return self

    def __repr__(self) -> str:
        return (
            f"Response(status_code={self._status_code!r}, "
            f"headers={self._headers!r}, body={self._body!r})"
        )
