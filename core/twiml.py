"""Detection of TwiML documents returned by functions."""

from typing import Any, FrozenSet, Iterable, Optional

# Root element name shared by VoiceResponse, MessagingResponse and FaxResponse
DEFAULT_TWIML_TAGS: FrozenSet[str] = frozenset({"Response"})

XML_MEDIA_TYPE = "text/xml"


def is_twiml(value: Any, tags: Optional[Iterable[str]] = None) -> bool:
    """Return True if ``value`` is a TwiML document.

    Any object that can serialize itself with ``to_xml()`` and whose root
    element ``name`` is one of ``tags`` counts, so document kinds added to
    the SDK later are recognized as long as they keep the same root tag.
    Nested verbs (``Say``, ``Message``, ...) are not documents.
    """
    known_tags = DEFAULT_TWIML_TAGS if tags is None else frozenset(tags)
    if not callable(getattr(value, "to_xml", None)):
        return False
    name = getattr(value, "name", None)
    return isinstance(name, str) and name in known_tags


def to_xml(document: Any) -> str:
    """Serialize a TwiML document, XML declaration included."""
    return document.to_xml()
