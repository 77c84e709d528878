"""Representation registry: supported wire encodings and their codecs.

A representation is identified by its media type token (e.g.
"application/json"). Each one also carries the numeric content-format code
used by constrained protocols, so a request may name it either way.

Example:
    registry = RepresentationRegistry.default()
    registry.supported()                      # ("application/json", "application/cbor")
    registry.format_code_of("application/cbor")  # 60
    cbor = registry.get("60")
    cbor.decode(cbor.encode(10))              # 10
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

import cbor2

from wotcalc.core.errors import (
    RepresentationDecodeError,
    RepresentationEncodeError,
    UnknownRepresentation,
)

JSON = "application/json"
CBOR = "application/cbor"


def _encode_json(value: Any) -> bytes:
    try:
        return json.dumps(value, allow_nan=False).encode("utf-8")
    except (TypeError, ValueError, RecursionError) as e:
        raise RepresentationEncodeError(f"Cannot encode as JSON: {e}") from e


def _decode_json(payload: bytes) -> Any:
    try:
        return json.loads(payload.decode("utf-8"))
    except (ValueError, RecursionError) as e:
        raise RepresentationDecodeError(f"Invalid JSON payload: {e}") from e


def _encode_cbor(value: Any) -> bytes:
    try:
        return cbor2.dumps(value)
    except (cbor2.CBOREncodeError, TypeError, ValueError, RecursionError) as e:
        raise RepresentationEncodeError(f"Cannot encode as CBOR: {e}") from e


def _decode_cbor(payload: bytes) -> Any:
    try:
        return cbor2.loads(payload)
    except (cbor2.CBORDecodeError, ValueError, RecursionError) as e:
        raise RepresentationDecodeError(f"Invalid CBOR payload: {e}") from e


@dataclass(frozen=True)
class _Codec:
    encode: Callable[[Any], bytes]
    decode: Callable[[bytes], Any]
    textual: bool


_CODECS: dict[str, _Codec] = {
    JSON: _Codec(_encode_json, _decode_json, textual=True),
    CBOR: _Codec(_encode_cbor, _decode_cbor, textual=False),
}


def has_codec(content_type: str) -> bool:
    """Return True if a codec exists for the media type."""
    return normalize_token(content_type) in _CODECS


def normalize_token(token: str) -> str:
    """Strip media type parameters and case: 'Application/JSON; charset=utf-8' -> 'application/json'."""
    return token.split(";", 1)[0].strip().lower()


@dataclass(frozen=True)
class Representation:
    """A registered wire encoding.

    Attributes:
        content_type: Media type used as the negotiation token.
        format_code: Numeric content-format code.
        default: True for the representation used by base forms.
    """

    content_type: str
    format_code: int
    default: bool = False

    @property
    def textual(self) -> bool:
        """True if encoded payloads are UTF-8 text."""
        return _CODECS[self.content_type].textual

    def encode(self, value: Any) -> bytes:
        return _CODECS[self.content_type].encode(value)

    def decode(self, payload: bytes) -> Any:
        return _CODECS[self.content_type].decode(payload)


class RepresentationRegistry:
    """Ordered, immutable table of supported representations."""

    def __init__(self, representations: Iterable[Representation]) -> None:
        entries = tuple(representations)
        if not entries:
            raise ValueError("At least one representation must be registered")

        by_token: dict[str, Representation] = {}
        by_code: dict[int, Representation] = {}
        for rep in entries:
            if rep.content_type not in _CODECS:
                raise ValueError(f"No codec for representation: {rep.content_type}")
            if rep.content_type in by_token:
                raise ValueError(f"Duplicate representation: {rep.content_type}")
            if rep.format_code in by_code:
                raise ValueError(f"Duplicate format code: {rep.format_code}")
            by_token[rep.content_type] = rep
            by_code[rep.format_code] = rep

        defaults = [rep for rep in entries if rep.default]
        if len(defaults) != 1:
            raise ValueError(
                f"Exactly one default representation required, got {len(defaults)}"
            )

        self._entries = entries
        self._by_token = by_token
        self._by_code = by_code
        self._default = defaults[0]

    @classmethod
    def default(cls) -> RepresentationRegistry:
        """Registry with JSON (default, code 50) and CBOR (code 60)."""
        return cls([
            Representation(JSON, 50, default=True),
            Representation(CBOR, 60),
        ])

    def __iter__(self):
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def default_representation(self) -> Representation:
        return self._default

    def supported(self) -> tuple[str, ...]:
        """Return the registered tokens in registration order."""
        return tuple(rep.content_type for rep in self._entries)

    def is_supported(self, token: str | None) -> bool:
        return self._lookup(token) is not None

    def format_code_of(self, token: str) -> int:
        """Return the numeric format code for a token.

        Raises:
            UnknownRepresentation: If the token is not registered.
        """
        return self.get(token).format_code

    def get(self, token: str | None) -> Representation:
        """Resolve a media type (parameters allowed) or numeric format code.

        Raises:
            UnknownRepresentation: If the token is not registered.
        """
        rep = self._lookup(token)
        if rep is None:
            raise UnknownRepresentation(token)
        return rep

    def _lookup(self, token: str | None) -> Representation | None:
        if token is None:
            return None
        token = token.strip()
        if token.isascii() and token.isdigit():
            return self._by_code.get(int(token))
        return self._by_token.get(normalize_token(token))

    def encode(self, token: str, value: Any) -> bytes:
        """Encode a value in the named representation.

        Raises:
            UnknownRepresentation: If the token is not registered.
            RepresentationEncodeError: If the value cannot be encoded.
        """
        return self.get(token).encode(value)

    def decode(self, token: str | None, payload: bytes) -> Any:
        """Decode a payload declared in the named representation.

        Raises:
            UnknownRepresentation: If the token is not registered.
            RepresentationDecodeError: If the payload is malformed.
        """
        return self.get(token).decode(payload)

    def negotiate_accept(self, accept: str | None) -> Representation:
        """Select the response representation for an Accept header.

        A missing header or a wildcard selects the default. Otherwise the
        listed media types are tried by descending q-value, in listed order
        for equal weights; entries with q=0 are skipped.

        Raises:
            UnknownRepresentation: If no listed media type is registered.
        """
        if accept is None or not accept.strip():
            return self._default

        candidates: list[tuple[float, int, str]] = []
        for index, item in enumerate(accept.split(",")):
            media, _, params = item.partition(";")
            quality = 1.0
            for param in params.split(";"):
                key, _, value = param.partition("=")
                if key.strip().lower() == "q":
                    try:
                        quality = float(value)
                    except ValueError:
                        quality = 0.0
            if quality > 0 and media.strip():
                candidates.append((-quality, index, media.strip()))

        for _, _, media in sorted(candidates):
            if media in ("*/*", "application/*"):
                return self._default
            rep = self._lookup(media)
            if rep is not None:
                return rep

        raise UnknownRepresentation(accept)
