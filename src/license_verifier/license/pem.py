"""PEM block extraction and credential format sniffing."""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass

_PEM_BLOCK_RE = re.compile(
    rb"-----BEGIN (?P<type>[A-Z0-9 ]+)-----\r?\n"
    rb"(?P<body>.*?)"
    rb"-----END (?P=type)-----",
    re.DOTALL,
)
_HEADER_RE = re.compile(rb"^[A-Za-z0-9-]+:")
_B64URL_SEGMENT_RE = re.compile(rb"^[A-Za-z0-9_-]+$")


@dataclass(frozen=True)
class PemBlock:
    type: str
    der: bytes


def _decode_body(body: bytes) -> bytes | None:
    lines = [line.strip() for line in body.splitlines()]
    # RFC 1421 style headers ("Proc-Type: ...") precede a blank line.
    if lines and _HEADER_RE.match(lines[0]):
        try:
            lines = lines[lines.index(b"") + 1 :]
        except ValueError:
            return None
    try:
        return base64.b64decode(b"".join(lines), validate=True)
    except (binascii.Error, ValueError):
        return None


def iter_pem_blocks(data: bytes):
    for match in _PEM_BLOCK_RE.finditer(data):
        der = _decode_body(match.group("body"))
        if der is None:
            continue
        yield PemBlock(type=match.group("type").decode("ascii"), der=der)


def find_pem_block(data: bytes) -> PemBlock | None:
    """Return the first well-formed PEM block in ``data``, if any."""
    return next(iter_pem_blocks(data), None)


def looks_like_token(data: bytes) -> bool:
    """True for a compact JWS/JWT: three base64url segments joined by dots."""
    segments = data.strip().split(b".")
    if len(segments) != 3:
        return False
    header, payload, signature = segments
    if not header or not payload:
        return False
    return all(_B64URL_SEGMENT_RE.match(seg) for seg in (header, payload)) and (
        not signature or _B64URL_SEGMENT_RE.match(signature) is not None
    )
