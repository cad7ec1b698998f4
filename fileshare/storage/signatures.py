"""
Signature Detector: infer a file extension from leading content bytes.

Rules are evaluated in registration order. A pattern rule matches when the
header starts with any one of its alternative byte prefixes. The plain-text
rule carries no pattern and instead tests every byte of the header window.

Pattern rules always take precedence over heuristic rules, so the text
heuristic never masks a binary signature whose bytes happen to be
printable (``%PDF-``, ``GIF89a``, ``{\\rtf1``). The text rule is therefore
only tried after every pattern rule, never at its own registration position.

Known ambiguity: several formats share one signature (docx/xlsx/pptx are
all zip archives, doc/xls/ppt are all OLE compound files). The first
registered rule wins. Detection never inspects container contents.

Complexity: O(R * P) per call for R rules of P alternatives, on at most
SIGNATURE_WINDOW_BYTES bytes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import BinaryIO, Callable, Optional

from fileshare.core import constants as C

logger = logging.getLogger(__name__)

# TAB, LF, CR and printable ASCII
_TEXT_BYTES = frozenset({0x09, 0x0A, 0x0D, *range(0x20, 0x7F)})


def is_plain_text(header: bytes) -> bool:
    """True when every byte is TAB, LF, CR or printable ASCII."""
    return all(b in _TEXT_BYTES for b in header)


@dataclass(frozen=True, slots=True)
class SignatureRule:
    """Association between alternative byte prefixes and an extension."""

    extension: str
    patterns: tuple[bytes, ...] = ()
    heuristic: Optional[Callable[[bytes], bool]] = None

    def __post_init__(self) -> None:
        if bool(self.patterns) == (self.heuristic is not None):
            raise ValueError(
                f"Rule {self.extension!r} needs either byte patterns or a heuristic"
            )

    @property
    def is_heuristic(self) -> bool:
        return self.heuristic is not None

    def matches(self, header: bytes) -> bool:
        if self.heuristic is not None:
            return self.heuristic(header)
        return any(header.startswith(p) for p in self.patterns)


_ZIP = (b"PK\x03\x04", b"PK\x05\x06", b"PK\x07\x08")
_OLE = (b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1",)

# =============================================================================
# SIGNATURE TABLE (priority order)
# =============================================================================
SIGNATURE_RULES: tuple[SignatureRule, ...] = (
    SignatureRule("pdf", (b"%PDF-",)),
    SignatureRule("png", (b"\x89PNG\r\n\x1a\n",)),
    SignatureRule("jpg", (b"\xff\xd8\xff",)),
    SignatureRule("gif", (b"GIF87a", b"GIF89a")),
    SignatureRule("tif", (b"II*\x00", b"MM\x00*")),
    SignatureRule("ico", (b"\x00\x00\x01\x00",)),
    SignatureRule("zip", _ZIP),
    SignatureRule("docx", _ZIP),
    SignatureRule("xlsx", _ZIP),
    SignatureRule("pptx", _ZIP),
    SignatureRule("doc", _OLE),
    SignatureRule("xls", _OLE),
    SignatureRule("rar", (b"Rar!\x1a\x07\x00", b"Rar!\x1a\x07\x01\x00")),
    SignatureRule("7z", (b"7z\xbc\xaf\x27\x1c",)),
    SignatureRule("gz", (b"\x1f\x8b\x08",)),
    SignatureRule("xz", (b"\xfd7zXZ\x00",)),
    SignatureRule("rtf", (b"{\\rtf1",)),
    SignatureRule("sqlite", (b"SQLite format 3\x00",)),
    SignatureRule("mkv", (b"\x1a\x45\xdf\xa3",)),
    SignatureRule("wasm", (b"\x00asm",)),
    SignatureRule("elf", (b"\x7fELF",)),
    SignatureRule("class", (b"\xca\xfe\xba\xbe",)),
    SignatureRule("txt", heuristic=is_plain_text),
)


def detect_extension(
    header: bytes,
    rules: tuple[SignatureRule, ...] = SIGNATURE_RULES,
) -> str:
    """
    Infer an extension label from a header window.

    Returns:
        Extension without the leading dot, or "" when unknown.
    """
    if len(header) < C.SIGNATURE_MIN_BYTES:
        return ""

    for rule in rules:
        if not rule.is_heuristic and rule.matches(header):
            return rule.extension

    for rule in rules:
        if rule.is_heuristic and rule.matches(header):
            return rule.extension

    return ""


def read_header(stream: BinaryIO, window: int = C.SIGNATURE_WINDOW_BYTES) -> bytes:
    """Read up to ``window`` bytes, tolerating short reads."""
    chunks: list[bytes] = []
    remaining = window
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def sniff_stream(
    stream: BinaryIO,
    window: int = C.SIGNATURE_WINDOW_BYTES,
) -> tuple[str, bytes]:
    """
    Detect the extension of a stream positioned at content start.

    Seekable streams are rewound to their entry position and the returned
    prefix is empty. Non-seekable streams cannot be rewound, so the consumed
    header is returned and must be written ahead of the rest of the stream.

    Returns:
        (extension, unconsumed_prefix)
    """
    seekable = _is_seekable(stream)
    start = stream.tell() if seekable else 0

    header = read_header(stream, window)
    extension = detect_extension(header)

    if seekable:
        stream.seek(start)
        prefix = b""
    else:
        prefix = header

    logger.debug(
        "Detected extension %r from %d header bytes",
        extension,
        len(header),
        extra={"extension": extension, "header_bytes": len(header)},
    )
    return extension, prefix


def _is_seekable(stream: BinaryIO) -> bool:
    seekable = getattr(stream, "seekable", None)
    if seekable is None:
        return False
    try:
        return bool(seekable())
    except (OSError, ValueError):
        return False
