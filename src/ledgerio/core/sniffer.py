"""Best-effort content type detection."""

import codecs
import mimetypes
from pathlib import Path

from ..constants import BINARY_SIGNATURES, OCTET_STREAM

_BOMS = (codecs.BOM_UTF8, codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)

_SAMPLE_SIZE = 2048


def sniff(path: Path | str) -> str:
    """
    Guess the content type of ``path``.

    Known binary signatures win, then the file extension, then a look at
    the first bytes: text without NUL bytes is "text/plain". A path that
    does not exist yet (an export destination) is judged on its extension.
    Never raises; "application/octet-stream" means unknown.
    """
    path = Path(path)
    guessed, _ = mimetypes.guess_type(path.name)

    if not path.exists():
        return guessed or OCTET_STREAM
    if path.is_dir():
        return OCTET_STREAM

    try:
        with open(path, "rb") as f:
            head = f.read(_SAMPLE_SIZE)
    except OSError:
        return guessed or OCTET_STREAM

    for signature, content_type in BINARY_SIGNATURES.items():
        if head.startswith(signature):
            return content_type
    if guessed:
        return guessed
    if head.startswith(_BOMS) or (head and b"\x00" not in head):
        return "text/plain"
    return OCTET_STREAM
