"""PEM envelope helpers.

cryptography only emits PEM under its own labels, so keys whose label differs
from the library's choice (Ed25519 under "OPENSSH PRIVATE KEY") are wrapped
here from their DER encoding.
"""

import base64
import binascii
import re
import textwrap

_LINE_WIDTH = 64

_BLOCK_RE = re.compile(
    rb"-----BEGIN (?P<label>[A-Z0-9 ]+)-----\r?\n"
    rb"(?P<body>.*?)"
    rb"-----END (?P=label)-----",
    re.DOTALL,
)


def encode_pem(label: str, der: bytes) -> bytes:
    """Wrap DER bytes in a PEM block with the given label."""
    body = base64.b64encode(der).decode("ascii")
    lines = textwrap.wrap(body, _LINE_WIDTH)
    return (
        f"-----BEGIN {label}-----\n" + "\n".join(lines) + f"\n-----END {label}-----\n"
    ).encode("ascii")


def decode_pem(data: bytes) -> tuple[str, bytes]:
    """Return (label, DER) of the first PEM block in data.

    Raises:
        ValueError: If no well-formed block is found.
    """
    match = _BLOCK_RE.search(data)
    if match is None:
        raise ValueError("No PEM block found")

    try:
        der = base64.b64decode(b"".join(match.group("body").split()), validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid PEM body: {e}") from e

    return match.group("label").decode("ascii"), der
