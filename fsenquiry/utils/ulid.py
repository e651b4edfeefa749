"""ULID generation for gateway request ids.

Every request to the enquiry endpoint gets a 26-character ULID that is bound
into the logging context and echoed back in the ``X-Request-ID`` response
header, so a user-reported failure can be matched to its log lines.

Uses the `python-ulid` library; ULIDs are not hand-rolled.
"""

from __future__ import annotations

from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID as a 26-character uppercase string.

    Returns:
        str: Crockford Base32 ULID (charset ``[0-9A-HJKMNP-TV-Z]``), e.g.
             ``"01KJ0JRVHYA7KX32VPN5ZSCTMV"``.
    """
    return str(ULID())
