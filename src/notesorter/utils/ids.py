"""Block identifier generation for notesorter."""

import re
import secrets
import time
from typing import Optional


# {document_id}-{block_type}-{epoch millis}-{8 hex}
_BLOCK_ID_PATTERN = re.compile(
    r"^(?P<document>.+)-(?P<type>paragraph|heading|list_item|quote|code)-(?P<ts>\d{13})-(?P<suffix>[0-9a-f]{8})$"
)


def generate_block_id(document_id: str, block_type: str, timestamp_ms: Optional[int] = None) -> str:
    """
    Generate a globally unique block identifier.

    The identifier embeds the owning document, the block type, the creation
    time and a random suffix, so two blocks created in the same millisecond
    still differ.

    Args:
        document_id: Owning document identifier
        block_type: Block discriminator (e.g. "paragraph")
        timestamp_ms: Creation time in epoch milliseconds (defaults to now)

    Returns:
        Identifier string

    Example:
        >>> generate_block_id("doc-1", "paragraph")
        "doc-1-paragraph-1760870400000-9f2c1a7b"
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{document_id}-{block_type}-{timestamp_ms:013d}-{secrets.token_hex(4)}"


def is_well_formed_block_id(block_id: Optional[str]) -> bool:
    """
    Check whether an identifier uses the current block id format.

    Legacy short-form identifiers (``para-...``, ``{doc}-p-0``) and empty
    values are not well formed.
    """
    if not block_id:
        return False
    return parse_block_id(block_id) is not None


def parse_block_id(block_id: str) -> Optional[dict]:
    """Split a well-formed block id into its parts, or None."""
    match = _BLOCK_ID_PATTERN.match(block_id or "")
    if match is None:
        return None
    return {
        "document_id": match.group("document"),
        "block_type": match.group("type"),
        "timestamp_ms": int(match.group("ts")),
        "suffix": match.group("suffix"),
    }
