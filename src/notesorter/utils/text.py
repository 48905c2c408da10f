"""Text helpers: normalization, classifier output cleaning, markdown to blocks."""

import re

from notesorter.models.blocks import Code, Heading, ListItem, Paragraph, Quote


_WHITESPACE = re.compile(r"\s+")
_FENCE_LINE = re.compile(r"^\s*```[\w-]*\s*$")
_HEADING = re.compile(r"^(#{1,6})\s+(.*)$")
_BULLET = re.compile(r"^[-*+]\s+(.*)$")
_ORDERED = re.compile(r"^\d+[.)]\s+(.*)$")
_QUOTE = re.compile(r"^>\s?(.*)$")


def normalize_text(text: str) -> str:
    """
    Collapse runs of whitespace and trim, for duplicate detection.

    Example:
        >>> normalize_text("  Buy   milk\\n\\nCall dentist ")
        "Buy milk Call dentist"
    """
    return _WHITESPACE.sub(" ", text or "").strip()


def strip_code_fences(raw: str) -> str:
    """
    Remove markdown code fence lines from a classifier response.

    Example:
        >>> strip_code_fences("```json\\n[]\\n```")
        "[]"
    """
    lines = [line for line in (raw or "").split("\n") if not _FENCE_LINE.match(line)]
    return "\n".join(lines).strip()


def extract_json_payload(raw: str) -> str:
    """
    Cut a JSON array (or object) out of a response with surrounding prose.

    Code fences are stripped first. If the text holds an array, the span from
    the first '[' to the last ']' is returned; otherwise the span from the
    first '{' to the last '}'. Text without brackets is returned unchanged so
    the caller's JSON parser reports the error.
    """
    cleaned = strip_code_fences(raw)

    start = cleaned.find("[")
    end = cleaned.rfind("]")
    obj_start = cleaned.find("{")
    if start != -1 and end > start and (obj_start == -1 or start < obj_start):
        return cleaned[start:end + 1]

    obj_end = cleaned.rfind("}")
    if obj_start != -1 and obj_end > obj_start:
        return cleaned[obj_start:obj_end + 1]

    return cleaned


def markdown_to_blocks(text: str) -> list:
    """
    Convert light markdown into content blocks.

    Recognizes ``#``-``######`` headings, ``-``/``*``/``+`` and ``1.`` list
    items, ``>`` quotes and fenced code. Consecutive plain lines form one
    paragraph (joined with newlines); blank lines end a paragraph.

    Args:
        text: Classifier or user supplied text

    Returns:
        List of blocks without metadata

    Example:
        >>> [b.text for b in markdown_to_blocks("Buy milk\\nCall dentist")]
        ["Buy milk\\nCall dentist"]
    """
    blocks = []
    paragraph: list[str] = []
    code_lines: list[str] = []
    code_language = None
    in_code = False

    def flush_paragraph():
        if paragraph:
            joined = "\n".join(paragraph).strip()
            if joined:
                blocks.append(Paragraph(text=joined))
            paragraph.clear()

    for line in (text or "").split("\n"):
        stripped = line.strip()

        if in_code:
            if stripped.startswith("```"):
                blocks.append(Code(text="\n".join(code_lines), language=code_language))
                code_lines = []
                in_code = False
            else:
                code_lines.append(line)
            continue

        if stripped.startswith("```"):
            flush_paragraph()
            in_code = True
            code_language = stripped[3:].strip() or None
            continue

        if not stripped:
            flush_paragraph()
            continue

        if match := _HEADING.match(stripped):
            flush_paragraph()
            blocks.append(Heading(text=match.group(2).strip(), level=len(match.group(1))))
        elif match := _BULLET.match(stripped):
            flush_paragraph()
            blocks.append(ListItem(text=match.group(1).strip()))
        elif match := _ORDERED.match(stripped):
            flush_paragraph()
            blocks.append(ListItem(text=match.group(1).strip(), ordered=True))
        elif match := _QUOTE.match(stripped):
            flush_paragraph()
            blocks.append(Quote(text=match.group(1).strip()))
        else:
            paragraph.append(line.rstrip())

    # Unterminated fence keeps its content as code
    if in_code and code_lines:
        blocks.append(Code(text="\n".join(code_lines), language=code_language))
    flush_paragraph()

    if not blocks and (text or "").strip():
        blocks.append(Paragraph(text=text.strip()))

    return blocks
