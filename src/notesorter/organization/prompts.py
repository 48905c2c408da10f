"""Routing prompt template and builder."""

from textwrap import dedent
from typing import Optional, Sequence


def build_routing_prompt(
    source_title: str,
    block_texts: Sequence[str],
    tree_text: str,
    full_source_text: str,
    excerpt_chars: int = 1200,
    organization_rules: Optional[str] = None,
) -> str:
    """Build the user prompt that asks the classifier to route blocks.

    Args:
        source_title: Title of the document being organized
        block_texts: Unorganized block texts, numbered 1..N in the prompt
        tree_text: Serialized destination outline ([DIR]/[FILE] lines)
        full_source_text: Plain text of the whole source document
        excerpt_chars: How much of the source text to include for topical context
        organization_rules: Optional user rules from the source document's metadata

    Returns:
        Prompt text
    """
    numbered = "\n".join(f"{i}. {text}" for i, text in enumerate(block_texts, start=1))
    excerpt = full_source_text[:excerpt_chars]
    tree = tree_text or "(empty: no destinations exist yet)"

    template = dedent("""
        Route each unorganized block below to a [FILE] in the file tree, or to a
        new [FILE] inside an existing or new [DIR]. Never route to a [DIR] itself.

        PAGE TITLE: "{title}"

        FULL PAGE CONTENT (for topical context, truncated to {excerpt_chars} characters):
        \"\"\"
        {excerpt}
        \"\"\"

        CURRENT FILE TREE:
        {tree}

        UNORGANIZED BLOCKS (to route):
        {numbered}

        TASK:
        1. Decide which file each block belongs in, given the tree and the page context.
        2. Group blocks that belong in the same destination into one entry.
        3. You may tidy wording, but do not drop any information the user wrote.
        4. Return a JSON array with one object per destination:
           {{"targetPath": "/Path/To/File", "content": "text to file there", "sources": [1, 2]}}
           "sources" lists the block numbers that went into the entry.
        5. Respond ONLY with the JSON array: no markdown fences, no extra prose.
    """).strip()

    prompt = template.format(
        title=source_title,
        excerpt_chars=excerpt_chars,
        excerpt=excerpt,
        tree=tree,
        numbered=numbered,
    )

    if organization_rules and organization_rules.strip():
        prompt += (
            "\n\nORGANIZATION RULES (follow strictly, do NOT drop any important information):\n"
            + organization_rules.strip()
        )
    return prompt
