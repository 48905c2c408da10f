"""Routing engine: asks the classifier where unorganized blocks belong.

The router never raises for classifier trouble. Whatever goes wrong
(transport errors, non-JSON output, entries pointing at folders) the
content still lands somewhere: at worst in the catch-all Inbox document.
"""

import json
from typing import Any, Optional, Sequence

import httpx
from pydantic import ValidationError

from notesorter.models.routing import DestinationTreeNode, RoutedChunk, normalize_path
from notesorter.organization.destination_tree import container_paths, leaf_paths, serialize
from notesorter.organization.prompts import build_routing_prompt
from notesorter.services.exceptions import ClassificationUnavailable, MalformedResponse
from notesorter.services.llm_client import ClassificationService
from notesorter.utils.logging import get_logger
from notesorter.utils.text import extract_json_payload


logger = get_logger(__name__)


def parse_routing_response(raw: str) -> list[dict[str, Any]]:
    """
    Parse classifier text into a list of raw routing entries.

    Code fences and surrounding prose are removed first. JSON-mode models
    often wrap the array in an object (``{"chunks": [...]}``); an object with
    exactly one list value is unwrapped.

    Raises:
        MalformedResponse: If no JSON array can be recovered
    """
    payload = extract_json_payload(raw)
    try:
        data = json.loads(payload)
    except ValueError as e:
        raise MalformedResponse(f"Classifier output is not JSON: {e}", raw=payload) from e

    if isinstance(data, dict):
        lists = [value for value in data.values() if isinstance(value, list)]
        if len(lists) != 1:
            raise MalformedResponse("Classifier returned an object without a single array", raw=payload)
        data = lists[0]

    if not isinstance(data, list):
        raise MalformedResponse("Classifier output is not a JSON array", raw=payload)

    return data


class Router:
    """
    Turns unorganized blocks into routed chunks via the classifier.

    Example:
        >>> router = Router(LLMClient(config.llm), model="gpt-4o-mini", fallback_model="gpt-4o")
        >>> chunks = await router.route("Scratch", blocks, tree, document.content_text)
    """

    def __init__(
        self,
        classifier: ClassificationService,
        model: str,
        fallback_model: Optional[str] = None,
        excerpt_chars: int = 1200,
        inbox_path: str = "/Inbox",
    ):
        self.classifier = classifier
        self.model = model
        self.fallback_model = fallback_model or model
        self.excerpt_chars = excerpt_chars
        self.inbox_path = normalize_path(inbox_path) or "/Inbox"

    async def route(
        self,
        source_title: str,
        unorganized_blocks: Sequence,
        destination_tree: DestinationTreeNode,
        full_source_text: str,
        organization_rules: Optional[str] = None,
    ) -> list[RoutedChunk]:
        """
        Decide destinations for the given blocks.

        Args:
            source_title: Title of the source document
            unorganized_blocks: Blocks to route, in document order
            destination_tree: Tree of existing destinations
            full_source_text: Plain text of the whole source document
            organization_rules: Optional user rules appended to the prompt

        Returns:
            Valid chunks in classifier order, or a single Inbox chunk if the
            classifier could not produce any. Empty when there is nothing to route.
        """
        if not unorganized_blocks:
            return []

        block_texts = [block.text for block in unorganized_blocks]
        prompt = build_routing_prompt(
            source_title,
            block_texts,
            serialize(destination_tree),
            full_source_text,
            excerpt_chars=self.excerpt_chars,
            organization_rules=organization_rules,
        )

        try:
            entries = await self._classify(prompt)
        except ClassificationUnavailable as e:
            logger.error(
                "classification_failed",
                source_title=source_title,
                block_count=len(block_texts),
                models=e.models,
                error=str(e),
            )
            return [self._inbox_chunk(unorganized_blocks)]

        chunks = self._validate(entries, container_paths(destination_tree))
        if not chunks:
            logger.warning(
                "routing_fallback_to_inbox",
                source_title=source_title,
                block_count=len(block_texts),
                entries_received=len(entries),
            )
            return [self._inbox_chunk(unorganized_blocks)]

        logger.info(
            "routing_completed",
            source_title=source_title,
            block_count=len(block_texts),
            chunk_count=len(chunks),
            paths=[chunk.path for chunk in chunks],
            new_paths=self._new_paths(chunks, destination_tree),
        )
        return chunks

    async def _classify(self, prompt: str) -> list[dict[str, Any]]:
        """Try the primary model, then the fallback model once."""
        attempted: list[str] = []
        last_error: Optional[Exception] = None

        for model in (self.model, self.fallback_model):
            attempted.append(model)
            try:
                raw = await self.classifier.invoke(prompt, model)
                return parse_routing_response(raw)
            except (httpx.HTTPError, ClassificationUnavailable, TimeoutError) as e:
                last_error = e
                logger.warning(
                    "classification_attempt_failed",
                    model=model,
                    attempt=len(attempted),
                    error=str(e),
                    error_type=type(e).__name__,
                )

        raise ClassificationUnavailable(
            f"Classification failed with every model: {last_error}",
            models=attempted,
        )

    def _validate(self, entries: list[Any], containers: set[str]) -> list[RoutedChunk]:
        chunks: list[RoutedChunk] = []
        for index, entry in enumerate(entries):
            if not isinstance(entry, dict):
                logger.warning("routing_entry_dropped", index=index, cause="not_an_object")
                continue
            try:
                chunk = RoutedChunk.model_validate(entry)
            except ValidationError as e:
                logger.warning("routing_entry_dropped", index=index, cause="invalid", error=str(e))
                continue

            if not chunk.path or not chunk.content.strip():
                logger.warning("routing_entry_dropped", index=index, cause="blank")
                continue
            if chunk.path.casefold() in containers:
                logger.warning("routing_entry_dropped", index=index, cause="container", path=chunk.path)
                continue

            chunks.append(chunk)
        return chunks

    def _new_paths(self, chunks: list[RoutedChunk], destination_tree: DestinationTreeNode) -> list[str]:
        """Routed paths that do not name an existing leaf yet."""
        leaves = leaf_paths(destination_tree)
        return [chunk.path for chunk in chunks if chunk.path.casefold() not in leaves]

    def _inbox_chunk(self, blocks: Sequence) -> RoutedChunk:
        """Catch-all chunk carrying every routed block exactly as written."""
        return RoutedChunk(
            target_path=self.inbox_path,
            content="\n".join(block.text for block in blocks),
            sources=list(range(1, len(blocks) + 1)),
            verbatim_blocks=[block.model_copy(update={"metadata": None}, deep=True) for block in blocks],
        )
