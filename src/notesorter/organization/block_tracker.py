"""Block identity and organization-state tracking.

Every block of a leaf document carries an ``OrganizationMetadata`` once it
has been seen by the pipeline. This module assigns identifiers, answers
"what hasn't been filed yet", records where filed blocks went, and keeps
identifiers unique within a document.
"""

from collections import Counter
from typing import Iterable, Optional

from notesorter.models.blocks import OrganizationMetadata, WhereOrganized, utcnow
from notesorter.models.document import Document
from notesorter.utils.ids import generate_block_id, is_well_formed_block_id
from notesorter.utils.logging import get_logger


logger = get_logger(__name__)


class BlockTracker:
    """Maintains per-block identity and organization metadata on documents.

    Only metadata is ever touched: block text, type and order are left as
    the user wrote them.
    """

    def ensure_identities(self, document: Document) -> int:
        """
        Give every block a well-formed identifier.

        Blocks with no metadata get fresh metadata with
        ``organization_status="no"``. Blocks whose metadata carries a legacy
        or short-form id get a new id; their other metadata fields are kept.
        Running this twice in a row assigns nothing the second time.

        Args:
            document: Leaf document (mutated in place)

        Returns:
            Number of identifiers assigned
        """
        assigned = 0
        for block in document.blocks:
            if block.metadata is None:
                block.metadata = OrganizationMetadata(
                    id=generate_block_id(document.id, block.type),
                    organization_status="no",
                    is_organized=False,
                )
                assigned += 1
            elif not is_well_formed_block_id(block.metadata.id):
                legacy_id = block.metadata.id
                block.metadata = block.metadata.model_copy(
                    update={
                        "id": generate_block_id(document.id, block.type),
                        "last_updated": utcnow(),
                    }
                )
                assigned += 1
                logger.debug(
                    "legacy_block_id_replaced",
                    document_id=document.id,
                    legacy_id=legacy_id,
                    block_id=block.metadata.id,
                )

        if assigned:
            logger.info("block_ids_assigned", document_id=document.id, count=assigned)
        return assigned

    def list_unorganized(self, document: Document) -> list:
        """
        Blocks that still need filing, in document order.

        A block qualifies when its status is anything other than ``yes``
        (including no metadata at all) and its text is not blank.
        """
        return [
            block
            for block in document.blocks
            if not block.is_blank()
            and (block.metadata is None or block.metadata.organization_status != "yes")
        ]

    def find_block(self, document: Document, block_id: str):
        """Return the block carrying ``block_id``, or None."""
        for block in document.blocks:
            if block.metadata is not None and block.metadata.id == block_id:
                return block
        return None

    def mark_organized(
        self,
        document: Document,
        block_id: str,
        destination_path: str,
        stored_summary: Optional[str] = None,
    ) -> bool:
        """
        Record that a block's content was filed at ``destination_path``.

        Appends a ``where_organized`` entry (a block may be filed into more
        than one place), sets the status to ``yes`` and refreshes
        ``last_updated``.

        Returns:
            False if no block carries ``block_id``
        """
        block = self.find_block(document, block_id)
        if block is None:
            logger.warning("mark_organized_block_missing", document_id=document.id, block_id=block_id)
            return False

        now = utcnow()
        block.metadata.where_organized.append(
            WhereOrganized(
                destination_path=destination_path,
                stored_summary=stored_summary,
                organized_at=now,
            )
        )
        block.metadata.organization_status = "yes"
        block.metadata.is_organized = True
        block.metadata.last_updated = now
        return True

    def enforce_unique_ids(self, document: Document) -> int:
        """
        Consistency pass: strip metadata from every block sharing an id.

        Copy-pasting a block clones its metadata verbatim. Rather than pick a
        winner, all blocks with the duplicated id lose their metadata and are
        re-identified by the next ``ensure_identities`` call.

        Returns:
            Number of blocks whose metadata was cleared
        """
        counts = Counter(
            block.metadata.id
            for block in document.blocks
            if block.metadata is not None and block.metadata.id
        )
        duplicated = {block_id for block_id, count in counts.items() if count > 1}
        if not duplicated:
            return 0

        cleared = 0
        for block in document.blocks:
            if block.metadata is not None and block.metadata.id in duplicated:
                block.metadata = None
                cleared += 1

        logger.warning(
            "duplicate_block_ids_cleared",
            document_id=document.id,
            duplicate_ids=sorted(duplicated),
            cleared=cleared,
        )
        return cleared

    def mark_all_organized(self, blocks: Iterable, document_id: str) -> None:
        """
        Identify blocks written into a destination and mark them organized.

        Existing ids and ``last_updated`` values are kept; only missing
        metadata is created.
        """
        for block in blocks:
            if block.metadata is None or not is_well_formed_block_id(block.metadata.id):
                block.metadata = OrganizationMetadata(id=generate_block_id(document_id, block.type))
            block.metadata.organization_status = "yes"
            block.metadata.is_organized = True
