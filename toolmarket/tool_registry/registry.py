"""
Tool Registry implementation for maintaining the marketplace's tool inventory.
"""

import logging
from typing import List

from toolmarket.storage import DocumentStore, TOOLS_COLLECTION
from toolmarket.tool_registry.models import ToolDefinition, ToolFilter, ToolSpec, ToolUpdate, utc_now
from toolmarket.utils.error_handling import EmbeddingUnavailable, NotFound, timer
from toolmarket.utils.openai_client import EmbeddingProvider


logger = logging.getLogger(__name__)


class ToolRegistry:
    """
    Owns the canonical definition of every tool on the marketplace.

    Every stored tool carries an embedding: registration fails rather than
    persisting a tool that semantic search could never find. Tools are never
    physically removed; deactivation flips ``metadata.is_active`` so usage
    records keep pointing at a real definition.
    """

    def __init__(self, store: DocumentStore, embedder: EmbeddingProvider):
        """
        Initialize the Tool Registry.

        Args:
            store: Document store holding the ``tools`` collection
            embedder: Embedding provider used to compute search vectors
        """
        self.store = store
        self.embedder = embedder

    @timer("tool_registry")
    async def register(self, owner_id: str, spec: ToolSpec) -> ToolDefinition:
        """
        Register a tool on behalf of ``owner_id``.

        Args:
            owner_id: Caller registering the tool
            spec: Tool schema, pricing and API call template

        Returns:
            The stored tool definition, including its embedding

        Raises:
            EmbeddingUnavailable: If no embedding could be computed; nothing is stored
        """
        embedding = await self._generate_embedding(spec.embedding_text())

        now = utc_now()
        tool = ToolDefinition(
            **spec.model_dump(),
            owner_id=owner_id,
            embedding=embedding,
            created_at=now,
            updated_at=now
        )

        await self.store.insert(TOOLS_COLLECTION, tool.tool_id, tool.model_dump(mode="json"))
        logger.info(f"Registered tool {tool.tool_id} ({tool.name}) for owner {owner_id}")

        return tool

    async def update(self, tool_id: str, patch: ToolUpdate) -> ToolDefinition:
        """
        Apply a partial update to a tool.

        The embedding is recomputed only when the name, description or
        category changes; any other change keeps the stored vector as is.

        Args:
            tool_id: ID of the tool to update
            patch: Fields to change

        Returns:
            The updated tool definition

        Raises:
            NotFound: If the tool does not exist
            EmbeddingUnavailable: If re-embedding fails; nothing is written
        """
        tool = await self.get_by_id(tool_id)

        changes = patch.changes()
        if "metadata" in changes:
            changes["metadata"] = patch.metadata.apply_to(tool.metadata)
        updated = tool.model_copy(update={**changes, "updated_at": utc_now()}, deep=True)

        if patch.touches_embedding():
            updated.embedding = await self._generate_embedding(updated.embedding_text())
            logger.info(f"Recomputed embedding for tool {tool_id}")

        await self.store.replace(TOOLS_COLLECTION, tool_id, updated.model_dump(mode="json"))
        logger.info(f"Updated tool {tool_id}: {', '.join(sorted(changes)) or 'no changes'}")

        return updated

    async def deactivate(self, tool_id: str) -> bool:
        """
        Mark a tool inactive.

        Args:
            tool_id: ID of the tool

        Returns:
            True if an active tool was deactivated, False if it was already
            inactive or does not exist
        """
        document = await self.store.get(TOOLS_COLLECTION, tool_id)
        if document is None:
            return False

        tool = ToolDefinition.model_validate(document)
        if not tool.metadata.is_active:
            return False

        tool.metadata.is_active = False
        tool.updated_at = utc_now()
        await self.store.replace(TOOLS_COLLECTION, tool_id, tool.model_dump(mode="json"))
        logger.info(f"Deactivated tool {tool_id}")

        return True

    async def get_by_id(self, tool_id: str) -> ToolDefinition:
        """
        Retrieve a tool by ID, active or not.

        Raises:
            NotFound: If the tool does not exist
        """
        document = await self.store.get(TOOLS_COLLECTION, tool_id)
        if document is None:
            raise NotFound(f"Tool '{tool_id}' not found", component="tool_registry",
                           details={"tool_id": tool_id})
        return ToolDefinition.model_validate(document)

    async def list_by_criteria(self, criteria: ToolFilter) -> List[ToolDefinition]:
        """
        List tools matching the criteria, newest first.

        Args:
            criteria: Filter on owner, category, flags, cost and tags

        Returns:
            Matching tool definitions
        """
        documents = await self.store.find(TOOLS_COLLECTION)
        tools = [ToolDefinition.model_validate(document) for document in documents]
        matches = [tool for tool in tools if criteria.matches(tool)]
        matches.sort(key=lambda tool: tool.created_at, reverse=True)

        if criteria.limit is not None:
            matches = matches[:criteria.limit]
        return matches

    async def _generate_embedding(self, text: str) -> List[float]:
        """Compute an embedding, mapping any provider problem to EmbeddingUnavailable."""
        try:
            embedding = await self.embedder.embed(text)
        except EmbeddingUnavailable:
            raise
        except Exception as e:
            logger.error(f"Failed to generate embedding: {e}")
            raise EmbeddingUnavailable(f"Failed to generate embedding: {e}",
                                       component="tool_registry") from e

        if not embedding:
            raise EmbeddingUnavailable("Embedding provider returned an empty vector",
                                       component="tool_registry")
        return [float(value) for value in embedding]
