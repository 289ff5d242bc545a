"""
Vector Context Memory

Stores conversation snippets with their embeddings and retrieves the ones
most similar to a new query, scoped to one conversation. Retrieval failures
never fail a turn: they are logged and yield an empty context.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Protocol
import logging

import cohere
import numpy as np

logger = logging.getLogger(__name__)


class Embedder(Protocol):
    """Turns texts into embedding vectors"""

    async def embed(self, texts: List[str], input_type: str) -> List[List[float]]:
        ...


class CohereEmbedder:
    """Embeddings from Cohere's embed endpoint"""

    def __init__(self, api_key: Optional[str], model: str = "embed-english-v3.0", client=None):
        self.model = model
        if client is not None:
            self.client = client
        elif api_key:
            self.client = cohere.AsyncClient(api_key=api_key)
        else:
            self.client = None
            logger.warning("Context memory disabled - COHERE_API_KEY not set")

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def embed(self, texts: List[str], input_type: str) -> List[List[float]]:
        response = await self.client.embed(texts=texts, model=self.model, input_type=input_type)
        return [list(vector) for vector in response.embeddings]


@dataclass
class MemoryRecord:
    conversation_id: str
    user_id: str
    content: str
    embedding: List[float]
    created_at: datetime = field(default_factory=datetime.utcnow)


def cosine_similarities(query: List[float], vectors: List[List[float]]) -> np.ndarray:
    """
    Cosine similarity of the query against each vector in one matrix product.

    Vectors whose dimension differs from the query's, and zero vectors,
    score 0.
    """
    query_vector = np.asarray(query, dtype=np.float64)
    scores = np.zeros(len(vectors), dtype=np.float64)
    rows = [i for i, vector in enumerate(vectors) if len(vector) == len(query_vector)]
    if not rows:
        return scores

    matrix = np.asarray([vectors[i] for i in rows], dtype=np.float64)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query_vector)
    dots = matrix @ query_vector
    scores[rows] = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)
    return scores


class VectorContextMemory:
    """
    In-process semantic memory of conversation context

    Responsibilities:
    - Save turn and document summaries per conversation
    - Retrieve relevant snippets above a similarity threshold
    - Fold retrieved context into system prompts
    """

    def __init__(self, embedder: Optional[Embedder] = None, min_relevance: float = 0.7, limit: int = 5):
        self.embedder = embedder
        self.min_relevance = min_relevance
        self.limit = limit
        self._records: List[MemoryRecord] = []

    @property
    def enabled(self) -> bool:
        if self.embedder is None:
            return False
        return getattr(self.embedder, "enabled", True)

    async def save_context(self, conversation_id: str, text: str, user_id: Optional[str] = None) -> None:
        """Embed and store a snippet; failures are logged and ignored"""
        if not self.enabled or not conversation_id or not text:
            return
        try:
            embedding = (await self.embedder.embed([text], "search_document"))[0]
        except Exception as e:
            logger.error(f"Error saving conversation context for conversation {conversation_id}: {str(e)}", exc_info=True)
            return
        self._records.append(MemoryRecord(
            conversation_id=conversation_id,
            user_id=user_id or "unknown",
            content=text,
            embedding=embedding
        ))
        logger.info(f"Saved conversation context for conversation {conversation_id}")

    async def get_relevant_context(self, query: str, conversation_id: str) -> str:
        """
        Snippets of this conversation similar to the query.

        Returns:
            Up to `limit` snippets joined by newlines, most similar first, or
            "" when nothing clears the threshold or retrieval fails
        """
        if not self.enabled or not query:
            return ""
        candidates = [record for record in self._records if record.conversation_id == conversation_id]
        if not candidates:
            return ""

        try:
            query_embedding = (await self.embedder.embed([query], "search_query"))[0]
        except Exception as e:
            logger.error(f"Error retrieving relevant context for conversation {conversation_id}: {str(e)}", exc_info=True)
            return ""

        scores = cosine_similarities(query_embedding, [record.embedding for record in candidates])
        ranked = np.argsort(-scores, kind="stable")
        selected = [candidates[i].content for i in ranked if scores[i] >= self.min_relevance][:self.limit]

        logger.info(f"Retrieved {len(selected)} relevant context items for conversation {conversation_id}")
        return "\n".join(selected).strip()

    def enhance_system_message(self, system_message: str, relevant_context: str) -> str:
        if not relevant_context:
            return system_message
        return f"{system_message}\n\nRelevant conversation history:\n{relevant_context}"

    def forget(self, conversation_id: str) -> None:
        self._records = [record for record in self._records if record.conversation_id != conversation_id]
