"""Document ingestion pipeline for the docvault store.

Orchestrates: **extract -> chunk -> embed -> store**.

1. **Extract** (services/extraction/) -- bytes + MIME type → plain text.

2. **Chunk** (chunker.py / TextChunker) -- splits text into overlapping
   character windows, snapping ends to sentence boundaries.

3. **Embed** (via IEmbeddingProvider) -- one vector per chunk.

4. **Store** (via IVectorStoreProvider) -- chunks and vectors committed
   in two transactions; a deleted document is never resurrected.

IngestionPipeline runs these stages for one document; IngestionQueue runs
pipelines in the background on a bounded pool of worker tasks.
"""

from docvault.services.ingestion.chunker import TextChunker, chunk_text
from docvault.services.ingestion.ingestion_pipeline import IngestionPipeline
from docvault.services.ingestion.ingestion_queue import IngestionQueue

__all__ = [
    "IngestionPipeline",
    "IngestionQueue",
    "TextChunker",
    "chunk_text",
]
