"""Source ingestion pipeline.

Flow for one job: **enqueue -> claim -> process -> persist -> complete**.

1. **Queue** (queue.py / IngestionQueue) -- durable jobs with atomic claim,
   exponential backoff, lease reclaim and retention cleanup.

2. **Worker** (worker.py / IngestionWorker) -- polling loop that claims up
   to ``concurrency`` jobs per cycle and reports each outcome.

3. **Service** (ingestion_service.py / IngestionService) -- loads the
   source, routes it through the ProcessorRegistry and replaces its chunks.

4. **Processors** (source_processors/) -- one per source kind.  Video
   sources run through the AudioPipeline (audio_pipeline.py); web, document
   and file sources are split by the TextChunker (chunker.py).
"""

from chattube.services.ingestion.audio_pipeline import AudioPipeline, ChunkingPolicy
from chattube.services.ingestion.chunker import TextChunker
from chattube.services.ingestion.ingestion_service import IngestionService
from chattube.services.ingestion.queue import IngestionQueue, QueuePolicy
from chattube.services.ingestion.registry import ProcessorRegistry
from chattube.services.ingestion.worker import IngestionWorker

__all__ = [
    "AudioPipeline",
    "ChunkingPolicy",
    "IngestionQueue",
    "IngestionService",
    "IngestionWorker",
    "ProcessorRegistry",
    "QueuePolicy",
    "TextChunker",
]
