"""Source ingestion: durable job queue, worker and per-kind processors."""

__version__ = "0.1.0"
