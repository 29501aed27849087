"""Service layer: queue policy, worker scheduling and ingestion orchestration."""
