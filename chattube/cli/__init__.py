"""Command-line tools for the ingestion worker.

- ``chattube-worker`` / ``python -m chattube.cli`` -- start the worker,
  inspect queue counts and job status, enqueue sources and purge old jobs.
"""
