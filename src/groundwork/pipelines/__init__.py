"""Pipelines: document ingestion, embedding backfill and prompt assembly."""
