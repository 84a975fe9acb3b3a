"""Ingestion package."""

from ppd.ingestion.fetch import fetch_missions, fetch_records, fetch_water_tests

__all__ = ["fetch_records", "fetch_missions", "fetch_water_tests"]
