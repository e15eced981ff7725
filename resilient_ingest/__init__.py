"""Resilient multi-source data ingestion client."""

__version__ = "0.1.0"
