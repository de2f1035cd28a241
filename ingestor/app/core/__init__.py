"""Shared constants for the ingestor service."""
SERVICE_NAME = "ingestor"
