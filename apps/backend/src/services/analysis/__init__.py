"""Streaming document analysis: providers, extraction, multiplexing, recovery."""
