"""Logging, metrics and tracing for the review batch executor."""
