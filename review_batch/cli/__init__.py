"""Command line interface for the review batch executor."""
