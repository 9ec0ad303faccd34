"""Batch executor: chunked dispatch, retries, aggregation and statistics."""
