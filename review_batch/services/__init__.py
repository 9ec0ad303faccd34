"""Collaborators that feed work into the batch executor."""
