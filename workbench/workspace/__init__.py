"""Workspace mirror: tree, state, executor and summaries."""
