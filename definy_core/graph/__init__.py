"""Commit DAG construction and traversal."""

from definy_core.graph.commit_graph import CommitGraph

__all__ = ["CommitGraph"]
