"""Relation graph fetching."""

from register_engine.fetcher.graph_fetcher import ResourceGraphFetcher, fetch_graph

__all__ = ["ResourceGraphFetcher", "fetch_graph"]
