"""Article retrieval.

Contents
- ``filters``: ordered metadata filter combinators
- ``keyword``: keyword index adapter
- ``vector``: vector index adapter and cosine helpers
- ``planner``: ``HybridQueryPlanner`` exposing keyword and vector search
"""
