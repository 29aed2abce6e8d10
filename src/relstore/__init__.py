"""
relstore - In-process relational data management core

A small single-node store with typed tables, primary and foreign keys,
secondary and partial indexes, virtual and materialized views, and
atomic transactions over copy-on-write drafts.
"""

__version__ = "0.1.0"
__author__ = "Systems Engineering Portfolio"
