"""Pedigree Layout - incremental layout engine for family pedigree graphs.

Arranges people, partnerships and parent-child links into generations with
few edge crossings, and keeps the drawing stable while the pedigree is
edited one fact at a time.
"""

__version__ = "0.3.0"

# Lazy imports to avoid circular dependencies
def __getattr__(name: str):
    if name == "graph":
        from pedigree_layout import graph
        return graph
    if name == "layout":
        from pedigree_layout import layout
        return layout
    if name == "DynamicPedigree":
        from pedigree_layout.dynamic import DynamicPedigree
        return DynamicPedigree
    if name == "ChangeSet":
        from pedigree_layout.changes import ChangeSet
        return ChangeSet
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
