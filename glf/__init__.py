"""git-flow branching across a tree of nested repositories."""

__version__ = "0.1.0"
