"""hu-reconciler: find the tickets pending promotion between two branches."""

__version__ = "0.1.0"
