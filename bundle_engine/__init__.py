"""
.. include:: ../README.md
"""

__all__ = [
    "archive",
    "cluster",
    "config",
    "exceptions",
    "fs",
    "manifest",
    "provisioner",
    "source",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
