"""beadsync - optimistic concurrency for issue files kept in git repositories."""

from beadsync._version import version as __version__

__all__ = ["__version__"]
