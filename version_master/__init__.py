"""version-master: keep a set of git repos in sync from one terminal dashboard."""

__version__ = "0.3.0"
