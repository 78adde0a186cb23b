"""prdeck - terminal dashboard for pull requests and CI checks."""

__version__ = "0.4.0"
