"""Exception hierarchy for prdeck."""

from __future__ import annotations


class PrDeckError(Exception):
    """Base class for all prdeck errors."""


class ConfigError(PrDeckError):
    """Invalid or unreadable configuration."""


class GitHubError(PrDeckError):
    """GitHub CLI or GraphQL error."""


class CircleCIError(PrDeckError):
    """CircleCI API error."""


class CacheError(PrDeckError):
    """Local cache read/write failure."""


class CheckoutError(PrDeckError):
    """Branch checkout failed. The message is the VCS stderr."""
