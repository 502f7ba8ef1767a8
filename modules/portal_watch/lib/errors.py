from __future__ import annotations


class PortalWatchError(Exception):
    """Base exception for portal_watch failures."""


class PolicyDenied(PortalWatchError):
    """robots.txt disallows the source URL. Skips the source; not an error."""


class NavigationTimeout(PortalWatchError):
    """The results section never appeared after navigating to a source."""


class ExtractionFailure(PortalWatchError):
    """A single listing item could not be turned into a posting."""


class PaginationFailure(PortalWatchError):
    """Advancing to the next results page failed. Treated as end of results."""


class PersistenceFailure(PortalWatchError):
    """A store write failed. Aborts the source's cursor update."""


class SessionError(PortalWatchError):
    """Low-level browser failure (stale element, detached node, driver error)."""
