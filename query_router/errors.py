"""Exceptions raised inside the classification pipeline.

None of these escape ``QueryRouter.route_query``; ``ModelClassifier`` turns
every one of them into the safe default classification.
"""


class ClassificationError(Exception):
    """Base class for model-backed classification failures."""


class BackendUnavailableError(ClassificationError):
    """The backend is disabled, unconfigured or failed its health check."""


class ClassificationParseError(ClassificationError):
    """The backend answered, but not with a usable JSON classification."""


class AllProvidersFailedError(ClassificationError):
    """Every tier in the failover chain failed or was skipped."""
