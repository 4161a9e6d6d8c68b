"""Error taxonomy for the scoring engine.

ConfigurationMissing
    A collaborator cannot run at all (no API key). Providers catch it and
    answer with a neutral score carrying an ``error`` note.
TransientFailure
    Network, timeout, HTTP status or decode problems. Providers raise it
    after their retries are exhausted; the orchestrator turns it into the
    fallback score for that category.
MalformedResult
    A collaborator answered, but not with a usable bounded score.
DataInsufficiency
    Too few valid price points to feed the trend models.
"""


class BuyIndexError(Exception):
    """Base class for every error raised by the engine."""


class ConfigurationMissing(BuyIndexError):
    """A collaborator is unavailable, typically because its credentials are unset."""


class TransientFailure(BuyIndexError):
    """A collaborator call failed in a way that may succeed on a later run."""


class MalformedResult(TransientFailure):
    """A collaborator returned a value that is not a finite score in [0, 100]."""


class DataInsufficiency(BuyIndexError):
    """Fewer price points survived parsing than the trend models require."""
