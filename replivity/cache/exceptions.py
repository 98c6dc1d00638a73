"""Cache layer exceptions."""


class CacheError(Exception):
    """Base class for cache layer errors."""


class CacheNotInitializedError(CacheError):
    """Operation needs an initialized store."""


class RemoteTierUnavailableError(CacheError):
    """The remote tier is required but missing or unreachable."""


class CacheSerializationError(CacheError):
    """A cached value could not be encoded or decoded."""
