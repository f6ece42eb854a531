"""Error types shared by the provider clients, the image pipeline and the API layer.

Plain ``ValueError`` is used for request validation problems. Everything that
fails because of an upstream service or a missing credential is a
``RuntimeError`` subclass, so callers can keep a 400/500 split.
"""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """A provider credential or setting is missing."""


class ProviderError(RuntimeError):
    """An external API failed or returned a response we could not use."""


class ImageFetchError(RuntimeError):
    pass


class ImageNormalizeError(RuntimeError):
    pass


class ImageMergeError(RuntimeError):
    """No product image survived download and normalization."""


class PayloadTooLargeError(ValueError):
    pass


class VideoTaskFailedError(RuntimeError):
    pass


class VideoTaskTimeoutError(TimeoutError):
    pass
