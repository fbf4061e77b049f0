"""
Error types for read-aloud playback.

Every error carries a ``kind`` string that the playback orchestrator
forwards to the host with the ``error`` event.
"""


class ReadAloudError(Exception):
    """Base class for read-aloud failures."""

    kind = "error"


class ResolutionMiss(ReadAloudError):
    """Catalog identifier absent; the literal request text is used instead."""

    kind = "resolution_miss"


class AlignmentMismatch(ReadAloudError):
    """Spoken text and DOM text disagree; highlighting is disabled."""

    kind = "alignment_mismatch"


class MalformedMarkup(ReadAloudError):
    """Unterminated or unbalanced pronunciation markup."""

    kind = "malformed_markup"


class ProviderUnavailable(ReadAloudError):
    """Speech engine or synthesis service cannot be reached."""

    kind = "provider_unavailable"


class ProviderError(ReadAloudError):
    """Speech engine reported a failure while speaking."""

    kind = "provider_error"


class NetworkError(ReadAloudError):
    """Synthesis request failed."""

    kind = "network_error"


class NetworkTimeout(NetworkError):
    """Synthesis request did not complete in time."""

    kind = "network_timeout"
