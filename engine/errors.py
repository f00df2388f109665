# engine/errors.py
#
# The error taxonomy. Each kind is handled at a different level:
#
#   ConfigurationError → skip the one affected commitment/message, keep going
#   TransportError     → abort the current protocol step, retry next cycle
#   RecordStoreError   → same as transport: nothing after the failing step runs
#   StartupError       → the only one that stops the process, before scheduling
#
# Summarizer failures never raise; the summarizer returns None instead.


class ImpactError(Exception):
    """Base class for every error raised by this project."""


class ConfigurationError(ImpactError):
    """A commitment, template or credential is missing or malformed."""


class TransportError(ImpactError):
    """Sending, listing or marking mail failed."""


class RecordStoreError(ImpactError):
    """Reading or writing the record vault failed."""


class StartupError(ImpactError):
    """Required settings are missing; the daemon must not start."""
