"""
Exception types for the scanning pipeline.

Only input errors (bad targets, bad rule definitions) are raised to the
caller. Per-host failures are absorbed by the workers and scoring errors
are returned as error-bearing result objects.
"""


class NetauditError(Exception):
    """Base class for all netaudit errors."""


class InvalidTargetError(NetauditError, ValueError):
    """A host range that cannot be turned into a list of scan targets."""

    def __init__(self, target: str, reason: str = "unparseable target"):
        self.target = target
        self.reason = reason
        super().__init__(f"Invalid target {target!r}: {reason}")


class InvalidRuleError(NetauditError, ValueError):
    """A rule definition (service catalog, device rules, alert rule) is malformed."""


class ScanProcessError(NetauditError):
    """The external scan process could not be launched or supervised."""

    def __init__(self, host: str, message: str):
        self.host = host
        super().__init__(f"Scan process for {host} failed: {message}")


class ScanInProgressError(NetauditError):
    """A scan was requested while another one is still running."""
