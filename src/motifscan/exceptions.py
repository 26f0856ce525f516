"""
Exception and warning classes for motifscan.

Fatal conditions derive from :class:`MotifscanError` and abort a run (or a
single motif/sequence-set pair, for scanner problems).  Recoverable
conditions are expressed as warning categories; they are collected by the
run context and reported next to the normal output.
"""


class MotifscanError(Exception):
    """Base exception for all motifscan errors."""

    pass


# ============================================================================
# Fatal errors
# ============================================================================


class ConfigurationError(MotifscanError):
    """Raised when a required input is missing or a parameter is malformed."""

    pass


class MotifFormatError(ConfigurationError):
    """Raised when a motif file cannot be parsed."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Motif file {path} could not be parsed: {reason}")
        self.path = path
        self.reason = reason


class InsufficientBackgroundError(MotifscanError):
    """Raised when the background pool cannot supply the requested sample."""

    def __init__(self, required: int, available: int, length: int):
        super().__init__(
            f"Background pool cannot supply {required} sequences of length {length}: "
            f"{available} usable sequence(s) found"
        )
        self.required = required
        self.available = available
        self.length = length


class ScannerAdapterError(MotifscanError):
    """Raised when raw scanner output is empty or malformed.

    Fatal only for the motif/sequence-set pair being processed.
    """

    pass


class ExternalToolError(ScannerAdapterError):
    """Raised when an external scanning program is missing or fails."""

    def __init__(self, program: str, returncode: int, stderr: str = ""):
        detail = f": {stderr.strip()}" if stderr and stderr.strip() else ""
        super().__init__(f"{program} exited with status {returncode}{detail}")
        self.program = program
        self.returncode = returncode


# ============================================================================
# Recoverable conditions
# ============================================================================


class MotifscanWarning(UserWarning):
    """Base class for recoverable conditions surfaced with the output."""

    pass


class ThresholdNotAchievedWarning(MotifscanWarning):
    """No cutoff in the scan range meets the target false positive rate."""

    pass


class ImpreciseCoordinatesWarning(MotifscanWarning):
    """Genome coordinates of a hit could not be resolved exactly."""

    pass


class SamplingWithReplacementWarning(MotifscanWarning):
    """The background pool was too small and was sampled with replacement."""

    pass
