"""
T16 Virtual Emulator: exception hierarchy.

Only load failures and bounds violations are exceptions. A malformed
instruction is a normal stop of the run loop (see StopReason.MALFORMED).
"""


class T16Error(Exception):
    """Base class for every error raised by the emulator package."""


class ProgramLoadError(T16Error):
    """Raised when the program image cannot be opened or read."""

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot open program image {path}: {reason}")


class MemoryBoundsError(T16Error, IndexError):
    """Raised on any access outside a fixed-size memory region.

    Carries the region name, the offending address and the access width
    so a stopped run can report exactly what went wrong.
    """

    def __init__(self, region: str, addr: int, width: int = 1, size: int = 0):
        self.region = region
        self.addr = addr
        self.width = width
        self.size = size
        super().__init__(
            f"{region}: {width}-byte access at ${addr:04X} outside [0, {size})")


class StackOverflowError(MemoryBoundsError):
    """PUSH needs a slot below the bottom of the stack window."""


class StackUnderflowError(MemoryBoundsError):
    """POP with the stack pointer at or above the stack base."""
