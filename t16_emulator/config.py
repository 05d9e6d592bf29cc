"""
T16 Virtual Emulator: machine constants and run configuration.

The constants describe the fixed T16 machine. MachineConfig bundles the
values a run may override from the command line.
"""

from dataclasses import dataclass


# =============================================================================
#  MACHINE CONSTANTS
# =============================================================================
MEMORY_SIZE = 255            # bytes per region (instruction, data, stack)
STACK_POINTER_BASE = 0x8200  # SP at reset; stack grows down from here
WORD_MASK = 0xFFFF
HALT_WORD = 0xFFFF
NOP_WORD = 0x0000
NUM_REGISTERS = 8


# =============================================================================
#  RUN DEFAULTS
# =============================================================================
DEFAULT_PROGRAM_PATH = "program.txt"
DEFAULT_MAX_CYCLES = 1_000_000
DEFAULT_TRACE_DEPTH = 10_000   # trace lines kept; older ones are dropped


@dataclass
class MachineConfig:
    """Per-run settings for T16Emulator.

    max_cycles bounds the run loop so a program that neither halts nor
    falls off the end of its image still terminates (StopReason.TIMEOUT).
    trace_depth caps the instruction trace to the most recent lines.
    """
    memory_size: int = MEMORY_SIZE
    stack_base: int = STACK_POINTER_BASE
    max_cycles: int = DEFAULT_MAX_CYCLES
    program_path: str = DEFAULT_PROGRAM_PATH
    dump_on_nop: bool = True
    trace_depth: int = DEFAULT_TRACE_DEPTH

    def __post_init__(self):
        if self.memory_size < 2:
            raise ValueError(f"memory_size must hold at least one word, got {self.memory_size}")
        if self.max_cycles < 1:
            raise ValueError(f"max_cycles must be positive, got {self.max_cycles}")
        if not self.memory_size <= self.stack_base <= 0xFFFF:
            raise ValueError(f"stack_base must be a 16-bit address at or above "
                             f"{self.memory_size:#x}, got {self.stack_base:#x}")
        if self.trace_depth < 1:
            raise ValueError(f"trace_depth must be positive, got {self.trace_depth}")


def parse_int_arg(value: str) -> int:
    """Parse an integer argument that may be hex (0x...), $ prefix, or decimal."""
    value = value.strip()
    if value.startswith("0x") or value.startswith("0X"):
        return int(value, 16)
    if value.startswith("$"):
        return int(value[1:], 16)
    return int(value)
