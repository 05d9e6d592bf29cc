"""
T16 Virtual Emulator
====================
Instruction-set simulator for the T16, a custom 16-bit toy processor.

Architecture:
    ┌───────────────┐    ┌──────────────────────────────┐    ┌─────────────┐
    │ Program image │───>│ T16Emulator                  │───>│ Presenter   │
    │ (AAAA: 0xIIII)│    │ fetch -> decode -> execute   │    │ (text dump) │
    └───────────────┘    └──────────────────────────────┘    └─────────────┘

    - loader.py:        line-oriented image parser, highest-address sentinel
    - cpu/decoder.py:   word -> frozen dataclass instruction variant
    - cpu/alu.py:       pure 16-bit ALU functions returning (result, flags)
    - cpu/regs.py:      register file, flags, stack push/pull
    - mem/memory.py:    bounds-checked 255-byte regions with touched bitmaps
    - emu.py:           cycle loop, dispatch, stop reasons
    - presenter.py:     state snapshot and dump formatting
"""

__version__ = "0.1.0"

from .config import MachineConfig
from .errors import (
    T16Error, ProgramLoadError, MemoryBoundsError,
    StackOverflowError, StackUnderflowError,
)
from .emu import T16Emulator, StopReason
from .loader import ProgramImage, parse_program_image, read_program_image
from .presenter import MachineSnapshot, snapshot, render_state, dump_state
from .cpu.decoder import decode, disassemble
