"""
T16 Virtual Emulator: fixed-size memory regions

The T16 has three separate 255-byte regions:
  instruction  program words, written by the loader, read by fetch
  data         LOAD / STORE scratch space, with a touched bitmap
  stack        PUSH / POP slots below the stack base, with a touched bitmap

All multi-byte values are little-endian. Every access is range checked:
an address outside [0, size) raises MemoryBoundsError instead of
wrapping or spilling into a neighbouring region.
"""

from typing import List, Tuple

from ..config import MEMORY_SIZE, STACK_POINTER_BASE
from ..errors import MemoryBoundsError, StackOverflowError, StackUnderflowError


class Memory:
    """Byte-addressable fixed-size region.

    When track_writes is set, every write marks its target address in a
    touched bitmap. Word writes mark only the low address; the bitmap is
    used by the state presenter to filter the dump.
    """

    def __init__(self, name: str, size: int = MEMORY_SIZE, track_writes: bool = False):
        self.name = name
        self.size = size
        self.track_writes = track_writes
        self._mem = bytearray(size)
        self._touched = bytearray(size)

    def __len__(self) -> int:
        return self.size

    def _check(self, addr: int, width: int):
        if addr < 0 or addr + width > self.size:
            raise MemoryBoundsError(self.name, addr, width, self.size)

    # --- Core read/write ---

    def read8(self, addr: int) -> int:
        self._check(addr, 1)
        return self._mem[addr]

    def write8(self, addr: int, value: int):
        self._check(addr, 1)
        self._mem[addr] = value & 0xFF
        if self.track_writes:
            self._touched[addr] = 1

    def read16(self, addr: int) -> int:
        """Read a little-endian word at addr, addr+1."""
        self._check(addr, 2)
        return self._mem[addr] | (self._mem[addr + 1] << 8)

    def write16(self, addr: int, value: int):
        """Write a little-endian word; only addr is marked touched."""
        self._check(addr, 2)
        self._mem[addr] = value & 0xFF
        self._mem[addr + 1] = (value >> 8) & 0xFF
        if self.track_writes:
            self._touched[addr] = 1

    def peek16(self, addr: int) -> int:
        """Display read: like read16, but a high byte past the end reads 0.

        A single-byte STORE may legally touch the last cell of the region,
        and the dump still shows a word for it.
        """
        self._check(addr, 1)
        hi = self._mem[addr + 1] if addr + 1 < self.size else 0
        return self._mem[addr] | (hi << 8)

    # --- Touched bitmap ---

    def is_touched(self, addr: int) -> bool:
        self._check(addr, 1)
        return bool(self._touched[addr])

    def touched_addresses(self) -> List[int]:
        """Every address ever written, ascending."""
        return [addr for addr in range(self.size) if self._touched[addr]]

    # --- Reset ---

    def clear(self):
        self._mem = bytearray(self.size)
        self._touched = bytearray(self.size)


class StackMemory(Memory):
    """Stack region addressed through the stack pointer.

    The window sits directly below the stack base. The slot at stack
    pointer sp holds its low byte at offset base - sp - 2 and its high
    byte at base - sp - 1, so the first push (sp = base - 2) lands at
    offsets 0 and 1. An sp at or above the base has no slot.
    """

    def __init__(self, base: int = STACK_POINTER_BASE, size: int = MEMORY_SIZE):
        super().__init__('stack', size, track_writes=True)
        self.base = base

    def slot_offset(self, sp: int) -> int:
        return self.base - sp - 2

    def write_slot(self, sp: int, value: int):
        offset = self.slot_offset(sp)
        if offset < 0 or offset + 2 > self.size:
            raise StackOverflowError(self.name, sp, 2, self.size)
        self.write16(offset, value)

    def read_slot(self, sp: int) -> int:
        offset = self.slot_offset(sp)
        if offset < 0:
            raise StackUnderflowError(self.name, sp, 2, self.size)
        if offset + 2 > self.size:
            raise MemoryBoundsError(self.name, sp, 2, self.size)
        return self.read16(offset)

    def slot_touched(self, sp: int) -> bool:
        offset = self.slot_offset(sp)
        if offset < 0 or offset >= self.size:
            return False
        return bool(self._touched[offset])

    def touched_slots(self, sp: int) -> List[Tuple[int, int]]:
        """(address, value) for each touched slot from sp toward the base."""
        slots = []
        for addr in range(sp, self.base, 2):
            if self.slot_touched(addr):
                slots.append((addr, self.peek16(self.slot_offset(addr))))
        return slots
