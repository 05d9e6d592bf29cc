"""
T16 Virtual Emulator: CPU register set + flag management

Register model:
  R0-R7  eight 16-bit general-purpose registers
  PC     16-bit program counter (byte address, +2 per fetch)
  SP     stack pointer, reset to the stack base; grows downward
  IR     last fetched instruction word
  CC     condition codes, four independent bits:
         bit 3: S (Sign     - bit 15 of the result)
         bit 2: Z (Zero     - result is zero)
         bit 1: V (Overflow - signed overflow)
         bit 0: C (Carry    - unsigned carry / borrow)

A flag is only ever written by the instructions that define it; the
set_* helpers below touch exactly the bits of their group.
"""

from ..config import NUM_REGISTERS, STACK_POINTER_BASE, WORD_MASK
from ..errors import StackOverflowError

# CC bit masks
FLAG_S = 0x08
FLAG_Z = 0x04
FLAG_V = 0x02
FLAG_C = 0x01


class Registers:
    """T16 CPU register set."""

    __slots__ = ('R', 'PC', 'SP', 'IR', 'CC', 'cycles', 'stack_base')

    def __init__(self, stack_base: int = STACK_POINTER_BASE):
        self.stack_base = stack_base
        self.R = [0] * NUM_REGISTERS
        self.PC: int = 0
        self.SP: int = stack_base
        self.IR: int = 0
        self.CC: int = 0
        self.cycles: int = 0

    # --- General-purpose register access ---

    def get(self, index: int) -> int:
        return self.R[index]

    def set(self, index: int, value: int):
        """Write a register, truncating to 16 bits."""
        self.R[index] = value & WORD_MASK

    # --- CC flag access ---

    def set_CVZS(self, flags: int):
        """Set C, V, Z, S (ADD/SUB/MUL)."""
        self.CC = flags & (FLAG_C | FLAG_V | FLAG_Z | FLAG_S)

    def set_ZS(self, flags: int):
        """Set Z and S only. Preserves C, V."""
        self.CC = (self.CC & (FLAG_C | FLAG_V)) | (flags & (FLAG_Z | FLAG_S))

    @property
    def carry(self) -> bool:
        return bool(self.CC & FLAG_C)

    @property
    def overflow(self) -> bool:
        return bool(self.CC & FLAG_V)

    @property
    def zero(self) -> bool:
        return bool(self.CC & FLAG_Z)

    @property
    def sign(self) -> bool:
        return bool(self.CC & FLAG_S)

    # --- Stack operations ---

    def push16(self, stack, value: int):
        """Push a word: SP decrements by 2, then the word is written at SP.

        SP is only committed once the write succeeded, so a stack overflow
        leaves the register file untouched. SP never goes below 0.
        """
        new_sp = self.SP - 2
        if new_sp < 0:
            raise StackOverflowError(stack.name, self.SP, 2, stack.size)
        stack.write_slot(new_sp, value)
        self.SP = new_sp

    def pull16(self, stack) -> int:
        """Pop a word: read at SP, then SP increments by 2."""
        value = stack.read_slot(self.SP)
        self.SP += 2
        return value

    # --- Display ---

    def display(self) -> str:
        """One-line register summary used by the instruction trace."""
        cc_str = ''.join(c if self.CC & (0x08 >> i) else '.'
                         for i, c in enumerate('SZVC'))
        regs = ' '.join(f"R{i}={v:04X}" for i, v in enumerate(self.R))
        return f"PC={self.PC:04X} {regs} SP={self.SP:04X} [{cc_str}]"

    def reset(self):
        """Reset CPU to power-on state."""
        self.R = [0] * NUM_REGISTERS
        self.PC = 0
        self.SP = self.stack_base
        self.IR = 0
        self.CC = 0
        self.cycles = 0
