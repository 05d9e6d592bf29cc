"""
T16 Virtual Emulator: instruction decoder

This is the only module that knows the bit layout of an instruction word.
decode() turns a 16-bit word into one of the frozen dataclass variants
below; the emulator dispatches on the variant type.

Word layout (bit 15 = MSB):

  15..12  primary opcode   0x1-0xE ALU / data movement, 0x0 system space
  11      mode bit         MOV / STORE immediate; branch family in 0x0 space
  10..8   dest register
  7..5    src1 register    (address register for LOAD / STORE)
  4..2    src2 register    (stack register for PUSH)
  1..0    sub-opcode       0x0 space only

  0xFFFF is HALT regardless of the fields above.

Opcode 0x0 space (bit 11 = 0):
  xx..x00  NOP when the whole word is 0, malformed if bits 7..2 != 0
  xx..x01  PUSH  src2
  xx..x10  POP   dest
  xx..x11  CMP   src1, src2

Branch family (opcode 0, bit 11 = 1): 9-bit signed byte offset in bits
10..2, condition in bits 1..0:
  00 JMP  always
  01 JEQ  Z and not S
  10 JLT  S and not Z
  11 JGT  neither Z nor S
"""

from dataclasses import dataclass
from typing import Optional, Union

from ..config import HALT_WORD, NOP_WORD
from .alu import sign_extend


# ──────────────────────────────────────────────
# Field masks
# ──────────────────────────────────────────────

OPCODE_MASK = 0xF000
MODE_BIT    = 0x0800
DEST_MASK   = 0x0700
SRC1_MASK   = 0x00E0
SRC2_MASK   = 0x001C
SUBOP_MASK  = 0x0003
IMM8_MASK   = 0x00FF
IMM5_MASK   = 0x001F
OFFSET_MASK = 0x07FC
SYSTEM_MASK = 0xF800   # opcode 0 with mode bit clear

OFFSET_BITS = 9

SUBOP_NONE = 0b00
SUBOP_PUSH = 0b01
SUBOP_POP  = 0b10
SUBOP_CMP  = 0b11


# ──────────────────────────────────────────────
# Primary opcode table: opcode -> (mnemonic, form)
# ──────────────────────────────────────────────

MODE_SELECT = 'MODE'    # bit 11 picks immediate vs register form
MEMORY      = 'MEM'     # dest <- data[src1]
BINARY      = 'BIN'     # dest <- src1 op src2
UNARY       = 'UN'      # dest <- op src1
SHIFT       = 'SHIFT'   # dest <- src1 shifted by imm5
ROTATE      = 'ROT'     # dest <- src1 rotated by 1

OPCODES = {
    0x1: ('MOV',   MODE_SELECT),
    0x2: ('STORE', MODE_SELECT),
    0x3: ('LOAD',  MEMORY),
    0x4: ('ADD',   BINARY),
    0x5: ('SUB',   BINARY),
    0x6: ('MUL',   BINARY),
    0x7: ('AND',   BINARY),
    0x8: ('OR',    BINARY),
    0x9: ('NOT',   UNARY),
    0xA: ('XOR',   BINARY),
    0xB: ('SHR',   SHIFT),
    0xC: ('SHL',   SHIFT),
    0xD: ('ROR',   ROTATE),
    0xE: ('ROL',   ROTATE),
}

BRANCH_MNEMONICS = ('JMP', 'JEQ', 'JLT', 'JGT')


# ══════════════════════════════════════════════
# Decoded instruction variants
# ══════════════════════════════════════════════

@dataclass(frozen=True)
class MoveImmediate:
    dest: int
    value: int


@dataclass(frozen=True)
class MoveRegister:
    dest: int
    src: int


@dataclass(frozen=True)
class StoreImmediate:
    """Store one byte at data[R[addr]]."""
    addr: int
    value: int


@dataclass(frozen=True)
class StoreRegister:
    """Store R[src] as a little-endian word at data[R[addr]]."""
    addr: int
    src: int


@dataclass(frozen=True)
class Load:
    dest: int
    addr: int


@dataclass(frozen=True)
class ArithmeticOp:
    """ADD, SUB, MUL, AND, OR, XOR, and NOT (src2 is None)."""
    mnemonic: str
    dest: int
    src1: int
    src2: Optional[int] = None


@dataclass(frozen=True)
class ShiftOp:
    mnemonic: str
    dest: int
    src: int
    amount: int


@dataclass(frozen=True)
class RotateOp:
    mnemonic: str
    dest: int
    src: int


@dataclass(frozen=True)
class Compare:
    src1: int
    src2: int


@dataclass(frozen=True)
class Push:
    src: int


@dataclass(frozen=True)
class Pop:
    dest: int


@dataclass(frozen=True)
class Branch:
    condition: int    # 0..3, index into BRANCH_MNEMONICS
    offset: int       # signed byte offset added to the advanced PC

    @property
    def mnemonic(self) -> str:
        return BRANCH_MNEMONICS[self.condition]


@dataclass(frozen=True)
class Halt:
    pass


@dataclass(frozen=True)
class Malformed:
    word: int


@dataclass(frozen=True)
class Nop:
    """No operation. dump is set only for the all-zero word."""
    dump: bool = False


Instruction = Union[
    MoveImmediate, MoveRegister, StoreImmediate, StoreRegister, Load,
    ArithmeticOp, ShiftOp, RotateOp, Compare, Push, Pop, Branch,
    Halt, Malformed, Nop,
]


# ══════════════════════════════════════════════
# Decoding
# ══════════════════════════════════════════════

def fields(word: int) -> tuple:
    """Split a word into (opcode, mode, dest, src1, src2, subop)."""
    return (
        (word & OPCODE_MASK) >> 12,
        (word & MODE_BIT) >> 11,
        (word & DEST_MASK) >> 8,
        (word & SRC1_MASK) >> 5,
        (word & SRC2_MASK) >> 2,
        word & SUBOP_MASK,
    )


def is_malformed(word: int) -> bool:
    """Opcode 0, bit 11 clear, sub-opcode 00 and any of bits 7..2 set."""
    return ((word & SYSTEM_MASK) == 0
            and (word & SUBOP_MASK) == SUBOP_NONE
            and (word & (SRC1_MASK | SRC2_MASK)) != 0)


def decode(word: int) -> Instruction:
    """Decode a 16-bit instruction word. Never raises: every word maps to
    exactly one variant."""
    word &= 0xFFFF

    if word == HALT_WORD:
        return Halt()
    if is_malformed(word):
        return Malformed(word)
    if word == NOP_WORD:
        return Nop(dump=True)

    opcode, mode, dest, src1, src2, subop = fields(word)

    if opcode == 0:
        return _decode_system(word, mode, dest, src1, src2, subop)

    if opcode not in OPCODES:
        # 0xF with any word other than HALT is unassigned
        return Nop()

    mnem, form = OPCODES[opcode]

    if mnem == 'MOV':
        if mode:
            return MoveImmediate(dest, word & IMM8_MASK)
        return MoveRegister(dest, src1)

    if mnem == 'STORE':
        if mode:
            # immediate byte is bits 10..8 above bits 4..0
            value = ((word & DEST_MASK) >> 3) | (word & IMM5_MASK)
            return StoreImmediate(src1, value)
        return StoreRegister(src1, src2)

    if form == MEMORY:
        return Load(dest, src1)
    if form == BINARY:
        return ArithmeticOp(mnem, dest, src1, src2)
    if form == UNARY:
        return ArithmeticOp(mnem, dest, src1)
    if form == SHIFT:
        return ShiftOp(mnem, dest, src1, word & IMM5_MASK)
    return RotateOp(mnem, dest, src1)


def _decode_system(word, mode, dest, src1, src2, subop) -> Instruction:
    if mode:
        offset = sign_extend((word & OFFSET_MASK) >> 2, OFFSET_BITS)
        return Branch(subop, offset)
    if subop == SUBOP_CMP:
        return Compare(src1, src2)
    if subop == SUBOP_PUSH:
        return Push(src2)
    if subop == SUBOP_POP:
        return Pop(dest)
    # only bits 10..8 set: nothing to do
    return Nop()


# ══════════════════════════════════════════════
# Disassembly
# ══════════════════════════════════════════════

def format_instruction(instr: Instruction) -> str:
    """Render a decoded instruction as assembly text."""
    if isinstance(instr, MoveImmediate):
        return f"MOV     R{instr.dest}, #${instr.value:02X}"
    if isinstance(instr, MoveRegister):
        return f"MOV     R{instr.dest}, R{instr.src}"
    if isinstance(instr, StoreImmediate):
        return f"STORE   [R{instr.addr}], #${instr.value:02X}"
    if isinstance(instr, StoreRegister):
        return f"STORE   [R{instr.addr}], R{instr.src}"
    if isinstance(instr, Load):
        return f"LOAD    R{instr.dest}, [R{instr.addr}]"
    if isinstance(instr, ArithmeticOp):
        if instr.src2 is None:
            return f"{instr.mnemonic:<7s} R{instr.dest}, R{instr.src1}"
        return f"{instr.mnemonic:<7s} R{instr.dest}, R{instr.src1}, R{instr.src2}"
    if isinstance(instr, ShiftOp):
        return f"{instr.mnemonic:<7s} R{instr.dest}, R{instr.src}, #{instr.amount}"
    if isinstance(instr, RotateOp):
        return f"{instr.mnemonic:<7s} R{instr.dest}, R{instr.src}"
    if isinstance(instr, Compare):
        return f"CMP     R{instr.src1}, R{instr.src2}"
    if isinstance(instr, Push):
        return f"PUSH    R{instr.src}"
    if isinstance(instr, Pop):
        return f"POP     R{instr.dest}"
    if isinstance(instr, Branch):
        return f"{instr.mnemonic:<7s} {instr.offset:+d}"
    if isinstance(instr, Halt):
        return "HALT"
    if isinstance(instr, Malformed):
        return f".word   ${instr.word:04X}    ; malformed"
    return "NOP"


def disassemble(word: int) -> str:
    return format_instruction(decode(word))
