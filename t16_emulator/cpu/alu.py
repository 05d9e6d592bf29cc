"""
T16 Virtual Emulator: ALU operations

Every function is pure and returns a tuple (result, flags): result is
already truncated to 16 bits, flags is a CC bitmask. The caller applies
the flag group the instruction defines (set_CVZS or set_ZS); shifts and
rotates return no flags at all.

Overflow formulas are the standard two's complement ones:
  add: V = (A15 & B15 & ~R15) | (~A15 & ~B15 & R15)
  sub: V = (A15 & ~B15 & ~R15) | (~A15 & B15 & R15)
"""

from .regs import FLAG_C, FLAG_V, FLAG_Z, FLAG_S

MASK16 = 0xFFFF
SIGN16 = 0x8000


def test_zs16(val: int) -> int:
    """Z and S flags for a 16-bit value."""
    flags = 0
    if not (val & MASK16):
        flags |= FLAG_Z
    if val & SIGN16:
        flags |= FLAG_S
    return flags


# ══════════════════════════════════════════════
# Arithmetic: C, V, Z, S
# ══════════════════════════════════════════════

def add16(a: int, b: int) -> tuple:
    """Add two 16-bit values. C = unsigned carry out of bit 15."""
    result = a + b
    flags = 0
    if result > MASK16:
        flags |= FLAG_C
    if (a & b & ~result | ~a & ~b & result) & SIGN16:
        flags |= FLAG_V
    result &= MASK16
    return (result, flags | test_zs16(result))


def sub16(a: int, b: int) -> tuple:
    """Subtract b from a. C = unsigned borrow (a < b)."""
    result = a - b
    flags = 0
    if a < b:
        flags |= FLAG_C
    if (a & ~b & ~result | ~a & b & result) & SIGN16:
        flags |= FLAG_V
    result &= MASK16
    return (result, flags | test_zs16(result))


def mul16(a: int, b: int) -> tuple:
    """Multiply. C and V are both set when the full product exceeds 16 bits."""
    product = a * b
    flags = 0
    if product > MASK16:
        flags |= FLAG_C | FLAG_V
    result = product & MASK16
    return (result, flags | test_zs16(result))


# ══════════════════════════════════════════════
# Logic: Z, S
# ══════════════════════════════════════════════

def and16(a: int, b: int) -> tuple:
    result = (a & b) & MASK16
    return (result, test_zs16(result))


def or16(a: int, b: int) -> tuple:
    result = (a | b) & MASK16
    return (result, test_zs16(result))


def xor16(a: int, b: int) -> tuple:
    result = (a ^ b) & MASK16
    return (result, test_zs16(result))


def not16(a: int) -> tuple:
    """One's complement."""
    result = (~a) & MASK16
    return (result, test_zs16(result))


# ══════════════════════════════════════════════
# Shifts and rotates: no flags
# ══════════════════════════════════════════════

def shr16(val: int, amount: int) -> tuple:
    """Logical shift right by 0-31 bits."""
    return ((val & MASK16) >> amount, 0)


def shl16(val: int, amount: int) -> tuple:
    """Logical shift left by 0-31 bits; bits past 15 are dropped."""
    return ((val << amount) & MASK16, 0)


def ror16(val: int) -> tuple:
    """Rotate right by one bit: bit 0 moves to bit 15."""
    val &= MASK16
    return (((val >> 1) | ((val & 0x0001) << 15)) & MASK16, 0)


def rol16(val: int) -> tuple:
    """Rotate left by one bit: bit 15 moves to bit 0."""
    val &= MASK16
    return (((val << 1) | (val >> 15)) & MASK16, 0)


# ══════════════════════════════════════════════
# Compare: Z, S (unsigned less-than)
# ══════════════════════════════════════════════

def cmp16(a: int, b: int) -> int:
    """Compare two registers. Z = a == b, S = a < b (unsigned)."""
    flags = 0
    if a == b:
        flags |= FLAG_Z
    if a < b:
        flags |= FLAG_S
    return flags


def sign_extend(val: int, bits: int) -> int:
    """Interpret the low `bits` of val as a two's complement integer."""
    sign = 1 << (bits - 1)
    val &= (1 << bits) - 1
    if val & sign:
        return val - (1 << bits)
    return val


# Mnemonic -> ALU function, consumed by the emulator dispatch.
BINARY_OPS = {
    'ADD': add16,
    'SUB': sub16,
    'MUL': mul16,
    'AND': and16,
    'OR':  or16,
    'XOR': xor16,
}

SHIFT_OPS = {
    'SHR': shr16,
    'SHL': shl16,
}

UNARY_OPS = {
    'NOT': not16,
}

ROTATE_OPS = {
    'ROR': ror16,
    'ROL': rol16,
}

# Which instructions write C and V as well as Z and S.
ARITHMETIC = frozenset({'ADD', 'SUB', 'MUL'})
