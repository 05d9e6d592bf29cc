"""
T16 Virtual Emulator: state presenter

snapshot() copies the visible machine state into an immutable
MachineSnapshot; render_state() formats it as the text dump printed on
every NOP and once at the end of a run. Neither touches the emulator.
"""

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class MachineSnapshot:
    registers: Tuple[int, ...]
    pc: int
    sp: int
    carry: bool
    overflow: bool
    zero: bool
    sign: bool
    data_cells: Tuple[Tuple[int, int], ...]    # (address, word), ascending
    stack_slots: Tuple[Tuple[int, int], ...]   # (sp address, word), SP -> base


def snapshot(emu) -> MachineSnapshot:
    regs = emu.regs
    data = emu.data
    return MachineSnapshot(
        registers=tuple(regs.R),
        pc=regs.PC,
        sp=regs.SP,
        carry=regs.carry,
        overflow=regs.overflow,
        zero=regs.zero,
        sign=regs.sign,
        data_cells=tuple((addr, data.peek16(addr)) for addr in data.touched_addresses()),
        stack_slots=tuple(emu.stack.touched_slots(regs.SP)),
    )


def render_state(snap: MachineSnapshot) -> str:
    lines = ["REGISTERS:"]
    for i, value in enumerate(snap.registers):
        lines.append(f"R{i}: 0x{value:04X}")
    lines.append(f"PC: 0x{snap.pc:04X} SP: 0x{snap.sp:04X}")
    lines.append("FLAGS:")
    lines.append(f"Carry: {int(snap.carry)}")
    lines.append(f"Overflow: {int(snap.overflow)}")
    lines.append(f"Zero: {int(snap.zero)}")
    lines.append(f"Sign: {int(snap.sign)}")
    lines.append("DATA MEMORY:")
    for addr, value in snap.data_cells:
        lines.append(f"0x{addr:04X}: 0x{value:04X}")
    lines.append("STACK:")
    for addr, value in snap.stack_slots:
        lines.append(f"0x{addr:04X}: 0x{value:04X}")
    return "\n".join(lines)


def dump_state(emu) -> str:
    return render_state(snapshot(emu))
