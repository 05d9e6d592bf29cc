"""
T16 Virtual Emulator: core integration tests

Every test runs hand-assembled T16 words through the full
fetch-decode-execute loop. Encodings are spelled out next to each word.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from t16_emulator.config import MachineConfig, STACK_POINTER_BASE
from t16_emulator.cpu.regs import FLAG_C, FLAG_V, FLAG_Z, FLAG_S, Registers
from t16_emulator.emu import T16Emulator, StopReason
from t16_emulator.mem.memory import StackMemory
from t16_emulator.presenter import dump_state
from t16_emulator.errors import (
    MemoryBoundsError, StackOverflowError, StackUnderflowError,
)


def _program(*words, base=0):
    """Program image text with words at consecutive even addresses."""
    return "\n".join(f"{base + 2 * i:04X}: 0x{w:04X}" for i, w in enumerate(words))


def _emu(*words, **kwargs):
    emu = T16Emulator(**kwargs)
    emu.load_lines(_program(*words))
    return emu


HALT = 0xFFFF


# ═══════════════════════════════════════════════
# Test Group 1: Data movement
# ═══════════════════════════════════════════════

class TestLoadStore:

    def test_mov_immediate(self):
        """MOV R1, #$05"""
        emu = _emu(0x1905, HALT)
        assert emu.step() is None
        assert emu.regs.get(1) == 0x05
        assert emu.regs.PC == 0x0002
        assert emu.regs.IR == 0x1905

    def test_mov_register(self):
        emu = _emu(
            0x1905,  # MOV R1, #$05
            0x1320,  # MOV R3, R1
            HALT,
        )
        assert emu.run() == StopReason.HALT
        assert emu.regs.get(3) == 0x05
        assert emu.regs.get(1) == 0x05

    def test_mov_leaves_flags(self):
        emu = _emu(0x19FF, HALT)
        emu.regs.CC = FLAG_C | FLAG_V | FLAG_Z | FLAG_S
        emu.step()
        assert emu.regs.CC == FLAG_C | FLAG_V | FLAG_Z | FLAG_S

    def test_store_register_then_load(self):
        emu = _emu(
            0x1910,  # MOV R1, #$10
            0x1A12,  # MOV R2, #$12
            0xC248,  # SHL R2, R2, #8     -> $1200
            0x1BCD,  # MOV R3, #$CD
            0x824C,  # OR  R2, R2, R3     -> $12CD
            0x2028,  # STORE [R1], R2
            0x3420,  # LOAD R4, [R1]
            HALT,
        )
        assert emu.run() == StopReason.HALT
        assert emu.data.read8(0x10) == 0xCD   # low byte first
        assert emu.data.read8(0x11) == 0x12
        assert emu.data.touched_addresses() == [0x10]
        assert emu.regs.get(4) == 0x12CD

    def test_store_immediate_byte(self):
        """Immediate is bits 10..8 above bits 4..0: $AB = 101 01011."""
        emu = _emu(
            0x1920,  # MOV R1, #$20
            0x2D2B,  # STORE [R1], #$AB
            HALT,
        )
        emu.run()
        assert emu.data.read8(0x20) == 0xAB
        assert emu.data.read8(0x21) == 0x00
        assert emu.data.touched_addresses() == [0x20]

    def test_load_untouched_reads_zero(self):
        emu = _emu(0x1930, 0x3420, HALT)  # MOV R1, #$30 ; LOAD R4, [R1]
        emu.regs.set(4, 0x5555)
        emu.run()
        assert emu.regs.get(4) == 0
        assert emu.data.touched_addresses() == []


# ═══════════════════════════════════════════════
# Test Group 2: Arithmetic and flags
# ═══════════════════════════════════════════════

class TestArithmetic:

    def _alu(self, word, r1, r2, cc=0):
        emu = _emu(word, HALT)
        emu.regs.set(1, r1)
        emu.regs.set(2, r2)
        emu.regs.CC = cc
        emu.step()
        return emu

    def test_add(self):
        emu = self._alu(0x4328, 5, 3)  # ADD R3, R1, R2
        assert emu.regs.get(3) == 8
        assert not emu.regs.carry
        assert not emu.regs.overflow
        assert not emu.regs.zero
        assert not emu.regs.sign

    def test_add_zero_registers(self):
        """0000: 0x4000 (ADD R0, R0, R0) then HALT."""
        emu = _emu(0x4000, HALT)
        assert emu.run() == StopReason.HALT
        assert emu.regs.zero
        assert not emu.regs.sign
        assert not emu.regs.carry

    def test_add_carry(self):
        emu = self._alu(0x4328, 0xFFFF, 0x0001)
        assert emu.regs.get(3) == 0
        assert emu.regs.carry
        assert emu.regs.zero
        assert not emu.regs.overflow
        assert not emu.regs.sign

    def test_add_overflow(self):
        """$7FFF + 1 = $8000: signed overflow, no carry."""
        emu = self._alu(0x4328, 0x7FFF, 0x0001)
        assert emu.regs.get(3) == 0x8000
        assert emu.regs.overflow
        assert emu.regs.sign
        assert not emu.regs.carry

    def test_add_negative_overflow(self):
        """$8000 + $8000 = $0000 with carry and overflow."""
        emu = self._alu(0x4328, 0x8000, 0x8000)
        assert emu.regs.get(3) == 0
        assert emu.regs.carry
        assert emu.regs.overflow
        assert emu.regs.zero

    def test_sub(self):
        emu = self._alu(0x5328, 0x30, 0x10)  # SUB R3, R1, R2
        assert emu.regs.get(3) == 0x20
        assert not emu.regs.carry

    def test_sub_borrow(self):
        emu = self._alu(0x5328, 0, 1)
        assert emu.regs.get(3) == 0xFFFF
        assert emu.regs.carry
        assert emu.regs.sign
        assert not emu.regs.overflow
        assert not emu.regs.zero

    def test_sub_overflow(self):
        """$8000 - 1 = $7FFF: most negative minus one overflows."""
        emu = self._alu(0x5328, 0x8000, 0x0001)
        assert emu.regs.get(3) == 0x7FFF
        assert emu.regs.overflow
        assert not emu.regs.carry
        assert not emu.regs.sign

    def test_sub_equal_sets_zero(self):
        emu = self._alu(0x5328, 0x1234, 0x1234)
        assert emu.regs.get(3) == 0
        assert emu.regs.zero

    def test_mul(self):
        emu = self._alu(0x6328, 3, 4, cc=FLAG_C | FLAG_V | FLAG_Z | FLAG_S)
        assert emu.regs.get(3) == 12
        assert emu.regs.CC == 0

    def test_mul_overflow(self):
        emu = self._alu(0x6328, 0x0100, 0x0100)
        assert emu.regs.get(3) == 0
        assert emu.regs.carry
        assert emu.regs.overflow
        assert emu.regs.zero

    def test_mul_wraps(self):
        emu = self._alu(0x6328, 0x1234, 0x0010)
        assert emu.regs.get(3) == 0x2340
        assert emu.regs.carry
        assert emu.regs.overflow


class TestLogic:

    def _alu(self, word, r1, r2=0, cc=0):
        emu = _emu(word, HALT)
        emu.regs.set(1, r1)
        emu.regs.set(2, r2)
        emu.regs.CC = cc
        emu.step()
        return emu

    def test_and_preserves_carry_and_overflow(self):
        emu = self._alu(0x7328, 0xF0F0, 0x0F0F, cc=FLAG_C | FLAG_V)
        assert emu.regs.get(3) == 0
        assert emu.regs.zero
        assert emu.regs.carry
        assert emu.regs.overflow

    def test_or(self):
        emu = self._alu(0x8328, 0x8000, 0x0001, cc=FLAG_Z)
        assert emu.regs.get(3) == 0x8001
        assert emu.regs.sign
        assert not emu.regs.zero

    def test_xor_self_is_zero(self):
        emu = self._alu(0xA328, 0xBEEF, 0xBEEF)
        assert emu.regs.get(3) == 0
        assert emu.regs.zero
        assert not emu.regs.sign

    def test_not(self):
        emu = self._alu(0x9320, 0x00FF)  # NOT R3, R1
        assert emu.regs.get(3) == 0xFF00
        assert emu.regs.sign
        assert not emu.regs.zero

    def test_not_ignores_second_source(self):
        emu = self._alu(0x932C, 0xFFFF, 0x1234)  # src2 bits set, unused
        assert emu.regs.get(3) == 0
        assert emu.regs.zero


class TestShiftRotate:

    def _run(self, word, r1):
        emu = _emu(word, HALT)
        emu.regs.set(1, r1)
        emu.regs.CC = FLAG_C | FLAG_V | FLAG_Z | FLAG_S
        emu.step()
        return emu

    def test_shr(self):
        emu = self._run(0xB324, 0x1234)  # SHR R3, R1, #4
        assert emu.regs.get(3) == 0x0123
        assert emu.regs.CC == FLAG_C | FLAG_V | FLAG_Z | FLAG_S

    def test_shl(self):
        emu = self._run(0xC324, 0x1234)  # SHL R3, R1, #4
        assert emu.regs.get(3) == 0x2340

    def test_shift_by_31_clears(self):
        assert self._run(0xB33F, 0xFFFF).regs.get(3) == 0
        assert self._run(0xC33F, 0xFFFF).regs.get(3) == 0

    def test_shift_by_zero(self):
        assert self._run(0xB320, 0xABCD).regs.get(3) == 0xABCD

    def test_ror(self):
        emu = self._run(0xD320, 0x0001)  # ROR R3, R1
        assert emu.regs.get(3) == 0x8000
        assert emu.regs.CC == FLAG_C | FLAG_V | FLAG_Z | FLAG_S

    def test_rol(self):
        emu = self._run(0xE320, 0x8001)  # ROL R3, R1
        assert emu.regs.get(3) == 0x0003


# ═══════════════════════════════════════════════
# Test Group 3: Stack
# ═══════════════════════════════════════════════

class TestStack:

    def test_push_decrements_then_writes(self):
        emu = _emu(0x1942, 0x0005, HALT)  # MOV R1, #$42 ; PUSH R1
        emu.step()
        emu.step()
        assert emu.regs.SP == STACK_POINTER_BASE - 2
        assert emu.stack.read_slot(emu.regs.SP) == 0x42
        assert emu.stack.slot_touched(STACK_POINTER_BASE - 2)

    def test_push_pop_roundtrip(self):
        emu = _emu(
            0x1942,  # MOV R1, #$42
            0x0005,  # PUSH R1
            0x0402,  # POP R4
            HALT,
        )
        assert emu.run() == StopReason.HALT
        assert emu.regs.get(4) == 0x42
        assert emu.regs.SP == STACK_POINTER_BASE

    def test_stack_is_lifo(self):
        emu = _emu(
            0x1911,  # MOV R1, #$11
            0x1A22,  # MOV R2, #$22
            0x0005,  # PUSH R1
            0x0009,  # PUSH R2
            0x0302,  # POP R3  -> $22
            0x0402,  # POP R4  -> $11
            HALT,
        )
        emu.run()
        assert emu.regs.get(3) == 0x22
        assert emu.regs.get(4) == 0x11

    def test_pop_empty_stack_is_bounds_fault(self):
        emu = _emu(0x0402, HALT)  # POP R4
        assert emu.run() == StopReason.BOUNDS
        assert isinstance(emu.fault, StackUnderflowError)
        assert emu.regs.SP == STACK_POINTER_BASE

    def test_push_past_window_is_bounds_fault(self):
        emu = _emu(0x0005, HALT)  # PUSH R1
        emu.regs.SP = STACK_POINTER_BASE - 254   # last slot already used
        assert emu.run() == StopReason.BOUNDS
        assert isinstance(emu.fault, StackOverflowError)
        assert emu.regs.SP == STACK_POINTER_BASE - 254

    def test_custom_stack_base(self):
        emu = _emu(0x0005, HALT, config=MachineConfig(stack_base=0x0400))
        emu.regs.set(1, 0xBEEF)
        emu.run()
        assert emu.regs.SP == 0x03FE
        assert emu.stack.read_slot(0x03FE) == 0xBEEF

    def test_stack_base_below_window_rejected(self):
        with pytest.raises(ValueError):
            MachineConfig(stack_base=0x0002)

    def test_lowest_stack_base_fills_without_negative_sp(self):
        emu = _emu(
            0x0005,  # PUSH R1
            0x0FF0,  # JMP -4
            HALT,
            config=MachineConfig(stack_base=0x00FF),
        )
        assert emu.run() == StopReason.BOUNDS
        assert isinstance(emu.fault, StackOverflowError)
        assert emu.regs.SP == 0x0001
        assert "SP: 0x0001" in dump_state(emu)

    def test_push_never_takes_sp_below_zero(self):
        regs = Registers(stack_base=0x0002)
        stack = StackMemory(0x0002)
        regs.push16(stack, 0x1111)
        with pytest.raises(StackOverflowError):
            regs.push16(stack, 0x2222)
        assert regs.SP == 0


# ═══════════════════════════════════════════════
# Test Group 4: Compare and branch
# ═══════════════════════════════════════════════

class TestCompare:

    def _cmp(self, r1, r2):
        emu = _emu(0x002B, HALT)  # CMP R1, R2
        emu.regs.set(1, r1)
        emu.regs.set(2, r2)
        emu.regs.CC = FLAG_C | FLAG_V
        emu.step()
        return emu

    def test_equal(self):
        emu = self._cmp(5, 5)
        assert emu.regs.zero
        assert not emu.regs.sign

    def test_less(self):
        emu = self._cmp(1, 2)
        assert emu.regs.sign
        assert not emu.regs.zero

    def test_greater(self):
        emu = self._cmp(3, 2)
        assert not emu.regs.sign
        assert not emu.regs.zero

    def test_unsigned(self):
        """$8000 is larger than 1 as an unsigned value."""
        emu = self._cmp(0x8000, 1)
        assert not emu.regs.sign

    def test_leaves_carry_and_overflow(self):
        emu = self._cmp(1, 2)
        assert emu.regs.carry
        assert emu.regs.overflow

    def test_registers_unchanged(self):
        emu = self._cmp(7, 9)
        assert emu.regs.get(1) == 7
        assert emu.regs.get(2) == 9


class TestBranch:

    def _conditional(self, branch_word, r1, r2):
        emu = _emu(
            0x002B,       # 0000 CMP R1, R2
            branch_word,  # 0002 Jcc +2
            0x1B01,       # 0004 MOV R3, #1   (skipped when taken)
            0x1C01,       # 0006 MOV R4, #1
            HALT,         # 0008
        )
        emu.regs.set(1, r1)
        emu.regs.set(2, r2)
        assert emu.run() == StopReason.HALT
        assert emu.regs.get(4) == 1
        return emu.regs.get(3) == 0

    def test_jmp_forward(self):
        emu = _emu(
            0x0808,  # 0000 JMP +2
            0x1901,  # 0002 MOV R1, #1 (skipped)
            0x1A02,  # 0004 MOV R2, #2
            HALT,    # 0006
        )
        assert emu.run() == StopReason.HALT
        assert emu.regs.get(1) == 0
        assert emu.regs.get(2) == 2

    def test_jeq(self):
        assert self._conditional(0x0809, 5, 5)
        assert not self._conditional(0x0809, 5, 6)

    def test_jlt(self):
        assert self._conditional(0x080A, 1, 2)
        assert not self._conditional(0x080A, 2, 1)
        assert not self._conditional(0x080A, 2, 2)

    def test_jgt(self):
        assert self._conditional(0x080B, 3, 2)
        assert not self._conditional(0x080B, 2, 2)
        assert not self._conditional(0x080B, 1, 2)

    def test_branch_flags_unchanged(self):
        emu = _emu(0x0808, HALT, HALT)
        emu.regs.CC = FLAG_C | FLAG_S
        emu.run()
        assert emu.regs.CC == FLAG_C | FLAG_S

    def test_countdown_loop(self):
        emu = _emu(
            0x1903,  # 0000 MOV R1, #3
            0x1A01,  # 0002 MOV R2, #1
            0x1B00,  # 0004 MOV R3, #0
            0x5128,  # 0006 SUB R1, R1, R2
            0x002F,  # 0008 CMP R1, R3
            0x0FEB,  # 000A JGT -6  -> $0006
            HALT,    # 000C
        )
        assert emu.run() == StopReason.HALT
        assert emu.regs.get(1) == 0
        assert emu.regs.cycles == 13

    def test_branch_onto_highest_address_halts(self):
        emu = _emu(
            0x0808,  # 0000 JMP +2 -> $0004 == highest address
            0x1901,  # 0002 MOV R1, #1
            0x1A02,  # 0004 MOV R2, #2 (never fetched)
        )
        assert emu.highest_address == 0x0004
        assert emu.run() == StopReason.BRANCH_END
        assert emu.regs.get(1) == 0
        assert emu.regs.get(2) == 0
        assert emu.regs.PC == 0x0004
        assert emu.regs.cycles == 1

    def test_untaken_branch_onto_highest_does_not_halt(self):
        emu = _emu(
            0x0809,  # 0000 JEQ +2 (Z clear, not taken)
            0x1901,  # 0002 MOV R1, #1
            0x1A02,  # 0004 MOV R2, #2
        )
        assert emu.run() == StopReason.END
        assert emu.regs.get(1) == 1
        assert emu.regs.get(2) == 2

    def test_backward_branch_wraps_pc(self):
        emu = _emu(0x0C00)  # JMP -256
        assert emu.step() == StopReason.END
        assert emu.regs.PC == 0xFF02


# ═══════════════════════════════════════════════
# Test Group 5: Termination
# ═══════════════════════════════════════════════

class TestTermination:

    def test_halt_only_program(self):
        emu = _emu(HALT)
        assert emu.run() == StopReason.HALT
        assert emu.regs.R == [0] * 8
        assert emu.regs.PC == 0x0002
        assert emu.regs.cycles == 1

    def test_malformed_stops_run(self):
        emu = _emu(
            0x00FC,  # malformed system word
            0x1901,  # MOV R1, #1 (never executed)
            HALT,
        )
        assert emu.run() == StopReason.MALFORMED
        assert emu.regs.get(1) == 0
        assert emu.regs.PC == 0x0002

    def test_runs_off_end_of_program(self):
        emu = _emu(0x1901, 0x1A02)
        assert emu.run() == StopReason.END
        assert emu.regs.get(1) == 1
        assert emu.regs.get(2) == 2
        assert emu.regs.PC == 0x0004

    def test_step_reports_end(self):
        emu = _emu(0x1901)
        assert emu.step() == StopReason.END

    def test_timeout(self):
        emu = _emu(0x0FF8, HALT)  # JMP -2 forever
        assert emu.run(max_cycles=50) == StopReason.TIMEOUT
        assert emu.regs.cycles == 50

    def test_timeout_from_config(self):
        emu = _emu(0x0FF8, HALT, config=MachineConfig(max_cycles=10))
        assert emu.run() == StopReason.TIMEOUT
        assert emu.regs.cycles == 10

    def test_unassigned_opcode_is_noop(self):
        emu = _emu(0xF123, HALT)
        assert emu.run() == StopReason.HALT
        assert emu.regs.R == [0] * 8
        assert emu.regs.CC == 0

    def test_idle_system_word_is_noop(self):
        calls = []
        emu = _emu(0x0700, HALT, dump_hook=calls.append)
        assert emu.run() == StopReason.HALT
        assert len(calls) == 1   # final dump only

    def test_empty_memory_runs_nop_then_ends(self):
        emu = T16Emulator()
        assert emu.run() == StopReason.END
        assert emu.regs.PC == 0x0002


# ═══════════════════════════════════════════════
# Test Group 6: Bounds faults
# ═══════════════════════════════════════════════

class TestBounds:

    def test_load_past_data_memory(self):
        emu = _emu(0x19FF, 0x3420, HALT)  # MOV R1, #$FF ; LOAD R4, [R1]
        emu.regs.set(4, 0x1111)
        assert emu.run() == StopReason.BOUNDS
        assert isinstance(emu.fault, MemoryBoundsError)
        assert emu.fault.region == 'data'
        assert emu.regs.get(4) == 0x1111

    def test_word_store_straddling_end(self):
        emu = _emu(0x19FE, 0x2028, HALT)  # MOV R1, #$FE ; STORE [R1], R2
        assert emu.run() == StopReason.BOUNDS
        assert emu.data.touched_addresses() == []

    def test_byte_store_at_last_cell(self):
        emu = _emu(0x19FE, 0x2D2B, HALT)  # MOV R1, #$FE ; STORE [R1], #$AB
        assert emu.run() == StopReason.HALT
        assert emu.data.read8(0xFE) == 0xAB

    def test_fetch_outside_instruction_memory(self):
        emu = _emu(HALT)
        emu.regs.PC = 0x0100
        assert emu.step() == StopReason.BOUNDS
        assert emu.fault.region == 'instruction'

    def test_image_word_past_memory_rejected(self):
        emu = T16Emulator()
        with pytest.raises(MemoryBoundsError):
            emu.load_lines("00FE: 0x1234")

    def test_fault_cleared_on_next_run(self):
        emu = _emu(0x0402, HALT)
        emu.run()
        assert emu.fault is not None
        emu.reset()
        emu.regs.SP = STACK_POINTER_BASE - 2
        assert emu.run() == StopReason.HALT
        assert emu.fault is None


# ═══════════════════════════════════════════════
# Test Group 7: Dump hook, breakpoints, trace
# ═══════════════════════════════════════════════

class TestDumpHook:

    def test_nop_and_final_dump(self):
        seen = []
        emu = _emu(
            0x0000,  # NOP -> dump
            0x1907,  # MOV R1, #7
            HALT,
            dump_hook=lambda e: seen.append((e.regs.PC, e.regs.get(1))),
        )
        emu.run()
        assert seen == [(0x0002, 0), (0x0006, 7)]

    def test_nop_dump_disabled(self):
        seen = []
        emu = _emu(0x0000, HALT, config=MachineConfig(dump_on_nop=False),
                   dump_hook=seen.append)
        emu.run()
        assert len(seen) == 1

    def test_nop_changes_nothing_but_pc(self):
        emu = _emu(0x0000, HALT)
        emu.regs.CC = FLAG_Z
        emu.step()
        assert emu.regs.PC == 0x0002
        assert emu.regs.CC == FLAG_Z
        assert emu.regs.R == [0] * 8

    def test_final_dump_after_fault(self):
        seen = []
        emu = _emu(0x0402, HALT, dump_hook=seen.append)
        assert emu.run() == StopReason.BOUNDS
        assert seen == [emu]


class TestBreakpointTrace:

    def test_breakpoint_stops_before_instruction(self):
        emu = _emu(0x1901, 0x1A02, HALT)
        emu.add_breakpoint(0x0002)
        assert emu.run() == StopReason.BREAK
        assert emu.regs.get(1) == 1
        assert emu.regs.get(2) == 0
        assert emu.regs.PC == 0x0002
        assert emu.run() == StopReason.HALT
        assert emu.regs.get(2) == 2

    def test_remove_breakpoint(self):
        emu = _emu(0x1901, 0x1A02, HALT)
        emu.add_breakpoint(0x0002)
        emu.remove_breakpoint(0x0002)
        assert emu.run() == StopReason.HALT

    def test_trace(self):
        emu = _emu(0x1901, 0x4328, HALT)
        emu.enable_trace()
        emu.run()
        lines = emu.get_trace().splitlines()
        assert len(lines) == 3
        assert lines[0].startswith("$0000: 1901  MOV     R1, #$01")
        assert "ADD     R3, R1, R2" in lines[1]
        assert "HALT" in lines[2]
        emu.clear_trace()
        assert emu.get_trace() == ""

    def test_trace_keeps_only_recent_lines(self):
        emu = _emu(0x1901, 0x1A02, 0x1B03, HALT, config=MachineConfig(trace_depth=2))
        emu.enable_trace()
        emu.run()
        lines = emu.get_trace().splitlines()
        assert len(lines) == 2
        assert "MOV     R3, #$03" in lines[0]
        assert "HALT" in lines[1]

    def test_reset_keeps_program(self):
        emu = _emu(0x1901, 0x0005, HALT)
        emu.run()
        emu.reset()
        assert emu.regs.R == [0] * 8
        assert emu.regs.SP == STACK_POINTER_BASE
        assert emu.stack.touched_slots(emu.regs.SP - 2) == []
        assert emu.highest_address == 0x0004
        assert emu.run() == StopReason.HALT
        assert emu.regs.get(1) == 1
