"""
T16 Virtual Emulator: main emulator class

Integrates:
  - CPU registers (cpu/regs.py)
  - Instruction decoder (cpu/decoder.py)
  - ALU operations (cpu/alu.py)
  - Instruction, data and stack memories (mem/memory.py)
  - Program loader (loader.py)

Execution model, one step():
  1. Fetch the little-endian word at PC into IR, advance PC by 2
  2. HALT (0xFFFF) or a malformed system word stops the run
  3. NOP (0x0000) calls the dump hook
  4. Dispatch the decoded instruction to its handler
  5. PC past the highest loaded address ends the run

Termination reasons:
  - HALT:        0xFFFF fetched
  - MALFORMED:   reserved opcode-0 bit pattern fetched
  - END:         PC ran past the highest loaded address
  - BRANCH_END:  a taken branch landed exactly on the highest address
  - TIMEOUT:     cycle budget exhausted
  - BREAK:       breakpoint address hit
  - BOUNDS:      memory or stack access outside its region
"""

import logging
from collections import deque
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Optional, Set, Union

from .config import MachineConfig
from .cpu import alu
from .cpu.decoder import (
    decode, format_instruction,
    MoveImmediate, MoveRegister, StoreImmediate, StoreRegister, Load,
    ArithmeticOp, ShiftOp, RotateOp, Compare, Push, Pop, Branch,
    Halt, Malformed, Nop,
)
from .cpu.regs import Registers
from .errors import MemoryBoundsError
from .loader import ProgramImage, load_program, parse_program_image
from .mem.memory import Memory, StackMemory

log = logging.getLogger(__name__)

DumpHook = Callable[["T16Emulator"], None]


class StopReason(Enum):
    HALT = 'HALT'
    MALFORMED = 'MALFORMED'
    END = 'END'
    BRANCH_END = 'BRANCH_END'
    TIMEOUT = 'TIMEOUT'
    BREAK = 'BREAK'
    BOUNDS = 'BOUNDS'


class T16Emulator:
    """T16 virtual emulator.

    Usage:
        emu = T16Emulator(dump_hook=lambda e: print(dump_state(e)))
        emu.load_program('program.txt')
        reason = emu.run()
    """

    def __init__(self, config: Optional[MachineConfig] = None,
                 dump_hook: Optional[DumpHook] = None):
        self.config = config or MachineConfig()
        self.dump_hook = dump_hook

        # Core components
        self.regs = Registers(self.config.stack_base)
        self.mem = Memory('instruction', self.config.memory_size)
        self.data = Memory('data', self.config.memory_size, track_writes=True)
        self.stack = StackMemory(self.config.stack_base, self.config.memory_size)

        self.highest_address = 0
        self.stop_reason: Optional[StopReason] = None
        self.fault: Optional[MemoryBoundsError] = None

        # Breakpoints: set of PC addresses that trigger BREAK
        self._breakpoints: Set[int] = set()
        self._resume_pc: Optional[int] = None

        # Trace output: only the most recent trace_depth lines are kept
        self._trace = False
        self._trace_output = deque(maxlen=self.config.trace_depth)

        # Instruction dispatch table: variant type -> handler
        self._dispatch = self._build_dispatch()

    # ══════════════════════════════════════════════
    # Loading
    # ══════════════════════════════════════════════

    def load_image(self, image: ProgramImage) -> ProgramImage:
        self.highest_address = image.load_into(self.mem)
        return image

    def load_program(self, path: Union[str, Path]) -> ProgramImage:
        """Load a program image file. Raises ProgramLoadError if unreadable."""
        image = load_program(path, self.mem)
        self.highest_address = image.highest_address
        return image

    def load_lines(self, lines: Iterable[str]) -> ProgramImage:
        """Load program image text already in memory (a str or lines)."""
        if isinstance(lines, str):
            lines = lines.splitlines()
        return self.load_image(parse_program_image(lines))

    # ══════════════════════════════════════════════
    # Execution
    # ══════════════════════════════════════════════

    def step(self) -> Optional[StopReason]:
        """Execute one instruction. Returns StopReason if stopped, else None."""
        pc = self.regs.PC

        # Breakpoint check; the step after a BREAK runs the instruction
        if pc in self._breakpoints and self._resume_pc != pc:
            self._resume_pc = pc
            return StopReason.BREAK
        self._resume_pc = None

        # Fetch
        try:
            word = self.mem.read16(pc)
        except MemoryBoundsError as e:
            return self._bounds_fault(e)
        self.regs.IR = word
        self.regs.PC = (pc + 2) & 0xFFFF
        self.regs.cycles += 1

        instr = decode(word)

        if self._trace:
            self._trace_output.append(
                f"${pc:04X}: {word:04X}  {format_instruction(instr):24s} {self.regs.display()}")
        if log.isEnabledFor(logging.DEBUG):
            log.debug("$%04X: %04X  %s", pc, word, format_instruction(instr))

        if isinstance(instr, Halt):
            return StopReason.HALT
        if isinstance(instr, Malformed):
            log.info("Malformed instruction $%04X at $%04X", word, pc)
            return StopReason.MALFORMED

        # Execute instruction
        try:
            reason = self._dispatch[type(instr)](instr)
        except MemoryBoundsError as e:
            return self._bounds_fault(e)
        if reason is not None:
            return reason

        if self.regs.PC > self.highest_address:
            return StopReason.END
        return None

    def run(self, max_cycles: Optional[int] = None) -> StopReason:
        """Run until a termination condition, then call the dump hook once.

        Args:
            max_cycles: instruction budget for this call; defaults to
                config.max_cycles.

        Returns:
            StopReason indicating why execution stopped
        """
        if max_cycles is None:
            max_cycles = self.config.max_cycles

        self.fault = None
        reason = StopReason.TIMEOUT
        for _ in range(max_cycles):
            stopped = self.step()
            if stopped is not None:
                reason = stopped
                break
        else:
            log.warning("Cycle budget of %d instructions exhausted at PC=$%04X",
                        max_cycles, self.regs.PC)

        self.stop_reason = reason
        log.info("Stopped: %s after %d cycles (PC=$%04X)",
                 reason.value, self.regs.cycles, self.regs.PC)
        self._dump()
        return reason

    def _bounds_fault(self, exc: MemoryBoundsError) -> StopReason:
        self.fault = exc
        log.warning("Bounds violation at PC=$%04X: %s", self.regs.PC, exc)
        return StopReason.BOUNDS

    def _dump(self):
        if self.dump_hook is not None:
            self.dump_hook(self)

    # ══════════════════════════════════════════════
    # Instruction handlers
    # ══════════════════════════════════════════════
    # Handler signature: handler(instr) -> Optional[StopReason]

    def _build_dispatch(self) -> dict:
        return {
            MoveImmediate:  self._op_mov_imm,
            MoveRegister:   self._op_mov_reg,
            StoreImmediate: self._op_store_imm,
            StoreRegister:  self._op_store_reg,
            Load:           self._op_load,
            ArithmeticOp:   self._op_arith,
            ShiftOp:        self._op_shift,
            RotateOp:       self._op_rotate,
            Compare:        self._op_cmp,
            Push:           self._op_push,
            Pop:            self._op_pop,
            Branch:         self._op_branch,
            Nop:            self._op_nop,
        }

    # ── Data movement ──

    def _op_mov_imm(self, instr):
        self.regs.set(instr.dest, instr.value)

    def _op_mov_reg(self, instr):
        self.regs.set(instr.dest, self.regs.get(instr.src))

    def _op_store_imm(self, instr):
        self.data.write8(self.regs.get(instr.addr), instr.value)

    def _op_store_reg(self, instr):
        self.data.write16(self.regs.get(instr.addr), self.regs.get(instr.src))

    def _op_load(self, instr):
        self.regs.set(instr.dest, self.data.read16(self.regs.get(instr.addr)))

    # ── ALU ──

    def _op_arith(self, instr):
        a = self.regs.get(instr.src1)
        if instr.src2 is None:
            result, flags = alu.UNARY_OPS[instr.mnemonic](a)
        else:
            result, flags = alu.BINARY_OPS[instr.mnemonic](a, self.regs.get(instr.src2))
        self.regs.set(instr.dest, result)
        if instr.mnemonic in alu.ARITHMETIC:
            self.regs.set_CVZS(flags)
        else:
            self.regs.set_ZS(flags)

    def _op_shift(self, instr):
        result, _ = alu.SHIFT_OPS[instr.mnemonic](self.regs.get(instr.src), instr.amount)
        self.regs.set(instr.dest, result)

    def _op_rotate(self, instr):
        result, _ = alu.ROTATE_OPS[instr.mnemonic](self.regs.get(instr.src))
        self.regs.set(instr.dest, result)

    def _op_cmp(self, instr):
        self.regs.set_ZS(alu.cmp16(self.regs.get(instr.src1), self.regs.get(instr.src2)))

    # ── Stack ──

    def _op_push(self, instr):
        self.regs.push16(self.stack, self.regs.get(instr.src))

    def _op_pop(self, instr):
        self.regs.set(instr.dest, self.regs.pull16(self.stack))

    # ── Control ──

    def _branch_taken(self, condition: int) -> bool:
        z, s = self.regs.zero, self.regs.sign
        if condition == 0:
            return True
        if condition == 1:
            return z and not s
        if condition == 2:
            return not z and s
        return not z and not s

    def _op_branch(self, instr):
        if not self._branch_taken(instr.condition):
            return None
        self.regs.PC = (self.regs.PC + instr.offset) & 0xFFFF
        if self.regs.PC == self.highest_address:
            return StopReason.BRANCH_END
        return None

    def _op_nop(self, instr):
        if instr.dump and self.config.dump_on_nop:
            self._dump()

    # ══════════════════════════════════════════════
    # Breakpoint API
    # ══════════════════════════════════════════════

    def add_breakpoint(self, addr: int):
        """Add a breakpoint at PC address. Execution stops when PC hits this."""
        self._breakpoints.add(addr & 0xFFFF)

    def remove_breakpoint(self, addr: int):
        self._breakpoints.discard(addr & 0xFFFF)

    def clear_breakpoints(self):
        self._breakpoints.clear()

    # ══════════════════════════════════════════════
    # Trace / Debug
    # ══════════════════════════════════════════════

    def enable_trace(self, enable: bool = True):
        """Enable instruction trace recording."""
        self._trace = enable

    def get_trace(self) -> str:
        return '\n'.join(self._trace_output)

    def clear_trace(self):
        self._trace_output.clear()

    def reset(self):
        """Power-on reset. The loaded program and highest address are kept."""
        self.regs.reset()
        self.data.clear()
        self.stack.clear()
        self.stop_reason = None
        self.fault = None
        self._resume_pc = None
        self._breakpoints.clear()
        self._trace_output.clear()
