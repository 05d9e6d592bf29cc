#!/usr/bin/env python3
"""
t16sim: T16 instruction-set simulator CLI

Usage:
    python t16sim.py [program.txt] [--max-cycles N] [--stack-base 0x8200]
                     [--no-nop-dump] [--trace] [--break ADDR ...]
                     [-v | -vv | -q] [--log-file run.log]

Loads the program image, runs it, and prints a state dump on every NOP
and once when the run stops.

Exit status:
    0  HALT, malformed instruction, or end of program
    1  program image could not be opened
    2  bad command-line arguments (argparse)
    3  memory / stack bounds violation
    4  stopped at a breakpoint
    5  cycle budget exhausted

Examples:
    python t16sim.py examples/countdown.txt
    python t16sim.py prog.txt --trace --max-cycles 500
    python t16sim.py prog.txt --break 0x0010 -v
"""

import argparse
import sys
from pathlib import Path

from t16_emulator import __version__
from t16_emulator.config import (
    DEFAULT_MAX_CYCLES, DEFAULT_PROGRAM_PATH, DEFAULT_TRACE_DEPTH, STACK_POINTER_BASE,
    MachineConfig, parse_int_arg,
)
from t16_emulator.emu import T16Emulator, StopReason
from t16_emulator.errors import ProgramLoadError, MemoryBoundsError
from t16_emulator.log_setup import setup_logging, verbosity_to_level
from t16_emulator.presenter import dump_state

EXIT_CODES = {
    StopReason.HALT: 0,
    StopReason.MALFORMED: 0,
    StopReason.END: 0,
    StopReason.BRANCH_END: 0,
    StopReason.TIMEOUT: 5,
    StopReason.BOUNDS: 3,
    StopReason.BREAK: 4,
}
EXIT_LOAD_FAILURE = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="t16sim",
        description="T16 16-bit instruction-set simulator",
    )
    parser.add_argument("program", nargs="?", default=DEFAULT_PROGRAM_PATH,
                        help=f"Program image file (default: {DEFAULT_PROGRAM_PATH})")
    parser.add_argument("--max-cycles", type=int, default=DEFAULT_MAX_CYCLES,
                        help=f"Instruction budget before TIMEOUT (default: {DEFAULT_MAX_CYCLES})")
    parser.add_argument("--stack-base", default=None,
                        help=f"Initial stack pointer (hex, e.g. 0x{STACK_POINTER_BASE:04X})")
    parser.add_argument("--no-nop-dump", action="store_true",
                        help="Do not dump state when a NOP (0x0000) executes")
    parser.add_argument("--trace", action="store_true",
                        help="Print the instruction trace to stderr after the run")
    parser.add_argument("--trace-depth", type=int, default=DEFAULT_TRACE_DEPTH,
                        help=f"Keep only the last N trace lines (default: {DEFAULT_TRACE_DEPTH})")
    parser.add_argument("--break", dest="breakpoints", action="append", default=[],
                        metavar="ADDR", help="Stop when PC reaches ADDR (repeatable)")
    parser.add_argument("--verbose", "-v", action="count", default=0,
                        help="Increase log verbosity (-v, -vv)")
    parser.add_argument("--quiet", "-q", action="store_true",
                        help="Only log errors")
    parser.add_argument("--log-file", default=None,
                        help="Also write a DEBUG log to this file")
    parser.add_argument("--version", action="version",
                        version=f"t16sim {__version__}")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    log = setup_logging(console_level=verbosity_to_level(args.verbose, args.quiet),
                        log_file=Path(args.log_file) if args.log_file else None)

    try:
        stack_base = parse_int_arg(args.stack_base) if args.stack_base else STACK_POINTER_BASE
        breakpoints = [parse_int_arg(b) for b in args.breakpoints]
        config = MachineConfig(stack_base=stack_base, max_cycles=args.max_cycles,
                               program_path=args.program,
                               dump_on_nop=not args.no_nop_dump,
                               trace_depth=args.trace_depth)
    except ValueError as e:
        parser.error(str(e))

    emu = T16Emulator(config, dump_hook=lambda e: print(dump_state(e)))

    try:
        emu.load_program(config.program_path)
    except ProgramLoadError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_LOAD_FAILURE
    except MemoryBoundsError as e:
        print(f"Error: program image does not fit in instruction memory: {e}",
              file=sys.stderr)
        return EXIT_LOAD_FAILURE

    for addr in breakpoints:
        emu.add_breakpoint(addr)
    if args.trace:
        emu.enable_trace()

    reason = emu.run()

    if args.trace:
        print(emu.get_trace(), file=sys.stderr)
    if emu.fault is not None:
        print(f"Bounds violation: {emu.fault}", file=sys.stderr)
    log.info("Exit: %s", reason.value)
    return EXIT_CODES[reason]


if __name__ == "__main__":
    sys.exit(main())
