"""
T16 Virtual Emulator: program image loader

Program image format, one instruction per line:

    0000: 0x1905
    0002: 0x1A03
    0004: 0x4120

Address and word are exactly four hex digits. Lines that do not match
are ignored (comments, blank lines, listings with extra columns), order
is free and a repeated address overwrites the earlier word. The highest
address seen is the implicit end of the program.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Union

from .errors import ProgramLoadError

log = logging.getLogger(__name__)

LINE_RE = re.compile(r'^\s*([0-9A-Fa-f]{4}):\s*0x([0-9A-Fa-f]{4})(?![0-9A-Fa-f])')


@dataclass
class ProgramImage:
    """Parsed program: address -> word, plus the end-of-program sentinel."""
    words: Dict[int, int] = field(default_factory=dict)
    highest_address: int = 0

    def __len__(self) -> int:
        return len(self.words)

    def load_into(self, memory) -> int:
        """Write every word little-endian into memory; returns highest_address.

        Raises MemoryBoundsError if a word does not fit in the region.
        """
        for addr, word in self.words.items():
            memory.write16(addr, word)
        log.info("Loaded %d words into %s memory, highest address $%04X",
                 len(self.words), memory.name, self.highest_address)
        return self.highest_address


def parse_line(line: str):
    """Return (address, word) for a matching line, else None."""
    m = LINE_RE.match(line)
    if not m:
        return None
    return int(m.group(1), 16), int(m.group(2), 16)


def parse_program_image(lines: Iterable[str]) -> ProgramImage:
    image = ProgramImage()
    skipped = 0
    for line in lines:
        parsed = parse_line(line)
        if parsed is None:
            skipped += 1
            continue
        addr, word = parsed
        image.words[addr] = word
        if addr > image.highest_address:
            image.highest_address = addr
    if skipped:
        log.debug("Ignored %d non-instruction lines", skipped)
    return image


def read_program_image(path: Union[str, Path]) -> ProgramImage:
    """Parse a program image file. Raises ProgramLoadError if unreadable."""
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            return parse_program_image(f)
    except OSError as e:
        raise ProgramLoadError(path, e.strerror or str(e)) from e


def load_program(path: Union[str, Path], memory) -> ProgramImage:
    """Read a program image file and write it into instruction memory."""
    image = read_program_image(path)
    image.load_into(memory)
    return image
