"""
PostScript Cross-Compiler State
The process-wide counters and identifier knowledge for one compilation run
"""

from enum import Enum, auto
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from psc.config import CompilerConfig
from psc.typetags import TypeTag

# Variable-name compatible base-62 character set
B62 = '0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz'


def b62(n: int) -> str:
    value = ''
    while n >= 62:
        value = B62[n % 62] + value
        n //= 62
    return B62[n] + value


class PassMode(Enum):
    DISCOVER = auto()   # unknown identifiers allowed, no instrumentation
    EMIT = auto()       # unknown identifiers are fatal


@dataclass
class CompilerState:
    config: CompilerConfig = field(default_factory=CompilerConfig)
    dictionary: Dict[str, TypeTag] = field(default_factory=dict)
    globals: Dict[str, TypeTag] = field(default_factory=dict)
    mode: PassMode = PassMode.EMIT
    tvarno: int = 0
    order: int = 0
    branchno: int = -1      # -1 disables coverage markers
    dlvl: int = 0           # dictionary nesting level ($0, $1, ...)

    def __post_init__(self):
        if not self.dictionary:
            self.dictionary = dict(self.config.environment)

    @property
    def allow_unknown(self) -> bool:
        return self.mode is PassMode.DISCOVER

    @property
    def coverage_active(self) -> bool:
        return self.branchno > -1

    def next_order(self) -> int:
        self.order += 1
        return self.order

    def new_temp(self) -> str:
        name = '_' + b62(self.tvarno)
        self.tvarno += 1
        return name

    def new_branch(self) -> Optional[int]:
        if not self.coverage_active:
            return None
        branch = self.branchno
        self.branchno += 1
        return branch

    def begin_pass(self, mode: PassMode, dictionary: Optional[Dict[str, TypeTag]] = None):
        """Reset the per-pass counters for a top-level procedure.

        The discovery pass starts from the configured environment; the
        emitting pass continues with whatever the discovery pass learned.
        """
        self.mode = mode
        self.tvarno = 0
        self.order = 0
        if mode is PassMode.DISCOVER:
            self.dictionary = dict(self.config.environment)
            self.branchno = -1
        else:
            if dictionary is not None:
                self.dictionary = dictionary
            self.branchno = 0 if self.config.coverage else -1

    def define(self, name: str, tag: TypeTag):
        self.dictionary[name] = tag
        if self.dlvl == 0:
            self.globals[name] = tag

    def lookup(self, name: str) -> Optional[Tuple[int, TypeTag]]:
        """Return (dictionary level, type) for a known identifier."""
        if name in self.dictionary:
            return self.dlvl, self.dictionary[name]
        if name in self.globals:
            return 0, self.globals[name]
        return None
