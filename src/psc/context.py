"""
PostScript Cross-Compiler Context Manager
Compiles nested token regions in isolation and hands their lines back
"""

from typing import List

from psc.ir import CodeLine
from psc.lexer import Lexer, Token
from psc.state import CompilerState
from psc.tracker import Tracker

# Order numbers jump by this much on entry so nested lines stand out
ORDER_GAP = 100


class ContextManager:
    """Arena of trackers indexed by nesting level.

    Frame 0 compiles the raw source text; frame N compiles the N-th
    enclosing captured token region. Frames are reused once popped.
    """

    def __init__(self, state: CompilerState, lexer: Lexer):
        self.state = state
        self.lexer = lexer
        self.frames: List[Tracker] = [Tracker(state, lexer)]
        self.index = 0

    @property
    def tracker(self) -> Tracker:
        return self.frames[self.index]

    @property
    def depth(self) -> int:
        """Nesting depth of the active frame; zero at top level."""
        return self.index

    def push(self, tokens: List[Token]):
        # The parent is deliberately not flushed: array and dictionary
        # literals interleave parent and child state.
        self.lexer.push(tokens)
        self.index += 1
        if self.index == len(self.frames):
            self.frames.append(Tracker(self.state, self.lexer))
        else:
            self.frames[self.index].reset()
        self.state.order += ORDER_GAP

    def pop(self) -> List[CodeLine]:
        """Finish the active region and return its lines to the caller."""
        child = self.tracker
        child.flush()
        lines = child.block
        child.reset()
        self.lexer.pop()
        self.index -= 1
        return lines
