"""
PostScript Cross-Compiler
Compiles PostScript procedures to JavaScript that runs without an interpreter
"""

import logging

from psc.compiler import Compiler, compile_source
from psc.config import CompilerConfig, load_config
from psc.errors import (ConfigError, LexError, MalformedStateError, PSCError,
                        UnknownOperatorError, UnsupportedConstructError)

__version__ = "1.0.0"

__all__ = [
    'Compiler',
    'CompilerConfig',
    'ConfigError',
    'LexError',
    'MalformedStateError',
    'PSCError',
    'UnknownOperatorError',
    'UnsupportedConstructError',
    'compile_source',
    'load_config',
]

logging.getLogger(__name__).addHandler(logging.NullHandler())
