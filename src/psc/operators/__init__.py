"""
PostScript Cross-Compiler Operator Table
One compilation routine per PostScript operator
"""

from typing import Callable, Dict

from psc.operators import arith, control, data, graphics, stack


def get_operators() -> Dict[str, Callable]:
    """Return dictionary of all operators"""
    operators = {}
    for module in (stack, arith, control, data, graphics):
        operators.update(module.get_operators())
    return operators
