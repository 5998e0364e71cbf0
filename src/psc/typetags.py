"""
PostScript Cross-Compiler Type Tags
Bitset lattice describing what the compiler knows about a stack value
"""

from enum import IntFlag


class TypeTag(IntFlag):
    # The unknown type must be zero so that it tests falsy.
    UNKNOWN = 0x0000

    # Every VAL tag is its LIT tag shifted left by one bit.
    INTLIT = 0x0001
    INTVAL = 0x0002
    NUMLIT = 0x0004
    NUMVAL = 0x0008
    STRLIT = 0x0010
    STRVAL = 0x0020

    ARRAY = 0x0040
    DICT = 0x0080
    NULL = 0x0100
    BOOLEAN = 0x0200
    IDENT = 0x0400        # /ident
    IENAME = 0x0800       # //ident
    TOKENS = 0x1000       # captured, not yet compiled executable block
    FUNCTION = 0x2000     # compiled procedure (function literal text)
    PRECALC = 0x4000      # precomputed push instruction


INTTYP = TypeTag.INTLIT | TypeTag.INTVAL
NUMTYP = TypeTag.INTLIT | TypeTag.INTVAL | TypeTag.NUMLIT | TypeTag.NUMVAL
STRTYP = TypeTag.STRLIT | TypeTag.STRVAL
LITERALS = TypeTag.INTLIT | TypeTag.NUMLIT | TypeTag.STRLIT


def to_value(tag: TypeTag) -> TypeTag:
    """Convert a literal tag to its runtime-value counterpart."""
    if tag & LITERALS:
        return TypeTag(tag << 1)
    return tag


def tag_from_name(name: str) -> TypeTag:
    """Look up a tag by member name, e.g. 'DICT'."""
    try:
        return TypeTag[name.upper()]
    except KeyError:
        raise ValueError(f"Unknown type tag '{name}'") from None
