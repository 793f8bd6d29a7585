"""Fixed-capacity bit sets used to record which operations are linearized."""

from __future__ import annotations

_CHUNK_BITS = 64
_CHUNK_MASK = (1 << _CHUNK_BITS) - 1


class Bitset:
    """A set of bit positions stored in whole 64-bit chunks.

    The hash depends on the contents, so a bitset used as a key must not be
    changed afterwards.
    """

    __slots__ = ("_chunks", "_bits")

    def __init__(self, nbits: int) -> None:
        if nbits < 0:
            raise ValueError("bit count must not be negative")
        self._chunks = -(-nbits // _CHUNK_BITS)
        self._bits = 0

    def _check(self, pos: int) -> None:
        if not 0 <= pos < self._chunks * _CHUNK_BITS:
            raise IndexError(f"bit {pos} out of range")

    def clone(self) -> Bitset:
        """Return an independent copy."""
        copy = Bitset(0)
        copy._chunks = self._chunks
        copy._bits = self._bits
        return copy

    def set(self, pos: int) -> Bitset:
        """Set bit ``pos`` and return this bitset."""
        self._check(pos)
        self._bits |= 1 << pos
        return self

    def clear(self, pos: int) -> Bitset:
        """Clear bit ``pos`` and return this bitset."""
        self._check(pos)
        self._bits &= ~(1 << pos)
        return self

    def get(self, pos: int) -> bool:
        """Return whether bit ``pos`` is set."""
        self._check(pos)
        return bool((self._bits >> pos) & 1)

    def popcount(self) -> int:
        """Return the number of set bits."""
        return self._bits.bit_count()

    def __hash__(self) -> int:
        result = self.popcount()
        bits = self._bits
        for _ in range(self._chunks):
            result ^= bits & _CHUNK_MASK
            bits >>= _CHUNK_BITS
        return result

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Bitset):
            return NotImplemented
        return self._chunks == other._chunks and self._bits == other._bits

    def __repr__(self) -> str:
        positions = [
            pos for pos in range(self._chunks * _CHUNK_BITS) if (self._bits >> pos) & 1
        ]
        return f"Bitset({self._chunks * _CHUNK_BITS} bits, set={positions})"