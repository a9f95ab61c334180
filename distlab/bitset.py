"""A fixed-size set of bits stored in 64-bit words."""

from __future__ import annotations

from typing import Iterable

_WORD_BITS = 64
_WORD_MASK = (1 << _WORD_BITS) - 1


class Bitset:
    """A fixed number of bits, each set or clear.

    Two bitsets are equal when they have the same number of words and the
    same bits set.
    """

    __slots__ = ("_words",)

    def __init__(self, bits: int) -> None:
        if bits < 0:
            raise ValueError(f"bit count must not be negative: {bits}")
        extra = 1 if bits % _WORD_BITS else 0
        self._words = [0] * (bits // _WORD_BITS + extra)

    @property
    def capacity(self) -> int:
        """The number of bits the words can hold."""
        return len(self._words) * _WORD_BITS

    def _index(self, pos: int) -> tuple[int, int]:
        if not 0 <= pos < self.capacity:
            raise IndexError(f"bit {pos} out of range for {self.capacity} bits")
        return divmod(pos, _WORD_BITS)

    def set(self, pos: int) -> None:
        """Set the bit at pos."""
        major, minor = self._index(pos)
        self._words[major] |= 1 << minor

    def clear(self, pos: int) -> None:
        """Clear the bit at pos."""
        major, minor = self._index(pos)
        self._words[major] &= ~(1 << minor) & _WORD_MASK

    def popcount(self) -> int:
        """Return the number of bits set."""
        return sum(word.bit_count() for word in self._words)

    def copy(self) -> Bitset:
        """Return an independent copy of this bitset."""
        clone = Bitset(0)
        clone._words = list(self._words)
        return clone

    def __contains__(self, pos: int) -> bool:
        major, minor = self._index(pos)
        return bool(self._words[major] >> minor & 1)

    def __iter__(self) -> Iterable[int]:
        for major, word in enumerate(self._words):
            while word:
                low = word & -word
                yield major * _WORD_BITS + low.bit_length() - 1
                word ^= low

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Bitset):
            return NotImplemented
        return self._words == other._words

    def __hash__(self) -> int:
        result = self.popcount()
        for word in self._words:
            result ^= word
        return result

    def __repr__(self) -> str:
        return f"Bitset(capacity={self.capacity}, set={list(self)})"