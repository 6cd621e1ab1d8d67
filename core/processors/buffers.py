"""
Bounded containers for raw behavioural history.

``SequenceTimingMap`` is the digraph/trigraph store: an insertion-ordered map
keyed by a tuple of keycodes, where each value is a fixed-capacity FIFO of
press-to-press intervals. Eviction is per key; the optional key cap drops the
oldest inserted key.
"""

from collections import OrderedDict, deque
from typing import Deque, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple


# Interval history kept per digraph/trigraph
SEQUENCE_CAPACITY = 30

KeySequence = Tuple[int, ...]


def sequence_id(keys: KeySequence) -> str:
    """Serialized form used in profile documents (``"65_66"``)."""
    return "_".join(str(k) for k in keys)


def parse_sequence_id(value: str) -> KeySequence:
    """Inverse of sequence_id; raises ValueError unless every part is ASCII digits."""
    parts = value.split("_")
    if not all(p.isascii() and p.isdigit() for p in parts):
        raise ValueError(f"invalid key sequence id {value!r}")
    return tuple(int(p) for p in parts)


class SequenceTimingMap:
    """Ordered map of key sequence -> bounded interval history."""

    def __init__(self, capacity: int = SEQUENCE_CAPACITY, max_keys: Optional[int] = None) -> None:
        self.capacity = capacity
        self.max_keys = max_keys
        self._entries: "OrderedDict[KeySequence, Deque[float]]" = OrderedDict()

    def record(self, keys: KeySequence, interval: float) -> None:
        history = self._entries.get(keys)
        if history is None:
            if self.max_keys is not None and len(self._entries) >= self.max_keys:
                self._entries.popitem(last=False)
            history = deque(maxlen=self.capacity)
            self._entries[keys] = history
        history.append(interval)

    def get(self, keys: KeySequence) -> List[float]:
        return list(self._entries.get(keys, ()))

    def values(self) -> Iterator[Sequence[float]]:
        return iter(self._entries.values())

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, keys: object) -> bool:
        return keys in self._entries

    def to_dict(self) -> Dict[str, List[float]]:
        return {sequence_id(keys): list(history) for keys, history in self._entries.items()}

    def load(self, data: Mapping[str, Sequence[float]]) -> None:
        """Replace contents from a serialized mapping (keeps the newest ``capacity`` values)."""
        self._entries.clear()
        for raw_key, intervals in data.items():
            keys = parse_sequence_id(raw_key)
            self._entries[keys] = deque((float(v) for v in intervals), maxlen=self.capacity)
