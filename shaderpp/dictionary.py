from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml


class Dictionary:
    """
    Hierarchical key-value store feeding the preprocessor.

    Values are one of a closed set of types: str, int, float, bool, list or a
    nested Dictionary. Keys may be nested locations separated by '.', so
    'lights.sun.color' addresses the value 'color' inside 'sun' inside 'lights'.
    Keys given at construction are stored literally, so a YAML key such as
    '1.0' stays one key and is still reachable as 'versions.1.0'.
    Type checks are exact: a bool is never reported as an int and nothing is
    converted on retrieval.
    """

    SEPARATOR = '.'

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        self._values: Dict[str, Any] = {}
        if values:
            self._update(values, '')

    @classmethod
    def from_yaml(cls, path: str) -> 'Dictionary':
        """Loads a Dictionary from a YAML file whose top level is a mapping."""
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise TypeError(f"Top level of '{path}' is not a mapping")
        return cls(data)

    # --- Helper Methods ---

    def _update(self, values: Mapping[Any, Any], location: str) -> None:
        # Mapping keys are stored as given, even when they contain the separator.
        # Null values are left out, so 'unused:' in YAML simply defines nothing.
        for key, value in values.items():
            if value is None:
                continue
            key = str(key)
            path = location + self.SEPARATOR + key if location else key
            self._values[key] = self._convert(value, path)

    @staticmethod
    def _convert(value: Any, path: str) -> Any:
        if isinstance(value, Dictionary):
            return value
        if isinstance(value, Mapping):
            inner = Dictionary()
            inner._update(value, path)
            return inner
        if isinstance(value, (list, tuple)):
            return [Dictionary._convert(v, f"{path}[{i}]") for i, v in enumerate(value)]
        if isinstance(value, (str, bool, int, float)):
            return value
        raise TypeError(f"Unsupported value type '{type(value).__name__}' at '{path}'")

    @staticmethod
    def _split_key(key: str) -> Tuple[str, str]:
        """Splits 'a.b.c' into ('a', 'b.c'); the rest is empty for plain keys."""
        first, _, rest = key.partition(Dictionary.SEPARATOR)
        return first, rest

    def _find(self, key: str) -> Tuple[bool, Any]:
        """
        Looks key up as a literal key first, then as a nested location.

        A literal key may contain the separator itself ('1.0'), so every split
        point is tried from left to right. Empty segments never resolve.
        """
        if key in self._values:
            return True, self._values[key]
        start = 0
        while True:
            split = key.find(self.SEPARATOR, start)
            if split == -1:
                return False, None
            first, rest = key[:split], key[split + 1:]
            start = split + 1
            if not first or not rest:
                continue
            value = self._values.get(first)
            if isinstance(value, Dictionary):
                found, inner = value._find(rest)
                if found:
                    return True, inner

    # --- Queries ---

    def has_key(self, key: str) -> bool:
        """Returns whether any value is stored at key, regardless of its type."""
        return self._find(key)[0]

    def has_value(self, key: str, value_type: type) -> bool:
        """Returns whether key holds a value whose type is exactly value_type."""
        found, value = self._find(key)
        return found and type(value) is value_type

    def value_type(self, key: str) -> type:
        found, value = self._find(key)
        if not found:
            raise KeyError(key)
        return type(value)

    def get_value(self, key: str, value_type: Optional[type] = None) -> Any:
        """
        Returns the value stored at key.

        Raises KeyError if nothing is stored there and TypeError if value_type
        is given and does not match the stored type exactly.
        """
        found, value = self._find(key)
        if not found:
            raise KeyError(key)
        if value_type is not None and type(value) is not value_type:
            raise TypeError(
                f"Value at '{key}' is of type '{type(value).__name__}', "
                f"not '{value_type.__name__}'")
        return value

    def keys(self, location: str = '') -> List[str]:
        """Returns the keys stored at location in insertion order."""
        if not location:
            return list(self._values.keys())
        found, value = self._find(location)
        if not found or not isinstance(value, Dictionary):
            return []
        return value.keys()

    def empty(self) -> bool:
        return not self._values

    # --- Mutation ---

    def set_value(self, key: str, value: Any, create_intermediate: bool = False) -> bool:
        """
        Stores value at key, replacing whatever was stored there.

        An existing literal key is replaced as is. Otherwise key is a nested
        location whose intermediate dictionaries must exist unless
        create_intermediate is set. Returns False if the key cannot be reached.
        """
        if key in self._values:
            self._values[key] = self._convert(value, key)
            return True
        first, rest = self._split_key(key)
        if not first or (not rest and self.SEPARATOR in key):
            raise KeyError(key)
        if not rest:
            self._values[first] = self._convert(value, key)
            return True
        inner = self._values.get(first)
        if inner is None and create_intermediate:
            inner = Dictionary()
            self._values[first] = inner
        if not isinstance(inner, Dictionary):
            return False
        return inner.set_value(rest, value, create_intermediate)

    def clear(self) -> None:
        self._values = {}

    def assign(self, other: "Dictionary") -> None:
        """Replaces the contents of this Dictionary with those of other, keeping its identity."""
        self._values = dict(other._values)

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, key: str) -> bool:
        return self.has_key(key)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Dictionary):
            return NotImplemented
        return self._values == other._values

    def __repr__(self) -> str:
        return f"Dictionary({self._values!r})"
