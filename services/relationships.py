"""Bidirectional relationship index powering the cascading filter dropdowns."""

from __future__ import annotations

from itertools import combinations
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from models.records import Dimension, Reading

ConstraintKey = Tuple[Tuple[str, str], ...]
OptionsKey = Tuple[str, ConstraintKey]


def _normalize_constraints(
    target: Optional[Dimension], constraints: Mapping[Dimension | str, Optional[str]]
) -> ConstraintKey:
    pairs: list[tuple[str, str]] = []
    for raw_dimension, value in constraints.items():
        dimension = Dimension(raw_dimension)
        if not value or dimension is target:
            continue
        pairs.append((dimension.value, value))
    return tuple(sorted(pairs))


class FilterCache:
    """Memoized option lists keyed by filter combination."""

    def __init__(self) -> None:
        self._options: Dict[OptionsKey, List[str]] = {}
        self._dependents: Dict[Tuple[ConstraintKey, str], Dict[str, List[str]]] = {}

    def get_options(self, key: OptionsKey) -> Optional[List[str]]:
        cached = self._options.get(key)
        return list(cached) if cached is not None else None

    def put_options(self, key: OptionsKey, options: List[str]) -> None:
        self._options[key] = list(options)

    def get_dependents(
        self, key: Tuple[ConstraintKey, str]
    ) -> Optional[Dict[str, List[str]]]:
        cached = self._dependents.get(key)
        if cached is None:
            return None
        return {name: list(values) for name, values in cached.items()}

    def put_dependents(
        self, key: Tuple[ConstraintKey, str], options: Dict[str, List[str]]
    ) -> None:
        self._dependents[key] = {name: list(values) for name, values in options.items()}

    def clear(self) -> None:
        self._options.clear()
        self._dependents.clear()

    def __len__(self) -> int:
        return len(self._options) + len(self._dependents)


class RelationshipIndex:
    """Symmetric many-to-many links between every pair of filter dimensions.

    ``_links[a][value][b]`` holds the values of dimension ``b`` seen together
    with ``value`` of dimension ``a``. Every insert is mirrored, so the
    inverse lookup is always available.
    """

    def __init__(self, cache: Optional[FilterCache] = None) -> None:
        self.cache = cache or FilterCache()
        self._known: Dict[Dimension, Set[str]] = {dimension: set() for dimension in Dimension}
        self._links: Dict[Dimension, Dict[str, Dict[Dimension, Set[str]]]] = {
            dimension: {} for dimension in Dimension
        }

    def register(
        self,
        vessel: str,
        equipment_code: str,
        component: str = "",
        measurement_point: str = "",
        sub_component_code: str = "",
    ) -> None:
        values = {
            Dimension.vessel: vessel,
            Dimension.equipment_code: equipment_code,
            Dimension.component: component,
            Dimension.measurement_point: measurement_point,
            Dimension.sub_component_code: sub_component_code,
        }
        present = [(dimension, value) for dimension, value in values.items() if value]
        for dimension, value in present:
            self._known[dimension].add(value)
            self._links[dimension].setdefault(value, {})
        for (left, left_value), (right, right_value) in combinations(present, 2):
            self._link(left, left_value, right, right_value)
            self._link(right, right_value, left, left_value)
        self.cache.clear()

    def register_reading(self, reading: Reading) -> None:
        self.register(
            reading.vessel,
            reading.equipment_code,
            reading.component,
            reading.measurement_point,
            reading.sub_component_code,
        )

    def _link(self, source: Dimension, source_value: str, target: Dimension, target_value: str) -> None:
        targets = self._links[source].setdefault(source_value, {})
        targets.setdefault(target, set()).add(target_value)

    def values(self, dimension: Dimension | str) -> List[str]:
        return sorted(self._known[Dimension(dimension)])

    def associated(
        self, dimension: Dimension | str, value: str, target: Dimension | str
    ) -> Set[str]:
        entry = self._links[Dimension(dimension)].get(value)
        if not entry:
            return set()
        return set(entry.get(Dimension(target), set()))

    def options_for(
        self,
        target: Dimension | str,
        constraints: Optional[Mapping[Dimension | str, Optional[str]]] = None,
    ) -> List[str]:
        """Sorted option list for ``target`` consistent with every constraint.

        Multiple constraints are intersected so the result does not depend on
        the order in which the user picked them.
        """
        target_dimension = Dimension(target)
        constraint_key = _normalize_constraints(target_dimension, constraints or {})
        cache_key: OptionsKey = (target_dimension.value, constraint_key)
        cached = self.cache.get_options(cache_key)
        if cached is not None:
            return cached

        if not constraint_key:
            options = self.values(target_dimension)
        else:
            matches: Optional[Set[str]] = None
            for dimension_name, value in constraint_key:
                linked = self.associated(dimension_name, value, target_dimension)
                matches = linked if matches is None else matches & linked
            options = sorted(matches or set())

        self.cache.put_options(cache_key, options)
        return list(options)

    def dependent_options(
        self,
        selections: Mapping[Dimension | str, Optional[str]],
        changed: Dimension | str,
    ) -> Dict[str, List[str]]:
        """Options for every dimension other than the one the user just changed."""
        changed_dimension = Dimension(changed)
        selection_key = _normalize_constraints(None, selections)
        cache_key = (selection_key, changed_dimension.value)
        cached = self.cache.get_dependents(cache_key)
        if cached is not None:
            return cached

        active = dict(selection_key)
        result: Dict[str, List[str]] = {}
        for dimension in Dimension:
            if dimension is changed_dimension:
                continue
            result[dimension.value] = self.options_for(dimension, active)

        self.cache.put_dependents(cache_key, result)
        return result

    def clear(self) -> None:
        for dimension in Dimension:
            self._known[dimension].clear()
            self._links[dimension].clear()
        self.cache.clear()

    def is_empty(self) -> bool:
        return not any(self._known.values())

    def to_dict(self) -> Dict[str, Dict[str, Dict[str, List[str]]]]:
        payload: Dict[str, Dict[str, Dict[str, List[str]]]] = {}
        for dimension, entries in self._links.items():
            payload[dimension.value] = {
                value: {target.value: sorted(linked) for target, linked in targets.items()}
                for value, targets in entries.items()
            }
        return payload

    @classmethod
    def from_dict(
        cls,
        payload: Mapping[str, Mapping[str, Mapping[str, Iterable[str]]]],
        cache: Optional[FilterCache] = None,
    ) -> "RelationshipIndex":
        index = cls(cache=cache)
        index.load(payload)
        return index

    def load(self, payload: Mapping[str, Mapping[str, Mapping[str, Iterable[str]]]]) -> None:
        """Replace the index contents, mirroring every link so symmetry holds."""
        self.clear()
        for dimension_name, entries in payload.items():
            dimension = Dimension(dimension_name)
            for value, targets in entries.items():
                if not value:
                    continue
                self._known[dimension].add(value)
                self._links[dimension].setdefault(value, {})
                for target_name, linked in targets.items():
                    target = Dimension(target_name)
                    for target_value in linked:
                        if not target_value or target is dimension:
                            continue
                        self._known[target].add(target_value)
                        self._link(dimension, value, target, target_value)
                        self._link(target, target_value, dimension, value)
        self.cache.clear()
