"""In-memory entity repository with JSON persistence.

The repository owns one insertion-ordered store per entity kind and
enforces referential integrity on every mutation made through it:

- a feature's ``component_id`` must resolve
- every stackup contribution's feature must resolve
- a mate's two features must resolve
- a component with features, or a feature used by a stackup or mate,
  cannot be removed

Analyses snapshot their contributions, so removing the stackup they came
from is allowed.

Each kind is saved to its own JSON file under the repository root as an
ordered ``{id: entity}`` object.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Generic, Iterator, Optional, TypeVar, Union

import numpy as np

from tolerance_engine.analysis import analyze_stackup, resolve_features
from tolerance_engine.errors import (
    IntegrityError, NotFoundError, PersistenceError, ValidationError,
)
from tolerance_engine.fits import validate_fit
from tolerance_engine.models import (
    AnalysisConfig, Component, Feature, FeatureInfo, FitValidation, Mate,
    Stackup, StackupAnalysis,
)
from tolerance_engine.sink import CsvSampleSink, SampleSink

logger = logging.getLogger(__name__)

T = TypeVar("T")

COMPONENTS_FILE = "components.json"
FEATURES_FILE = "features.json"
MATES_FILE = "mates.json"
STACKUPS_FILE = "stackups.json"
ANALYSES_FILE = "analyses.json"


class EntityStore(Generic[T]):
    """Insertion-ordered ``id -> entity`` map for one entity kind.

    The store checks entity invariants and id uniqueness only. Cross-kind
    references are checked by ToleranceRepository.
    """

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self._items: dict[str, T] = {}

    def add(self, entity: T) -> T:
        entity.validate()
        if entity.id in self._items:
            raise ValidationError(f"Duplicate {self.kind} id: {entity.id}")
        self._items[entity.id] = entity
        logger.debug("Added %s %s", self.kind, entity.id)
        return entity

    def get(self, entity_id: str) -> Optional[T]:
        return self._items.get(entity_id)

    def require(self, entity_id: str) -> T:
        """Like get(), but raise NotFoundError for an unknown id."""
        try:
            return self._items[entity_id]
        except KeyError:
            raise NotFoundError(f"{self.kind.capitalize()} not found: {entity_id}") from None

    def all(self) -> list[T]:
        return list(self._items.values())

    def update(self, entity: T) -> T:
        entity.validate()
        if entity.id not in self._items:
            raise NotFoundError(f"{self.kind.capitalize()} not found: {entity.id}")
        self._items[entity.id] = entity
        logger.debug("Updated %s %s", self.kind, entity.id)
        return entity

    def remove(self, entity_id: str) -> T:
        entity = self.require(entity_id)
        del self._items[entity_id]
        logger.debug("Removed %s %s", self.kind, entity_id)
        return entity

    def find(self, predicate: Callable[[T], bool]) -> list[T]:
        return [e for e in self._items.values() if predicate(e)]

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._items

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items.values()))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EntityStore):
            return NotImplemented
        return self.kind == other.kind and list(self._items.items()) == list(other._items.items())

    def __repr__(self) -> str:
        return f"EntityStore({self.kind!r}, {len(self)} items)"


class ToleranceRepository:
    """Owner of all components, features, mates, stackups and analyses.

    Mutate through the ``add_*``, ``update_*`` and ``remove_*`` methods;
    they apply the referential rules the stores alone do not.

    Attributes:
        root: Directory the repository loads from and saves to.
    """

    def __init__(self, root: Union[str, os.PathLike]) -> None:
        self.root = Path(root)
        self.components: EntityStore[Component] = EntityStore("component")
        self.features: EntityStore[Feature] = EntityStore("feature")
        self.mates: EntityStore[Mate] = EntityStore("mate")
        self.stackups: EntityStore[Stackup] = EntityStore("stackup")
        self.analyses: EntityStore[StackupAnalysis] = EntityStore("analysis")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ToleranceRepository):
            return NotImplemented
        return (self.components == other.components
                and self.features == other.features
                and self.mates == other.mates
                and self.stackups == other.stackups
                and self.analyses == other.analyses)

    # -- reference checks ---------------------------------------------------

    def _check_feature_refs(self, feature: Feature) -> None:
        if feature.component_id not in self.components:
            raise NotFoundError(
                f"Feature '{feature.name}' references unknown component {feature.component_id}"
            )

    def _check_mate_refs(self, mate: Mate) -> None:
        for fid in mate.feature_ids:
            if fid not in self.features:
                raise NotFoundError(f"Mate '{mate.name}' references unknown feature {fid}")

    def _check_stackup_refs(self, stackup: Stackup) -> None:
        for fid in stackup.feature_ids:
            if fid not in self.features:
                raise NotFoundError(f"Stackup '{stackup.name}' references unknown feature {fid}")

    def _check_analysis_refs(self, analysis: StackupAnalysis) -> None:
        if analysis.stackup_id not in self.stackups:
            raise NotFoundError(
                f"Analysis {analysis.id} references unknown stackup {analysis.stackup_id}"
            )

    # -- components ---------------------------------------------------------

    def add_component(self, component: Component) -> Component:
        return self.components.add(component)

    def update_component(self, component: Component) -> Component:
        return self.components.update(component)

    def remove_component(self, component_id: str) -> Component:
        self.components.require(component_id)
        dependents = self.features_for_component(component_id)
        if dependents:
            names = ", ".join(f.name for f in dependents)
            raise IntegrityError(f"Component {component_id} is used by features: {names}")
        return self.components.remove(component_id)

    # -- features -----------------------------------------------------------

    def add_feature(self, feature: Feature) -> Feature:
        feature.validate()
        self._check_feature_refs(feature)
        return self.features.add(feature)

    def update_feature(self, feature: Feature) -> Feature:
        feature.validate()
        self.features.require(feature.id)
        self._check_feature_refs(feature)
        return self.features.update(feature)

    def remove_feature(self, feature_id: str) -> Feature:
        self.features.require(feature_id)
        users = [s.name for s in self.stackups if feature_id in s.feature_ids]
        users += [m.name for m in self.mates if feature_id in m.feature_ids]
        if users:
            raise IntegrityError(f"Feature {feature_id} is used by: {', '.join(users)}")
        return self.features.remove(feature_id)

    def features_for_component(self, component_id: str) -> list[Feature]:
        return self.features.find(lambda f: f.component_id == component_id)

    # -- mates --------------------------------------------------------------

    def add_mate(self, mate: Mate) -> Mate:
        mate.validate()
        self._check_mate_refs(mate)
        return self.mates.add(mate)

    def update_mate(self, mate: Mate) -> Mate:
        mate.validate()
        self.mates.require(mate.id)
        self._check_mate_refs(mate)
        return self.mates.update(mate)

    def remove_mate(self, mate_id: str) -> Mate:
        return self.mates.remove(mate_id)

    def evaluate_mate(self, mate_id: str) -> FitValidation:
        """Compute the fit of a stored mate from its current features."""
        mate = self.mates.require(mate_id)
        primary = self.features.require(mate.primary_feature_id)
        secondary = self.features.require(mate.secondary_feature_id)
        return validate_fit(mate, primary, secondary)

    # -- stackups -----------------------------------------------------------

    def add_stackup(self, stackup: Stackup) -> Stackup:
        stackup.validate()
        self._check_stackup_refs(stackup)
        return self.stackups.add(stackup)

    def update_stackup(self, stackup: Stackup) -> Stackup:
        stackup.validate()
        self.stackups.require(stackup.id)
        self._check_stackup_refs(stackup)
        return self.stackups.update(stackup)

    def remove_stackup(self, stackup_id: str) -> Stackup:
        return self.stackups.remove(stackup_id)

    def resolve_stackup(self, stackup_id: str) -> tuple[Stackup, list[Feature]]:
        """Look up a stackup and its features in contribution order."""
        stackup = self.stackups.require(stackup_id)
        return stackup, resolve_features(stackup, self.features)

    def find_stackup(self, key: str) -> Stackup:
        """Find a stackup by id, or by name when no id matches."""
        stackup = self.stackups.get(key)
        if stackup is not None:
            return stackup
        matches = self.stackups.find(lambda s: s.name == key)
        if not matches:
            raise NotFoundError(f"Stackup not found: {key}")
        if len(matches) > 1:
            raise ValidationError(f"Stackup name '{key}' is ambiguous; use its id")
        return matches[0]

    # -- analyses -----------------------------------------------------------

    def add_analysis(self, analysis: StackupAnalysis) -> StackupAnalysis:
        analysis.validate()
        self._check_analysis_refs(analysis)
        return self.analyses.add(analysis)

    def remove_analysis(self, analysis_id: str) -> StackupAnalysis:
        return self.analyses.remove(analysis_id)

    def analyses_for_stackup(self, stackup_id: str) -> list[StackupAnalysis]:
        return self.analyses.find(lambda a: a.stackup_id == stackup_id)

    def run_analysis(
        self,
        stackup_id: str,
        config: Optional[AnalysisConfig] = None,
        rng: Optional[np.random.Generator] = None,
        sink: Optional[SampleSink] = None,
    ) -> StackupAnalysis:
        """Resolve a stackup, analyze it and record the analysis.

        When the config asks for saved samples and no sink is given, the
        samples go to a CsvSampleSink under the repository root.
        """
        config = config or AnalysisConfig()
        stackup, features = self.resolve_stackup(stackup_id)
        if config.save_samples and sink is None:
            sink = CsvSampleSink(self.root)
        analysis = analyze_stackup(stackup, features, config, rng=rng, sink=sink)
        return self.add_analysis(analysis)

    # -- snapshots ----------------------------------------------------------

    def _info(self, feature_id: str) -> Optional[FeatureInfo]:
        feature = self.features.get(feature_id)
        if feature is None:
            return None
        component = self.components.get(feature.component_id)
        if component is None:
            return None
        return FeatureInfo.from_feature(feature, component)

    def refresh_snapshots(self) -> None:
        """Regenerate readable feature snapshots and stored mate fits."""
        for stackup in self.stackups:
            for c in stackup.contributions:
                c.feature_info = self._info(c.feature_id)
        for mate in self.mates:
            mate.primary_info = self._info(mate.primary_feature_id)
            mate.secondary_info = self._info(mate.secondary_feature_id)
            mate.fit = self.evaluate_mate(mate.id)
        logger.debug("Refreshed snapshots for %d stackups and %d mates",
                     len(self.stackups), len(self.mates))

    # -- persistence --------------------------------------------------------

    def _stores(self) -> list[tuple[str, EntityStore]]:
        return [
            (COMPONENTS_FILE, self.components),
            (FEATURES_FILE, self.features),
            (MATES_FILE, self.mates),
            (STACKUPS_FILE, self.stackups),
            (ANALYSES_FILE, self.analyses),
        ]

    def save(self) -> None:
        """Write every entity kind to its JSON file under ``root``."""
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Cannot create repository directory {self.root}: {exc}") from exc
        for filename, store in self._stores():
            data = {e.id: e.to_dict() for e in store}
            _write_json(self.root / filename, data)
        logger.info("Saved repository to %s", self.root)

    @classmethod
    def load(cls, root: Union[str, os.PathLike]) -> ToleranceRepository:
        """Load a repository saved by save(). Missing files load as empty."""
        repo = cls(root)
        loaders = [
            (COMPONENTS_FILE, Component.from_dict, repo.add_component),
            (FEATURES_FILE, Feature.from_dict, repo.add_feature),
            (MATES_FILE, Mate.from_dict, repo.add_mate),
            (STACKUPS_FILE, Stackup.from_dict, repo.add_stackup),
            # Analyses may outlive their stackup.
            (ANALYSES_FILE, StackupAnalysis.from_dict, repo.analyses.add),
        ]
        for filename, from_dict, add in loaders:
            path = repo.root / filename
            for key, d in _read_json(path).items():
                try:
                    entity = from_dict(d)
                except (KeyError, TypeError, ValueError) as exc:
                    raise PersistenceError(f"Malformed entry {key} in {path}: {exc}") from exc
                if entity.id != key:
                    raise PersistenceError(f"Entry {key} in {path} has id {entity.id}")
                add(entity)
        logger.info("Loaded repository from %s (%d components, %d features, "
                    "%d mates, %d stackups, %d analyses)", repo.root,
                    len(repo.components), len(repo.features), len(repo.mates),
                    len(repo.stackups), len(repo.analyses))
        return repo


def _read_json(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as exc:
        raise PersistenceError(f"Cannot read {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise PersistenceError(f"Expected an object of entities in {path}")
    return data


def _write_json(path: Path, data: dict) -> None:
    try:
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".", suffix=".tmp")
    except OSError as exc:
        raise PersistenceError(f"Cannot write {path}: {exc}") from exc
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
        os.replace(tmp_name, path)
    except OSError as exc:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise PersistenceError(f"Cannot write {path}: {exc}") from exc
