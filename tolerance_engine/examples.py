"""Built-in example project for demonstration."""

from __future__ import annotations

import os
from typing import Union

from tolerance_engine.models import (
    Component, Distribution, Feature, FeatureCategory, FeatureContribution,
    FeatureKind, Mate, MateKind, Stackup, Tolerance,
)
from tolerance_engine.repository import ToleranceRepository


def _length(component: Component, name: str, nominal: float, tol: float,
            distribution: Distribution = Distribution.normal(),
            category: FeatureCategory = FeatureCategory.EXTERNAL) -> Feature:
    return Feature(
        name=name,
        component_id=component.id,
        kind=FeatureKind.LENGTH,
        category=category,
        nominal=nominal,
        tolerance=Tolerance(tol, tol, distribution),
    )


def create_example_repository(
    root: Union[str, os.PathLike],
    save: bool = True,
) -> ToleranceRepository:
    """Build a small project with a pin/hole fit and two stackups.

    Contents:
        - Pin (external diameter 9.98 +0.00/-0.02) in a hole (internal
          diameter 10.02 +0.02/-0.00), declared as a clearance mate.
        - "Two-length chain": block A (10 +/-0.1) plus block B
          (20 +/-0.2), spec 29.6 .. 30.4.
        - "Shaft-housing gap": housing bore depth minus shaft, washer,
          retaining ring and groove depth, spec 0.4 .. 1.0.

    Args:
        root: Repository directory.
        save: Write the repository to ``root`` before returning.
    """
    repo = ToleranceRepository(root)

    # Pin and hole
    pin_part = repo.add_component(Component("Pin", "Locating pin", part_number="P-100"))
    plate = repo.add_component(Component("Plate", "Mounting plate", part_number="PL-200"))
    pin = repo.add_feature(Feature(
        name="Pin diameter",
        component_id=pin_part.id,
        kind=FeatureKind.DIAMETER,
        category=FeatureCategory.EXTERNAL,
        nominal=9.98,
        tolerance=Tolerance(0.0, 0.02),
    ))
    hole = repo.add_feature(Feature(
        name="Hole diameter",
        component_id=plate.id,
        kind=FeatureKind.DIAMETER,
        category=FeatureCategory.INTERNAL,
        nominal=10.02,
        tolerance=Tolerance(0.02, 0.0),
    ))
    repo.add_mate(Mate(
        name="Pin in hole",
        kind=MateKind.CLEARANCE,
        primary_feature_id=hole.id,
        secondary_feature_id=pin.id,
        description="Locating pin clearance fit",
    ))

    # Two-length chain
    block_a = repo.add_component(Component("Block A", "Spacer block"))
    block_b = repo.add_component(Component("Block B", "Spacer block"))
    len_a = repo.add_feature(_length(block_a, "Block A length", 10.0, 0.1))
    len_b = repo.add_feature(_length(block_b, "Block B length", 20.0, 0.2))
    repo.add_stackup(Stackup(
        name="Two-length chain",
        description="Two blocks stacked end to end",
        contributions=[FeatureContribution(len_a.id), FeatureContribution(len_b.id)],
        upper_spec_limit=30.4,
        lower_spec_limit=29.6,
    ))

    # Shaft-housing gap
    housing = repo.add_component(Component("Housing", "Gearbox housing", part_number="H-300"))
    shaft = repo.add_component(Component("Shaft", "Output shaft", part_number="S-310"))
    washer = repo.add_component(Component("Washer", "Thrust washer"))
    ring = repo.add_component(Component("Retaining ring", "Snap ring"))

    bore = repo.add_feature(_length(housing, "Housing bore depth", 50.0, 0.1,
                                    category=FeatureCategory.INTERNAL))
    shaft_len = repo.add_feature(_length(shaft, "Shaft length", 45.0, 0.05))
    washer_t = repo.add_feature(_length(washer, "Washer thickness", 2.0, 0.025,
                                        distribution=Distribution.uniform()))
    ring_w = repo.add_feature(_length(ring, "Retaining ring width", 1.5, 0.03,
                                      distribution=Distribution.triangular()))
    groove = repo.add_feature(_length(shaft, "Snap ring groove depth", 0.8, 0.02))

    gap = Stackup(
        name="Shaft-housing gap",
        description="Gap between shaft end and housing inner wall",
        contributions=[FeatureContribution(bore.id, +1.0)],
        upper_spec_limit=1.0,
        lower_spec_limit=0.4,
    )
    for feature in (shaft_len, washer_t, ring_w, groove):
        gap.add(feature.id, direction=-1.0)
    repo.add_stackup(gap)

    repo.refresh_snapshots()
    if save:
        repo.save()
    return repo
