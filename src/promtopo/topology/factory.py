"""
Validating entity constructor.

``create_entity`` checks every part of an entity before building it and
reports all problems found, instead of stopping at the first one.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, field

from promtopo.metrics import EntityType
from promtopo.topology.models import (
    BoughtRelation,
    Commodity,
    Entity,
    EntityProperty,
    StitchingRule,
)


@dataclass
class BuildResult:
    """Outcome of building one entity: the entity, or why it was rejected."""

    entity: Entity | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.entity is not None


def validate_commodity(commodity: Commodity, role: str = "sold") -> list[str]:
    """Return the problems with a commodity, empty when it is valid."""
    errors: list[str] = []
    name = f"{role} {commodity.kind.value}"

    if not math.isfinite(commodity.used) or commodity.used < 0:
        errors.append(f"{name}: used {commodity.used} is not a finite non-negative value")

    if commodity.capacity is not None:
        if not math.isfinite(commodity.capacity) or commodity.capacity < 0:
            errors.append(
                f"{name}: capacity {commodity.capacity} is not a finite non-negative value"
            )
        elif math.isfinite(commodity.used) and commodity.capacity < commodity.used:
            errors.append(
                f"{name}: capacity {commodity.capacity} is below used {commodity.used}"
            )

    if commodity.key is not None and not commodity.key:
        errors.append(f"{name}: key is empty")

    return errors


def _duplicate_kinds(commodities: Iterable[Commodity], role: str) -> list[str]:
    seen: set = set()
    errors: list[str] = []
    for commodity in commodities:
        if commodity.kind in seen:
            errors.append(f"{role} {commodity.kind.value} appears more than once")
        seen.add(commodity.kind)
    return errors


def create_entity(
    *,
    entity_type: EntityType,
    entity_id: str,
    display_name: str,
    stitching_property: EntityProperty,
    stitching_rule: StitchingRule,
    commodities_sold: Iterable[Commodity] = (),
    bought: BoughtRelation | None = None,
    monitored: bool = False,
    keep_standalone: bool | None = None,
) -> BuildResult:
    """
    Build an entity, collecting every construction error.

    Args:
        entity_type: Type of the entity
        entity_id: Stable entity id
        display_name: Human-readable name
        stitching_property: Local property used for stitching
        stitching_rule: External matching rule
        commodities_sold: Commodities the entity sells
        bought: Relationship to the single provider, if any
        monitored: Whether the entity is independently actionable
        keep_standalone: Keep the entity even when it stitches to nothing

    Returns:
        BuildResult holding the entity, or the list of errors
    """
    sold = tuple(commodities_sold)
    errors: list[str] = []

    if not entity_id:
        errors.append("entity id is empty")
    if not display_name:
        errors.append("display name is empty")
    if not stitching_property.name or not stitching_property.value:
        errors.append("stitching property needs a name and a value")
    if not stitching_rule.attribute or not stitching_rule.external_attribute:
        errors.append("stitching rule needs a local and an external attribute")

    for commodity in sold:
        errors.extend(validate_commodity(commodity, "sold"))
    errors.extend(_duplicate_kinds(sold, "sold"))

    if bought is not None:
        if not bought.provider_id:
            errors.append("provider id is empty")
        elif bought.provider_id == entity_id:
            errors.append("entity cannot be its own provider")
        if not bought.commodities:
            errors.append(f"no commodities bought from provider {bought.provider_id}")
        for commodity in bought.commodities:
            errors.extend(validate_commodity(commodity, "bought"))
        errors.extend(_duplicate_kinds(bought.commodities, "bought"))

    if errors:
        return BuildResult(errors=errors)

    return BuildResult(
        entity=Entity(
            entity_type=entity_type,
            id=entity_id,
            display_name=display_name,
            stitching_property=stitching_property,
            stitching_rule=stitching_rule,
            commodities_sold=sold,
            bought=bought,
            monitored=monitored,
            keep_standalone=keep_standalone,
        )
    )
