"""
Topology serializers: JSON, Mermaid, and DOT output formats.

Pure functions that convert a list of entities to string output.
Edges point from a buying entity to its provider.
"""

from __future__ import annotations

import json
import re
from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from promtopo.topology.models import Entity

# Nord palette mapped to entity types
TYPE_COLORS = {
    "application": "#5E81AC",
    "virtual_application": "#A3BE8C",
    "virtual_machine": "#D08770",
}


def serialize_json(entities: Sequence[Entity]) -> str:
    """Serialize entities as a JSON document, preserving their order."""
    return json.dumps(
        {
            "entities": [e.to_dict() for e in entities],
            "stats": {
                "entity_count": len(entities),
                "edge_count": sum(1 for e in entities if e.bought is not None),
            },
        },
        indent=2,
    )


def serialize_mermaid(entities: Sequence[Entity]) -> str:
    """
    Serialize entities as a Mermaid flowchart.

    Uses graph LR layout with bought commodity usage on edges and
    classDef styles per entity type.
    """
    lines: list[str] = ["graph LR"]
    known = {e.id for e in entities}

    for entity in entities:
        lines.append(f"    {_node_id(entity.id)}[\"{entity.display_name}\"]")

    lines.append("")

    for entity in entities:
        if entity.bought is None:
            continue
        src = _node_id(entity.id)
        tgt = _node_id(entity.bought.provider_id)
        if entity.bought.provider_id not in known:
            # Provider discovered elsewhere; still show the edge
            known.add(entity.bought.provider_id)
            lines.append(f"    {tgt}([\"{entity.bought.provider_id}\"])")
        label = _usage_label(entity)
        if label:
            lines.append(f"    {src} -->|{label}| {tgt}")
        else:
            lines.append(f"    {src} --> {tgt}")

    lines.append("")

    for entity_type, color in TYPE_COLORS.items():
        lines.append(f"    classDef {entity_type} fill:{color},stroke:#2E3440,color:#ECEFF4")

    for entity in entities:
        lines.append(f"    class {_node_id(entity.id)} {entity.entity_type.value}")

    return "\n".join(lines)


def serialize_dot(entities: Sequence[Entity]) -> str:
    """
    Serialize entities as a Graphviz DOT digraph.

    Placeholder (unmonitored) entities are drawn dashed.
    """
    lines: list[str] = [
        "digraph topology {",
        "    rankdir=LR;",
        '    node [style=filled, fontname="sans-serif", fontcolor="#ECEFF4", shape=box];',
        '    edge [fontname="sans-serif", fontsize=10];',
        "",
    ]

    for entity in entities:
        attrs: list[str] = [f'label="{entity.display_name}"']
        color = TYPE_COLORS.get(entity.entity_type.value, "#4C566A")
        attrs.append(f'fillcolor="{color}"')
        if not entity.monitored:
            attrs.append('style="filled,dashed"')
        lines.append(f"    {_node_id(entity.id)} [{', '.join(attrs)}];")

    lines.append("")

    for entity in entities:
        if entity.bought is None:
            continue
        src = _node_id(entity.id)
        tgt = _node_id(entity.bought.provider_id)
        label = _usage_label(entity)
        attr_str = f' [label="{label}"]' if label else ""
        lines.append(f"    {src} -> {tgt}{attr_str};")

    lines.append("}")

    return "\n".join(lines)


def _usage_label(entity: Entity) -> str:
    if entity.bought is None:
        return ""
    return ", ".join(f"{c.kind.value}: {c.used:g}" for c in entity.bought.commodities)


def _node_id(name: str) -> str:
    """Convert entity id to valid Mermaid/DOT node ID."""
    return re.sub(r"[^a-zA-Z0-9]", "_", name)
