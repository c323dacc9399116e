"""Sequential batch loops over many entities.

Items are processed one after the other, pausing when the rate budget is
nearly spent. A failing item is recorded next to the others and never
aborts the batch.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from ..clients.babbar import BabbarClient
from ..errors import BabbarError, PerItemError
from ..models import EntityType, InducedStrengthPair
from ..normalizer import payload_of

logger = logging.getLogger(__name__)

OVERVIEW_ENDPOINTS = {
    EntityType.HOST: "/host/overview/main",
    EntityType.DOMAIN: "/domain/overview/main",
    EntityType.URL: "/url/overview/main",
}


async def batch_overview(
    client: BabbarClient,
    items: list[str],
    entity_type: EntityType = EntityType.HOST,
) -> dict:
    """Overview of every host, domain or URL in ``items``."""
    entity_type = EntityType(entity_type)
    endpoint = OVERVIEW_ENDPOINTS[entity_type]

    results = []
    for item in items:
        await client.throttle()
        try:
            envelope = await client.call(endpoint, {entity_type.value: item})
        except BabbarError as exc:
            failure = PerItemError(item, exc)
            logger.warning("Overview failed for %s: %s", item, failure)
            results.append({"item": item, **failure.to_dict()})
            continue
        results.append({"item": item, "success": True, "data": envelope})

    return {"results": results, "total_analyzed": len(results)}


def _pair_field(raw, name: str):
    return raw.get(name) if isinstance(raw, dict) else None


async def induced_strength_batch(client: BabbarClient, pairs: list) -> dict:
    """Induced strength (fi) of every ``{"source", "target"}`` pair.

    Pairs may be ``InducedStrengthPair`` models or plain dicts; a dict missing
    a URL is recorded as a failed item.
    """
    results = []
    for raw in pairs:
        if isinstance(raw, InducedStrengthPair):
            raw = raw.model_dump()
        source, target = _pair_field(raw, "source"), _pair_field(raw, "target")
        await client.throttle()
        try:
            pair = InducedStrengthPair.model_validate(raw)
            envelope = await client.call("/url/fi", {"source": pair.source, "target": pair.target})
        except (BabbarError, ValidationError) as exc:
            failure = PerItemError(raw, exc)
            logger.warning("Induced strength failed for %s -> %s: %s", source, target, failure)
            results.append({"source": source, "target": target, **failure.to_dict()})
            continue
        results.append({
            "source": source,
            "target": target,
            "induced_strength": payload_of(envelope),
            "success": True,
        })

    return {"count": len(results), "results": results}
