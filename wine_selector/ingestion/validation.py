"""
Feed Validation Module
======================

Validates raw feed records with the pydantic models in
:mod:`wine_selector.core.schema`. Invalid records become dead letters and the
rest of the batch continues.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from wine_selector.core.enums import IngestionStage
from wine_selector.core.schema import CatalogFeedItem, DeadLetterRecord, SignalFeedItem

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass
class ValidationOutcome(Generic[ModelT]):
    """Valid items plus the dead letters for the rejected ones."""

    valid_items: list[ModelT] = field(default_factory=list)
    dead_letters: list[DeadLetterRecord] = field(default_factory=list)


def format_validation_error(error: ValidationError) -> str:
    """Render errors as ``"path: message"`` entries joined by ``"; "``."""
    parts = []
    for issue in error.errors():
        path = ".".join(str(p) for p in issue["loc"])
        parts.append(f"{path}: {issue['msg']}")
    return "; ".join(parts)


def _external_id_of(raw: Any) -> str | None:
    if isinstance(raw, dict):
        value = raw.get("externalId", raw.get("external_id"))
        if isinstance(value, str) and value:
            return value
    return None


def validate_items(
    items: list[Any],
    model: type[ModelT],
    source: str,
) -> ValidationOutcome[ModelT]:
    """
    Validate raw records against ``model``.

    Args:
        items: Raw records (usually dicts with camelCase keys)
        model: Pydantic model to validate against
        source: Source name recorded on dead letters

    Returns:
        ValidationOutcome with valid items in input order
    """
    outcome: ValidationOutcome[ModelT] = ValidationOutcome()
    for raw in items:
        try:
            outcome.valid_items.append(model.model_validate(raw))
        except ValidationError as e:
            outcome.dead_letters.append(
                DeadLetterRecord(
                    source=source,
                    stage=IngestionStage.SYNC,
                    reason=format_validation_error(e),
                    payload=raw,
                    external_id=_external_id_of(raw),
                )
            )
    return outcome


def validate_catalog_items(items: list[Any], source: str) -> ValidationOutcome[CatalogFeedItem]:
    """Validate catalog feed records."""
    return validate_items(items, CatalogFeedItem, source)


def validate_signal_items(items: list[Any], source: str) -> ValidationOutcome[SignalFeedItem]:
    """Validate quality-signal feed records."""
    return validate_items(items, SignalFeedItem, source)
