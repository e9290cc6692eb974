from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from salestrack.domain.models import Order, Product, Store


class FixtureSnapshot(BaseModel):
    orders: list[Order] = Field(default_factory=list)
    products: list[Product] = Field(default_factory=list)
    stores: list[Store] = Field(default_factory=list)


def load_fixture_snapshot(path: Path) -> FixtureSnapshot:
    """Read a pre-built demo snapshot (``{"orders": [...], "products": [...], "stores": [...]}``)."""
    try:
        return FixtureSnapshot.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, ValidationError) as exc:
        raise ValueError(f"invalid demo fixture {path}: {exc}") from exc
