"""Change-sets returned by facade mutations and consumed by a renderer."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ChangeSet(BaseModel):
    """Which vertices a mutation created, moved or removed.

    ``removed`` lists the ids the caller asked to remove; ``removed_internally``
    lists everything that actually went away, cascade dependents included.
    """
    model_config = ConfigDict(populate_by_name=True)

    new: list[int] = Field(default_factory=list)
    moved: list[int] = Field(default_factory=list)
    removed: list[int] = Field(default_factory=list)
    removed_internally: list[int] = Field(default_factory=list, alias="removedInternally")
    highlight: list[int] = Field(default_factory=list)
    animate: list[int] = Field(default_factory=list)
    make_visible: list[int] = Field(default_factory=list, alias="makevisible")

    @property
    def is_empty(self) -> bool:
        return not any(
            (self.new, self.moved, self.removed, self.removed_internally, self.highlight, self.animate,
             self.make_visible)
        )

    def to_dict(self) -> dict[str, Any]:
        """Exchange form: only the populated fields, under their exchange names."""
        data = self.model_dump(by_alias=True)
        return {k: v for k, v in data.items() if v}
