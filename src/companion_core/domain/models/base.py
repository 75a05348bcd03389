from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class SnapshotModel(BaseModel):
    """Base class for everything stored in a snapshot.

    Stored JSON uses camelCase keys; Python code uses snake_case names.
    Instances are immutable, updates go through ``model_copy(update=...)``.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class ExtensibleModel(SnapshotModel):
    """Snapshot model with a fixed set of known fields plus open extension fields.

    Unknown keys are kept exactly as stored (any name, including ``extra``)
    and written back at the top level, so records written by newer clients
    survive a load/save cycle unchanged.
    """

    model_config = ConfigDict(extra="allow")

    @property
    def extra(self) -> dict[str, Any]:
        """Extension fields keyed by their stored names."""
        return dict(self.model_extra or {})
