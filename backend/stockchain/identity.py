# Overview: Actor descriptor supplied by the external identity provider.

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ValidationError


@dataclass(frozen=True)
class Actor:
    """
    The acting user as the identity provider describes them.

    Opaque to the core: no authentication happens here, the descriptor is
    trusted as given and copied onto the rows the actor writes.
    """
    id: str
    name: str
    role: str
    distributor_id: Optional[str] = None
    distributor_name: Optional[str] = None
    location: Optional[str] = None

    def __post_init__(self):
        if not self.id:
            raise ValidationError("actor id is required")
        if not self.role:
            raise ValidationError("actor role is required")

    @classmethod
    def from_mapping(cls, data: Mapping) -> "Actor":
        """Build from a JSON body fragment (`{"id", "name", "role", ...}`)."""
        return cls(
            id=str(data.get("id") or ""),
            name=data.get("name") or "Unknown",
            role=data.get("role") or "",
            distributor_id=data.get("distributorId") or data.get("distributor_id"),
            distributor_name=data.get("distributorName") or data.get("distributor_name"),
            location=data.get("location"),
        )

    @classmethod
    def from_headers(cls, headers: Mapping) -> "Actor":
        return cls(
            id=headers.get("X-Actor-Id", ""),
            name=headers.get("X-Actor-Name") or "Unknown",
            role=headers.get("X-Actor-Role", ""),
            distributor_id=headers.get("X-Distributor-Id"),
            distributor_name=headers.get("X-Distributor-Name"),
            location=headers.get("X-Actor-Location"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role,
            "distributor_id": self.distributor_id,
            "distributor_name": self.distributor_name,
            "location": self.location,
        }
