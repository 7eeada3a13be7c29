from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Identity:
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    note: Optional[str] = None

    @property
    def display_name(self) -> str:
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) if parts else self.email

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Identity":
        return cls(
            id=str(data["id"]),
            email=str(data["email"]),
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            note=data.get("note"),
        )


@dataclass(frozen=True)
class Session:
    """Access token, refresh token and identity, always held together."""

    access_token: str
    refresh_token: str
    identity: Identity

    def __post_init__(self) -> None:
        if not self.access_token or not self.refresh_token:
            raise ValueError("session requires both an access and a refresh token")
        if not isinstance(self.identity, Identity):
            raise ValueError("session requires an identity")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "identity": self.identity.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            identity=Identity.from_dict(data["identity"]),
        )

    def __repr__(self) -> str:
        return f"Session(identity={self.identity!r})"
