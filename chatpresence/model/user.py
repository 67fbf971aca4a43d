"""Domain model for the authenticated user profile."""

from dataclasses import dataclass, field
from typing import Any

# Backend field name -> attribute name
_KNOWN_FIELDS = {
    "_id": "id",
    "fullName": "full_name",
    "email": "email",
    "profilePic": "profile_pic",
    "bio": "bio",
}


@dataclass(frozen=True)
class AuthenticatedUser:
    """Profile record returned by the auth backend.

    Attributes:
        id: Backend user identifier (the ``_id`` field).
        full_name: Display name.
        email: Account email address.
        profile_pic: URL of the profile picture, if any.
        bio: Free-form profile text.
        extra: Any fields the backend returned that are not modelled above.
    """

    id: str
    full_name: str | None = None
    email: str | None = None
    profile_pic: str | None = None
    bio: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert back to the backend's field naming.

        Returns:
            Dictionary using the backend keys (``_id``, ``fullName``, ...).
        """
        data: dict[str, Any] = dict(self.extra)
        for backend_key, attr in _KNOWN_FIELDS.items():
            value = getattr(self, attr)
            if value is not None:
                data[backend_key] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuthenticatedUser":
        """Create instance from a backend user payload.

        Args:
            data: User object from a check, login or update-profile response.

        Returns:
            AuthenticatedUser instance.

        Raises:
            ValueError: If the payload has no ``_id``.
        """
        if not isinstance(data, dict) or not data.get("_id"):
            raise ValueError("User payload is missing '_id'")

        extra = {k: v for k, v in data.items() if k not in _KNOWN_FIELDS}
        return cls(
            id=str(data["_id"]),
            full_name=data.get("fullName"),
            email=data.get("email"),
            profile_pic=data.get("profilePic"),
            bio=data.get("bio"),
            extra=extra,
        )
