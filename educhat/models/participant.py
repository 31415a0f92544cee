from typing import Any, Literal, Mapping, Optional, TypedDict


CanonicalRole = Literal["Student", "Educator", "Admin"]

STUDENT: CanonicalRole = "Student"
EDUCATOR: CanonicalRole = "Educator"
ADMIN: CanonicalRole = "Admin"

# auth context sends lowercase tokens, storage keeps capitalized roles
_ROLE_MAP: dict[str, CanonicalRole] = {
    "student": STUDENT,
    "educator": EDUCATOR,
    "admin": ADMIN,
}


class UserProfile(TypedDict, total=False):
    _id: str
    full_name: Optional[str]
    name: Optional[str]
    username: Optional[str]
    email: Optional[str]
    profile_picture: Optional[str]
    image: Optional[str]


class ParticipantDocument(TypedDict, total=False):
    user_id: str
    role: CanonicalRole
    # display projection, only present once expanded
    user: Optional[UserProfile]


def map_role(external_role: Optional[str]) -> Optional[CanonicalRole]:
    if not isinstance(external_role, str):
        return None
    return _ROLE_MAP.get(external_role)


def make_participant(user_id: Any, role: CanonicalRole) -> ParticipantDocument:
    return {"user_id": str(user_id), "role": role}


def participant_user_id(participant: Mapping[str, Any]) -> Optional[str]:
    """
    Stable identifier of a participant whether or not it has been expanded.

    Accepts the stored shape ``{"user_id": "..."}``, an expanded one where
    ``user_id`` holds the user record, or an ObjectId reference.
    """
    ref = participant.get("user_id")
    if isinstance(ref, Mapping):
        ref = ref.get("_id")
    if ref is None:
        return None
    return str(ref)
