from studystack.core.errors import validation_error
from studystack.models.resource import Resource, RESOURCE_TYPES, LINK, PYQ
from studystack.models.user import User, ADMIN

MIN_YEAR = 1900
MAX_YEAR = 2100

ALLOWED_UPLOAD_MIMES = {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
}

SORT_KEYS = ("newest", "oldest", "popular", "downloads", "title")


def is_owner_or_admin(user: User | None, r: Resource) -> bool:
    return bool(user and (user.role == ADMIN or r.uploader_id == user.id))


def can_view(user: User | None, r: Resource) -> bool:
    return not r.is_private or is_owner_or_admin(user, r)


def normalize_resource_type(value: str | None) -> str:
    rt = (value or "").strip().upper()
    if rt not in RESOURCE_TYPES:
        raise validation_error("Invalid resource type", {"allowed": list(RESOURCE_TYPES)})
    return rt


def check_year(resource_type: str, year: int | None) -> None:
    if resource_type == PYQ and year is None:
        raise validation_error("Year is required for PYQ resource type.")
    if year is not None and not MIN_YEAR <= year <= MAX_YEAR:
        raise validation_error(f"Year must be between {MIN_YEAR} and {MAX_YEAR}")


def check_type_invariants(
    resource_type: str,
    *,
    url: str | None,
    has_file: bool,
    has_file_attrs: bool,
    year: int | None,
) -> None:
    """Enforce the LINK xor file split and the PYQ year rule."""
    if resource_type == LINK:
        if not url:
            raise validation_error("URL is required for LINK type resources.")
        if has_file or has_file_attrs:
            raise validation_error("Invalid fields for LINK type resource.")
    else:
        if not has_file:
            raise validation_error("File path is required for file-based resources.")
        if url:
            raise validation_error("URL is not allowed for file-based resources.")
    check_year(resource_type, year)
