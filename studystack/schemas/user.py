from pydantic import EmailStr, Field
from studystack.schemas.resource import CamelModel


class ProfileUpdateIn(CamelModel):
    name: str | None = Field(default=None, min_length=2, max_length=100)
    institution: str | None = Field(default=None, max_length=100)
    bio: str | None = Field(default=None, max_length=500)
    phone: str | None = Field(default=None, max_length=30)
    contact_email: EmailStr | None = None
    website: str | None = Field(default=None, max_length=255)
