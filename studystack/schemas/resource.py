from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


class ResourceUpdateIn(CamelModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, min_length=1)
    subject: str | None = Field(default=None, min_length=1, max_length=100)
    semester: str | None = Field(default=None, max_length=50)
    year: int | None = None
    is_private: bool | None = None
    allow_contact: bool | None = None
    url: str | None = Field(default=None, max_length=2000)
    tags: list[str] | None = None


class BookmarkCreateIn(CamelModel):
    resource_id: str = Field(min_length=1)
    category: str = Field(default="general", max_length=50)
