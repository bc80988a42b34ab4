from studystack.models.user import User
from studystack.models.resource import Resource, Tag, resource_tags
from studystack.models.bookmark import Bookmark
from studystack.models.activity import Activity

__all__ = ["User", "Resource", "Tag", "resource_tags", "Bookmark", "Activity"]
