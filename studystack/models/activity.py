from datetime import datetime
from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from studystack.db.base import Base, new_id, utcnow
from studystack.models.resource import Resource

VIEW = "VIEW"
DOWNLOAD = "DOWNLOAD"
BOOKMARK = "BOOKMARK"
SHARE = "SHARE"
UPLOAD = "UPLOAD"
ACTIVITY_ACTIONS = (VIEW, DOWNLOAD, BOOKMARK, SHARE, UPLOAD)


class Activity(Base):
    """Append-only engagement log entry."""

    __tablename__ = "activities"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    resource_id: Mapped[str] = mapped_column(ForeignKey("resources.id", ondelete="CASCADE"), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    resource: Mapped[Resource] = relationship()
