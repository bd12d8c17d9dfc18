"""Native (FCM / APNs) device token model."""
import uuid
from sqlalchemy import Column, ForeignKey, String, Text, DateTime
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from coach_push.db.base import Base

class NativePushToken(Base):
    """One mobile app installation able to receive FCM or APNs pushes."""
    __tablename__ = "native_push_tokens"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    token = Column(Text, nullable=False, unique=True)
    # ios | android
    platform = Column(String(20), nullable=False)
    device_id = Column(String(255))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
