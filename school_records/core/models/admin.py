from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text

from school_records.db.session import Base


class Admin(Base):
    """Back-office user who manages records. Students never log in."""

    __tablename__ = "admins"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), nullable=False, unique=True)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
