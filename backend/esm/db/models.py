from sqlalchemy import Column, Integer, String, Float
from .base import Base


class Record(Base):
    __tablename__ = "records"
    # AUTOINCREMENT keeps ids from being reused after a purge
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    sentiment = Column(Integer, nullable=False)
    video_uri = Column("videoUri", String, nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    timestamp = Column(Integer, nullable=False)
