"""Metadata rows for objects held by the blob store."""


from sqlalchemy import JSON, BigInteger, Column, DateTime, Index, Integer, String

from app.db.base import Base, utcnow


class AudioBlob(Base):
    """
    One upload of a named binary object.

    The bytes live on disk under their SHA-256 digest; several rows may share
    a ``filename`` and readers pick the most recent one.
    """

    __tablename__ = "audio_blobs"
    __table_args__ = (Index("filename_upload_date_idx", "filename", "upload_date"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    filename = Column(String(255), nullable=False)
    digest = Column(String(64), nullable=False)
    length = Column(BigInteger, nullable=False)
    content_type = Column(String(128), nullable=False, default="application/octet-stream")
    blob_metadata = Column("metadata", JSON, nullable=True)
    upload_date = Column(DateTime, nullable=False, default=utcnow)
