from sqlalchemy import (
    JSON,
    TIMESTAMP,
    BigInteger,
    Boolean,
    Column,
    Integer,
    String,
    func,
)

from .database import Base


class UploadModel(Base):
    """One upload, or one resumable upload session, and its chunk state."""

    __tablename__ = "engine_uploads"

    # upld-<user_id>-<sha256>, see identity.resolve_upload_id
    id = Column(String(255), primary_key=True)
    user_id = Column(String(128), nullable=False, index=True)
    file_name = Column(String(1024))
    # original relative path when a folder is dropped
    file_path = Column(String(2048))
    file_size = Column(BigInteger, nullable=False)
    # identifying hash supplied by the client
    file_id = Column(String(255), nullable=False)
    provider_namespace = Column(String(128), nullable=False, default="global")
    # amazon, google, azure ...
    provider_name = Column(String(64), nullable=False)
    provider_location = Column(String(128))
    bucket_name = Column(String(255), nullable=False)
    object_key = Column(String(1024), nullable=False)
    object_options = Column(JSON)
    resumable = Column(Boolean, nullable=False, default=False)
    resumable_id = Column(String(1024))
    part_list = Column(JSON, nullable=False, default=list)
    # details of the chunk currently in flight (md5, size, path)
    part_data = Column(JSON)
    version = Column(Integer, nullable=False)
    created_at = Column(
        TIMESTAMP(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __mapper_args__ = {"version_id_col": version, "eager_defaults": True}

    def __repr__(self):
        return (
            f"UploadModel(id={self.id!r}, user_id={self.user_id!r}, "
            f"provider={self.provider_namespace}/{self.provider_name}, "
            f"parts={len(self.part_list or [])}, version={self.version})"
        )
