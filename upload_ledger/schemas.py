from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

IDENTITY_FIELDS = ("user_id", "file_id", "file_name", "file_size")
DEFAULT_NAMESPACE = "global"


def _namespace_or_default(value):
    return DEFAULT_NAMESPACE if value in (None, "") else value


class UploadParams(BaseModel):
    """The allow-listed fields a new upload record is built from.

    Anything else the controller passes along is dropped.
    """

    model_config = ConfigDict(extra="ignore")

    user_id: str = Field(min_length=1, max_length=128)
    file_name: Optional[str] = Field(None, max_length=1024)
    file_size: int = Field(ge=0)
    file_id: str = Field(min_length=1, max_length=255)
    provider_namespace: str = Field(DEFAULT_NAMESPACE, max_length=128)
    provider_name: str = Field(min_length=1, max_length=64)
    provider_location: Optional[str] = Field(None, max_length=128)
    bucket_name: str = Field(max_length=255)
    object_key: str = Field(max_length=1024)
    object_options: Optional[Dict[str, Any]] = None
    resumable_id: Optional[str] = Field(None, max_length=1024)
    resumable: bool = False
    file_path: Optional[str] = Field(None, max_length=2048)
    part_list: List[Any] = Field(default_factory=list)
    part_data: Optional[Dict[str, Any]] = None

    @field_validator("provider_namespace", mode="before")
    @classmethod
    def _default_namespace(cls, value):
        return _namespace_or_default(value)

    @field_validator("resumable", mode="before")
    @classmethod
    def _unset_flag_is_false(cls, value):
        # older controllers send the flag as a string, or not at all
        return False if value in (None, "") else value

    @field_validator("part_list", mode="before")
    @classmethod
    def _empty_part_list(cls, value):
        return [] if value is None else value

    @model_validator(mode="after")
    def _resumable_id_needs_resumable(self):
        if self.resumable_id and not self.resumable:
            raise ValueError("resumable_id given for a non-resumable upload")
        return self


class UploadChanges(BaseModel):
    """Fields that may change after an upload record exists."""

    model_config = ConfigDict(extra="forbid")

    file_path: Optional[str] = Field(None, max_length=2048)
    provider_namespace: Optional[str] = Field(None, max_length=128)
    provider_location: Optional[str] = Field(None, max_length=128)
    bucket_name: Optional[str] = Field(None, max_length=255)
    object_key: Optional[str] = Field(None, max_length=1024)
    object_options: Optional[Dict[str, Any]] = None
    resumable: Optional[bool] = None
    resumable_id: Optional[str] = Field(None, max_length=1024)
    part_list: Optional[List[Any]] = None
    part_data: Optional[Dict[str, Any]] = None

    @field_validator("provider_namespace", mode="before")
    @classmethod
    def _default_namespace(cls, value):
        return _namespace_or_default(value)

    @field_validator("bucket_name", "object_key", "resumable", "part_list")
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("field cannot be cleared")
        return value


class UploadLookup(BaseModel):
    model_config = ConfigDict(extra="ignore")

    upload_id: Optional[str] = None
    user_id: Optional[str] = None
    file_id: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None

    def supplied_identity(self) -> Dict[str, Any]:
        return {
            name: getattr(self, name)
            for name in IDENTITY_FIELDS
            if name in self.model_fields_set and getattr(self, name) is not None
        }


class UploadRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    file_name: Optional[str] = None
    file_path: Optional[str] = None
    file_size: int
    file_id: str
    provider_namespace: str
    provider_name: str
    provider_location: Optional[str] = None
    bucket_name: str
    object_key: str
    object_options: Optional[Dict[str, Any]] = None
    resumable: bool
    resumable_id: Optional[str] = None
    part_list: List[Any]
    part_data: Optional[Dict[str, Any]] = None
    version: int
    created_at: datetime
    updated_at: datetime
