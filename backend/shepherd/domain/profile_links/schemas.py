from __future__ import annotations

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import AnyHttpUrl, BaseModel, EmailStr, Field, field_validator

# Columns a member may change through a self-service link.
PROFILE_FIELDS = (
	"first_name",
	"last_name",
	"email",
	"phone",
	"birthday",
	"residence",
	"region",
	"guardian",
	"guardian_contact",
	"guardian_location",
	"profile_picture",
)


class UpdateLink(BaseModel):
	success: bool = True
	token: str
	url: str
	expires_at: datetime
	member_name: str
	member_phone: Optional[str] = None
	sms_text: str
	whatsapp_text: str


class EditableProfile(BaseModel):
	id: UUID
	first_name: str
	last_name: str
	email: Optional[str] = None
	phone: Optional[str] = None
	birthday: Optional[date] = None
	residence: Optional[str] = None
	region: Optional[str] = None
	guardian: Optional[str] = None
	guardian_contact: Optional[str] = None
	guardian_location: Optional[str] = None
	profile_picture: Optional[str] = None


class TokenCheck(BaseModel):
	valid: bool
	message: Optional[str] = None
	member: Optional[EditableProfile] = None


class ProfileUpdateRequest(BaseModel):
	first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
	last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
	email: Optional[EmailStr] = None
	phone: Optional[str] = Field(default=None, max_length=32)
	birthday: Optional[date] = None
	residence: Optional[str] = Field(default=None, max_length=200)
	region: Optional[str] = Field(default=None, max_length=100)
	guardian: Optional[str] = Field(default=None, max_length=200)
	guardian_contact: Optional[str] = Field(default=None, max_length=32)
	guardian_location: Optional[str] = Field(default=None, max_length=200)
	profile_picture: Optional[AnyHttpUrl] = None

	@field_validator("first_name", "last_name", mode="before")
	@classmethod
	def _strip(cls, value):
		return value.strip() if isinstance(value, str) else value

	@field_validator("email")
	@classmethod
	def _lower(cls, value):
		return value.lower() if value else value

	def changes(self) -> dict:
		data = self.model_dump(exclude_unset=True, mode="json")
		for required in ("first_name", "last_name"):
			if required in data and data[required] is None:
				data.pop(required)
		if "birthday" in data and data["birthday"] is not None:
			data["birthday"] = self.birthday
		return data
