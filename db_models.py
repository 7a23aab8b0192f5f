from datetime import datetime
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, field_validator


class LinkPrecedence(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


class ContactRecord(BaseModel):
    id: int
    email: Optional[str] = None
    phoneNumber: Optional[str] = None
    linkedId: Optional[int] = None
    linkPrecedence: LinkPrecedence
    createdAt: datetime
    updatedAt: datetime
    deletedAt: Optional[datetime] = None

    @property
    def is_primary(self) -> bool:
        return self.linkPrecedence == LinkPrecedence.PRIMARY

    @property
    def root_id(self) -> int:
        """Id of the primary this record belongs to."""
        if self.is_primary:
            return self.id
        return self.linkedId


class IdentifyRequest(BaseModel):
    email: Optional[Union[int, str]] = None
    phoneNumber: Optional[Union[int, str]] = None

    @field_validator("email", "phoneNumber")
    @classmethod
    def as_text(cls, value):
        # clients send identifiers as JSON numbers too
        if value is None:
            return None
        return str(value)


class ConsolidatedContact(BaseModel):
    primaryContactId: int
    emails: List[str]
    phoneNumbers: List[str]
    secondaryContactIds: List[int]


class IdentifyResponse(BaseModel):
    contact: ConsolidatedContact
