from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Any, ClassVar, Dict, List, Literal, Optional, Tuple, Type
import datetime as dt
from decimal import Decimal
from enum import Enum

from familyos.config.permissions_config import RESOURCE_TABLES
from familyos.core.permissions import Visibility, parse_visibility

MAX_DOCUMENT_SIZE = 5 * 1024 * 1024  # 5 MiB, enforced by the documents table as well


class ResourceType(str, Enum):
    NOTES = "notes"
    CARDS = "cards"
    DOCUMENTS = "documents"
    EVENTS = "events"
    LISTS = "lists"
    SUBSCRIPTIONS = "subscriptions"

    @property
    def table(self) -> str:
        return RESOURCE_TABLES[self.value]["table"]

    @property
    def title_column(self) -> str:
        return RESOURCE_TABLES[self.value]["title_column"]


class ResourceResponse(BaseModel):
    """
    Any shared family resource. Type-specific columns are passed through as
    extra fields; the permission engine only reads created_by and visibility.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    group_id: str
    created_by: Optional[str] = None
    visibility: Visibility = Field(
        default=Visibility.PUBLIC,
        validation_alias=AliasChoices("visibility", "edit_mode")
    )
    created_at: Optional[dt.datetime] = None
    updated_by: Optional[str] = None
    updated_at: Optional[dt.datetime] = None

    @field_validator("visibility", mode="before")
    @classmethod
    def _default_visibility(cls, value):
        return parse_visibility(value)


class VisibilityUpdate(BaseModel):
    visibility: Visibility


class ImportanceUpdate(BaseModel):
    is_important: bool


class ResourceUpdate(BaseModel):
    """Partial update; columns listed in NOT_NULL may be omitted but not set to null"""
    NOT_NULL: ClassVar[Tuple[str, ...]] = ()

    @model_validator(mode="after")
    def _reject_nulls(self):
        for name in self.NOT_NULL:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


# Notes

class NoteCreate(BaseModel):
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)


class NoteUpdate(ResourceUpdate):
    NOT_NULL = ("title", "content")

    title: Optional[str] = Field(None, min_length=1)
    content: Optional[str] = Field(None, min_length=1)


# Cards

class CardCreate(BaseModel):
    name: str = Field(..., min_length=1)
    brand: Optional[str] = None
    card_number: Optional[str] = None
    barcode: Optional[str] = None
    points_balance: Optional[str] = None
    expiry_date: Optional[dt.date] = None
    notes: Optional[str] = None


class CardUpdate(ResourceUpdate):
    NOT_NULL = ("name",)

    name: Optional[str] = Field(None, min_length=1)
    brand: Optional[str] = None
    card_number: Optional[str] = None
    barcode: Optional[str] = None
    points_balance: Optional[str] = None
    expiry_date: Optional[dt.date] = None
    notes: Optional[str] = None


# Documents

class DocumentCreate(BaseModel):
    name: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    mime_type: Optional[str] = None
    file_size: Optional[int] = Field(None, ge=0, le=MAX_DOCUMENT_SIZE)
    file_extension: Optional[str] = None


class DocumentUpdate(ResourceUpdate):
    NOT_NULL = ("name", "url")

    name: Optional[str] = Field(None, min_length=1)
    url: Optional[str] = Field(None, min_length=1)
    mime_type: Optional[str] = None
    file_size: Optional[int] = Field(None, ge=0, le=MAX_DOCUMENT_SIZE)
    file_extension: Optional[str] = None


# Events

EventType = Literal["single", "recurring", "range"]
RecurrencePattern = Literal["daily", "weekly", "monthly", "yearly"]


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1)
    date: dt.date
    start_datetime: Optional[dt.datetime] = None
    end_datetime: Optional[dt.datetime] = None
    event_type: EventType = "single"
    recurrence_pattern: Optional[RecurrencePattern] = None
    recurrence_interval: int = Field(1, ge=1)
    recurrence_end_date: Optional[dt.date] = None
    description: Optional[str] = None

    @model_validator(mode="after")
    def _check_schedule(self):
        if self.start_datetime and self.end_datetime and self.end_datetime < self.start_datetime:
            raise ValueError("end_datetime must not be before start_datetime")
        if self.event_type == "recurring" and not self.recurrence_pattern:
            raise ValueError("recurring events need a recurrence_pattern")
        return self


class EventUpdate(ResourceUpdate):
    NOT_NULL = ("title", "date", "event_type", "recurrence_interval")

    title: Optional[str] = Field(None, min_length=1)
    date: Optional[dt.date] = None
    start_datetime: Optional[dt.datetime] = None
    end_datetime: Optional[dt.datetime] = None
    event_type: Optional[EventType] = None
    recurrence_pattern: Optional[RecurrencePattern] = None
    recurrence_interval: Optional[int] = Field(None, ge=1)
    recurrence_end_date: Optional[dt.date] = None
    description: Optional[str] = None

    @model_validator(mode="after")
    def _check_schedule(self):
        if self.start_datetime and self.end_datetime and self.end_datetime < self.start_datetime:
            raise ValueError("end_datetime must not be before start_datetime")
        if self.event_type == "recurring" and "recurrence_pattern" in self.model_fields_set \
                and not self.recurrence_pattern:
            raise ValueError("recurring events need a recurrence_pattern")
        return self


# Lists

class ListItem(BaseModel):
    id: int
    text: str
    completed: bool = False


class ListCreate(BaseModel):
    title: str = Field(..., min_length=1)
    items: List[ListItem] = []


class ListUpdate(ResourceUpdate):
    NOT_NULL = ("title", "items")

    title: Optional[str] = Field(None, min_length=1)
    items: Optional[List[ListItem]] = None


# Subscriptions

BillingCycle = Literal["weekly", "monthly", "quarterly", "yearly"]
SubscriptionCategory = Literal[
    "streaming", "utilities", "insurance", "software", "fitness", "food",
    "transport", "gaming", "news", "cloud", "other"
]


class SubscriptionCreate(BaseModel):
    title: str = Field(..., min_length=1)
    provider: Optional[str] = None
    cost: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    currency: str = "USD"
    billing_cycle: BillingCycle
    billing_day: Optional[int] = Field(None, ge=1, le=31)
    payer_id: Optional[str] = None
    category: Optional[SubscriptionCategory] = None
    payment_method: Optional[str] = None
    next_payment_date: dt.date
    start_date: dt.date
    end_date: Optional[dt.date] = None
    auto_renew: bool = True
    notify_days_before: int = Field(3, ge=0)
    is_active: bool = True
    description: Optional[str] = None
    website_url: Optional[str] = None


class SubscriptionUpdate(ResourceUpdate):
    NOT_NULL = (
        "title", "cost", "currency", "billing_cycle", "next_payment_date", "start_date",
        "auto_renew", "notify_days_before", "is_active",
    )

    title: Optional[str] = Field(None, min_length=1)
    provider: Optional[str] = None
    cost: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    currency: Optional[str] = None
    billing_cycle: Optional[BillingCycle] = None
    billing_day: Optional[int] = Field(None, ge=1, le=31)
    payer_id: Optional[str] = None
    category: Optional[SubscriptionCategory] = None
    payment_method: Optional[str] = None
    next_payment_date: Optional[dt.date] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    auto_renew: Optional[bool] = None
    notify_days_before: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None
    description: Optional[str] = None
    website_url: Optional[str] = None


CREATE_SCHEMAS: Dict[ResourceType, Type[BaseModel]] = {
    ResourceType.NOTES: NoteCreate,
    ResourceType.CARDS: CardCreate,
    ResourceType.DOCUMENTS: DocumentCreate,
    ResourceType.EVENTS: EventCreate,
    ResourceType.LISTS: ListCreate,
    ResourceType.SUBSCRIPTIONS: SubscriptionCreate,
}

UPDATE_SCHEMAS: Dict[ResourceType, Type[BaseModel]] = {
    ResourceType.NOTES: NoteUpdate,
    ResourceType.CARDS: CardUpdate,
    ResourceType.DOCUMENTS: DocumentUpdate,
    ResourceType.EVENTS: EventUpdate,
    ResourceType.LISTS: ListUpdate,
    ResourceType.SUBSCRIPTIONS: SubscriptionUpdate,
}


def parse_create(resource_type: ResourceType, payload: Dict[str, Any]) -> BaseModel:
    return CREATE_SCHEMAS[resource_type].model_validate(payload)


def parse_update(resource_type: ResourceType, payload: Dict[str, Any]) -> BaseModel:
    return UPDATE_SCHEMAS[resource_type].model_validate(payload)
