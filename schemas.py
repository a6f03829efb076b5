"""
Database Schemas for the Student Club Portal

Each Pydantic model represents a MongoDB collection.
Collection name is the snake_case form of the class name
(``TeamMember`` -> ``team_member``). Handlers build these and hand them to
``database.create_document``, which stamps ``created_at``/``updated_at``.
"""
from datetime import datetime
from typing import List, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field


class Document(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)


class ProfileVisibility(BaseModel):
    show_email: bool = Field(False, description="Show email on public profile")
    show_phone: bool = Field(False, description="Show phone on public profile")
    show_department: bool = Field(True, description="Show department on public profile")
    show_full_name: bool = Field(True, description="Show full name instead of nickname")


class Member(Document):
    student_no: str = Field(..., description="University student number (unique)")
    full_name: str = Field(..., description="Full name")
    email: str = Field(..., description="Email address")
    phone: Optional[str] = Field(None, description="Phone number")
    department: Optional[str] = Field(None, description="Department")
    is_active: bool = Field(True, description="Active club member")
    password_hash: Optional[str] = Field(None, description="Hashed password (server-side only)")
    is_registered: bool = Field(False, description="Has set a password")
    last_login: Optional[datetime] = Field(None, description="Last successful login")
    nickname: Optional[str] = Field(None, description="Display name")
    avatar: Optional[str] = Field(None, description="Avatar URL or preset")
    profile_visibility: ProfileVisibility = Field(default_factory=ProfileVisibility)
    email_consent: bool = Field(False, description="Agreed to receive club emails")
    kvkk_accepted: bool = Field(False, description="Accepted the data protection notice")
    native_language: Optional[str] = Field(None, description="Preferred language (tr/en)")
    is_test_account: bool = Field(False, description="Created by an admin for testing")


class PasswordToken(Document):
    member_id: ObjectId = Field(..., description="Member the token belongs to")
    token: str = Field(..., description="Random token sent by email")
    type: Literal["signup", "reset"] = Field(..., description="Why the token was issued")
    expires_at: datetime = Field(..., description="Expiry (UTC)")


class Event(Document):
    title: str = Field(..., description="Event title")
    title_en: Optional[str] = None
    description: Optional[str] = Field(None, description="Event details")
    description_en: Optional[str] = None
    event_date: datetime = Field(..., description="Start date and time")
    event_end_date: Optional[datetime] = Field(None, description="End date and time")
    location: Optional[str] = None
    is_open: bool = Field(True, description="Accepting registrations")
    is_paid: bool = Field(False, description="Requires a payment proof")
    price: Optional[float] = None
    is_ended: bool = Field(False, description="Marked finished by an admin")
    actual_duration: Optional[int] = Field(None, description="Duration in minutes")
    poster_url: Optional[str] = None


class Registration(Document):
    event_id: ObjectId = Field(..., description="Event")
    member_id: ObjectId = Field(..., description="Registered member")
    payment_proof_url: Optional[str] = None
    payment_status: Literal["pending", "verified", "rejected", "refunded"] = "pending"
    attended_at: Optional[datetime] = None
    rating: Optional[int] = Field(None, ge=1, le=5)
    feedback: Optional[str] = None


class Announcement(Document):
    slug: str = Field(..., description="URL slug (unique)")
    title: str
    title_en: Optional[str] = None
    date: str = Field(..., description="Display date, e.g. '5 Mart 2024'")
    date_en: Optional[str] = None
    description: str
    description_en: Optional[str] = None
    content: str
    content_en: Optional[str] = None
    type: Literal["event", "news", "article"]
    is_draft: bool = False
    is_archived: bool = False
    gallery_description: Optional[str] = None
    gallery_description_en: Optional[str] = None


class Project(Document):
    member_id: ObjectId
    title: str
    title_en: Optional[str] = None
    description: str
    description_en: Optional[str] = None
    github_url: str
    demo_url: Optional[str] = None
    technologies: List[str] = Field(default_factory=list)
    status: Literal["pending", "approved", "rejected"] = "pending"
    rejection_reason: Optional[str] = None
    view_count: int = 0
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None


class ForumCategory(Document):
    name: str
    slug: str = Field(..., description="URL slug (unique)")
    description: Optional[str] = None
    is_active: bool = True
    order: int = 0
    topic_count: int = 0
    last_topic_at: Optional[datetime] = None


class ForumTopic(Document):
    category_id: ObjectId
    author_id: ObjectId
    title: str
    content: str
    tags: List[str] = Field(default_factory=list)
    status: Literal["pending", "approved", "rejected"] = "pending"
    upvotes: int = 0
    downvotes: int = 0
    reply_count: int = 0
    view_count: int = 0
    is_pinned: bool = False
    is_locked: bool = False
    is_deleted: bool = False
    last_reply_at: Optional[datetime] = None


class ForumReply(Document):
    topic_id: ObjectId
    author_id: ObjectId
    parent_id: Optional[ObjectId] = None
    content: str
    upvotes: int = 0
    downvotes: int = 0
    is_deleted: bool = False


class ForumVote(Document):
    member_id: ObjectId
    content_type: Literal["topic", "reply"]
    content_id: ObjectId
    value: Literal[1, -1]


class Comment(Document):
    content_type: Literal["project", "gallery", "announcement"]
    content_id: str = Field(..., description="Project id, announcement slug or gallery key")
    member_id: ObjectId
    parent_id: Optional[ObjectId] = None
    content: str = Field(..., max_length=500)
    is_edited: bool = False
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None


class Sponsor(Document):
    name: str
    name_en: Optional[str] = None
    description: str = Field(..., max_length=500)
    description_en: Optional[str] = None
    logo: str = Field(..., description="Logo URL")
    order: int = 0
    is_active: bool = True


TeamRole = Literal["president", "vice_president", "secretary", "treasurer", "board_member", "head", "member"]


class TeamMember(Document):
    member_id: Optional[ObjectId] = Field(None, description="Linked club member, if any")
    name: str
    role: TeamRole = "member"
    title: Optional[str] = None
    title_en: Optional[str] = None
    description: Optional[str] = None
    description_en: Optional[str] = None
    email: Optional[str] = None
    photo: Optional[str] = Field(None, description="Photo URL")
    linkedin: Optional[str] = None
    github: Optional[str] = None
    is_active: bool = True
    show_in_team: bool = Field(True, description="Listed on the public team page")
    order: int = 0


class InventoryItem(Document):
    name: str
    category: str
    serial_number: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    status: Literal["available", "assigned", "maintenance", "lost"] = "available"
    assigned_to: Optional[ObjectId] = None
    assigned_to_name: Optional[str] = None
    assigned_at: Optional[datetime] = None
    due_date: Optional[datetime] = None


class MediaKitToken(Document):
    token: str = Field(..., description="48 hex characters (unique)")
    sponsor_name: str
    email: Optional[str] = None
    note: Optional[str] = None
    expires_at: datetime
    is_active: bool = True
    default_language: Literal["tr", "en"] = "tr"
    view_count: int = 0
    last_viewed_at: Optional[datetime] = None
    created_by: Optional[str] = None
