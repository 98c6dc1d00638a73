"""
SQLAlchemy Models for the Replivity dashboard

Only the tables that cached read paths touch are modelled here: users and
their billing, content generations, blog posts, settings, security events
and hashtag sets. Write paths live in the application and are expected to
fire the matching cache invalidation events.
"""

import enum
from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, Text,
    ForeignKey, Enum, Index, UniqueConstraint, JSON,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _uuid() -> str:
    return str(uuid4())


# =============================================================================
# ENUMS
# =============================================================================

class UserRole(enum.Enum):
    """Access level of a user"""
    USER = "user"
    ADMIN = "admin"


class SubscriptionStatus(enum.Enum):
    """Stripe-style subscription status"""
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


class PostStatus(enum.Enum):
    """Blog post lifecycle"""
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class SecuritySeverity(enum.Enum):
    """Severity of a security event"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# =============================================================================
# USERS
# =============================================================================

class User(Base):
    """Dashboard users (tenants)"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255))
    role = Column(Enum(UserRole), default=UserRole.USER, nullable=False)
    plan = Column(String(50), default="free")
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    generations = relationship("Generation", back_populates="user", cascade="all, delete-orphan")
    billing = relationship("Billing", back_populates="user", cascade="all, delete-orphan")
    usage = relationship("Usage", back_populates="user", cascade="all, delete-orphan")
    hashtag_sets = relationship("HashtagSet", back_populates="user", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_user_created", "created_at"),
    )


class Usage(Base):
    """Metered usage per billing period"""
    __tablename__ = "usage"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    metric = Column(String(50), nullable=False, default="generations")
    count = Column(Integer, default=0)
    quota = Column(Integer)
    period_start = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="usage")

    __table_args__ = (
        Index("idx_usage_user_period", "user_id", "period_start"),
    )


# =============================================================================
# GENERATIONS
# =============================================================================

class Generation(Base):
    """AI content generations (bios, captions, hashtags)"""
    __tablename__ = "generations"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)

    platform = Column(String(50), nullable=False)      # instagram, tiktok, linkedin
    tool = Column(String(50), nullable=False)          # bio, hashtags, caption
    prompt = Column(Text)
    output = Column(Text)
    tokens_used = Column(Integer, default=0)
    success = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="generations")

    __table_args__ = (
        Index("idx_generation_user_created", "user_id", "created_at"),
        Index("idx_generation_platform", "platform"),
    )


# =============================================================================
# BILLING
# =============================================================================

class Billing(Base):
    """Subscription and payment records"""
    __tablename__ = "billing"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)

    stripe_customer_id = Column(String(255))
    stripe_subscription_id = Column(String(255))
    plan = Column(String(50), nullable=False)
    status = Column(Enum(SubscriptionStatus), default=SubscriptionStatus.ACTIVE, nullable=False)
    amount = Column(Integer, default=0)                # cents
    currency = Column(String(3), default="usd")
    current_period_end = Column(DateTime)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="billing")

    __table_args__ = (
        Index("idx_billing_user", "user_id"),
        Index("idx_billing_status", "status"),
    )


# =============================================================================
# BLOG
# =============================================================================

class BlogPost(Base):
    """Marketing blog posts"""
    __tablename__ = "blog_posts"

    id = Column(String(36), primary_key=True, default=_uuid)
    author_id = Column(String(36), ForeignKey("users.id"), nullable=True)

    title = Column(String(500), nullable=False)
    slug = Column(String(500), nullable=False, unique=True)
    excerpt = Column(Text)
    content = Column(Text)
    status = Column(Enum(PostStatus), default=PostStatus.DRAFT, nullable=False)
    view_count = Column(Integer, default=0)

    published_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_blog_status_published", "status", "published_at"),
    )


# =============================================================================
# SETTINGS
# =============================================================================

class Setting(Base):
    """Key/value settings. Global when user_id is NULL."""
    __tablename__ = "settings"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    key = Column(String(255), nullable=False)
    value = Column(JSON)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "key", name="uq_setting_user_key"),
    )


# =============================================================================
# SECURITY
# =============================================================================

class SecurityEvent(Base):
    """Audit trail of security-relevant events"""
    __tablename__ = "security_events"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True)

    event_type = Column(String(100), nullable=False)   # login_failed, password_reset
    severity = Column(Enum(SecuritySeverity), default=SecuritySeverity.LOW, nullable=False)
    ip_address = Column(String(64))
    details = Column(JSON, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_security_created", "created_at"),
    )


# =============================================================================
# HASHTAGS
# =============================================================================

class HashtagSet(Base):
    """Saved hashtag groups"""
    __tablename__ = "hashtag_sets"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True)

    name = Column(String(255), nullable=False)
    platform = Column(String(50))
    hashtags = Column(JSON, default=list)              # List of strings
    is_public = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="hashtag_sets")
    performance = relationship(
        "HashtagPerformance", back_populates="hashtag_set", cascade="all, delete-orphan"
    )


class HashtagPerformance(Base):
    """Daily engagement numbers of a hashtag set"""
    __tablename__ = "hashtag_performance"

    id = Column(String(36), primary_key=True, default=_uuid)
    hashtag_set_id = Column(String(36), ForeignKey("hashtag_sets.id"), nullable=False)

    impressions = Column(Integer, default=0)
    engagements = Column(Integer, default=0)
    clicks = Column(Integer, default=0)

    recorded_at = Column(DateTime, default=datetime.utcnow)

    hashtag_set = relationship("HashtagSet", back_populates="performance")

    __table_args__ = (
        Index("idx_hashtag_perf_set_recorded", "hashtag_set_id", "recorded_at"),
    )
