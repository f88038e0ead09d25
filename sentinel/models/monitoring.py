"""
Pydantic models for monitoring targets, scan sessions and content alerts.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from sentinel.core.utils import new_alert_id, new_session_id, utcnow

__all__ = [
    "TargetCategory",
    "RiskLevel",
    "MonitoringTarget",
    "SessionStatus",
    "MonitoringSession",
    "AlertType",
    "AlertSeverity",
    "ContentAlert",
    "CrawlResult",
    "DEFAULT_TARGETS",
]


class TargetCategory(str, Enum):
    """Enumeration of monitored site categories."""
    ADULT = "adult"
    SOCIAL = "social"
    FORUM = "forum"
    FILE_SHARING = "file_sharing"


class RiskLevel(str, Enum):
    """Enumeration of target risk levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class MonitoringTarget(BaseModel):
    """A risk site checked for re-uploads of protected content."""
    id: str
    name: str
    category: TargetCategory
    risk_level: RiskLevel
    enabled: bool = True


class SessionStatus(str, Enum):
    """Lifecycle states of a monitoring scan."""
    IDLE = "idle"
    SCANNING = "scanning"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.ERROR, SessionStatus.CANCELLED)


class MonitoringSession(BaseModel):
    """State of one scan over the asset x target cross-product."""
    id: str = Field(default_factory=new_session_id)
    status: SessionStatus = SessionStatus.IDLE
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    targets_scanned: int = Field(default=0, ge=0)
    total_targets: int = Field(default=0, ge=0)
    matches_found: int = Field(default=0, ge=0)
    pairs_failed: int = Field(default=0, ge=0)
    current_target: Optional[str] = None
    progress: int = Field(default=0, ge=0, le=100)
    error: Optional[str] = None


class AlertType(str, Enum):
    """Enumeration of alert types."""
    MATCH_FOUND = "match_found"
    POTENTIAL_MATCH = "potential_match"
    SCAN_COMPLETE = "scan_complete"


class AlertSeverity(str, Enum):
    """Enumeration of alert severities."""
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class ContentAlert(BaseModel):
    """A detection or status event shown to the asset owner."""
    id: str = Field(default_factory=new_alert_id)
    type: AlertType
    severity: AlertSeverity
    timestamp: datetime = Field(default_factory=utcnow)
    title: str
    description: str
    target_site: Optional[str] = None
    match_url: Optional[str] = None
    similarity: Optional[int] = Field(None, ge=0, le=100)
    read: bool = False
    asset_id: Optional[str] = None


class CrawlResult(BaseModel):
    """What a crawler reports for one (target, asset) pair."""
    found: bool = False
    similarity: float = Field(default=0.0, ge=0.0, le=100.0)
    url: Optional[str] = None


DEFAULT_TARGETS: List[MonitoringTarget] = [
    MonitoringTarget(id="target_1", name="AdultSite-A", category=TargetCategory.ADULT, risk_level=RiskLevel.HIGH),
    MonitoringTarget(id="target_2", name="AdultSite-B", category=TargetCategory.ADULT, risk_level=RiskLevel.HIGH),
    MonitoringTarget(id="target_3", name="LeakForum", category=TargetCategory.FORUM, risk_level=RiskLevel.HIGH),
    MonitoringTarget(id="target_4", name="SocialPlatform-X", category=TargetCategory.SOCIAL, risk_level=RiskLevel.MEDIUM),
    MonitoringTarget(id="target_5", name="FileHost-Z", category=TargetCategory.FILE_SHARING, risk_level=RiskLevel.MEDIUM, enabled=False),
    MonitoringTarget(id="target_6", name="ImageBoard", category=TargetCategory.FORUM, risk_level=RiskLevel.HIGH),
    MonitoringTarget(id="target_7", name="MessagingApp-Leaks", category=TargetCategory.SOCIAL, risk_level=RiskLevel.HIGH),
    MonitoringTarget(id="target_8", name="CloudStorage-Public", category=TargetCategory.FILE_SHARING, risk_level=RiskLevel.LOW, enabled=False),
]
