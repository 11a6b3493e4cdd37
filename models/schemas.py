from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import List, Dict, Any, Optional, Literal
from datetime import datetime
from enum import Enum

from utils.helpers import to_utc_datetime

class DealStage(str, Enum):
    DISCOVERY = "discovery"
    QUALIFICATION = "qualification"
    PROPOSAL = "proposal"
    NEGOTIATION = "negotiation"
    CLOSED_WON = "closed_won"
    CLOSED_LOST = "closed_lost"

Rating = Literal["high", "medium", "low"]
PerformanceGrade = Literal["excellent", "good", "needs_improvement"]
EngagementLevel = Literal["high", "medium", "low", "Unknown"]
RecentActivity = Literal[
    "No recent AI activity",
    "Very recent (within 24 hours)",
    "Recent (within 3 days)",
    "Moderate (within 1 week)",
    "Stale (over 1 week)",
]
StageAdvancement = Literal["Progressive", "Initial stage"]

UNKNOWN_STAGE = "unknown"
MAX_KEY_INSIGHTS = 5

class RecordModel(BaseModel):
    """Base for store records: camelCase aliases, unknown fields ignored"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator('id', mode='before', check_fields=False)
    @classmethod
    def id_as_string(cls, v):
        return str(v) if v is not None else None

    @field_validator('timestamp', mode='before', check_fields=False)
    @classmethod
    def normalize_timestamp(cls, v):
        return to_utc_datetime(v)

# =================== INPUT RECORDS ===================

class ActionLogEntry(RecordModel):
    """One automated or human action taken on a deal"""
    id: Optional[str] = None
    action: str = ""
    timestamp: Optional[datetime] = None
    new_stage: Optional[str] = Field(None, alias="newStage")

    @field_validator('action', mode='before')
    @classmethod
    def action_as_string(cls, v):
        return str(v) if v is not None else ""

class EmailRecord(RecordModel):
    """One email associated with a deal"""
    id: Optional[str] = None
    direction: Optional[str] = None
    subject: Optional[str] = None
    timestamp: Optional[datetime] = None

class StageHistoryEntry(RecordModel):
    """One recorded stage transition"""
    id: Optional[str] = None
    stage: Optional[str] = None
    timestamp: Optional[datetime] = None

class Deal(RecordModel):
    """The opportunity being analyzed"""
    id: Optional[str] = None
    name: str = ""
    stage: str = UNKNOWN_STAGE
    stage_data: Dict[str, Any] = Field(default_factory=dict, alias="stageData")
    ai_summary: Optional[Dict[str, Any]] = Field(None, alias="aiSummary")
    ai_summary_last_updated: Optional[datetime] = Field(None, alias="aiSummaryLastUpdated")

    @field_validator('name', mode='before')
    @classmethod
    def name_as_string(cls, v):
        return str(v) if v is not None else ""

    @field_validator('stage', mode='before')
    @classmethod
    def stage_or_unknown(cls, v):
        return str(v) if v else UNKNOWN_STAGE

    @field_validator('stage_data', mode='before')
    @classmethod
    def stage_data_or_empty(cls, v):
        return v if isinstance(v, dict) else {}

    @field_validator('ai_summary_last_updated', mode='before')
    @classmethod
    def normalize_last_updated(cls, v):
        return to_utc_datetime(v)

    @property
    def qualification(self) -> Dict[str, Any]:
        qualification = self.stage_data.get('qualification')
        return qualification if isinstance(qualification, dict) else {}

# =================== ANALYSIS RESULT ===================

class EmailAnalysis(RecordModel):
    total_emails: int = Field(0, ge=0, alias="totalEmails")
    response_time: str = Field(..., alias="responseTime")
    engagement_level: EngagementLevel = Field(..., alias="engagementLevel")

    @model_validator(mode='after')
    def unknown_only_without_emails(self):
        if self.engagement_level == "Unknown" and self.total_emails != 0:
            raise ValueError("engagementLevel 'Unknown' requires totalEmails == 0")
        return self

class AILogsAnalysis(RecordModel):
    total_logs: int = Field(0, ge=0, alias="totalLogs")
    recent_activity: RecentActivity = Field(..., alias="recentActivity")
    key_insights: List[str] = Field(default_factory=list, max_length=MAX_KEY_INSIGHTS, alias="keyInsights")

class DealProgress(RecordModel):
    stage: str
    time_in_stage: str = Field(..., alias="timeInStage")
    stage_advancement: StageAdvancement = Field(..., alias="stageAdvancement")

class AISummary(RecordModel):
    """Complete deal signal analysis, persisted on the deal as aiSummary"""
    summary: str = Field(..., min_length=1)
    roadblocks: List[str] = Field(default_factory=list)
    customer_responsiveness: Rating = Field(..., alias="customerResponsiveness")
    likelihood_to_close: Rating = Field(..., alias="likelihoodToClose")
    salesperson_performance: PerformanceGrade = Field(..., alias="salespersonPerformance")
    last_updated: datetime = Field(..., alias="lastUpdated")
    email_analysis: EmailAnalysis = Field(..., alias="emailAnalysis")
    ai_logs_analysis: AILogsAnalysis = Field(..., alias="aiLogsAnalysis")
    deal_progress: DealProgress = Field(..., alias="dealProgress")

    @field_validator('last_updated', mode='before')
    @classmethod
    def normalize_last_updated(cls, v):
        return to_utc_datetime(v) or v

    def to_document(self) -> Dict[str, Any]:
        """Store representation: camelCase keys, datetimes kept native"""
        return self.model_dump(by_alias=True)

# =================== REQUEST/RESPONSE MODELS ===================

class SummaryRequest(RecordModel):
    """Request to generate and persist a deal's AI summary"""
    tenant_id: Optional[str] = Field(None, alias="tenantId")
    deal_id: Optional[str] = Field(None, alias="dealId")

class SummaryResponse(RecordModel):
    ai_summary: AISummary = Field(..., alias="aiSummary")

class AnalyzeRequest(RecordModel):
    """Records supplied inline for a stateless analysis"""
    deal: Deal
    action_logs: List[ActionLogEntry] = Field(default_factory=list, alias="actionLogs")
    emails: List[EmailRecord] = Field(default_factory=list)
    stage_history: List[StageHistoryEntry] = Field(default_factory=list, alias="stageHistory")
    now: Optional[datetime] = None

    @field_validator('now', mode='before')
    @classmethod
    def normalize_now(cls, v):
        return to_utc_datetime(v)
