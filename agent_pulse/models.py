from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Optional, List, Dict, Any
from enum import Enum
from urllib.parse import urlparse


class CheckStatus(str, Enum):
    PASS = "pass"
    PARTIAL = "partial"
    FAIL = "fail"
    SKIPPED = "skipped"


class CheckCategory(str, Enum):
    DISCOVERY = "discovery"
    PERFORMANCE = "performance"
    TRANSACTION = "transaction"
    TRUST = "trust"
    DISTRIBUTION = "distribution"


class JobStatus(str, Enum):
    PENDING = "pending"
    SCRAPING = "scraping"
    ANALYZING = "analyzing"
    SCORING = "scoring"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_JOB_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED)


class QualityLevel(str, Enum):
    FULL = "full"
    PARTIAL = "partial"
    NONE = "none"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class FeedType(str, Enum):
    JSON = "json"
    XML = "xml"
    CSV = "csv"
    UNKNOWN = "unknown"


class FeedSource(str, Enum):
    NATIVE = "native"
    ROBOTS = "robots"
    SITEMAP = "sitemap"
    HTML = "html"
    COMMON_PATH = "common-path"
    GUESSED = "guessed"


class ProtocolStatus(str, Enum):
    READY = "ready"
    PARTIAL = "partial"
    NOT_READY = "not_ready"


class Priority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Effort(str, Enum):
    QUICK = "quick"
    MODERATE = "moderate"
    SIGNIFICANT = "significant"


# ─── Request Models ────────────────────────────────────────────────────────────

class AnalyzeRequest(BaseModel):
    url: str = Field(..., description="Storefront page to audit")

    model_config = {
        "json_schema_extra": {
            "example": {"url": "https://shop.example.com/products/blue-shirt"}
        }
    }

    @field_validator("url")
    @classmethod
    def normalize_url(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("URL is required")
        if not v.lower().startswith(("http://", "https://")):
            v = f"https://{v}"
        if not urlparse(v).hostname:
            raise ValueError("URL must include a host")
        return v


# ─── Check Models ──────────────────────────────────────────────────────────────

class Check(BaseModel):
    id: str
    name: str
    category: CheckCategory
    status: CheckStatus
    score: int = Field(0, ge=0)
    max_score: int = Field(0, ge=0)
    details: str = ""
    data: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _score_within_bounds(self):
        if self.score > self.max_score:
            raise ValueError(f"{self.id}: score {self.score} exceeds max_score {self.max_score}")
        if self.status == CheckStatus.SKIPPED and self.max_score != 0:
            raise ValueError(f"{self.id}: skipped checks must have max_score 0")
        return self


class ExtractedSchema(BaseModel):
    type: str
    data: Dict[str, Any]
    source: str = "json-ld"


class ValidationResult(BaseModel):
    found: bool = False
    valid: bool = False
    schema_data: Optional[Dict[str, Any]] = None
    missing_fields: List[str] = Field(default_factory=list)
    invalid_fields: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    # Derived flags, populated by the validators that compute them
    identifier_type: Optional[str] = None
    has_search_action: Optional[bool] = None
    question_count: Optional[int] = None

    @model_validator(mode="after")
    def _validity_is_consistent(self):
        if self.valid and (not self.found or self.missing_fields or self.invalid_fields):
            raise ValueError("valid requires found with no missing or invalid fields")
        return self


class SchemaQuality(BaseModel):
    level: QualityLevel = QualityLevel.NONE
    has_product: bool = False
    has_offer: bool = False
    has_gtin: bool = False
    has_aggregate_offer: bool = False
    has_item_list: bool = False
    product_count: Optional[int] = None


class PageType(BaseModel):
    is_product: bool = False
    is_category: bool = False
    is_homepage: bool = False
    confidence: Confidence = Confidence.LOW
    signals: List[str] = Field(default_factory=list)


class SmartSchemaResult(BaseModel):
    schemas: List[ExtractedSchema] = Field(default_factory=list)
    schema_quality: SchemaQuality = Field(default_factory=SchemaQuality)
    product_validation: ValidationResult = Field(default_factory=ValidationResult)
    source_url: str
    page_type: PageType = Field(default_factory=PageType)
    checked_product_page: bool = False
    product_page_url: Optional[str] = None
    category_page_schemas: Optional[List[ExtractedSchema]] = None
    message: str = ""


# ─── Distribution Models ───────────────────────────────────────────────────────

class FeedInfo(BaseModel):
    url: str
    type: FeedType = FeedType.UNKNOWN
    source: FeedSource
    accessible: bool = False
    product_count: Optional[int] = None
    has_required_fields: bool = False
    missing_fields: List[str] = Field(default_factory=list)
    is_empty: bool = True


class FeedDiscovery(BaseModel):
    feeds: List[FeedInfo] = Field(default_factory=list)
    primary_feed: Optional[FeedInfo] = None


class PlatformDetection(BaseModel):
    detected: bool = False
    platform: str = "Unknown"
    confidence: Confidence = Confidence.LOW
    indicators: List[str] = Field(default_factory=list)


class ManifestProbe(BaseModel):
    found: bool = False
    url: Optional[str] = None
    type: Optional[str] = None
    version: Optional[str] = None
    capabilities: List[str] = Field(default_factory=list)


class ProtocolSignal(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: ProtocolStatus = ProtocolStatus.NOT_READY
    reason: str = ""


class ProtocolReadiness(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Discovery layer
    google_shopping: ProtocolSignal = Field(default_factory=ProtocolSignal)
    klarna_app: ProtocolSignal = Field(default_factory=ProtocolSignal)
    answer_engines: ProtocolSignal = Field(default_factory=ProtocolSignal)
    # Commerce layer
    ucp: ProtocolSignal = Field(default_factory=ProtocolSignal)
    acp: ProtocolSignal = Field(default_factory=ProtocolSignal)
    mcp: ProtocolSignal = Field(default_factory=ProtocolSignal)
    payment_rails: List[str] = Field(default_factory=list)
    api_patterns: List[str] = Field(default_factory=list)
    ready_count: int = 0
    partial_count: int = 0


class PageSpeedMetrics(BaseModel):
    performance_score: Optional[int] = None
    lcp: Optional[float] = None
    fid: Optional[float] = None
    cls: Optional[float] = None
    tti: Optional[float] = None
    speed_index: Optional[float] = None
    cached: bool = False
    cache_age_hours: Optional[float] = None


# ─── Fetch Models ──────────────────────────────────────────────────────────────

class FetchResult(BaseModel):
    html: str
    status_code: int
    content_type: Optional[str] = None
    final_url: str
    redirected: bool = False


class RenderResult(BaseModel):
    html: str
    title: Optional[str] = None
    description: Optional[str] = None
    og_image: Optional[str] = None


class SmartFetchResult(BaseModel):
    html: str
    url: str
    render_used: bool = False
    render_reason: Optional[str] = None
    status_code: Optional[int] = None
    content_type: Optional[str] = None
    final_url: Optional[str] = None
    redirected: bool = False
    # title/description/og_image reported by the render service
    page_metadata: Dict[str, Optional[str]] = Field(default_factory=dict)


# ─── Job / Analysis Models ─────────────────────────────────────────────────────

class Recommendation(BaseModel):
    check_id: str
    check_name: str
    priority: Priority
    effort: Effort
    title: str
    description: str
    how_to_fix: str


class JobProgress(BaseModel):
    step: int = 0
    total_steps: int = 5
    current_check: str = "Initializing..."


class JobError(BaseModel):
    code: str
    message: str
    retryable: bool = True


class Job(BaseModel):
    id: str
    url: str
    status: JobStatus = JobStatus.PENDING
    progress: JobProgress = Field(default_factory=JobProgress)
    analysis_id: Optional[str] = None
    error: Optional[JobError] = None
    created_at: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None


class CategoryScore(BaseModel):
    score: int = 0
    max_score: int = 0


class Analysis(BaseModel):
    id: Optional[str] = None
    job_id: str
    url: str
    domain: str
    total_score: int
    max_score: int
    normalized_score: int
    grade: str
    category_scores: Dict[str, CategoryScore] = Field(default_factory=dict)
    checks: List[Check] = Field(default_factory=list)
    recommendations: List[Recommendation] = Field(default_factory=list)
    summary: str = ""
    platform: Optional[PlatformDetection] = None
    feeds_found: List[FeedInfo] = Field(default_factory=list)
    primary_feed: Optional[FeedInfo] = None
    protocol_readiness: Optional[ProtocolReadiness] = None
    scrape_metadata: Dict[str, Any] = Field(default_factory=dict)
    analysis_duration_ms: int = 0
    created_at: Optional[str] = None
