from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

ListingType = Literal["sale", "rent"]
MatchType = Literal["exact", "near-miss"]


class UserLocation(BaseModel):
    label: str = "Portugal"
    lat: float = 39.5
    lng: float = -8.0
    currency: str = "EUR"


class SearchRequest(BaseModel):
    query: str = ""
    user_location: UserLocation = Field(default_factory=UserLocation)


class PriceRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    min: Optional[float] = None
    max: Optional[float] = None
    currency: str


class MatchRules(BaseModel):
    model_config = ConfigDict(frozen=True)

    exact_tolerance_percent: float = 0.02
    exact_tolerance_absolute_eur: float = 50
    near_miss_tolerance_percent: float = 0.1
    near_miss_tolerance_absolute_eur: float = 200
    strict_radius_km: float = 99999
    near_miss_radius_km: float = 99999


# ---- Price intent (tagged on "type") -----------------------------------------

class _Intent(BaseModel):
    model_config = ConfigDict(frozen=True)


class UnderIntent(_Intent):
    type: Literal["under"] = "under"
    max: float
    currency: Optional[str] = None


class OverIntent(_Intent):
    type: Literal["over"] = "over"
    min: float
    currency: Optional[str] = None


class BetweenIntent(_Intent):
    type: Literal["between"] = "between"
    min: float
    max: float
    currency: Optional[str] = None


class ExactIntent(_Intent):
    type: Literal["exact"] = "exact"
    target: float
    currency: Optional[str] = None


class AroundIntent(_Intent):
    type: Literal["around"] = "around"
    target: float
    currency: Optional[str] = None


class NoIntent(_Intent):
    type: Literal["none"] = "none"


PriceIntent = Annotated[
    Union[UnderIntent, OverIntent, BetweenIntent, ExactIntent, AroundIntent, NoIntent],
    Field(discriminator="type"),
]


class ParsedQuery(BaseModel):
    model_config = ConfigDict(frozen=True)

    raw: str
    location_text: Optional[str] = None
    property_type: Optional[str] = None
    price_intent: PriceIntent = Field(default_factory=NoIntent)
    currency: Optional[str] = None
    listing_intent: Optional[ListingType] = None


# ---- Listings ------------------------------------------------------------------

class Listing(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    source_site: str = Field(..., description="olx | idealista | imovirtual | mock ...")
    source_url: str
    title: str
    price_eur: float = 0
    currency: str = "EUR"
    beds: Optional[int] = None
    baths: Optional[int] = None
    area_sqm: Optional[float] = None
    address: Optional[str] = None
    city: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    property_type: Optional[str] = None
    listing_type: Optional[ListingType] = None
    description: Optional[str] = None
    photos: List[str] = []
    last_seen_at: str = ""

    @property
    def location_label(self) -> str:
        return self.city or self.address or "Portugal"


class ListingCard(BaseModel):
    id: str
    title: str
    price_eur: float
    display_price: str
    location_label: str
    beds: Optional[int] = None
    baths: Optional[int] = None
    area_sqm: Optional[float] = None
    image: Optional[str] = None
    source_site: str
    source_url: str
    distance_km: Optional[float] = None
    match_score: float = 0
    ai_reasoning: Optional[str] = None
    listing_type: Optional[ListingType] = None
    property_type: Optional[str] = None


class RelevanceResult(BaseModel):
    id: str
    is_relevant: bool = True
    relevance_score: float = Field(50, ge=0, le=100)
    reasoning: str = ""


class RankedListing(BaseModel):
    listing: Listing
    relevance: RelevanceResult
    distance_km: Optional[float] = None


class BlockedSite(BaseModel):
    site_id: str
    site_name: str
    required_method: str
    reason: str


class SearchResponse(BaseModel):
    search_id: str
    match_type: MatchType
    note: str
    summary: Optional[str] = None
    applied_price_range: PriceRange
    applied_radius_km: float
    listings: List[ListingCard] = []
    blocked_sites: List[BlockedSite] = []


class StoredSearch(BaseModel):
    id: str
    created_at: str
    query: str = ""
    user_location: Optional[UserLocation] = None
    listings: List[Listing] = []


class PickRequest(BaseModel):
    query: str
    count: int = 2


class PickResponse(BaseModel):
    listings: List[Listing] = []
    reasoning: Dict[str, str] = {}
    explanation: str


# ---- AI ------------------------------------------------------------------------

class AIMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class ProviderDescriptor(BaseModel):
    id: str
    name: str
    available: bool
    models: List[str] = []
    is_cloud: bool


class AIHealth(BaseModel):
    available: bool
    backend: str


class BackendSwitchRequest(BaseModel):
    backend: str
    model: Optional[str] = None


class BackendSwitchResult(BaseModel):
    success: bool
    message: str


class ParsedSearchIntent(BaseModel):
    property_type: Optional[str] = None
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    price_target: Optional[float] = None
    price_intent: Literal["under", "over", "between", "exact", "around", "none"] = "none"
    currency: Optional[str] = None
    location: Optional[str] = None
    beds: Optional[int] = None
    area_min: Optional[float] = None
    area_max: Optional[float] = None
    raw_query: str = ""


class AISearchResponse(BaseModel):
    parsed_intent: ParsedSearchIntent
    clarification_needed: bool = False
    clarification_question: Optional[str] = None
    response_message: str = ""


class ChatRequest(BaseModel):
    message: str
    history: List[AIMessage] = []
    search_context: Optional[str] = None
    conversation_id: Optional[str] = None


# ---- Vector store --------------------------------------------------------------

class Document(BaseModel):
    id: str
    content: str
    metadata: Dict[str, Any] = {}
    embedding: Optional[List[float]] = None


class DocumentMatch(BaseModel):
    document: Document
    score: float


class RAGStats(BaseModel):
    collections: Dict[str, int] = {}
    embedding_backend: str
    embedding_dimension: int


class ListingSearchCriteria(BaseModel):
    city: Optional[str] = None
    min_beds: Optional[int] = None
    max_beds: Optional[int] = None
    min_area: Optional[float] = None
    max_area: Optional[float] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    property_type: Optional[str] = None
    # None = both
    for_rent: Optional[bool] = None
