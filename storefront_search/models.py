"""Pydantic models for catalog products and search results."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Fields returned to callers of the search paths.
SEARCH_FIELDS = [
    "id", "name", "description", "category", "brand", "price", "rating",
    "popularity", "num_reviews", "stock", "tags", "features",
]
# Fields loaded when the engine builds its indexes and models.
INDEX_FIELDS = SEARCH_FIELDS + ["vector_embedding"]


class Product(BaseModel):
    """Catalog product as seen by the search engine (read-only)."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1, description="Unique product identifier")
    name: str = Field("", description="Product name")
    description: str = Field("", description="Product description")
    category: str = Field("", description="Free-text category label")
    brand: str = Field("", description="Free-text brand label")
    price: float = Field(0.0, ge=0, description="Product price")
    rating: float = Field(0.0, ge=0, le=5, description="Average rating (0-5)")
    popularity: float = Field(0.0, ge=0)
    num_reviews: int = Field(0, ge=0, alias="numReviews")
    stock: int = Field(0, ge=0)
    tags: List[str] = Field(default_factory=list)
    features: List[str] = Field(default_factory=list)
    vector_embedding: Optional[List[float]] = Field(
        None, alias="vectorEmbedding", description="Stored pseudo-embedding"
    )

    @field_validator('id', mode='before')
    @classmethod
    def coerce_id(cls, v):
        """Accept numeric identifiers."""
        return str(v) if v is not None else v

    @field_validator('tags', 'features')
    @classmethod
    def lowercase_terms(cls, v: List[str]) -> List[str]:
        """Tags and features are matched lower-case."""
        return [term.strip().lower() for term in v if term and term.strip()]


class RankedProduct(Product):
    """Product enriched with its ranking score."""
    ai_score: float = Field(..., description="Final ranking score")
    ml_similarity: float = Field(0.0, description="Similarity to the query vector")


class TextFilter(BaseModel):
    """Database filter used by the fallback search paths."""
    ids: Optional[List[str]] = None
    text: Optional[str] = None
    category: Optional[str] = None
    brand: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    # Highest rating, then popularity, first; otherwise insertion order.
    order_by_quality: bool = False


class VectorMatch(BaseModel):
    """Product scored by the local vector search."""
    product: Product
    vector_score: float


class HybridMatch(BaseModel):
    """Product scored by the hybrid vector and text search."""
    product: Product
    hybrid_score: float


class BrandRelation(BaseModel):
    """Brand related to another brand by the brand model."""
    brand: str
    similarity: float
