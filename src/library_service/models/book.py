"""
Book models for the Library Service.

``Book`` is the response shape for the catalog endpoints. Copy counters are
read-only here: ``available_copies`` only ever changes through the inventory
ledger, so update requests may set ``total_copies`` but never the available
count directly.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def normalize_isbn(value: str) -> str:
    """Strip hyphens and spaces so ISBNs compare by digits only."""
    return value.replace("-", "").replace(" ", "").strip()


class Book(BaseModel):
    """A catalog entry with its copy counters."""

    id: str = Field(..., description="Book identifier (UUID)")

    isbn: str = Field(
        ...,
        description="ISBN-10 or ISBN-13, stored without hyphens",
        examples=["9780134685479"],
    )

    title: str = Field(..., description="Title of the book", examples=["The Great Gatsby"])

    author: str = Field(..., description="Author display name", examples=["F. Scott Fitzgerald"])

    publisher: str | None = Field(None, description="Publisher name")
    published_year: int | None = Field(None, description="Year of publication", examples=[1925])
    genre: str | None = Field(None, description="Genre or category", examples=["Fiction"])
    description: str | None = Field(None, description="Short summary")
    cover_url: str | None = Field(None, description="URL of the cover image")

    total_copies: int = Field(..., description="Copies owned by the library", ge=0)

    available_copies: int = Field(..., description="Copies currently on the shelf", ge=0)

    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookCreate(BaseModel):
    """Request body for adding a book to the catalog."""

    isbn: str = Field(..., min_length=10, max_length=20)
    title: str = Field(..., min_length=1, max_length=500)
    author: str = Field(..., min_length=1, max_length=300)
    publisher: str | None = Field(None, max_length=300)
    published_year: int | None = Field(None, ge=0, le=datetime.now().year + 1)
    genre: str | None = Field(None, max_length=100)
    description: str | None = None
    cover_url: str | None = Field(None, max_length=500)
    total_copies: int = Field(default=1, ge=0, le=10_000)
    available_copies: int | None = Field(
        None,
        description="Defaults to total_copies when omitted",
        ge=0,
    )

    @field_validator("isbn")
    @classmethod
    def clean_isbn(cls, v: str) -> str:
        normalized = normalize_isbn(v)
        if len(normalized) not in (10, 13):
            raise ValueError("ISBN must have 10 or 13 characters")
        return normalized

    @model_validator(mode="after")
    def validate_copies(self) -> "BookCreate":
        """Ensure available copies doesn't exceed total copies."""
        if self.available_copies is not None and self.available_copies > self.total_copies:
            raise ValueError("Available copies cannot exceed total copies")
        return self


class BookUpdate(BaseModel):
    """Request body for updating a book - all fields optional."""

    title: str | None = Field(None, min_length=1, max_length=500)
    author: str | None = Field(None, min_length=1, max_length=300)
    publisher: str | None = None
    published_year: int | None = None
    genre: str | None = None
    description: str | None = None
    cover_url: str | None = None
    total_copies: int | None = Field(
        None,
        description="New copy count; available copies are recomputed from current loans",
        ge=0,
        le=10_000,
    )


class BookSearchParams(BaseModel):
    """Filters for catalog listing. Every value is bound as a query parameter."""

    query: str | None = None  # Title, author or description contains
    isbn: str | None = None
    author: str | None = None
    genre: str | None = None
