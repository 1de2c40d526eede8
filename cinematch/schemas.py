"""
Data schemas for Cinematch.

Pydantic models for:
- movie data exchanged with providers (CandidateMovie, DiscoverPage, MovieRecord)
- deck sources, a tagged union on ``type`` (filters | url | text)
- request bodies of the session and solo endpoints

JSON uses camelCase (``deckSize``, ``movieId``); Python attributes are
snake_case. Both spellings are accepted on input.
"""

import os
from typing import Annotated, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, field_validator, model_validator
from pydantic.alias_generators import to_camel

MAX_DECK_SIZE = int(os.getenv("MAX_DECK_SIZE", "50"))


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self):
        return self.model_dump(by_alias=True)


# --- Movie data ---------------------------------------------------------

class CandidateMovie(CamelModel):
    """A lightweight search/discover hit, not yet enriched."""
    tmdb_id: int
    title: str
    year: Optional[int] = None
    poster_url: Optional[str] = None
    genre_ids: List[int] = Field(default_factory=list)
    overview: Optional[str] = None
    vote_average: Optional[float] = None


class DiscoverPage(CamelModel):
    """One page of discovery results, in provider order."""
    movie_ids: List[int] = Field(default_factory=list)
    total_pages: int = 0


class MovieRecord(CamelModel):
    """
    Full movie record shown on a swipe card.

    Combines TMDB details, TMDB watch providers and OMDb ratings.
    """
    tmdb_id: int
    imdb_id: Optional[str] = None
    title: str = Field(..., min_length=1)
    year: Optional[int] = None
    poster_url: Optional[str] = None
    backdrop_url: Optional[str] = None
    genres: List[str] = Field(default_factory=list)
    synopsis: Optional[str] = None
    runtime: Optional[int] = None
    imdb_rating: Optional[str] = None
    rt_critic_score: Optional[str] = None
    streaming_services: List[str] = Field(default_factory=list)

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "tmdbId": 27205,
                "imdbId": "tt1375666",
                "title": "Inception",
                "year": 2010,
                "genres": ["Action", "Sci-Fi"],
                "runtime": 148,
                "imdbRating": "8.8",
                "rtCriticScore": "87%",
                "streamingServices": ["Netflix"],
            }
        }
    )

    @field_validator('imdb_rating', 'rt_critic_score')
    @classmethod
    def drop_not_available(cls, v):
        """OMDb reports missing ratings as 'N/A'."""
        if v in ("N/A", ""):
            return None
        return v


# --- Deck sources -------------------------------------------------------

class MovieFilters(CamelModel):
    genres: List[int] = Field(default_factory=list)
    genre_match: Literal["any", "all"] = "any"
    year_from: Optional[int] = Field(None, ge=1870, le=2100)
    year_to: Optional[int] = Field(None, ge=1870, le=2100)

    @model_validator(mode='after')
    def check_year_range(self):
        if self.year_from and self.year_to and self.year_from > self.year_to:
            raise ValueError('yearFrom must not be after yearTo')
        return self


class FilterSource(CamelModel):
    type: Literal["filters"] = "filters"
    filters: MovieFilters = Field(default_factory=MovieFilters)


class UrlSource(CamelModel):
    type: Literal["url"] = "url"
    url: str = Field(..., min_length=1)

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        v = v.strip()
        if not v.lower().startswith(("http://", "https://")):
            raise ValueError('url must start with http:// or https://')
        return v


class TextSource(CamelModel):
    type: Literal["text"] = "text"
    text_list: str = Field(..., min_length=1)


DeckSource = Annotated[Union[FilterSource, UrlSource, TextSource], Field(discriminator="type")]


# --- Request bodies -----------------------------------------------------

class CreateSessionRequest(CamelModel):
    source: DeckSource
    deck_size: Optional[int] = Field(None, ge=1, le=MAX_DECK_SIZE)
    nickname: Optional[str] = Field(None, max_length=64)


class JoinSessionRequest(CamelModel):
    code: str = Field(..., min_length=1, max_length=12)
    nickname: Optional[str] = Field(None, max_length=64)

    @field_validator('code')
    @classmethod
    def normalize_code(cls, v):
        return v.strip().upper()


class SwipeRequest(CamelModel):
    movie_id: StrictInt
    liked: StrictBool


class MovieIdRequest(CamelModel):
    movie_id: StrictInt = Field(..., gt=0)
