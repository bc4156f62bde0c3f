"""Restriction (release) profiles: required and ignored title terms."""

from pydantic import BaseModel, ConfigDict, Field


class RestrictionProfile(BaseModel):
    """Required/ignored term lists scoped by tags and indexer.

    Attributes:
        required: Title must contain at least one of these (empty = no requirement).
        ignored: Title must contain none of these.
        tags: Movie tags the profile applies to (empty = every movie).
        indexer_id: Indexer the profile applies to (0 = every indexer).
    """

    model_config = ConfigDict(frozen=True)

    id: int
    name: str = ""
    enabled: bool = True
    required: list[str] = Field(default_factory=list)
    ignored: list[str] = Field(default_factory=list)
    tags: frozenset[int] = Field(default_factory=frozenset)
    indexer_id: int = 0

    @property
    def display_name(self) -> str:
        return self.name or f"#{self.id}"

    def applies_to(self, tags: frozenset[int] | set[int], indexer_id: int = 0) -> bool:
        """Check whether the profile is active for a movie's tags and an indexer."""
        if not self.enabled:
            return False
        if self.indexer_id and indexer_id and self.indexer_id != indexer_id:
            return False
        if not self.tags:
            return True
        return bool(self.tags & set(tags))
