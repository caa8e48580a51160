"""Brand profile data model: who the blog is written for and about."""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


class WritingStyle(BaseModel):
    """Voice and shape the drafts should follow."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    tone: str = "Professional yet accessible"
    voice: str = "Authoritative but approachable"
    length: str = "1200-1800 words"
    structure: str = "Clear introduction, well-organized sections, strong conclusion"
    examples: list[str] = Field(default_factory=list)


class BrandProfile(BaseModel):
    """Brand configuration shared by the idea generator, curator, creator and judge.

    Built once at process start (see ``BrandProfile.load``) and handed to each
    agent's constructor.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    profile: str = "Principal PM, AI services + infrastructure"
    description: str = "A senior product manager focused on AI services and infrastructure"
    topics: list[str] = Field(default_factory=list)
    brand_keywords: list[str] = Field(default_factory=list)
    writing_style: WritingStyle = Field(default_factory=WritingStyle)
    target_audience: list[str] = Field(default_factory=list)
    content_principles: list[str] = Field(default_factory=list)

    @classmethod
    def default(cls) -> BrandProfile:
        """Create the built-in profile used when no brand config file exists."""
        return cls(
            topics=[
                "AI infrastructure",
                "AI",
                "Generative AI",
                "Product Management",
                "Business",
                "Strategy",
                "User Experience",
                "Value Chain",
            ],
            brand_keywords=[
                "AI",
                "infrastructure",
                "product",
                "service",
                "PM",
                "strategy",
                "scalable",
            ],
            target_audience=[
                "Product managers",
                "Engineering leaders",
                "AI/ML practitioners",
            ],
            content_principles=[
                "Grounded in real-world experience",
                "Actionable insights over theory",
            ],
        )

    @classmethod
    def load(cls, path: Path, profile_override: str = "") -> BrandProfile:
        """Load a profile from a JSON file, or return the default if missing or invalid."""
        profile = cls.default()
        if path.exists():
            try:
                profile = cls.model_validate_json(path.read_text())
                logger.info("Loaded brand config from %s", path)
            except ValidationError as exc:
                logger.warning("Invalid brand config at %s, using defaults: %s", path, exc)

        if profile_override:
            profile.profile = profile_override
        return profile

    def to_prompt_fragment(self) -> str:
        """Render the profile as a context block for generation prompts."""
        lines = [
            f"Brand Profile: {self.profile}",
            f"Description: {self.description}",
        ]
        if self.target_audience:
            lines.append(f"Target Audience: {', '.join(self.target_audience)}")
        if self.content_principles:
            lines.append("Content Principles:")
            lines.extend(f"- {p}" for p in self.content_principles)
        style = self.writing_style
        lines.append(
            f"Writing Style: tone {style.tone}; voice {style.voice}; "
            f"length {style.length}; structure {style.structure}"
        )
        return "\n".join(lines)

    def save(self, path: Path) -> None:
        """Persist the profile as a JSON file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.model_dump_json(indent=2, by_alias=True))
