"""Pipeline orchestration: sync, generate, curate (with regeneration), create."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from glean.agents.creator import CreatorAgent
from glean.agents.curator import CuratorAgent, CuratorResult
from glean.agents.idea_generator import IdeaGeneratorAgent, IdeaGeneratorResult
from glean.agents.judge import JudgeAgent
from glean.agents.retriever import RetrieverAgent, RetrieverResult
from glean.brand.profile import BrandProfile
from glean.config import Settings
from glean.llm.client import ClaudeClient
from glean.llm.embeddings import EmbeddingClient
from glean.llm.retry import RetryPolicy
from glean.sources.readwise import ReadwiseClient
from glean.storage.repository import Store
from glean.storage.vectors import VectorStore

logger = logging.getLogger(__name__)


class WorkflowStep(str, Enum):
    SYNC = "sync"
    GENERATE = "generate"
    CURATE = "curate"
    CREATE = "create"
    COMPLETE = "complete"


@dataclass
class WorkflowState:
    step: WorkflowStep = WorkflowStep.SYNC
    sync_log_id: int | None = None
    idea_batch_id: int | None = None
    shortlisted_idea_ids: list[int] = field(default_factory=list)
    draft_ids: list[int] = field(default_factory=list)
    error: str | None = None


@dataclass
class DraftOutcome:
    """Result of one draft attempt; ``error`` is set when it failed."""

    idea_id: int
    draft_id: int | None = None
    word_count: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class WorkflowResult:
    state: WorkflowState = field(default_factory=WorkflowState)
    sync: RetrieverResult | None = None
    ideas: IdeaGeneratorResult | None = None
    curation: CuratorResult | None = None
    regeneration_attempts: int = 0
    drafts: list[DraftOutcome] = field(default_factory=list)

    @property
    def shortlisted_ideas(self) -> list[int]:
        return self.curation.shortlisted_ideas if self.curation else []


class WorkflowError(RuntimeError):
    """A fatal pipeline failure; ``result`` holds everything completed before it."""

    def __init__(self, message: str, result: WorkflowResult) -> None:
        super().__init__(message)
        self.result = result


class WorkflowOrchestrator:
    def __init__(
        self,
        retriever: RetrieverAgent,
        idea_generator: IdeaGeneratorAgent,
        curator: CuratorAgent,
        creator: CreatorAgent,
        *,
        top_highlights_limit: int = 20,
        max_regeneration_attempts: int = 2,
    ) -> None:
        self.retriever = retriever
        self.idea_generator = idea_generator
        self.curator = curator
        self.creator = creator
        self._top_highlights_limit = top_highlights_limit
        self._max_regeneration_attempts = max_regeneration_attempts

    async def run_workflow(self) -> WorkflowResult:
        """Run the whole pipeline once.

        A batch the curator rejects is regenerated with its feedback, up to
        ``max_regeneration_attempts`` times; only the newest batch is scored.
        Draft failures are recorded per idea and do not stop the run. Anything
        else raises ``WorkflowError`` carrying the partial result.
        """
        result = WorkflowResult()
        state = result.state

        try:
            logger.info("Step 1: syncing highlights")
            result.sync = await self.retriever.sync_highlights()
            state.sync_log_id = result.sync.sync_log_id

            logger.info("Step 2: generating ideas")
            state.step = WorkflowStep.GENERATE
            highlights = self.retriever.get_top_highlights(self._top_highlights_limit)
            if not highlights:
                raise RuntimeError("No highlights stored. Run a sync first.")
            result.ideas = await self.idea_generator.generate_ideas(highlights)
            state.idea_batch_id = result.ideas.batch_id

            logger.info("Step 3: curating ideas")
            state.step = WorkflowStep.CURATE
            result.curation = await self.curator.curate_ideas(result.ideas.batch_id)

            while (
                result.curation.should_regenerate
                and result.regeneration_attempts < self._max_regeneration_attempts
            ):
                result.regeneration_attempts += 1
                logger.info(
                    "Regenerating ideas (attempt %d of %d)",
                    result.regeneration_attempts,
                    self._max_regeneration_attempts,
                )
                feedback = self.curator.regeneration_feedback(result.curation.feedback)
                result.ideas = await self.idea_generator.generate_ideas(highlights, feedback)
                state.idea_batch_id = result.ideas.batch_id
                result.curation = await self.curator.curate_ideas(result.ideas.batch_id)

            state.shortlisted_idea_ids = list(result.curation.shortlisted_ideas)
            if not state.shortlisted_idea_ids:
                raise RuntimeError("No ideas were shortlisted after curation")

            logger.info("Step 4: creating %d drafts", len(state.shortlisted_idea_ids))
            state.step = WorkflowStep.CREATE
            result.drafts = await self.create_drafts(state.shortlisted_idea_ids)
            state.draft_ids = [d.draft_id for d in result.drafts if d.draft_id is not None]

            state.step = WorkflowStep.COMPLETE
            logger.info("Workflow complete: %d drafts created", len(state.draft_ids))
            return result
        except Exception as exc:
            state.error = str(exc)
            logger.error("Workflow failed during %s: %s", state.step.value, exc)
            raise WorkflowError(str(exc), result) from exc

    async def sync_highlights(self, incremental: bool = False) -> RetrieverResult:
        return await self.retriever.sync_highlights(incremental=incremental)

    async def generate_ideas(self, feedback: str | None = None) -> IdeaGeneratorResult:
        highlights = self.retriever.get_top_highlights(self._top_highlights_limit)
        if not highlights:
            raise RuntimeError("No highlights stored. Run a sync first.")
        return await self.idea_generator.generate_ideas(highlights, feedback)

    async def curate_ideas(self, batch_id: int) -> CuratorResult:
        return await self.curator.curate_ideas(batch_id)

    async def create_drafts(self, idea_ids: list[int]) -> list[DraftOutcome]:
        outcomes: list[DraftOutcome] = []
        for idea_id in idea_ids:
            try:
                created = await self.creator.create_draft(idea_id)
            except Exception as exc:
                logger.error("Failed to create draft for idea %d: %s", idea_id, exc)
                outcomes.append(DraftOutcome(idea_id=idea_id, error=str(exc)))
                continue
            outcomes.append(
                DraftOutcome(
                    idea_id=idea_id, draft_id=created.draft_id, word_count=created.word_count
                )
            )
        return outcomes


@dataclass
class Components:
    """Everything a command needs, wired from one ``Settings``."""

    settings: Settings
    brand: BrandProfile
    store: Store
    vectors: VectorStore
    source: ReadwiseClient
    orchestrator: WorkflowOrchestrator
    judge: JudgeAgent

    async def aclose(self) -> None:
        await self.source.close()


def build_components(settings: Settings) -> Components:
    """Wire clients, stores and agents. The brand profile is loaded once here."""
    brand = BrandProfile.load(settings.brand_config_path, settings.brand_profile)
    policy = RetryPolicy(max_attempts=settings.llm_max_retries)
    store = Store(settings.db_path)
    vectors = VectorStore(settings.db_path)
    source = ReadwiseClient(settings.readwise_token, retry_policy=policy)
    embedder = EmbeddingClient(settings, retry_policy=policy)
    writer = ClaudeClient(settings, retry_policy=policy)
    judge_client = ClaudeClient(
        settings,
        api_key=settings.judge_api_key or None,
        model=settings.judge_model,
        retry_policy=policy,
    )

    orchestrator = WorkflowOrchestrator(
        RetrieverAgent(source, store, vectors, embedder, max_age_days=settings.sync_max_age_days),
        IdeaGeneratorAgent(
            writer, store, vectors, embedder, brand, max_retries=settings.llm_max_retries
        ),
        CuratorAgent(store, brand),
        CreatorAgent(writer, store, vectors, embedder, brand, max_retries=settings.llm_max_retries),
        top_highlights_limit=settings.top_highlights_limit,
        max_regeneration_attempts=settings.max_regeneration_attempts,
    )
    return Components(
        settings=settings,
        brand=brand,
        store=store,
        vectors=vectors,
        source=source,
        orchestrator=orchestrator,
        judge=JudgeAgent(judge_client, store, brand, max_retries=settings.llm_max_retries),
    )
