"""
QueryMesh Pipeline Orchestrator

LangGraph-based pipeline that composes every stage:
- Safety → Greeting → Validation → SchemaAnswer → Discovery → Ranking
- Execution fan-out across the planned sources
- Synthesis → Visualization (decision + chart) → FollowUp → Finalize

Every stage posts its tokens to a per-request ledger. Finalize builds the one
ResponseEnvelope, reports usage to the cost sink and emits a monitor event.
"""

import asyncio
import random
import logging
import time
from typing import Any, TypedDict

from langgraph.graph import END, StateGraph

from querymesh.config import Settings, get_settings
from querymesh.connectors.factory import create_connector
from querymesh.execution.database import ConnectorFactory, DatabaseCoordinator
from querymesh.execution.external_api import ExternalAPICoordinator
from querymesh.llm.base import BaseLLMProvider
from querymesh.llm.embeddings import EmbeddingService
from querymesh.llm.factory import LLMProviderFactory
from querymesh.models.answer import SynthesizedAnswer
from querymesh.models.errors import (
    NoSourcesAvailable,
    SafetyBlocked,
    SourceExecutionFailed,
    StageError,
    SynthesisFailed,
    ValidationRejected,
)
from querymesh.models.ledger import TokenLedger, rounded_tokens, tokens_to_credits
from querymesh.models.plan import ExecutionPlan, RankedSource
from querymesh.models.query import Query
from querymesh.models.response import (
    Explainability,
    ProcessingStatus,
    ResponseEnvelope,
    ResponseMetadata,
    VisualizationPayload,
)
from querymesh.models.results import SourceExecutionResult, failed_result
from querymesh.models.stages import (
    DiscoveryResult,
    FollowUpResult,
    GreetingResult,
    SafetyResult,
    SchemaAnswerResult,
    StageResult,
    ValidationResult,
    VisualizationResult,
)
from querymesh.prompts.loader import PromptLoader
from querymesh.services.cache import LRUPlanCache, PlanCache
from querymesh.services.cost import CostSink, LoggingCostSink
from querymesh.services.encryption import FernetCredentialCipher
from querymesh.services.monitoring import LoggingQueryMonitor, QueryMonitor
from querymesh.services.registry import InMemorySourceRegistry, SourceRegistry
from querymesh.stages import (
    BaseStage,
    ChartGenerationStage,
    FollowUpStage,
    GreetingStage,
    RankingStage,
    SafetyStage,
    SchemaAnswerStage,
    SourceDiscoveryStage,
    SynthesisStage,
    ValidationStage,
    VisualizationDecisionStage,
)
from querymesh.stages.safety import REFUSAL_MESSAGE, REFUSAL_TOKENS
from querymesh.stages.synthesis import summarize_rows

logger = logging.getLogger(__name__)

NO_SOURCES_MESSAGE = (
    "I couldn't find a data source in this workspace that can answer that question. "
    "Connect a data source or try asking about the data you have already connected."
)
FAILURE_MESSAGE = (
    "I ran into a problem while answering your question. Please try again or rephrase it."
)
CANCELLED_MESSAGE = "The request was cancelled before every data source finished."
CLARIFICATION_TEMPLATE = (
    "I need some clarification to provide you with the most accurate answer. {reasons}"
    "Could you please provide more specific details about what you're looking for?"
)

_UNSUCCESSFUL = {"failed", "cancelled"}


# ============================================================================
# Pipeline State Schema
# ============================================================================


class PipelineState(TypedDict, total=False):
    """
    State schema for the query pipeline.

    Tracks the flow through all stages with every intermediate output.
    """

    # Input
    query: Query
    cancel_event: asyncio.Event | None
    deadline: float
    started_at: float

    # Stage outputs
    safety: SafetyResult | None
    greeting: GreetingResult | None
    validation: ValidationResult | None
    schema_answer: SchemaAnswerResult | None
    discovery: DiscoveryResult | None
    plan: ExecutionPlan | None
    results: list[SourceExecutionResult]
    answer: SynthesizedAnswer | None
    visualization: VisualizationResult | None
    follow_up: FollowUpResult | None

    # Terminal outcome
    status: ProcessingStatus | None
    content: str | None
    confidence: float
    error: StageError | None

    # Accounting
    ledger: TokenLedger
    stage_timings: dict[str, float]
    llm_calls: int

    # Output
    response: ResponseEnvelope | None


# ============================================================================
# Query Pipeline
# ============================================================================


class QueryPipeline:
    """
    LangGraph pipeline answering one question per run().

    Every collaborator is injected; anything left out gets an in-process
    default. Stage objects hold no per-request state, so one pipeline can
    serve concurrent requests.

    Usage:
        pipeline = create_pipeline(registry=InMemorySourceRegistry.from_yaml("sources.yaml", cipher))
        envelope = await pipeline.run(
            Query(text="How many donations came from Hyderabad?", workspace_id="ws_charity")
        )
        print(envelope.content, envelope.credits_used)
    """

    def __init__(
        self,
        llm: BaseLLMProvider,
        embedder: EmbeddingService,
        registry: SourceRegistry | None = None,
        *,
        cipher: FernetCredentialCipher | None = None,
        sql_llm: BaseLLMProvider | None = None,
        gate_llm: BaseLLMProvider | None = None,
        plan_cache: PlanCache | None = None,
        monitor: QueryMonitor | None = None,
        cost_sink: CostSink | None = None,
        api_coordinator: ExternalAPICoordinator | None = None,
        database_coordinator: DatabaseCoordinator | None = None,
        connector_factory: ConnectorFactory = create_connector,
        prompts: PromptLoader | None = None,
        settings: Settings | None = None,
        rng: random.Random | None = None,
    ):
        self.settings = settings or get_settings()
        pipeline_settings = self.settings.pipeline

        self.registry = registry or InMemorySourceRegistry()
        self.plan_cache = plan_cache or LRUPlanCache(
            max_size=pipeline_settings.plan_cache_size,
            ttl_seconds=pipeline_settings.plan_cache_ttl_seconds,
        )
        self.monitor = monitor or LoggingQueryMonitor()
        self.cost_sink = cost_sink or LoggingCostSink()
        self.prompts = prompts or PromptLoader()

        self.api_coordinator = api_coordinator or ExternalAPICoordinator(
            timeout_seconds=pipeline_settings.http_timeout_seconds
        )
        self.database_coordinator = database_coordinator or DatabaseCoordinator(
            cipher=cipher or FernetCredentialCipher(self.settings.credentials_key),
            llm=sql_llm or llm,
            prompts=self.prompts,
            connector_factory=connector_factory,
            settings=self.settings.database,
            llm_timeout_seconds=pipeline_settings.llm_timeout_seconds,
        )

        common = {
            "llm": llm,
            "prompts": self.prompts,
            "llm_timeout_seconds": pipeline_settings.llm_timeout_seconds,
            "max_retries": pipeline_settings.stage_max_retries,
        }
        gates = {**common, "llm": gate_llm or llm}
        self.safety = SafetyStage(**gates)
        self.greeting = GreetingStage(
            rng=rng, llm_max_chars=pipeline_settings.greeting_llm_max_chars, **gates
        )
        self.validation = ValidationStage(**gates)
        self.schema_answer = SchemaAnswerStage(registry=self.registry, **common)
        self.discovery = SourceDiscoveryStage(
            registry=self.registry,
            embedder=embedder,
            min_relevance=pipeline_settings.discovery_min_relevance,
            max_sources=pipeline_settings.discovery_max_sources,
            **common,
        )
        self.ranking = RankingStage(plan_cache=self.plan_cache, **common)
        self.synthesis = SynthesisStage(**common)
        self.visualization = VisualizationDecisionStage(**common)
        self.chart = ChartGenerationStage(max_points=pipeline_settings.chart_max_points, **common)
        self.follow_up = FollowUpStage(
            max_questions=pipeline_settings.max_follow_up_questions, **common
        )

        self.graph = self._build_graph()
        logger.info("QueryPipeline initialized")

    def _build_graph(self):
        """
        Build the LangGraph state machine.

        Returns:
            Compiled graph
        """
        workflow = StateGraph(PipelineState)

        workflow.add_node("safety", self._run_safety)
        workflow.add_node("greeting", self._run_greeting)
        workflow.add_node("validation", self._run_validation)
        workflow.add_node("schema_answer", self._run_schema_answer)
        workflow.add_node("discovery", self._run_discovery)
        workflow.add_node("ranking", self._run_ranking)
        workflow.add_node("execution", self._run_execution)
        workflow.add_node("synthesis", self._run_synthesis)
        workflow.add_node("visualization", self._run_visualization)
        workflow.add_node("follow_up", self._run_follow_up)
        workflow.add_node("finalize", self._finalize)
        workflow.add_node("error_handler", self._handle_error)

        workflow.set_entry_point("safety")

        for node, next_node in (
            ("safety", "greeting"),
            ("greeting", "validation"),
            ("validation", "schema_answer"),
            ("schema_answer", "discovery"),
            ("discovery", "ranking"),
            ("ranking", "execution"),
            ("execution", "synthesis"),
            ("synthesis", "visualization"),
        ):
            workflow.add_conditional_edges(
                node,
                self._route,
                {"continue": next_node, "finalize": "finalize", "error": "error_handler"},
            )

        workflow.add_edge("visualization", "follow_up")
        workflow.add_edge("follow_up", "finalize")
        workflow.add_edge("error_handler", "finalize")
        workflow.add_edge("finalize", END)

        return workflow.compile()

    # ========================================================================
    # Public API
    # ========================================================================

    async def run(self, query: Query, cancel_event: asyncio.Event | None = None) -> ResponseEnvelope:
        """
        Answer one question.

        Args:
            query: The question and its conversation context
            cancel_event: Optional signal; when set during execution the
                in-flight sources are cancelled and the response has status
                ``cancelled``

        Returns:
            The response envelope for this request
        """
        loop = asyncio.get_running_loop()
        initial_state: PipelineState = {
            "query": query,
            "cancel_event": cancel_event,
            "started_at": time.perf_counter(),
            "deadline": loop.time() + self.settings.pipeline.request_timeout_seconds,
            "results": [],
            "status": None,
            "content": None,
            "confidence": 0.0,
            "error": None,
            "ledger": TokenLedger(),
            "stage_timings": {},
            "llm_calls": 0,
            "response": None,
        }

        logger.info(
            f"Starting pipeline for query: {query.text[:100]}",
            extra={"workspace_id": query.workspace_id, "agent_id": query.agent_id},
        )
        result = await self.graph.ainvoke(initial_state)
        return result["response"]

    # ========================================================================
    # Stage Nodes
    # ========================================================================

    async def _call_stage(self, state: PipelineState, stage: BaseStage, *args: Any) -> StageResult | None:
        """Run one stage, record its timing and tokens, and capture StageErrors."""
        start_time = time.perf_counter()
        try:
            output = await stage(*args)
        except StageError as e:
            state["error"] = e
            return None
        finally:
            elapsed = (time.perf_counter() - start_time) * 1000
            state["stage_timings"][stage.name] = elapsed

        state["ledger"].add(stage.name, output.tokens_used)
        state["llm_calls"] = state.get("llm_calls", 0) + output.llm_calls
        return output

    def _terminate(
        self,
        state: PipelineState,
        status: ProcessingStatus,
        content: str,
        confidence: float = 0.0,
        cause: StageError | None = None,
    ) -> None:
        """End the request early with a fixed message."""
        state["status"] = status
        state["content"] = content
        state["confidence"] = confidence
        if cause is not None:
            logger.info(
                f"Request ended at {cause.stage}: {cause.message}",
                extra={"status": status, "error": cause.to_dict()},
            )

    async def _run_safety(self, state: PipelineState) -> PipelineState:
        output = await self._call_stage(state, self.safety, state["query"])
        state["safety"] = output
        if output is not None and not output.allowed:
            state["ledger"].add("refusal", REFUSAL_TOKENS)
            self._terminate(
                state,
                "blocked_by_guardrails",
                REFUSAL_MESSAGE,
                output.confidence,
                cause=SafetyBlocked(
                    self.safety.name, output.reason, context={"risk_level": output.risk_level}
                ),
            )
        return state

    async def _run_greeting(self, state: PipelineState) -> PipelineState:
        output = await self._call_stage(state, self.greeting, state["query"])
        state["greeting"] = output
        if output is not None and output.is_greeting:
            self._terminate(state, "greeting_response", output.response or "", output.confidence)
        return state

    async def _run_validation(self, state: PipelineState) -> PipelineState:
        output = await self._call_stage(state, self.validation, state["query"])
        state["validation"] = output
        if output is None:
            return state

        if output.query_type in ("greeting", "closing"):
            greeting_type = "hello" if output.query_type == "greeting" else "goodbye"
            self._terminate(
                state, "greeting_response", self.greeting.canned_response(greeting_type), output.confidence
            )
        elif not output.is_valid:
            self._terminate(
                state,
                "validation_failed",
                ValidationStage.rejection_message(output),
                output.confidence,
                cause=ValidationRejected(
                    self.validation.name, output.query_type, output.reason or None
                ),
            )
        return state

    async def _run_schema_answer(self, state: PipelineState) -> PipelineState:
        output = await self._call_stage(state, self.schema_answer, state["query"])
        state["schema_answer"] = output
        if output is not None and output.handled:
            self._terminate(state, "schema_answer", output.content, output.confidence)
        return state

    async def _run_discovery(self, state: PipelineState) -> PipelineState:
        state["discovery"] = await self._call_stage(state, self.discovery, state["query"])
        return state

    async def _run_ranking(self, state: PipelineState) -> PipelineState:
        output = await self._call_stage(
            state, self.ranking, state["query"], state["discovery"].candidates
        )
        if output is not None:
            state["plan"] = output.plan
        return state

    async def _run_execution(self, state: PipelineState) -> PipelineState:
        """Fan out over the plan's targets and join every result."""
        start_time = time.perf_counter()
        plan: ExecutionPlan = state["plan"]
        targets = plan.execution_targets()
        query = state["query"]
        cancel_event = state.get("cancel_event")

        if plan.processing_strategy == "parallel":
            tasks = [asyncio.create_task(self._execute_source(target, query)) for target in targets]
            interrupted = await self._join(tasks, cancel_event, state["deadline"])
        else:
            tasks = []
            interrupted = False
            for target in targets:
                task = asyncio.create_task(self._execute_source(target, query))
                tasks.append(task)
                interrupted = await self._join([task], cancel_event, state["deadline"])
                if interrupted:
                    break

        results = [
            self._collect(target, tasks[index] if index < len(tasks) else None)
            for index, target in enumerate(targets)
        ]
        state["results"] = results
        for result in results:
            state["ledger"].add(f"execution:{result.source_id}", result.tokens_used)
        state["stage_timings"]["execution"] = (time.perf_counter() - start_time) * 1000

        succeeded = sum(1 for result in results if result.success)
        logger.info(
            f"Executed {len(results)} sources ({succeeded} succeeded)",
            extra={"strategy": plan.processing_strategy, "interrupted": interrupted},
        )

        if interrupted:
            partial = summarize_rows(results) if succeeded else None
            content = CANCELLED_MESSAGE
            if partial is not None:
                content = f"{CANCELLED_MESSAGE}\n\n{partial.content}"
            self._terminate(state, "cancelled", content)
        return state

    async def _execute_source(self, target: RankedSource, query: Query) -> SourceExecutionResult:
        source = await self.registry.get_source(target.candidate.id)
        if source is None:
            return failed_result(
                target.candidate.id, target.candidate.name, target.candidate.kind,
                "Source is no longer registered",
            )
        if source.kind == "database":
            return await self.database_coordinator.execute(source, query)
        return await self.api_coordinator.execute(source, query)

    async def _join(
        self,
        tasks: list[asyncio.Task],
        cancel_event: asyncio.Event | None,
        deadline: float,
    ) -> bool:
        """
        Wait for every task, the cancel signal or the deadline.

        Returns True if the wait was interrupted. Unfinished tasks are always
        cancelled before returning, including when the caller is cancelled.
        """
        loop = asyncio.get_running_loop()
        pending = set(tasks)
        watcher = asyncio.create_task(cancel_event.wait()) if cancel_event else None
        interrupted = False
        try:
            while pending:
                if cancel_event is not None and cancel_event.is_set():
                    interrupted = True
                    break
                remaining = deadline - loop.time()
                if remaining <= 0:
                    interrupted = True
                    break
                waiting = pending | {watcher} if watcher else pending
                done, _ = await asyncio.wait(
                    waiting, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )
                pending -= done
            return interrupted
        finally:
            if watcher is not None:
                watcher.cancel()
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    @staticmethod
    def _collect(target: RankedSource, task: asyncio.Task | None) -> SourceExecutionResult:
        candidate = target.candidate
        if task is None or task.cancelled():
            return failed_result(
                candidate.id, candidate.name, candidate.kind,
                "Execution was cancelled", error_kind="cancelled",
            )
        error = task.exception()
        if error is not None:
            failure = SourceExecutionFailed(
                "execution",
                f"{type(error).__name__}: {error}",
                context={"source_id": candidate.id},
            )
            logger.error(
                f"Source {candidate.id} raised during execution",
                extra={"error": failure.to_dict()},
            )
            return failed_result(
                candidate.id, candidate.name, candidate.kind, failure.message,
                error_kind=failure.error_kind,
            )
        return task.result()

    async def _run_synthesis(self, state: PipelineState) -> PipelineState:
        output = await self._call_stage(
            state,
            self.synthesis,
            state["query"],
            state["results"],
            state["plan"].combination_approach,
        )
        if output is None:
            return state

        answer = output.answer
        state["answer"] = answer
        if answer.failed:
            self._terminate(
                state,
                "clarification_needed",
                answer.content,
                answer.confidence,
                cause=SynthesisFailed(self.synthesis.name, "No data source returned results"),
            )
        elif answer.clarification_needed:
            reasons = " ".join(answer.uncertainty_reasons)
            self._terminate(
                state,
                "clarification_needed",
                CLARIFICATION_TEMPLATE.format(reasons=f"{reasons} " if reasons else ""),
                0.3,
            )
        return state

    async def _run_visualization(self, state: PipelineState) -> PipelineState:
        query = state["query"]
        decision = await self._call_stage(
            state, self.visualization, query, state["results"], state["answer"].content
        )
        if decision is None:
            state["error"] = None
            return state

        chart = await self._call_stage(state, self.chart, query, decision.decision, state["results"])
        state["visualization"] = chart or decision
        state["error"] = None
        return state

    async def _run_follow_up(self, state: PipelineState) -> PipelineState:
        sources_used = [result.source_id for result in state["results"] if result.success]
        state["follow_up"] = await self._call_stage(
            state, self.follow_up, state["query"], state["answer"], sources_used
        )
        state["error"] = None
        return state

    async def _handle_error(self, state: PipelineState) -> PipelineState:
        """Map a terminal stage error to a fixed user-facing message."""
        error = state.get("error")
        logger.error(
            f"Pipeline error: {type(error).__name__ if error else 'unknown'}",
            extra={"error": error.to_dict() if error else None},
        )
        if isinstance(error, NoSourcesAvailable):
            self._terminate(state, "failed", NO_SOURCES_MESSAGE)
        else:
            self._terminate(state, "failed", FAILURE_MESSAGE)
        return state

    # ========================================================================
    # Conditional Edge Logic
    # ========================================================================

    def _route(self, state: PipelineState) -> str:
        if state.get("error") is not None:
            return "error"
        if state.get("status") is not None:
            return "finalize"
        return "continue"

    # ========================================================================
    # Response Assembly
    # ========================================================================

    async def _finalize(self, state: PipelineState) -> PipelineState:
        """Build the envelope, then report cost and monitoring."""
        query: Query = state["query"]
        ledger: TokenLedger = state["ledger"]
        block = self.settings.pipeline.tokens_per_credit
        results: list[SourceExecutionResult] = state.get("results") or []
        answer: SynthesizedAnswer | None = state.get("answer")

        status: ProcessingStatus = state.get("status") or "completed"
        content = state.get("content")
        confidence = state.get("confidence", 0.0)
        if status == "completed" and answer is not None:
            content = answer.content
            confidence = answer.confidence

        tokens_used = ledger.total
        processing_time_ms = (time.perf_counter() - state["started_at"]) * 1000
        visualization = state.get("visualization")

        envelope = ResponseEnvelope(
            content=content or FAILURE_MESSAGE,
            metadata=ResponseMetadata(
                processing_status=status,
                agent_id=query.agent_id,
                workspace_id=query.workspace_id,
                data_sources_used=[result.source_id for result in results if result.success],
                confidence_score=confidence,
                follow_up_questions=self._follow_up_questions(state),
                source_attributions=answer.attributions if answer else [],
                synthesis=self._synthesis_metadata(state),
            ),
            explainability=self._explainability(results, answer, confidence),
            stage_timings_ms=dict(state["stage_timings"]),
            token_breakdown=ledger.breakdown(),
            tokens_used=tokens_used,
            tokens_rounded=rounded_tokens(tokens_used, block),
            credits_used=tokens_to_credits(tokens_used, block),
            processing_time_ms=processing_time_ms,
            sql_queries=[
                result.query_executed
                for result in results
                if result.result_type == "database" and result.query_executed
            ],
            visualization=(
                VisualizationPayload(decision=visualization.decision, spec=visualization.spec)
                if visualization is not None
                else None
            ),
        )
        state["response"] = envelope

        await self._report(query, envelope)
        logger.info(
            f"Pipeline complete in {processing_time_ms:.1f}ms with status {status}",
            extra={
                "status": status,
                "tokens_used": tokens_used,
                "credits_used": envelope.credits_used,
                "llm_calls": state.get("llm_calls", 0),
            },
        )
        return state

    def _follow_up_questions(self, state: PipelineState) -> list[str]:
        follow_up = state.get("follow_up")
        if follow_up is not None:
            return follow_up.follow_up_questions
        schema_answer = state.get("schema_answer")
        if state.get("status") == "schema_answer" and schema_answer is not None:
            return schema_answer.follow_up_questions
        answer = state.get("answer")
        if answer is not None:
            return answer.follow_up_questions[: self.settings.pipeline.max_follow_up_questions]
        return []

    @staticmethod
    def _synthesis_metadata(state: PipelineState) -> dict[str, Any]:
        answer = state.get("answer")
        plan = state.get("plan")
        metadata: dict[str, Any] = {}
        if plan is not None:
            metadata["processing_strategy"] = plan.processing_strategy
            metadata["combination_approach"] = plan.combination_approach
        if answer is not None:
            metadata.update(
                {
                    "primary_insights": answer.insights,
                    "supporting_evidence": answer.supporting_evidence,
                    "conflicting_information": answer.conflicts,
                    "gaps_identified": answer.gaps,
                    "is_clarification_reply": answer.is_clarification_reply,
                }
            )
        follow_up = state.get("follow_up")
        if follow_up is not None:
            metadata["contextual_suggestions"] = follow_up.contextual_suggestions
            metadata["conversation_continuation"] = follow_up.conversation_continuation
        return metadata

    @staticmethod
    def _explainability(
        results: list[SourceExecutionResult],
        answer: SynthesizedAnswer | None,
        confidence: float,
    ) -> Explainability:
        if not results:
            return Explainability(confidence_score=confidence)

        steps = [f"Processed {len(results)} data sources"]
        for result in results:
            if result.result_type == "database" and result.query_executed:
                steps.append(f"Database query executed: {result.query_executed}")
            elif result.result_type == "api" and result.endpoint:
                steps.append(f"API endpoint called: {result.endpoint}")

        uncertainty = list(answer.uncertainty_reasons) if answer else []
        if any(not result.success for result in results):
            uncertainty.append("Some data sources failed to process")

        successes = sum(1 for result in results if result.success)
        return Explainability(
            reasoning_steps=steps,
            confidence_score=confidence,
            uncertainty_factors=uncertainty,
            data_quality_score=successes / len(results),
        )

    async def _report(self, query: Query, envelope: ResponseEnvelope) -> None:
        try:
            await self.cost_sink.record(
                workspace_id=query.workspace_id,
                agent_id=query.agent_id,
                tokens_used=envelope.tokens_used,
                tokens_rounded=envelope.tokens_rounded,
                credits=envelope.credits_used,
                breakdown=envelope.token_breakdown,
            )
        except Exception as e:
            logger.warning(
                "Cost sink failed; response unaffected",
                extra={"error_type": type(e).__name__},
            )

        try:
            await self.monitor.record_query(
                workspace_id=query.workspace_id,
                query_text=query.text,
                status=envelope.status,
                succeeded=envelope.status not in _UNSUCCESSFUL,
                latency_ms=envelope.processing_time_ms,
                sources_used=envelope.metadata.data_sources_used,
            )
        except Exception as e:
            logger.warning(
                "Query monitor failed; response unaffected",
                extra={"error_type": type(e).__name__},
            )


def create_pipeline(
    settings: Settings | None = None,
    registry: SourceRegistry | None = None,
    **overrides: Any,
) -> QueryPipeline:
    """
    Build a pipeline from settings with provider-backed LLM and embeddings.

    Keyword overrides are passed straight to QueryPipeline, so any collaborator
    can be swapped.
    """
    settings = settings or get_settings()
    llm = overrides.pop("llm", None)
    if llm is None:
        llm = LLMProviderFactory.create_default_provider(settings.llm)
        if "gate_llm" not in overrides:
            overrides["gate_llm"] = LLMProviderFactory.create_gate_provider(settings.llm)
    embedder = overrides.pop("embedder", None) or LLMProviderFactory.create_embedding_service(
        settings.llm
    )
    if "sql_llm" not in overrides and settings.llm.sql_provider:
        overrides["sql_llm"] = LLMProviderFactory.create_stage_provider("sql", settings.llm)
    return QueryPipeline(llm, embedder, registry, settings=settings, **overrides)
