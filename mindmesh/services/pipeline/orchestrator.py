"""Pipeline orchestrator - the message-processing state machine.

Flow: Created -> EmotionAnalyzed -> ContextRetrieved -> Recommended ->
Escalated -> Responded -> Terminal, then a detached memory write.

Blocking and streaming modes share one transition path; streaming only
adds an event per transition. Every stage degrades internally instead of
rolling the state back, so the caller always gets a reply:
- Emotion analysis falls back to lexicon scoring
- Context retrieval falls back to an empty context
- Recommendation falls back to crisis-keyword detection alone
- Reply generation falls back to the fixed decision table

Recording the safety flag is never raced against the caller's cancellation
token and is shielded from task cancellation, so a crisis flag is always
persisted once it has been detected. Therapist notification runs as a
detached task after the flag is written and never delays the reply.
"""
import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Sequence, Set, Union

from mindmesh.shared.models import (
    ActionType,
    AlertOutcome,
    AlertType,
    Context,
    EmotionalSignal,
    EscalationResult,
    Priority,
    Recommendation,
    SignalSource,
)
from ..context_service.memory_writer import MemoryWriter
from ..context_service.retriever import ContextRetriever
from ..emotion_service.analyzer import EmotionAnalyzer
from ..recommendation_engine.config import CRISIS_KEYWORDS
from ..recommendation_engine.engine import RecommendationEngine
from ..response_service.config import GENERIC_SUPPORT_REPLY
from ..response_service.generator import ReplySource, ResponseGenerator
from ..safety_service.escalator import SafetyEscalator
from .background import BackgroundTasks
from .cancellation import CancellationToken, StageCancelled
from .state import PipelineState, Stage, StageEvent

logger = logging.getLogger(__name__)

AGENT_NAME = "MindMesh Empathetic Chat Pipeline"
AGENT_VERSION = "2.0.0"

StageSink = Callable[[StageEvent], Union[None, Awaitable[None]]]


class _Emitter:
    """Delivers stage events to a sink until cancelled or the sink fails."""

    def __init__(self, sink: Optional[StageSink], cancel: CancellationToken, state: PipelineState):
        self.sink = sink
        self.cancel = cancel
        self.state = state
        self.closed = sink is None
        self.emitted = 0

    async def emit(self, stage: Stage) -> None:
        if self.closed:
            return
        if self.cancel.cancelled:
            self.closed = True
            logger.info(
                "PIPELINE_STREAM_STOPPED",
                extra={
                    "message_id": self.state.message_id,
                    "reason": self.cancel.reason,
                    "last_stage": stage.value,
                }
            )
            return

        event = StageEvent(stage=stage, delta=self.state.delta_for(stage), message_id=self.state.message_id)
        try:
            result = self.sink(event)
            if inspect.isawaitable(result):
                await result
            self.emitted += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.closed = True
            logger.warning(
                "PIPELINE_STREAM_SINK_FAILED",
                extra={
                    "message_id": self.state.message_id,
                    "stage": stage.value,
                    "error": str(e),
                }
            )


class PipelineOrchestrator:
    """Runs one message through every pipeline stage."""

    def __init__(
        self,
        emotion_analyzer: EmotionAnalyzer,
        context_retriever: ContextRetriever,
        recommendation_engine: RecommendationEngine,
        safety_escalator: SafetyEscalator,
        response_generator: ResponseGenerator,
        memory_writer: Optional[MemoryWriter] = None,
        background: Optional[BackgroundTasks] = None,
        resources: Iterable[Any] = (),
        drain_timeout_seconds: float = 10.0,
    ):
        """Initialize orchestrator with its collaborators.

        Args:
            emotion_analyzer: Stage 1
            context_retriever: Stage 2
            recommendation_engine: Stage 3
            safety_escalator: Stage 4
            response_generator: Stage 5
            memory_writer: Detached write after the reply; None disables it
            background: Registry for detached tasks
            resources: Objects with ``close()`` (sync or async) released by aclose()
            drain_timeout_seconds: Grace period for detached work at aclose()
        """
        self.emotion_analyzer = emotion_analyzer
        self.context_retriever = context_retriever
        self.recommendation_engine = recommendation_engine
        self.safety_escalator = safety_escalator
        self.response_generator = response_generator
        self.memory_writer = memory_writer
        self.background = background or BackgroundTasks()
        self.resources = list(resources)
        self.drain_timeout_seconds = drain_timeout_seconds
        self._escalations: Set[asyncio.Future] = set()

        logger.info(
            "PIPELINE_INITIALIZED",
            extra={
                "memory_writes_enabled": memory_writer is not None,
                "response_model_enabled": response_generator.llm is not None,
            }
        )

    async def process_message(
        self,
        user_id: str,
        text: str,
        cancel: Optional[CancellationToken] = None,
        query_embedding: Optional[Sequence[float]] = None,
        message_id: Optional[str] = None,
    ) -> PipelineState:
        """Blocking mode: run every stage and return the terminal state.

        Args:
            user_id: Message author
            text: Message text
            cancel: Caller cancellation/deadline; stages degrade when it fires
            query_embedding: Embedding of the message for same-turn semantic search
            message_id: Caller-side identifier, generated when omitted

        Returns:
            PipelineState in the TERMINAL stage with a non-empty reply
        """
        return await self._execute(user_id, text, None, cancel, query_embedding, message_id)

    async def stream_message(
        self,
        user_id: str,
        text: str,
        sink: StageSink,
        cancel: Optional[CancellationToken] = None,
        query_embedding: Optional[Sequence[float]] = None,
        message_id: Optional[str] = None,
    ) -> PipelineState:
        """Streaming mode: as process_message, emitting a StageEvent per transition.

        ``sink`` may be a plain function or a coroutine function. No event
        is emitted once ``cancel`` has fired; the stages still finish.
        """
        return await self._execute(user_id, text, sink, cancel, query_embedding, message_id)

    async def _execute(
        self,
        user_id: str,
        text: str,
        sink: Optional[StageSink],
        cancel: Optional[CancellationToken],
        query_embedding: Optional[Sequence[float]],
        message_id: Optional[str],
    ) -> PipelineState:
        state = PipelineState(user_id, text, message_id)
        cancel = cancel or CancellationToken()
        emitter = _Emitter(sink, cancel, state)
        started = time.monotonic()

        logger.info(
            "PIPELINE_STARTED",
            extra={
                "user_id_hash": state.user_id_hash,
                "message_id": state.message_id,
                "message_length": len(text),
                "streaming": sink is not None,
            }
        )

        state.emotional_signal = await self._analyze_emotion(state, cancel)
        await self._transition(state, Stage.EMOTION_ANALYZED, emitter)

        state.context = await self._retrieve_context(state, cancel, query_embedding)
        await self._transition(state, Stage.CONTEXT_RETRIEVED, emitter)

        state.recommendation = self._recommend(state)
        await self._transition(state, Stage.RECOMMENDED, emitter)

        await self._escalate(state)
        await self._transition(state, Stage.ESCALATED, emitter)

        state.reply_text = await self._respond(state, cancel)
        await self._transition(state, Stage.RESPONDED, emitter)

        state.advance(Stage.TERMINAL)
        self._launch_memory_write(state)
        await emitter.emit(Stage.TERMINAL)

        logger.info(
            "PIPELINE_COMPLETED",
            extra={
                "user_id_hash": state.user_id_hash,
                "message_id": state.message_id,
                "latency_ms": round((time.monotonic() - started) * 1000, 1),
                "actions": [a.value for a in state.recommendation.actions],
                "priority": state.recommendation.priority.value,
                "alert_issued": state.alert_issued,
                "degraded_stages": [s.value for s in state.degraded_stages],
                "events_emitted": emitter.emitted,
            }
        )
        return state

    async def _transition(self, state: PipelineState, stage: Stage, emitter: _Emitter) -> None:
        state.advance(stage)
        logger.debug(
            "PIPELINE_STAGE_REACHED",
            extra={"message_id": state.message_id, "stage": stage.value}
        )
        await emitter.emit(stage)

    async def _analyze_emotion(self, state: PipelineState, cancel: CancellationToken) -> EmotionalSignal:
        stage = Stage.EMOTION_ANALYZED
        try:
            signal = await cancel.race(self.emotion_analyzer.analyze(state.input_text))
        except StageCancelled as e:
            self._log_cancelled(state, stage, e)
            signal = self._fallback_signal(state)
        except Exception as e:
            self._log_stage_error(state, stage, e)
            signal = self._fallback_signal(state)

        if signal.source == SignalSource.FALLBACK and self.emotion_analyzer.service is not None:
            state.mark_degraded(stage)
        return signal

    def _fallback_signal(self, state: PipelineState) -> EmotionalSignal:
        try:
            return self.emotion_analyzer.fallback_analysis(state.input_text)
        except Exception as e:
            self._log_stage_error(state, Stage.EMOTION_ANALYZED, e)
            state.mark_degraded(Stage.EMOTION_ANALYZED)
            return EmotionalSignal.from_scores()

    async def _retrieve_context(
        self,
        state: PipelineState,
        cancel: CancellationToken,
        query_embedding: Optional[Sequence[float]],
    ) -> Context:
        stage = Stage.CONTEXT_RETRIEVED
        try:
            context = await cancel.race(
                self.context_retriever.retrieve(state.user_id, state.input_text, query_embedding)
            )
        except StageCancelled as e:
            self._log_cancelled(state, stage, e)
            context = Context.empty(failed_sources=("cancelled",))
        except Exception as e:
            self._log_stage_error(state, stage, e)
            context = Context.empty(failed_sources=("retrieval_error",))

        if context.degraded:
            state.mark_degraded(stage)
        return context

    def _recommend(self, state: PipelineState) -> Recommendation:
        try:
            return self.recommendation_engine.recommend(state.input_text, state.emotional_signal)
        except Exception as e:
            self._log_stage_error(state, Stage.RECOMMENDED, e)
            state.mark_degraded(Stage.RECOMMENDED)
            return crisis_only_recommendation(state.input_text)

    async def _escalate(self, state: PipelineState) -> None:
        recommendation = state.recommendation
        if not recommendation.requires_alert:
            state.escalation = EscalationResult(outcome=AlertOutcome.NOT_NEEDED)
            return

        try:
            result = await self._shielded(self._record_escalation(state))
        except Exception as e:
            logger.critical(
                "SAFETY_ESCALATION_FAILED",
                extra={
                    "user_id_hash": state.user_id_hash,
                    "message_id": state.message_id,
                    "alert_type": recommendation.alert_type.value,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "action": "MANUAL_REVIEW_REQUIRED",
                }
            )
            state.mark_degraded(Stage.ESCALATED)
            return

        state.escalation = result
        if result.newly_issued:
            state.mark_alert_issued()

    async def _record_escalation(self, state: PipelineState) -> EscalationResult:
        """Persist the flag, then hand notification to a detached task.

        Runs shielded, so the notification is launched even when the
        caller's task is cancelled after the flag was written.
        """
        result = await self.safety_escalator.record(
            state.user_id,
            state.recommendation,
            signal=state.emotional_signal,
            message_id=state.message_id,
        )
        if result.newly_issued:
            self.background.spawn(
                self.safety_escalator.deliver(
                    state.user_id,
                    result.flag,
                    state.recommendation,
                    message=state.input_text,
                ),
                name=f"therapist_notify:{result.flag.flag_id}",
            )
        return result

    async def _shielded(self, coro: Awaitable[EscalationResult]) -> EscalationResult:
        """Run ``coro`` to completion even if the awaiting task is cancelled."""
        task = asyncio.ensure_future(coro)
        self._escalations.add(task)
        task.add_done_callback(self._escalations.discard)
        return await asyncio.shield(task)

    async def _respond(self, state: PipelineState, cancel: CancellationToken) -> str:
        stage = Stage.RESPONDED
        try:
            reply = await cancel.race(self.response_generator.compose(state))
        except StageCancelled as e:
            self._log_cancelled(state, stage, e)
            state.mark_degraded(stage)
            return self._fallback_reply(state)
        except Exception as e:
            self._log_stage_error(state, stage, e)
            state.mark_degraded(stage)
            return self._fallback_reply(state)

        if reply.source in (ReplySource.FALLBACK, ReplySource.SAFETY_GUARDRAIL) and (
            self.response_generator.llm is not None
        ):
            state.mark_degraded(stage)
        return reply.text

    def _fallback_reply(self, state: PipelineState) -> str:
        try:
            return self.response_generator.fallback_reply(state)
        except Exception as e:
            self._log_stage_error(state, Stage.RESPONDED, e)
            return GENERIC_SUPPORT_REPLY

    def _launch_memory_write(self, state: PipelineState) -> None:
        if self.memory_writer is None or not state.input_text.strip():
            return
        self.background.spawn(
            self.memory_writer.write(state),
            name=f"memory_write:{state.message_id}",
        )

    def _log_cancelled(self, state: PipelineState, stage: Stage, error: StageCancelled) -> None:
        logger.warning(
            "PIPELINE_STAGE_CANCELLED",
            extra={
                "message_id": state.message_id,
                "stage": stage.value,
                "reason": error.reason,
                "action": "using_fallback",
            }
        )

    def _log_stage_error(self, state: PipelineState, stage: Stage, error: Exception) -> None:
        logger.error(
            "PIPELINE_STAGE_ERROR",
            extra={
                "user_id_hash": state.user_id_hash,
                "message_id": state.message_id,
                "stage": stage.value,
                "error": str(error),
                "error_type": type(error).__name__,
                "action": "using_fallback",
            },
            exc_info=True,
        )

    @property
    def pending_background_tasks(self) -> int:
        return self.background.pending

    def describe(self) -> Dict[str, Any]:
        """Agent description for the web layer."""
        llm = self.response_generator.llm
        embedder = self.memory_writer.embedder if self.memory_writer else None
        return {
            "name": AGENT_NAME,
            "version": AGENT_VERSION,
            "description": (
                "Listens to users and provides personalized mental health support "
                "with emotion analysis, context recall, recommendations and "
                "therapist alerts"
            ),
            "language_model": llm.config.model_name if llm is not None else None,
            "embedding_model": getattr(embedder, "model", type(embedder).__name__) if embedder else None,
            "capabilities": [
                "Emotional analysis with deterministic fallback",
                "Response generation with safety guardrails",
                "Context retrieval from user history",
                "Vector embeddings for semantic memory",
                "Personalized recommendations",
                "Therapist alerts for crisis situations",
                "Streaming stage events",
            ],
            "supported_actions": [action.value for action in ActionType],
            "stages": [stage.value for stage in Stage],
        }

    async def aclose(self) -> None:
        """Finish escalations, drain detached work and release resources."""
        # Escalations first: a finishing escalation spawns its notification
        if self._escalations:
            await asyncio.gather(*self._escalations, return_exceptions=True)
        cancelled = await self.background.drain(self.drain_timeout_seconds)

        for resource in self.resources:
            try:
                result = resource.close()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(
                    "PIPELINE_RESOURCE_CLOSE_FAILED",
                    extra={"resource": type(resource).__name__, "error": str(e)}
                )

        logger.info(
            "PIPELINE_CLOSED",
            extra={"background_tasks_cancelled": cancelled}
        )


def crisis_only_recommendation(text: str) -> Recommendation:
    """Keyword-only crisis check used when the engine itself fails."""
    lowered = (text or "").lower()
    matched = sorted(keyword for keyword in CRISIS_KEYWORDS if keyword in lowered)
    if not matched:
        return Recommendation(reasoning="Recommendation unavailable")
    return Recommendation(
        actions=(ActionType.ALERT_THERAPIST,),
        priority=Priority.CRITICAL,
        reasoning="Crisis indicators detected, therapist alert required",
        alert_type=AlertType.CRISIS,
        keywords=tuple(matched),
    )
