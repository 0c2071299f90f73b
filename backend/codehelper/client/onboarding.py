"""Onboarding gate: a pure step decision plus the controller that feeds it.

``decide_step`` is the only place that knows the priority between gating
steps. ``OnboardingController`` loads its inputs, re-runs the decision on
every change and performs side effects based solely on the step it returns,
so at most one gating step is ever visible.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Set

from ..api_models import (
    AssessmentAnswer,
    AssessmentPayload,
    AssessmentQuestionPayload,
    AssessmentSubmission,
    ProfilePayload,
    ProfileUpdate,
)
from ..cache import QueryCache
from ..errors import ApiError, BlockedError, ConflictError
from ..telemetry import emit_event
from .api import ApiClient
from .block_status import BlockStatusResolver
from .consent import ConsentGate
from .invalidation import GatingQuery, ProgressInvalidator
from .navigation import BLOCKED_PATH, Navigator, Notifier, is_exempt_path
from .tristate import LOADING, Known, TriState

logger = logging.getLogger(__name__)


class Step(str, Enum):
    NONE = "none"
    REDIRECT_BLOCKED = "redirect_blocked"
    SHOW_CONSENT = "show_consent"
    SHOW_PROFILE = "show_profile"
    SHOW_PRE_ASSESSMENT = "show_pre_assessment"
    SHOW_ONBOARDING_TOUR = "show_onboarding_tour"


@dataclass(frozen=True)
class GatingInputs:
    blocked: TriState[bool] = LOADING
    consent_given: TriState[bool] = LOADING
    profile: TriState[ProfilePayload] = LOADING
    has_pre_assessment: TriState[bool] = LOADING
    onboarding_completed: TriState[bool] = LOADING


def decide_step(inputs: GatingInputs) -> Step:
    """Map the gating inputs to the single step that may be shown. First match wins."""
    if inputs.blocked == Known(True):
        return Step.REDIRECT_BLOCKED
    if inputs.blocked is LOADING or inputs.consent_given is LOADING:
        return Step.NONE
    if inputs.consent_given == Known(False):
        return Step.SHOW_CONSENT
    if not isinstance(inputs.profile, Known):
        return Step.NONE
    if not inputs.profile.value.completed:
        return Step.SHOW_PROFILE
    if inputs.has_pre_assessment is LOADING:
        return Step.NONE
    if inputs.has_pre_assessment == Known(False):
        return Step.SHOW_PRE_ASSESSMENT
    if inputs.onboarding_completed is LOADING:
        return Step.NONE
    if inputs.onboarding_completed == Known(False):
        return Step.SHOW_ONBOARDING_TOUR
    return Step.NONE


StepListener = Callable[[Step], None]


class OnboardingController:
    def __init__(
        self,
        user_id: str,
        *,
        api: ApiClient,
        block_status: BlockStatusResolver,
        consent: ConsentGate,
        cache: QueryCache,
        navigator: Navigator,
        notifier: Notifier,
    ) -> None:
        self.user_id = user_id
        self._api = api
        self._block_status = block_status
        self._consent = consent
        self._cache = cache
        self._invalidator = ProgressInvalidator(cache)
        self._navigator = navigator
        self._notifier = notifier

        self._inputs = GatingInputs()
        self._step = Step.NONE
        self._listeners: List[StepListener] = []
        self._pending_primary_language: Optional[str] = None
        self._questions_requested = False
        self._questions: Optional[List[AssessmentQuestionPayload]] = None
        self._background: Set[asyncio.Task[Any]] = set()

    # State ------------------------------------------------------------------

    @property
    def inputs(self) -> GatingInputs:
        return self._inputs

    @property
    def step(self) -> Step:
        return self._step

    @property
    def pre_assessment_questions(self) -> Optional[List[AssessmentQuestionPayload]]:
        return self._questions

    @property
    def effective_primary_language(self) -> Optional[str]:
        """The pending overlay wins until the authoritative profile confirms it."""
        if self._pending_primary_language:
            return self._pending_primary_language
        if isinstance(self._inputs.profile, Known):
            profile = self._inputs.profile.value
            if profile.primary_language:
                return profile.primary_language
            if profile.preferred_languages:
                return profile.preferred_languages[0]
        return None

    def subscribe(self, listener: StepListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # Loading ------------------------------------------------------------------

    async def refresh(self) -> Step:
        """Load every gating input concurrently; each completion re-evaluates."""
        await asyncio.gather(
            self._load_blocked(),
            self._load_consent(),
            self._load_profile(),
            self._load_pre_assessment(),
            self._load_onboarding_status(),
        )
        return self._step

    def on_navigate(self, path: str) -> None:
        self._block_status.on_navigate(self.user_id, path)
        if self._step is Step.REDIRECT_BLOCKED:
            self._redirect_if_needed()

    async def _load_blocked(self) -> None:
        self._update(blocked=await self._block_status.resolve(self.user_id))

    async def _load_consent(self) -> None:
        try:
            given = await self._consent.load(self.user_id)
        except OSError as exc:
            logger.warning("Could not read consent for %s: %s", self.user_id, exc)
            self._notifier.notify("Could not read your consent preference.")
            return
        self._update(consent_given=Known(given))

    async def _load_profile(self, *, force: bool = False) -> None:
        profile = await self._read(GatingQuery.PROFILE, self._api.get_profile, force=force)
        if profile is not None:
            self._update(profile=Known(profile))

    async def _load_pre_assessment(self, *, force: bool = False) -> None:
        results = await self._read(GatingQuery.ASSESSMENTS, self._api.get_assessments, force=force)
        if results is not None:
            self._update(has_pre_assessment=Known(_has_pre(results)))

    async def _load_onboarding_status(self, *, force: bool = False) -> None:
        completed = await self._read(GatingQuery.ONBOARDING_STATUS, self._api.get_onboarding_status, force=force)
        if completed is not None:
            self._update(onboarding_completed=Known(completed))

    async def _read(self, query: GatingQuery, loader: Callable[[], Awaitable[Any]], *, force: bool = False) -> Any:
        """Cached read. Failures leave the slot LOADING and never raise out."""
        try:
            return await self._cache.fetch(query.key, loader, force=force)
        except BlockedError:
            self._observe_blocked()
        except ApiError as exc:
            logger.warning("Loading %s for %s failed (%s): %s", query.value, self.user_id, exc.kind.value, exc)
            self._notifier.notify(f"Could not load {query.value.replace('_', ' ')}. Retrying later.")
        return None

    # Step completion ------------------------------------------------------------

    async def give_consent(self, given: bool) -> None:
        await asyncio.to_thread(self._consent.record, self.user_id, given)
        self._update(consent_given=Known(given))

    async def save_profile(self, update: ProfileUpdate) -> Optional[ProfilePayload]:
        previous = self._inputs.profile
        self._pending_primary_language = update.primary_language
        self._update(profile=LOADING)
        try:
            await self._api.update_profile(update)
        except ApiError as exc:
            self._pending_primary_language = None
            self._update(profile=previous)
            self._mutation_failed("save your profile", exc)
            raise
        self._invalidator.after_onboarding_change(GatingQuery.PROFILE)
        self._invalidator.after_onboarding_change(GatingQuery.QUESTIONS)
        await self._load_profile(force=True)
        if isinstance(self._inputs.profile, Known):
            self._pending_primary_language = None
            return self._inputs.profile.value
        return None

    async def submit_pre_assessment(
        self, answers: Sequence[AssessmentAnswer], confidence: int
    ) -> Optional[AssessmentPayload]:
        submission = AssessmentSubmission(
            type="pre",
            language=self.effective_primary_language,
            answers=list(answers),
            confidence=confidence,
        )
        previous = self._inputs.has_pre_assessment
        self._update(has_pre_assessment=LOADING)
        result: Optional[AssessmentPayload] = None
        try:
            result = await self._api.submit_assessment(submission)
        except ConflictError:
            logger.info("Pre-assessment for %s was already stored; refreshing", self.user_id)
        except ApiError as exc:
            self._update(has_pre_assessment=previous)
            self._mutation_failed("submit the assessment", exc)
            raise
        self._invalidator.after_onboarding_change(GatingQuery.ASSESSMENTS)
        await self._load_pre_assessment(force=True)
        return result

    async def finish_tour(self) -> None:
        previous = self._inputs.onboarding_completed
        self._update(onboarding_completed=LOADING)
        try:
            await self._api.update_onboarding_status(True)
        except ApiError as exc:
            self._update(onboarding_completed=previous)
            self._mutation_failed("finish the tour", exc)
            raise
        self._invalidator.after_onboarding_change(GatingQuery.ONBOARDING_STATUS)
        await self._load_onboarding_status(force=True)

    async def aclose(self) -> None:
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    # Evaluation and effects --------------------------------------------------------

    def _update(self, **slots: Any) -> None:
        self._inputs = replace(self._inputs, **slots)
        step = decide_step(self._inputs)
        if step is self._step:
            return
        previous, self._step = self._step, step
        logger.debug("Onboarding step for %s: %s -> %s", self.user_id, previous.value, step.value)
        if step is not Step.NONE:
            emit_event("onboarding_step_shown", user_id=self.user_id, step=step, previous=previous)
        for listener in list(self._listeners):
            listener(step)
        self._apply_effects(step)

    def _apply_effects(self, step: Step) -> None:
        if step is Step.REDIRECT_BLOCKED:
            self._redirect_if_needed()
        elif step is Step.SHOW_PRE_ASSESSMENT and not self._questions_requested:
            self._questions_requested = True
            task = asyncio.ensure_future(self._fetch_pre_assessment_questions())
            self._background.add(task)
            task.add_done_callback(self._background.discard)

    def _redirect_if_needed(self) -> None:
        if not is_exempt_path(self._navigator.current_path):
            self._navigator.replace(BLOCKED_PATH)

    async def _fetch_pre_assessment_questions(self) -> None:
        language = self.effective_primary_language
        try:
            self._questions = await self._cache.fetch(
                (GatingQuery.QUESTIONS.value, "pre", language),
                lambda: self._api.get_assessment_questions("pre", language),
            )
        except BlockedError:
            self._observe_blocked()
        except ApiError as exc:
            # Allow the next appearance of the step to ask again.
            self._questions_requested = False
            logger.warning("Loading pre-assessment questions failed: %s", exc)
            self._notifier.notify("Could not load assessment questions.")

    def _observe_blocked(self) -> None:
        self._block_status.mark_blocked(self.user_id)
        self._update(blocked=Known(True))

    def _mutation_failed(self, action: str, exc: ApiError) -> None:
        if isinstance(exc, BlockedError):
            self._observe_blocked()
            return
        logger.warning("Failed to %s for %s: %s", action, self.user_id, exc)
        self._notifier.notify(f"Could not {action}: {exc.message or exc.kind.value}")


def _has_pre(results: Sequence[AssessmentPayload]) -> bool:
    return any(result.type == "pre" for result in results)


__all__ = ["GatingInputs", "OnboardingController", "Step", "decide_step"]
