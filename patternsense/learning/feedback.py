"""
Feedback processing: turns accept/reject/ignore events into confidence changes.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from ..utils import logger, to_naive_local
from .errors import EngineStoppedError, InvalidFeedbackError, PatternEngineError
from .models import AdaptationReason, FeedbackAction, FeedbackEvent
from .store import PatternStore, StoreTransaction


@dataclass
class FeedbackOutcome:
    """Result of applying one feedback event to one pattern."""
    pattern_id: Optional[str]
    action: Optional[FeedbackAction]
    applied: bool = False
    old_confidence: Optional[float] = None
    new_confidence: Optional[float] = None
    error: Optional[PatternEngineError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'pattern_id': self.pattern_id,
            'action': self.action.value if self.action else None,
            'applied': self.applied,
            'old_confidence': self.old_confidence,
            'new_confidence': self.new_confidence,
            'error': str(self.error) if self.error else None,
        }


class FeedbackProcessor:
    """Applies user feedback to stored patterns and the behavior aggregate.

    Accept and reject deltas are independent so a domain can punish false
    positives harder than it rewards hits.
    """

    def __init__(
        self,
        store: PatternStore,
        accept_delta: Optional[float] = None,
        reject_delta: Optional[float] = None,
        preference_step: Optional[float] = None
    ):
        config = store.model.config
        self.store = store
        self.model = store.model
        self.accept_delta = config.accept_delta if accept_delta is None else accept_delta
        self.reject_delta = config.reject_delta if reject_delta is None else reject_delta
        self.preference_step = config.preference_step if preference_step is None else preference_step

    def apply_feedback(
        self,
        pattern_id: str,
        action: Any,
        timestamp: Optional[datetime] = None,
        context: Optional[Mapping[str, Any]] = None,
        suggestion_type: Optional[str] = None,
        reason: Optional[str] = None
    ) -> FeedbackOutcome:
        """Apply one action to one pattern. Never raises for unknown ids."""
        try:
            action = FeedbackAction(action)
        except ValueError:
            error = InvalidFeedbackError(pattern_id, f"Unknown feedback action: {action}")
            logger.warning(str(error))
            return FeedbackOutcome(pattern_id=pattern_id, action=None, error=error)

        context = dict(context or {})

        def mutation(txn: StoreTransaction) -> FeedbackOutcome:
            moment = to_naive_local(timestamp or txn.now)
            pattern = txn.get(pattern_id)
            if pattern is None:
                return FeedbackOutcome(
                    pattern_id=pattern_id,
                    action=action,
                    error=InvalidFeedbackError(pattern_id)
                )

            old_confidence = pattern.confidence
            new_confidence = old_confidence

            if action == FeedbackAction.ACCEPT:
                pattern.usage.accepted_count += 1
                new_confidence = self.model.clamp(old_confidence + self.accept_delta)
                direction = "increased"
            elif action == FeedbackAction.REJECT:
                pattern.usage.rejected_count += 1
                new_confidence = self.model.clamp(old_confidence - self.reject_delta)
                direction = "decreased"

            if action != FeedbackAction.IGNORE:
                pattern.confidence = new_confidence
                pattern.record_adaptation(
                    AdaptationReason.USER_FEEDBACK,
                    old_confidence,
                    new_confidence,
                    f"User {action.value}ed suggestion, confidence {direction}",
                    moment
                )
                txn.put(pattern)

            behavior = txn.behavior()
            behavior.record(
                action,
                moment,
                category=pattern.kind.value,
                language=context.get('language') or pattern.language,
                suggestion_type=suggestion_type or context.get('suggestion_type'),
                reason=reason,
                step=self.preference_step
            )
            txn.put_behavior(behavior)

            return FeedbackOutcome(
                pattern_id=pattern_id,
                action=action,
                applied=True,
                old_confidence=old_confidence,
                new_confidence=new_confidence
            )

        try:
            outcome = self.store.execute(mutation)
        except EngineStoppedError as e:
            outcome = FeedbackOutcome(pattern_id=pattern_id, action=action, error=e)
        except Exception as e:
            logger.error(f"Feedback for {pattern_id} failed: {e}")
            outcome = FeedbackOutcome(
                pattern_id=pattern_id,
                action=action,
                error=PatternEngineError(f"Feedback failed: {e}")
            )

        if outcome.error:
            logger.warning(f"Feedback not applied: {outcome.error}")
        elif action != FeedbackAction.IGNORE:
            logger.debug(
                f"Pattern {pattern_id} confidence: "
                f"{outcome.old_confidence:.2f} -> {outcome.new_confidence:.2f}"
            )
        return outcome

    def apply_event(self, event: FeedbackEvent) -> List[FeedbackOutcome]:
        """Apply an event by id, or to related patterns when it carries none."""
        if event.pattern_id:
            return [self.apply_feedback(
                event.pattern_id,
                event.action,
                timestamp=event.timestamp,
                context=event.context,
                suggestion_type=event.suggestion_type or None,
                reason=event.reason
            )]
        return self.apply_related(event)

    def find_related(self, event: FeedbackEvent) -> List[str]:
        """Ids of patterns in the event's language whose content and the
        suggestion text contain one another."""
        text = (event.suggestion_text or "").strip().lower()
        language = event.language
        if not text or not language:
            return []

        related = []
        for pattern in self.store.all():
            if pattern.language != language:
                continue
            content = pattern.content.lower()
            if text in content or content in text:
                related.append(pattern.pattern_id)
        return related

    def apply_related(self, event: FeedbackEvent) -> List[FeedbackOutcome]:
        """Apply the event's action to every related pattern."""
        return [
            self.apply_feedback(
                pattern_id,
                event.action,
                timestamp=event.timestamp,
                context=event.context,
                suggestion_type=event.suggestion_type or None,
                reason=event.reason
            )
            for pattern_id in self.find_related(event)
        ]
