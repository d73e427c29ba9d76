"""
studio_producer/agent/recovery.py — Per-stage retry / fallback policy.

execute_subagent is an explicit attempt loop: wait initial_delay * 2**(attempt-1)
between attempts, never retry a missing-session precondition, and once the
retries are spent either degrade (fallback result) or re-raise.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Dict, Optional

from studio_producer import config
from studio_producer.errors import MissingSessionError, classify_error
from studio_producer.models import StageError, SubagentContext, SubagentName, SubagentResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecoveryPolicy:
    continue_on_failure: bool
    max_retries: int
    initial_delay: float = 1.0
    fallback_action: Optional[str] = None

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        return self.initial_delay * 2 ** (attempt - 1)


def _policies(initial_delay: float) -> Dict[SubagentName, RecoveryPolicy]:
    return {
        SubagentName.IMPORT: RecoveryPolicy(
            continue_on_failure=True, max_retries=2, initial_delay=initial_delay,
            fallback_action="Use topic-based workflow instead of import",
        ),
        SubagentName.CONTENT: RecoveryPolicy(
            continue_on_failure=False, max_retries=2, initial_delay=initial_delay,
        ),
        SubagentName.MEDIA: RecoveryPolicy(
            continue_on_failure=True, max_retries=2, initial_delay=initial_delay,
            fallback_action="Use placeholder visuals",
        ),
        SubagentName.ENHANCEMENT_EXPORT: RecoveryPolicy(
            continue_on_failure=True, max_retries=2, initial_delay=initial_delay,
            fallback_action="Return asset bundle for manual assembly",
        ),
    }


RECOVERY_POLICIES = _policies(config.STUDIO_RETRY_INITIAL_DELAY)
DEFAULT_POLICY = RecoveryPolicy(continue_on_failure=False, max_retries=1,
                                initial_delay=config.STUDIO_RETRY_INITIAL_DELAY)


def get_recovery_policy(stage) -> RecoveryPolicy:
    """Policy for a stage name; unknown stages get DEFAULT_POLICY."""
    try:
        return RECOVERY_POLICIES[SubagentName(stage)]
    except (ValueError, KeyError):
        return DEFAULT_POLICY


async def execute_subagent(subagent, context: SubagentContext,
                           policy: Optional[RecoveryPolicy] = None) -> SubagentResult:
    """Invoke ``subagent`` under its recovery policy.

    Returns the first successful result, or a fallback result (success=False,
    fallback_applied=True) when a degradable stage exhausts its retries.
    Raises MissingSessionError immediately, and the last error for
    non-degradable stages.
    """
    policy = policy or get_recovery_policy(subagent.name)
    tag = subagent.name.value
    start = time.time()
    total_attempts = policy.max_retries + 1
    last_error: Optional[BaseException] = None

    for attempt in range(1, total_attempts + 1):
        try:
            return await subagent.invoke(context)
        except MissingSessionError:
            raise
        except Exception as e:
            last_error = e
            logger.warning(
                f"[Recovery:{tag}] Attempt {attempt}/{total_attempts} failed "
                f"({type(e).__name__}): {e}"
            )
            if attempt < total_attempts:
                delay = policy.delay_for(attempt)
                logger.info(f"[Recovery:{tag}] Retrying in {delay:.1f}s...")
                await asyncio.sleep(delay)

    if policy.continue_on_failure and policy.fallback_action:
        logger.error(f"[Recovery:{tag}] Retries exhausted, applying fallback: {policy.fallback_action}")
        return SubagentResult(
            success=False,
            session_id=context.session_id,
            completed_stage=subagent.name,
            duration=time.time() - start,
            message=f"Fallback applied: {policy.fallback_action}",
            errors=[StageError(
                tool=tag,
                error=str(last_error),
                category=classify_error(last_error),
                retry_count=policy.max_retries,
                recoverable=False,
                fallback_applied=policy.fallback_action,
            )],
            fallback_applied=True,
        )

    logger.error(f"[Recovery:{tag}] Retries exhausted, no fallback: aborting")
    raise last_error
