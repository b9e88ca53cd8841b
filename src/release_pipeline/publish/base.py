"""Publish target interface and the shared retry policy.

A target never raises out of :meth:`PublishTarget.publish`. Missing
configuration yields ``skipped``; transient errors are retried with a
bounded exponential backoff; anything else yields ``failure`` with the
cause captured in ``detail``.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar

import httpx
import structlog
from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    stop_when_event_set,
)
from tenacity.wait import wait_base

from release_pipeline import __version__
from release_pipeline.exceptions import PublishError, TransientPublishError
from release_pipeline.pipeline.models import PublishResult, PublishStatus

if TYPE_CHECKING:
    import threading
    from collections.abc import Mapping, Sequence

    from tenacity import RetryCallState

    from release_pipeline.config.models import TargetConfig, TargetKind
    from release_pipeline.pipeline.models import BuildArtifact, ReleaseTag

log = structlog.get_logger(__name__)

RETRYABLE_STATUSES: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})


class ExponentialBackoff(wait_base):
    """Wait base, 2*base, 4*base ... between attempts, capped at ``cap``."""

    def __init__(self, *, base: float = 0.5, cap: float = 8.0) -> None:
        self._base = float(base)
        self._cap = float(cap)

    def __call__(self, retry_state: RetryCallState) -> float:
        n = retry_state.attempt_number
        return min(self._cap, self._base * (2 ** (n - 1)))


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, TransientPublishError):
        return True
    if isinstance(exc, PublishError):
        return False
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUSES
    return isinstance(exc, httpx.TimeoutException | httpx.TransportError)


def check_response(response: httpx.Response, action: str) -> httpx.Response:
    """Raise for unsuccessful responses, classifying them as transient or not."""
    if response.is_success:
        return response
    snippet = (response.text or "")[:200].strip()
    message = f"{action}: HTTP {response.status_code}" + (f" ({snippet})" if snippet else "")
    if response.status_code in RETRYABLE_STATUSES:
        raise TransientPublishError(message)
    raise PublishError(message)


class PublishTarget(ABC):
    """One destination for release artifacts."""

    kind: ClassVar[TargetKind]
    required_fields: ClassVar[tuple[str, ...]] = ("endpoint", "credentials_env")

    def __init__(
        self,
        name: str,
        config: TargetConfig,
        *,
        transport: httpx.BaseTransport | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.name = name
        self.config = config
        self._transport = transport
        self._env = os.environ if env is None else env

    @property
    def mandatory(self) -> bool:
        return self.config.mandatory

    @property
    def credentials(self) -> str | None:
        if not self.config.credentials_env:
            return None
        return self._env.get(self.config.credentials_env) or None

    def missing_fields(self) -> list[str]:
        missing = [f for f in self.required_fields if not getattr(self.config, f, None)]
        if "credentials_env" in self.required_fields and "credentials_env" not in missing:
            if self.credentials is None:
                missing.append(f"${self.config.credentials_env}")
        return missing

    def _headers(self) -> dict[str, str]:
        return {"User-Agent": f"release-pipeline/{__version__}"}

    def client(self) -> httpx.Client:
        return httpx.Client(
            timeout=httpx.Timeout(self.config.timeout),
            headers=self._headers(),
            transport=self._transport,
            follow_redirects=True,
        )

    @abstractmethod
    def _attempt(
        self,
        client: httpx.Client,
        tag: ReleaseTag,
        artifacts: Sequence[BuildArtifact],
    ) -> str:
        """Perform one publish attempt and return a success detail.

        Must be safe to repeat: a retry after a partial upload must not fail
        because of what the previous attempt already uploaded.
        """

    def _result(self, status: PublishStatus, detail: str, attempts: int) -> PublishResult:
        return PublishResult(
            target=self.name,
            status=status,
            detail=detail,
            mandatory=self.mandatory,
            attempts=attempts,
        )

    def publish(
        self,
        tag: ReleaseTag,
        artifacts: Sequence[BuildArtifact],
        abort: threading.Event | None = None,
    ) -> PublishResult:
        missing = self.missing_fields()
        if missing:
            log.info("publish.skipped", target=self.name, missing=missing)
            return self._result(
                PublishStatus.SKIPPED, f"missing configuration: {', '.join(missing)}", 0
            )
        if abort is not None and abort.is_set():
            return self._result(PublishStatus.SKIPPED, "aborted before first attempt", 0)

        stop: Any = stop_after_attempt(self.config.max_attempts)
        if abort is not None:
            stop = stop | stop_when_event_set(abort)

        def _before_sleep(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            log.warning(
                "publish.retry",
                target=self.name,
                attempt=retry_state.attempt_number,
                sleep_s=retry_state.next_action.sleep if retry_state.next_action else None,
                error=repr(exc),
            )

        retrying = Retrying(
            stop=stop,
            wait=ExponentialBackoff(base=self.config.backoff_base, cap=self.config.backoff_cap),
            retry=retry_if_exception(is_retryable),
            reraise=False,
            before_sleep=_before_sleep,
        )

        attempts = 0
        try:
            for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    with self.client() as client:
                        detail = self._attempt(client, tag, artifacts)
        except RetryError as e:
            cause = e.last_attempt.exception()
            aborted = abort is not None and abort.is_set()
            reason = "aborted" if aborted else "retries exhausted"
            log.error("publish.failed", target=self.name, attempts=attempts, error=repr(cause))
            return self._result(
                PublishStatus.FAILURE, f"{reason} after {attempts} attempt(s): {cause}", attempts
            )
        except (PublishError, httpx.HTTPError) as e:
            log.error("publish.failed", target=self.name, attempts=attempts, error=repr(e))
            return self._result(PublishStatus.FAILURE, str(e), attempts)
        except Exception as e:
            # Reported as this target's failure.
            log.exception("publish.crashed", target=self.name)
            return self._result(PublishStatus.FAILURE, f"unexpected error: {e!r}", attempts)

        log.info("publish.success", target=self.name, attempts=attempts)
        return self._result(PublishStatus.SUCCESS, detail, attempts)
