from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from tenacity import RetryError, Retrying, retry_if_result, stop_after_attempt, wait_incrementing

from databridge.exceptions import ReportFailedError, ReportTimeoutError
from databridge.settings import settings
from databridge.spapi.constants import REPORT_DONE, REPORT_FAILED_STATUSES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReportPollPolicy:
    """리포트 상태 폴링 정책. n번째(0부터) 대기 시간 = min(base + step * n, max)."""

    max_attempts: int = 30
    base_delay: float = 10.0
    step_delay: float = 5.0
    max_delay: float = 60.0

    @classmethod
    def from_settings(cls) -> "ReportPollPolicy":
        return cls(
            max_attempts=settings.report_poll_max_attempts,
            base_delay=settings.report_poll_base_delay,
            step_delay=settings.report_poll_step_delay,
            max_delay=settings.report_poll_max_delay,
        )

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay + self.step_delay * attempt, self.max_delay)


def _still_processing(report: dict[str, Any]) -> bool:
    status = report.get("processingStatus")
    return status != REPORT_DONE and status not in REPORT_FAILED_STATUSES


def wait_for_report(
    client,
    report_id: str,
    policy: ReportPollPolicy | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> dict[str, Any]:
    """
    getReport를 DONE이 될 때까지 폴링한 뒤 리포트 문서 메타데이터를 반환합니다.

    Raises:
        ReportFailedError: CANCELLED / FATAL
        ReportTimeoutError: max_attempts 내에 종료 상태에 도달하지 못함
    """
    policy = policy or ReportPollPolicy.from_settings()

    retrying = Retrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_incrementing(start=policy.base_delay, increment=policy.step_delay, max=policy.max_delay),
        retry=retry_if_result(_still_processing),
        sleep=sleep,
        before_sleep=lambda retry_state: logger.debug(
            f"[SP-API] Report {report_id} status: {retry_state.outcome.result().get('processingStatus')}, "
            f"attempt {retry_state.attempt_number}/{policy.max_attempts}"
        ),
    )

    try:
        report = retrying(client.get_report, report_id)
    except RetryError as e:
        last_status = e.last_attempt.result().get("processingStatus")
        logger.error(f"[SP-API] Report {report_id} timed out after {policy.max_attempts} attempts")
        raise ReportTimeoutError(report_id, policy.max_attempts, last_status) from None

    status = report.get("processingStatus")
    if status in REPORT_FAILED_STATUSES:
        logger.error(f"[SP-API] Report {report_id} failed with status: {status}")
        raise ReportFailedError(report_id, status)

    document_id = report.get("reportDocumentId")
    if not document_id:
        raise ReportFailedError(report_id, status, f"Report {report_id} is DONE but has no reportDocumentId")
    return client.get_report_document(document_id)
