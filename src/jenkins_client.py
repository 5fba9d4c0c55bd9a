"""Jenkins API client for triggering parameterized builds."""

import logging
from dataclasses import dataclass
from enum import Enum

import httpx

logger = logging.getLogger(__name__)

_SUCCESS_CODES = frozenset({200, 201, 202})


class TriggerStatus(Enum):
    """Possible outcomes of a build trigger."""

    SUCCESS = "success"
    HTTP_ERROR = "http_error"
    TRANSPORT_ERROR = "transport_error"


@dataclass
class BuildTriggerResult:
    """Result returned after a build trigger attempt."""

    status: TriggerStatus
    message: str
    status_code: int | None = None
    body: str = ""


def build_trigger_url(jenkins_url: str, job_name: str) -> str:
    """Return the buildWithParameters URL for a job."""
    return f"{jenkins_url.rstrip('/')}/job/{job_name}/buildWithParameters"


async def trigger_build(
    jenkins_url: str,
    job_name: str,
    username: str,
    api_token: str,
    chat_id: int,
    bot_token: str | None = None,
) -> BuildTriggerResult:
    """Queue a build of a Jenkins job, passing the originating chat ID.

    Returns a BuildTriggerResult describing the outcome. Never raises; all
    transport and HTTP errors are captured and surfaced via the result.
    """
    url = build_trigger_url(jenkins_url, job_name)
    params: dict[str, str | int] = {"TELEGRAM_CHAT_ID": chat_id}
    if bot_token:
        params["BOT_TOKEN"] = bot_token

    try:
        async with httpx.AsyncClient(auth=(username, api_token)) as client:
            response = await client.post(url, params=params)
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        logger.error("Failed to reach Jenkins at %s: %s", url, exc)
        return BuildTriggerResult(
            status=TriggerStatus.TRANSPORT_ERROR,
            message=str(exc) or exc.__class__.__name__,
        )

    return _parse_trigger_response(response, job_name)


def _parse_trigger_response(response: httpx.Response, job_name: str) -> BuildTriggerResult:
    """Map a Jenkins buildWithParameters response to a BuildTriggerResult."""
    if response.status_code in _SUCCESS_CODES:
        return BuildTriggerResult(
            status=TriggerStatus.SUCCESS,
            message=f"Job {job_name} queued.",
            status_code=response.status_code,
        )

    return BuildTriggerResult(
        status=TriggerStatus.HTTP_ERROR,
        message=f"Jenkins returned HTTP {response.status_code} for job {job_name}.",
        status_code=response.status_code,
        body=response.text,
    )
