"""
Discord webhook notifications for job transitions.

Each notification is a rich embed with the job id, the currently deployed
commit hashes, the time, and the other jobs in progress. Which jobs are in
progress is read from the active job registry when ``notify_job`` is
called; everything else is assembled and delivered in the background.
"""

from __future__ import annotations

import asyncio
import json
import re
import time
from dataclasses import dataclass
from email.utils import formatdate
from enum import IntEnum
from typing import Any, Callable

import aiohttp

from ..config import DiscordConfig, EnvType
from ..jobs.types import DeployComponent, DeployParams, JobStage, JobState, JobType
from ..logging import StructuredLogger, get_logger
from ..registry import ActiveJobRegistry
from ..store import JobDatabase
from .base import NotificationDispatcher

SERVICE_NAME = "cd-manager"
ORG_NAME = "3Box Labs"
GITHUB_ORG = "ceramicnetwork"

COMMIT_HASH_RE = re.compile(r"^[0-9a-f]{40}$")

COMPONENT_REPOS = {
    DeployComponent.CERAMIC: "js-ceramic",
    DeployComponent.CAS: "ceramic-anchor-service",
    DeployComponent.IPFS: "go-ipfs-daemon",
}

FIELD_JOB_ID = "Job ID"
FIELD_COMMIT_HASHES = "Commit Hashes"
FIELD_TIME = "Time"

ACTIVE_FIELD_NAMES = {
    JobType.DEPLOY: "Deployments in progress:",
    JobType.ANCHOR: "Anchors in progress:",
    JobType.TEST_E2E: "E2E tests in progress:",
    JobType.TEST_SMOKE: "Smoke tests in progress:",
}


class DiscordColor(IntEnum):
    NONE = 0
    INFO = 3447003
    OK = 3581519
    WARNING = 16776960
    ALERT = 16711712


STAGE_COLORS = {
    JobStage.QUEUED: DiscordColor.INFO,
    JobStage.DEQUEUED: DiscordColor.INFO,
    JobStage.SKIPPED: DiscordColor.WARNING,
    JobStage.STARTED: DiscordColor.NONE,
    JobStage.WAITING: DiscordColor.INFO,
    JobStage.DELAYED: DiscordColor.WARNING,
    JobStage.FAILED: DiscordColor.ALERT,
    JobStage.CANCELED: DiscordColor.WARNING,
    JobStage.COMPLETED: DiscordColor.OK,
}


@dataclass(frozen=True)
class EmbedField:
    name: str
    value: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "value": self.value}


def build_payload(title: str, fields: list[EmbedField], color: DiscordColor) -> dict[str, Any]:
    """Webhook message body with a single rich embed."""
    return {
        "username": SERVICE_NAME,
        "embeds": [{
            "title": title,
            "type": "rich",
            "fields": [f.to_dict() for f in fields],
            "color": int(color),
        }],
    }


class DiscordNotifier(NotificationDispatcher):
    """Posts job notifications to Discord webhooks.

    Routing:
    - deploy jobs go to the deployments channel, and to the community
      channel outside dev/qa
    - every job goes to the test channel
    """

    def __init__(
        self,
        db: JobDatabase,
        registry: ActiveJobRegistry,
        config: DiscordConfig,
        env: EnvType,
        *,
        clock: Callable[[], float] = time.time,
        logger: StructuredLogger | None = None,
    ):
        self._db = db
        self._registry = registry
        self._config = config
        self._env = env
        self._clock = clock
        self._logger = logger or get_logger()

        self._session: aiohttp.ClientSession | None = None
        self._send_lock = asyncio.Lock()
        self._pending: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Message content
    # ------------------------------------------------------------------

    def channels_for(self, job: JobState) -> list[str]:
        channels: list[str | None] = []
        if job.type == JobType.DEPLOY:
            channels.append(self._config.deployments_webhook)
            # Don't send dev/qa notifications to the community channel
            if self._env not in (EnvType.DEV, EnvType.QA):
                channels.append(self._config.community_webhook)
        channels.append(self._config.test_webhook)
        return [c for c in channels if c]

    def title_for(self, job: JobState) -> str:
        prefix = ""
        if isinstance(job.params, DeployParams):
            prefix = f"{ORG_NAME} `{self._env.display_name}` {job.params.component.value.upper()} "
        name = job.type.display_name
        if job.manual:
            name = f"manual {name}"
        return f"{prefix}{name} {job.stage.value.upper()}"

    def color_for(self, job: JobState) -> DiscordColor:
        return STAGE_COLORS.get(job.stage, DiscordColor.ALERT)

    def active_job_fields(self, job: JobState) -> list[EmbedField]:
        """One field per job type listing the other jobs in progress."""
        fields = []
        for job_type in JobType:
            active = self._registry.active_jobs(job_type=job_type, exclude_id=job.id)
            if active:
                value = "".join(f"{js.id} ({js.stage.value})\n" for js in sorted(active, key=lambda js: js.ts))
                fields.append(EmbedField(ACTIVE_FIELD_NAMES[job_type], value))
        return fields

    async def commit_hashes_field(self, job: JobState) -> EmbedField | None:
        try:
            hashes = await self._db.get_deploy_hashes()
        except Exception as e:
            self._logger.warning(f"Could not load deploy hashes: {e}", job_id=job.id)
            return None
        if isinstance(job.params, DeployParams) and COMMIT_HASH_RE.match(job.params.sha):
            # The hash being deployed supersedes the stored one
            hashes[job.params.component] = job.params.sha
        lines = []
        for component, repo in COMPONENT_REPOS.items():
            sha = hashes.get(component)
            if sha:
                lines.append(f"[{repo} ({sha[:12]})](https://github.com/{GITHUB_ORG}/{repo}/commit/{sha})")
        if not lines:
            return None
        return EmbedField(FIELD_COMMIT_HASHES, "\n".join(lines))

    async def build_fields(self, job: JobState, sent_at: float, active: list[EmbedField]) -> list[EmbedField]:
        fields = [EmbedField(FIELD_JOB_ID, job.id)]
        if hashes := await self.commit_hashes_field(job):
            fields.append(hashes)
        fields.append(EmbedField(FIELD_TIME, formatdate(sent_at, usegmt=True)))
        fields.extend(active)
        return fields

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def notify_job(self, *jobs: JobState) -> None:
        loop = asyncio.get_running_loop()
        for job in jobs:
            channels = self.channels_for(job)
            if not channels:
                continue
            # Snapshot now so the message reflects the moment of the transition
            active = self.active_job_fields(job)
            task = loop.create_task(self._deliver(job, self._clock(), active, channels))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(
        self,
        job: JobState,
        sent_at: float,
        active: list[EmbedField],
        channels: list[str],
    ) -> None:
        try:
            fields = await self.build_fields(job, sent_at, active)
            payload = build_payload(self.title_for(job), fields, self.color_for(job))
            for url in channels:
                async with self._send_lock:
                    await self._post(url, payload)
                    await asyncio.sleep(self._config.pacing_seconds)
        except Exception as e:
            self._logger.log_error(e, f"Error sending discord notification for job {job.id}: {e}")

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def _post(self, url: str, payload: dict[str, Any]) -> bool:
        """Send one webhook message with retries. Returns True on success."""
        session = await self._get_session()
        body = json.dumps(payload)

        last_error = None
        for attempt in range(self._config.max_retries):
            try:
                async with session.post(
                    url,
                    data=body,
                    headers={"Content-Type": "application/json"},
                    timeout=aiohttp.ClientTimeout(total=self._config.timeout_seconds),
                ) as response:
                    if response.status < 400:
                        return True
                    last_error = f"HTTP {response.status}"
                    if response.status == 429:
                        retry_after = (await response.json(content_type=None) or {}).get("retry_after", 1.0)
                        await asyncio.sleep(float(retry_after))
                        continue
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = str(e)

            if attempt < self._config.max_retries - 1:
                await asyncio.sleep(2 ** attempt)

        self._logger.warning(
            f"Discord delivery failed after {self._config.max_retries} attempts: {last_error}",
            title=payload["embeds"][0]["title"],
        )
        return False

    async def aclose(self) -> None:
        """Wait for pending notifications, then close the HTTP session."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        if self._session and not self._session.closed:
            await self._session.close()


__all__ = [
    "DiscordNotifier",
    "DiscordColor",
    "EmbedField",
    "build_payload",
]
