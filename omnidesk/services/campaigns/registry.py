"""Campaign runs owned by this process."""

import asyncio
from dataclasses import dataclass


@dataclass
class _Run:
    task: asyncio.Task
    cancel_requested: bool = False


class CampaignRunRegistry:
    """Task and cancel flag of every campaign this process is sending."""

    def __init__(self) -> None:
        self._runs: dict[str, _Run] = {}

    def __contains__(self, campaign_id: str) -> bool:
        return campaign_id in self._runs

    def __len__(self) -> int:
        return len(self._runs)

    def register(self, campaign_id: str, task: asyncio.Task) -> None:
        self._runs[campaign_id] = _Run(task=task)

    def discard(self, campaign_id: str) -> None:
        self._runs.pop(campaign_id, None)

    def task(self, campaign_id: str) -> asyncio.Task | None:
        run = self._runs.get(campaign_id)
        return run.task if run else None

    def request_cancel(self, campaign_id: str) -> bool:
        """Flag a local run for cancellation; False if there is none."""
        run = self._runs.get(campaign_id)
        if run is None:
            return False
        run.cancel_requested = True
        return True

    def is_cancel_requested(self, campaign_id: str) -> bool:
        run = self._runs.get(campaign_id)
        return run is not None and run.cancel_requested

    def running(self) -> list[str]:
        return list(self._runs)
