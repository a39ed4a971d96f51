"""Campaign dispatcher - batched, rate-limited broadcast of campaign messages."""

import asyncio
from datetime import datetime
from typing import Any

import structlog

from omnidesk.core.config import settings
from omnidesk.core.exceptions import (
    AppException,
    CampaignStateError,
    InvalidRecipientsError,
    NotFoundError,
    RateLimitExceededError,
    ValidationError,
)
from omnidesk.core.locks import KeyedLock
from omnidesk.models import (
    Campaign,
    CampaignError,
    CampaignRecipient,
    CampaignResults,
    CampaignStatus,
    ChannelType,
    ConversationStatus,
    DeliveryStatus,
)
from omnidesk.models.common import ensure_utc, utcnow
from omnidesk.services.campaigns.registry import CampaignRunRegistry
from omnidesk.services.contacts import ContactHints, ContactResolver
from omnidesk.services.contacts.phone import format_brazilian_phone, is_valid_brazilian_phone
from omnidesk.services.conversation.lifecycle import ConversationLifecycleManager
from omnidesk.services.messaging.outbound import OutboundMessenger
from omnidesk.services.realtime.notifier import RealtimeEvent, RealtimeNotifier
from omnidesk.services.scheduling.scheduler import Clock, Scheduler, SystemClock
from omnidesk.storage.base import StorageBackend

logger = structlog.get_logger()


class _Placeholders(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def render_template(template: str, recipient: CampaignRecipient) -> str:
    """Fill ``{name}`` and ``{phone}``; unknown or malformed placeholders stay as written."""
    values = _Placeholders(name=recipient.name or "", phone=recipient.phone)
    try:
        return template.format_map(values)
    except (ValueError, IndexError, AttributeError, KeyError):
        return template


def campaign_payload(campaign: Campaign, **extra: Any) -> dict[str, Any]:
    return {"campaign_id": campaign.id, "name": campaign.name, "status": campaign.status.value, **extra}


def progress(results: CampaignResults) -> dict[str, int]:
    total = results.total
    return {
        "sent": results.sent,
        "failed": results.failed,
        "processed": results.processed,
        "total": total,
        "percentage": round(results.sent / total * 100) if total else 0,
    }


class CampaignDispatcher:
    """Creates, starts, cancels and runs campaigns.

    A run sends to recipients in fixed-size batches, sequentially inside a
    batch with a short pause between messages and a longer pause between
    batches. Progress is persisted and announced once per batch. Cancellation
    takes effect at the next batch boundary.
    """

    def __init__(
        self,
        storage: StorageBackend,
        resolver: ContactResolver,
        lifecycle: ConversationLifecycleManager,
        messenger: OutboundMessenger,
        notifier: RealtimeNotifier,
        registry: CampaignRunRegistry | None = None,
        clock: Clock | None = None,
        batch_size: int | None = None,
        message_delay: float | None = None,
        batch_delay: float | None = None,
        rate_limit_backoff: float | None = None,
    ) -> None:
        self.storage = storage
        self.resolver = resolver
        self.lifecycle = lifecycle
        self.messenger = messenger
        self.notifier = notifier
        self.registry = registry if registry is not None else CampaignRunRegistry()
        self.clock = clock or SystemClock()
        self.batch_size = batch_size or settings.campaign_batch_size
        self.message_delay = (
            message_delay if message_delay is not None else settings.campaign_message_delay_seconds
        )
        self.batch_delay = batch_delay if batch_delay is not None else settings.campaign_batch_delay_seconds
        self.rate_limit_backoff = rate_limit_backoff or settings.campaign_rate_limit_backoff
        self._start_locks = KeyedLock("campaign-start")

    # ==================== Lifecycle ====================

    async def get(self, campaign_id: str, company_id: str | None = None) -> Campaign:
        campaign = await self.storage.get_campaign(campaign_id)
        if campaign is None or (company_id is not None and campaign.company_id != company_id):
            raise NotFoundError("Campaign", campaign_id)
        return campaign

    async def create(
        self,
        company_id: str,
        name: str,
        content: str,
        recipients: list[CampaignRecipient],
        *,
        scheduled_at: datetime | None = None,
        channel: ChannelType = ChannelType.WHATSAPP,
        created_by: str | None = None,
        start_immediately: bool = False,
    ) -> Campaign:
        """Create a campaign after validating its recipients.

        Phones are stored as full international numbers. A future
        ``scheduled_at`` makes the campaign SCHEDULED; otherwise it is a DRAFT,
        started right away when ``start_immediately`` is set.

        Raises:
            ValidationError: Empty name, content or recipient list
            InvalidRecipientsError: Some phone numbers are not valid
        """
        if not name.strip() or not content.strip():
            raise ValidationError("Campaign name and content are required")
        if not recipients:
            raise ValidationError("A campaign needs at least one recipient")

        valid: list[CampaignRecipient] = []
        invalid: list[str] = []
        for recipient in recipients:
            if is_valid_brazilian_phone(recipient.phone):
                valid.append(
                    CampaignRecipient(phone=format_brazilian_phone(recipient.phone), name=recipient.name)
                )
            else:
                invalid.append(recipient.phone)
        if invalid:
            raise InvalidRecipientsError(invalid)

        scheduled_at = ensure_utc(scheduled_at)
        is_scheduled = scheduled_at is not None and scheduled_at > self.clock.now()

        campaign = Campaign(
            company_id=company_id,
            name=name.strip(),
            content=content,
            channel=channel,
            recipients=valid,
            status=CampaignStatus.SCHEDULED if is_scheduled else CampaignStatus.DRAFT,
            results=CampaignResults(total=len(valid)),
            scheduled_at=scheduled_at,
            created_by=created_by,
        )
        campaign = await self.storage.save_campaign(campaign)
        logger.info(
            "Campaign created",
            campaign_id=campaign.id,
            company_id=company_id,
            recipients=len(valid),
            status=campaign.status.value,
        )

        if start_immediately and not is_scheduled:
            await self.start(campaign.id)
            campaign = await self.get(campaign.id)
        return campaign

    async def start(self, campaign_id: str, company_id: str | None = None) -> asyncio.Task:
        """Move a DRAFT or SCHEDULED campaign to SENDING and spawn its run.

        Returns immediately with the run task.

        Raises:
            NotFoundError: Unknown campaign
            CampaignStateError: Already sending, or in a terminal status
            ChannelNotConnectedError: No connected account on the campaign channel
        """
        async with self._start_locks.acquire(campaign_id):
            campaign = await self.get(campaign_id, company_id)
            if campaign.status not in (CampaignStatus.DRAFT, CampaignStatus.SCHEDULED) or (
                campaign_id in self.registry
            ):
                raise CampaignStateError(campaign_id, campaign.status.value, "start")

            await self.messenger.channel_account(campaign.company_id, campaign.channel)

            now = self.clock.now()
            campaign.status = CampaignStatus.SENDING
            campaign.started_at = now
            campaign.updated_at = now
            campaign.results = CampaignResults(total=len(campaign.recipients))
            campaign = await self.storage.save_campaign(campaign)

            task = asyncio.create_task(self._run(campaign), name=f"campaign-{campaign_id}")
            self.registry.register(campaign_id, task)

        logger.info("Campaign started", campaign_id=campaign_id, recipients=len(campaign.recipients))
        await self.notifier.to_company(
            campaign.company_id,
            RealtimeEvent.CAMPAIGN_STARTED,
            campaign_payload(campaign, recipient_count=len(campaign.recipients)),
        )
        return task

    async def cancel(self, campaign_id: str, company_id: str | None = None) -> Campaign:
        """Stop a SENDING campaign.

        A run in this process stops at its next batch boundary and marks the
        campaign CANCELLED itself; a campaign without a local run is marked
        CANCELLED here.

        Raises:
            CampaignStateError: If the campaign isn't SENDING
        """
        campaign = await self.get(campaign_id, company_id)
        if campaign.status != CampaignStatus.SENDING:
            raise CampaignStateError(campaign_id, campaign.status.value, "cancel")

        if self.registry.request_cancel(campaign_id):
            logger.info("Campaign cancellation requested", campaign_id=campaign_id)
            return campaign

        return await self._finish(campaign, CampaignStatus.CANCELLED, RealtimeEvent.CAMPAIGN_CANCELLED)

    async def start_due(self, now: datetime | None = None) -> list[str]:
        """Start every SCHEDULED campaign whose time has come."""
        now = ensure_utc(now) if now else self.clock.now()
        started: list[str] = []
        for campaign in await self.storage.list_due_campaigns(now):
            try:
                await self.start(campaign.id)
            except AppException as e:
                logger.warning(
                    "Scheduled campaign could not start",
                    campaign_id=campaign.id,
                    error=e.message,
                    code=e.code,
                )
                continue
            started.append(campaign.id)
        return started

    def register_sweep(self, scheduler: Scheduler, interval: float | None = None) -> None:
        scheduler.schedule_every(
            interval or settings.campaign_sweep_interval_seconds,
            self._sweep,
            name="campaign-sweep",
        )

    async def _sweep(self) -> None:
        await self.start_due()

    async def wait(self, campaign_id: str) -> None:
        """Wait for a local run to finish; returns at once if there is none."""
        task = self.registry.task(campaign_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel local runs; their campaigns stay SENDING."""
        tasks = [t for t in (self.registry.task(c) for c in self.registry.running()) if t]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ==================== Run ====================

    async def _run(self, campaign: Campaign) -> None:
        try:
            await self._process(campaign)
        except asyncio.CancelledError:
            logger.warning("Campaign run interrupted", campaign_id=campaign.id)
            raise
        except Exception as e:
            logger.error("Campaign run failed", campaign_id=campaign.id, error=str(e), exc_info=True)
            campaign.results.errors.append(CampaignError(phone="", error=str(e), code="RUN_FAILED"))
            try:
                await self._finish(campaign, CampaignStatus.FAILED, RealtimeEvent.CAMPAIGN_FAILED)
            except Exception as save_error:
                logger.error(
                    "Could not mark campaign failed",
                    campaign_id=campaign.id,
                    error=str(save_error),
                )
        finally:
            self.registry.discard(campaign.id)

    async def _process(self, campaign: Campaign) -> None:
        recipients = campaign.recipients
        results = campaign.results
        total = len(recipients)

        for offset in range(0, total, self.batch_size):
            batch = recipients[offset:offset + self.batch_size]
            rate_limited = False

            for index, recipient in enumerate(batch):
                if index:
                    await self.clock.sleep(self.message_delay)
                rate_limited = await self._send_one(campaign, recipient, results) or rate_limited

            campaign.results = results
            campaign.updated_at = self.clock.now()
            await self.storage.save_campaign(campaign)
            await self.notifier.to_company(
                campaign.company_id,
                RealtimeEvent.CAMPAIGN_PROGRESS,
                campaign_payload(campaign, progress=progress(results)),
            )
            logger.info(
                "Campaign batch processed",
                campaign_id=campaign.id,
                processed=results.processed,
                total=total,
            )

            if offset + self.batch_size >= total:
                break
            if self.registry.is_cancel_requested(campaign.id):
                await self._finish(campaign, CampaignStatus.CANCELLED, RealtimeEvent.CAMPAIGN_CANCELLED)
                return

            delay = self.batch_delay * (self.rate_limit_backoff if rate_limited else 1)
            await self.clock.sleep(delay)

            if self.registry.is_cancel_requested(campaign.id):
                await self._finish(campaign, CampaignStatus.CANCELLED, RealtimeEvent.CAMPAIGN_CANCELLED)
                return

        await self._finish(campaign, CampaignStatus.SENT, RealtimeEvent.CAMPAIGN_COMPLETED)

    async def _send_one(
        self,
        campaign: Campaign,
        recipient: CampaignRecipient,
        results: CampaignResults,
    ) -> bool:
        """Send to one recipient and count it. Returns True if the channel throttled us."""
        try:
            contact = await self.resolver.resolve(
                campaign.channel, recipient.phone, ContactHints(name=recipient.name)
            )
            conversation = await self.lifecycle.find_or_create_active(
                contact.id, campaign.company_id, campaign.channel, ConversationStatus.OPEN
            )
            message = await self.messenger.deliver(
                conversation,
                render_template(campaign.content, recipient),
                campaign_id=campaign.id,
                channel=campaign.channel,
                raise_errors=True,
            )
        except RateLimitExceededError as e:
            results.failed += 1
            results.errors.append(CampaignError(phone=recipient.phone, error=e.message, code=e.code))
            return True
        except AppException as e:
            results.failed += 1
            results.errors.append(CampaignError(phone=recipient.phone, error=e.message, code=e.code))
            return False
        except Exception as e:
            logger.error(
                "Campaign send failed unexpectedly",
                campaign_id=campaign.id,
                phone=recipient.phone,
                error=str(e),
                exc_info=True,
            )
            results.failed += 1
            results.errors.append(CampaignError(phone=recipient.phone, error=str(e)))
            return False

        if message.status == DeliveryStatus.FAILED:
            results.failed += 1
            results.errors.append(
                CampaignError(phone=recipient.phone, error=message.failure_reason or "Send failed")
            )
        else:
            results.sent += 1
            if message.status == DeliveryStatus.DELIVERED:
                results.delivered += 1
        return False

    async def _finish(self, campaign: Campaign, status: CampaignStatus, event: RealtimeEvent) -> Campaign:
        now = self.clock.now()
        campaign.status = status
        campaign.completed_at = now
        campaign.updated_at = now
        campaign = await self.storage.save_campaign(campaign)
        logger.info(
            "Campaign finished",
            campaign_id=campaign.id,
            status=status.value,
            sent=campaign.results.sent,
            failed=campaign.results.failed,
        )
        await self.notifier.to_company(
            campaign.company_id,
            event,
            campaign_payload(campaign, results=campaign.results.model_dump(mode="json")),
        )
        return campaign
