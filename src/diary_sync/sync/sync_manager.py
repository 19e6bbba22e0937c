"""Sync orchestrator for offline-first diary sync.

One cycle runs: register device -> pull server changes -> push queued local
changes -> stamp the last sync time. At most one cycle runs at a time;
triggers that arrive while a cycle is in flight are dropped.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from diary_sync.storage.sqlite_conflicts import ConflictResolution
from diary_sync.storage.sqlite_sync_queue import QueueItem
from diary_sync.sync.connectivity import ConnectivityMonitor, probe_target
from diary_sync.sync.errors import ConflictNotFoundError, NetworkUnavailableError
from diary_sync.sync.events import (
    ConflictDetected,
    ConflictResolved,
    EventBus,
    QueueItemAbandoned,
    SyncStatusChanged,
)
from diary_sync.sync.protocol import (
    DeviceRegistration,
    PushChange,
    PushItemStatus,
    PushResult,
    SyncStatus,
    SyncStatusState,
)
from diary_sync.unified_config import ConnectivityConfig, SyncSettings
from diary_sync.utils.timeutils import utcnow

if TYPE_CHECKING:
    from diary_sync.storage.base import SyncStorage
    from diary_sync.sync.device import DeviceInfo
    from diary_sync.sync.diary_handler import ApplyResult, DiarySyncHandler
    from diary_sync.sync.transport import SyncApiClient

logger = logging.getLogger(__name__)

# Local-store failures while recording one push outcome; logged, never fatal
_BOOKKEEPING_ERRORS = (sqlite3.Error, OSError)


@dataclass(frozen=True)
class PushSummary:
    """Outcome of pushing one batch."""

    sent: int = 0
    succeeded: int = 0
    conflicts: int = 0
    failed: int = 0
    abandoned: int = 0


class SyncManager:
    """Top-level orchestrator for the sync lifecycle.

    Owns the published sync state (status, pending/conflict/abandoned counts,
    last sync time, reachability) and announces changes on an ``EventBus``.

    Usage:
        manager = SyncManager(storage, api, handler, device, settings=settings)
        await manager.load_state()
        status = await manager.force_sync()
    """

    def __init__(
        self,
        storage: SyncStorage,
        api: SyncApiClient,
        handler: DiarySyncHandler,
        device: DeviceInfo,
        *,
        settings: SyncSettings | None = None,
        connectivity: ConnectivityConfig | None = None,
        events: EventBus | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._storage = storage
        self._api = api
        self._handler = handler
        self._device = device
        self._settings = settings or SyncSettings()
        self._connectivity = connectivity
        self._events = events or EventBus()
        self._clock = clock

        self._status = SyncStatusState.idle()
        self._pending_changes_count = 0
        self._conflicts_count = 0
        self._abandoned_count = 0
        self._last_sync_time: datetime | None = None
        self._is_online = True

        self._cycle_task: asyncio.Task[SyncStatusState] | None = None
        self._monitor: ConnectivityMonitor | None = None

        if self._settings.auto_sync:
            handler.set_on_local_change(self.trigger_sync)

    # ========== Published state ==========

    @property
    def status(self) -> SyncStatusState:
        return self._status

    @property
    def pending_changes_count(self) -> int:
        return self._pending_changes_count

    @property
    def conflicts_count(self) -> int:
        return self._conflicts_count

    @property
    def abandoned_count(self) -> int:
        return self._abandoned_count

    @property
    def last_sync_time(self) -> datetime | None:
        return self._last_sync_time

    @property
    def is_online(self) -> bool:
        return self._is_online

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def device(self) -> DeviceInfo:
        return self._device

    @property
    def handler(self) -> DiarySyncHandler:
        return self._handler

    @property
    def storage(self) -> SyncStorage:
        return self._storage

    @property
    def is_syncing(self) -> bool:
        return self._cycle_task is not None and not self._cycle_task.done()

    def _set_status(self, status: SyncStatusState) -> None:
        self._status = status
        self._events.publish(
            SyncStatusChanged(
                status=status,
                pending_changes=self._pending_changes_count,
                conflicts=self._conflicts_count,
            )
        )

    async def load_state(self) -> None:
        """Restore the last sync time and counts from the local store."""
        self._last_sync_time = await self._storage.get_last_sync_time()
        await self.refresh_counts()

    async def refresh_counts(self) -> None:
        self._pending_changes_count = await self._storage.count_pending()
        self._conflicts_count = await self._storage.count_unresolved()
        self._abandoned_count = await self._storage.count_abandoned()

    # ========== Lifecycle ==========

    async def start(self) -> None:
        """Start watching reachability; online transitions trigger a cycle."""
        if self._monitor is not None:
            return
        cfg = self._connectivity
        host, port = probe_target(
            self._api.base_url,
            cfg.probe_host if cfg else "",
            cfg.probe_port if cfg else 0,
        )
        self._monitor = ConnectivityMonitor(
            host,
            port,
            self.set_online,
            check_interval=cfg.check_interval if cfg else 30.0,
            probe_timeout=cfg.probe_timeout if cfg else 5.0,
        )
        self._monitor.start()

    async def stop(self) -> None:
        """Stop the monitor and wait for any in-flight cycle."""
        if self._monitor is not None:
            await self._monitor.stop()
            self._monitor = None
        await self.wait_idle()
        await self._events.drain()

    async def close(self) -> None:
        """Stop, then release the HTTP session and the local store."""
        await self.stop()
        await self._api.disconnect()
        await self._storage.close()

    def set_online(self, online: bool) -> None:
        """Reachability hook: going offline publishes ``offline``,
        coming back online starts a cycle."""
        was_online = self._is_online
        self._is_online = online
        if not online:
            if was_online:
                logger.info("Network unavailable, sync paused")
            self._set_status(SyncStatusState.offline())
        elif not was_online:
            logger.info("Network restored, triggering sync")
            self.trigger_sync()

    # ========== Triggers ==========

    def trigger_sync(self) -> asyncio.Task[SyncStatusState] | None:
        """Start a cycle in the background unless one is already running.

        Returns the cycle task, or None when the trigger was dropped.
        """
        if not self._is_online:
            self._set_status(SyncStatusState.offline())
            return None
        if self.is_syncing or self._status.is_syncing:
            logger.debug("Sync already in progress, trigger ignored")
            return None

        # Claim the syncing state before the task first runs
        self._set_status(SyncStatusState.syncing(0.0, "Starting sync..."))
        task = asyncio.get_running_loop().create_task(self.perform_sync())
        task.add_done_callback(self._on_cycle_done)
        self._cycle_task = task
        return task

    def _on_cycle_done(self, task: asyncio.Task[SyncStatusState]) -> None:
        # A task cancelled before its first step never reaches perform_sync
        if task.cancelled() and self._status.is_syncing:
            self._set_status(SyncStatusState.failed("Sync cancelled"))

    async def force_sync(self, raise_offline: bool = False) -> SyncStatusState:
        """Run a cycle now and wait for it.

        If a cycle is already running, waits for that one instead.

        Raises:
            NetworkUnavailableError: Offline and ``raise_offline`` is set
        """
        if not self._is_online:
            self._set_status(SyncStatusState.offline())
            if raise_offline:
                raise NetworkUnavailableError()
            return self._status

        task = self._cycle_task if self.is_syncing else self.trigger_sync()
        if task is not None:
            await task
        return self._status

    async def wait_idle(self) -> None:
        """Wait for any in-flight background cycle to finish."""
        task = self._cycle_task
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)

    # ========== The cycle ==========

    async def perform_sync(self) -> SyncStatusState:
        """Run one full cycle and return the final status.

        Any error ends the cycle with ``failed``; queue items that were not
        acknowledged stay queued for the next cycle. Cancellation also leaves
        ``failed`` behind before propagating.
        """
        self._set_status(SyncStatusState.syncing(0.0, "Starting sync..."))
        try:
            self._set_status(SyncStatusState.syncing(0.1, "Registering device..."))
            await self.register_device()

            self._set_status(SyncStatusState.syncing(0.3, "Fetching server changes..."))
            await self.pull_changes()

            self._set_status(SyncStatusState.syncing(0.6, "Pushing local changes..."))
            await self.push_changes()

            now = self._clock()
            await self._storage.set_last_sync_time(now)
            self._last_sync_time = now

            self._set_status(SyncStatusState.syncing(1.0, "Sync complete"))
            await self.refresh_counts()

            if self._conflicts_count > 0:
                final = SyncStatusState.conflict(self._conflicts_count)
            else:
                final = SyncStatusState.success(now)
            logger.info(
                "Sync finished: %s (%d pending, %d conflicts)",
                final.kind,
                self._pending_changes_count,
                self._conflicts_count,
            )
        except asyncio.CancelledError:
            logger.info("Sync cancelled")
            self._set_status(SyncStatusState.failed("Sync cancelled"))
            raise
        except Exception as e:
            logger.warning("Sync failed: %s", e, exc_info=True)
            final = SyncStatusState.failed(str(e))
            try:
                await self.refresh_counts()
            except _BOOKKEEPING_ERRORS:
                logger.debug("Could not refresh counts after failed sync", exc_info=True)

        self._set_status(final)
        return final

    async def register_device(self) -> None:
        """Upsert this device with the server; raises on transport failure."""
        registration = DeviceRegistration(
            device_id=self._device.device_id,
            device_name=self._device.device_name,
            device_type=self._device.device_type,
        )
        accepted = await self._api.register_device(registration)
        logger.debug("Device %s registered (accepted=%s)", self._device.device_id, accepted)

    async def pull_changes(self) -> ApplyResult:
        """Fetch and apply server changes since the last successful cycle."""
        changes = await self._api.pull_changes(
            self._last_sync_time,
            entity_type=self._handler.entity_type,
            limit=self._settings.pull_limit,
        )
        return await self._handler.apply_server_changes(changes)

    async def push_changes(self) -> PushSummary:
        """Push the oldest live queue items as one batch."""
        items = await self._storage.dequeue_batch(limit=self._settings.push_batch_size)
        if not items:
            return PushSummary()

        changes = [
            PushChange(
                entity_type=item.entity_type,
                local_id=item.entity_id,
                action=item.action,
                version=item.version,
                data=item.payload,
            )
            for item in items
        ]
        results = await self._api.push_changes(self._device.device_id, changes)
        return await self.process_push_results(items, results)

    async def process_push_results(
        self, items: list[QueueItem], results: list[PushResult]
    ) -> PushSummary:
        """Apply per-item push outcomes, matched to queue items by position.

        Items without a matching result are left queued untouched.
        """
        succeeded = conflicts = failed = abandoned = 0

        for item, result in zip(items, results, strict=False):
            try:
                if result.status == PushItemStatus.SUCCESS:
                    if result.server_id is not None and result.version is not None:
                        await self._handler.mark_pushed(
                            item.entity_id,
                            result.server_id,
                            result.version,
                            pushed_version=item.version,
                        )
                    await self._storage.remove_queue_item(item.id)
                    succeeded += 1

                elif result.status == PushItemStatus.CONFLICT:
                    if result.conflict is not None:
                        await self._record_conflict(item, result)
                    await self._storage.remove_queue_item(item.id)
                    conflicts += 1

                else:
                    retries = await self._storage.increment_retry(
                        item.id,
                        max_retries=self._settings.max_retries,
                        error=result.error or result.status or "error",
                    )
                    failed += 1
                    if retries >= self._settings.max_retries:
                        abandoned += 1
                        logger.warning(
                            "Abandoned %s %s after %d attempts: %s",
                            item.action,
                            item.entity_id,
                            retries,
                            result.error,
                        )
                        self._events.publish(QueueItemAbandoned(item=item))
            except _BOOKKEEPING_ERRORS:
                logger.error(
                    "Failed to record push outcome for %s %s",
                    item.entity_type,
                    item.entity_id,
                    exc_info=True,
                )

        if len(results) < len(items):
            logger.warning("Push returned %d results for %d items", len(results), len(items))

        return PushSummary(
            sent=len(items),
            succeeded=succeeded,
            conflicts=conflicts,
            failed=failed,
            abandoned=abandoned,
        )

    async def _record_conflict(self, item: QueueItem, result: PushResult) -> None:
        assert result.conflict is not None
        info = result.conflict
        record = await self._storage.record_conflict(
            entity_type=item.entity_type,
            entity_id=item.entity_id,
            server_conflict_id=info.conflict_id or result.server_id,
            server_version=info.server_version,
            local_version=info.local_version,
            server_data=info.server_data,
            local_data=await self._handler.local_snapshot(item.entity_id),
        )
        logger.info(
            "Conflict on %s %s (local v%d, server v%d)",
            item.entity_type,
            item.entity_id,
            record.local_version,
            record.server_version,
        )
        self._events.publish(ConflictDetected(conflict=record))

    # ========== Conflicts and maintenance ==========

    async def resolve_conflict(
        self,
        conflict_id: str,
        resolution: ConflictResolution | str,
        merged_data: dict[str, Any] | None = None,
    ) -> None:
        """Send a resolution to the server, then mark the local conflict resolved.

        Raises:
            ConflictNotFoundError: Unknown, already resolved, or no server id
            ServerError: The server rejected the resolution (conflict kept)
        """
        resolution = ConflictResolution(resolution)
        conflict = await self._storage.get_conflict(conflict_id)
        if conflict is None or not conflict.is_open or not conflict.server_conflict_id:
            raise ConflictNotFoundError(conflict_id)

        await self._api.resolve_conflict(conflict.server_conflict_id, resolution, merged_data)

        await self._handler.apply_resolution(conflict, resolution, merged_data)
        await self._storage.mark_conflict_resolved(conflict.id, resolution)
        logger.info("Resolved conflict %s as %s", conflict.id, resolution)

        await self.refresh_counts()
        self._events.publish(ConflictResolved(conflict_id=conflict.id, resolution=resolution))

        if self._status.kind == SyncStatus.CONFLICT:
            if self._conflicts_count > 0:
                self._set_status(SyncStatusState.conflict(self._conflicts_count))
            elif self._last_sync_time is not None:
                self._set_status(SyncStatusState.success(self._last_sync_time))
            else:
                self._set_status(SyncStatusState.idle())

    async def cleanup(self) -> int:
        """Purge acknowledged soft-deletes and resolved conflicts past the retention window.

        Returns the number of diaries purged.
        """
        purged = await self._handler.cleanup_deleted(self._settings.retention_days)
        stale = await self._storage.purge_resolved_conflicts(self._settings.retention_days)
        if stale:
            logger.info("Purged %d resolved conflicts", stale)
        await self.refresh_counts()
        return purged

    async def requeue_abandoned(self, item_ids: list[str] | None = None) -> int:
        """Put abandoned items back on the live queue and start a cycle."""
        count = await self._storage.requeue_abandoned(item_ids)
        await self.refresh_counts()
        if count and self._settings.auto_sync:
            self.trigger_sync()
        return count

    async def discard_abandoned(self, item_ids: list[str] | None = None) -> int:
        count = await self._storage.discard_abandoned(item_ids)
        await self.refresh_counts()
        return count

    async def get_statistics(self) -> dict[str, int]:
        return await self._storage.get_statistics()

    async def reset(self) -> None:
        """Wipe all local data and return to ``idle``."""
        await self.wait_idle()
        await self._storage.reset_all()
        self._last_sync_time = None
        await self.refresh_counts()
        self._set_status(SyncStatusState.idle())
