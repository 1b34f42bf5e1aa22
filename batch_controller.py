#!/usr/bin/env python3
"""
Batch Controller

Paces record set creation and deletion against a hosted zone. Work is split
into change batches no larger than the configured maximum, submitted one at a
time, with a fixed delay between batches (never after the last one).
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from tabulate import tabulate

from zone_directory import (
    ROUTE53_LIMITS, Change, ChangeAction, HostedZone, RecordTemplate,
    ResourceRecordSet, ZoneDirectory,
)


@dataclass
class BatchRecord:
    """One submitted change batch"""
    action: ChangeAction
    size: int
    processed: int
    target: int
    change_id: str
    submitted_at: datetime


class BatchController:
    """Creates or deletes record sets in sequential, throttled batches"""

    def __init__(self, directory: ZoneDirectory, max_batch_size: int, batch_delay: float,
                 sleep: Callable[[float], None] = time.sleep,
                 logger: logging.Logger = None,
                 template: RecordTemplate = None):
        if not 1 <= max_batch_size <= ROUTE53_LIMITS['max_changes_per_batch']:
            raise ValueError(
                f"max_batch_size must be between 1 and "
                f"{ROUTE53_LIMITS['max_changes_per_batch']}, got {max_batch_size}"
            )
        if batch_delay < 0:
            raise ValueError(f"batch_delay must not be negative, got {batch_delay}")
        self.directory = directory
        self.max_batch_size = max_batch_size
        self.batch_delay = batch_delay
        self.sleep = sleep
        self.logger = logger or logging.getLogger('floodzone.batch_controller')
        self.template = template or RecordTemplate()
        self.history: List[BatchRecord] = []

    def create_record_sets(self, zone: HostedZone, current_count: int, desired_count: int) -> int:
        """
        Create record sets until the zone holds desired_count of them.

        Returns the record set count reached. A failed batch raises and ends
        the run; batches already submitted stay applied.
        """
        if current_count >= desired_count:
            self.logger.info(f"{zone.zone_id} already holds {current_count} record sets "
                             f"(desired {desired_count}), nothing to create")
            return current_count

        while current_count < desired_count:
            batch_size = min(self.max_batch_size, desired_count - current_count)
            changes = [Change(ChangeAction.CREATE, self.template.build(zone.name))
                       for _ in range(batch_size)]
            change_id = self.directory.mutate_records(zone.zone_id, changes)
            current_count += batch_size
            self._record(ChangeAction.CREATE, batch_size, current_count, desired_count, change_id)
            self.logger.info(f"Executed batch of {batch_size} Create Resource Record Sets on "
                             f"{zone.zone_id}. {current_count}/{desired_count} - "
                             f"Sleeping for {self.batch_delay}s")
            if current_count != desired_count:
                self.sleep(self.batch_delay)
        return current_count

    def delete_record_sets(self, zone: HostedZone, desired_deletions: int) -> int:
        """
        Delete up to desired_deletions record sets, never SOA or NS.

        Returns how many deletable record sets are left in the zone, so the
        caller can decide whether the zone itself can go.
        """
        snapshot = self.list_record_sets(zone)
        eligible = len(snapshot)
        target = min(desired_deletions, eligible)
        self.logger.info(f"Found {eligible} deletable record sets in {zone.zone_id}, "
                         f"deleting {target}")

        deleted = 0
        while deleted < target:
            batch = snapshot[deleted:deleted + min(self.max_batch_size, target - deleted)]
            changes = [Change(ChangeAction.DELETE, record) for record in batch]
            change_id = self.directory.mutate_records(zone.zone_id, changes)
            deleted += len(batch)
            self._record(ChangeAction.DELETE, len(batch), deleted, target, change_id)
            self.logger.info(f"Executed batch of {len(batch)} Delete Resource Record Sets on "
                             f"{zone.zone_id}. {deleted}/{target} - "
                             f"Sleeping for {self.batch_delay}s")
            if deleted != target:
                self.sleep(self.batch_delay)
        return eligible - deleted

    def list_record_sets(self, zone: HostedZone) -> Tuple[ResourceRecordSet, ...]:
        """Return every record set in the zone except the bookkeeping ones"""
        records: List[ResourceRecordSet] = []
        cursor = None
        while True:
            page = self.directory.list_records(zone.zone_id, self.max_batch_size, cursor)
            records.extend(r for r in page.records if not r.is_bookkeeping)
            if not page.more:
                break
            cursor = page.next_cursor
        self.logger.debug(f"Listed {len(records)} deletable record sets in {zone.zone_id}")
        return tuple(records)

    def _record(self, action: ChangeAction, size: int, processed: int, target: int,
                change_id: str) -> None:
        self.history.append(BatchRecord(
            action=action,
            size=size,
            processed=processed,
            target=target,
            change_id=change_id,
            submitted_at=datetime.now(),
        ))

    def summary_table(self, tablefmt: str = "github") -> Optional[str]:
        """Render submitted batches as a table, or None when nothing ran"""
        if not self.history:
            return None
        rows = [
            [i, b.action.value, b.size, f"{b.processed}/{b.target}", b.change_id,
             b.submitted_at.strftime('%H:%M:%S')]
            for i, b in enumerate(self.history, 1)
        ]
        headers = ["Batch", "Action", "Size", "Progress", "Change ID", "Submitted"]
        return tabulate(rows, headers=headers, tablefmt=tablefmt)
