#!/usr/bin/env python3
"""
Route 53 Zone Directory

Thin adapter over the Route 53 API used by floodzone. It creates, describes,
lists, mutates and deletes private hosted zones and their record sets, and
converts API payloads into small dataclasses the batch controller works with.

Dependencies:
  pip install boto3 dnspython
"""

import logging
import time
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import boto3
import dns.exception
import dns.name
from botocore.exceptions import BotoCoreError, ClientError

# Record types Route 53 creates and manages for every hosted zone
BOOKKEEPING_RECORD_TYPES = {'SOA', 'NS'}

# Route 53 limits relevant to flooding a zone
ROUTE53_LIMITS = {
    'max_changes_per_batch': 1000,
    'max_record_sets': 10000,
    'max_ttl': 2147483647,
}

ZONE_NAME_PREFIX = 'floodzone-test'
ZONE_NAME_SUFFIX = 'aws'

# Fields of a ResourceRecordSet payload that map onto dataclass attributes
_CORE_RECORD_FIELDS = {'Name', 'Type', 'TTL', 'ResourceRecords'}


class ZoneDirectoryError(RuntimeError):
    """Raised when a Route 53 call fails"""

    def __init__(self, operation: str, message: str):
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation


class RecordTemplateError(ValueError):
    """Raised when a record name cannot be built under a zone"""


class ChangeAction(Enum):
    """Record set mutation actions"""
    CREATE = "CREATE"
    DELETE = "DELETE"


@dataclass
class HostedZone:
    """A hosted zone as described by Route 53"""
    zone_id: str
    name: str
    record_set_count: int
    private_zone: bool
    vpc_ids: List[str] = field(default_factory=list)
    comment: Optional[str] = None
    caller_reference: Optional[str] = None

    @classmethod
    def from_api(cls, response: Dict[str, Any]) -> 'HostedZone':
        zone = response['HostedZone']
        config = zone.get('Config', {})
        return cls(
            zone_id=strip_zone_prefix(zone['Id']),
            name=zone['Name'],
            record_set_count=int(zone.get('ResourceRecordSetCount', 0)),
            private_zone=bool(config.get('PrivateZone', False)),
            vpc_ids=[vpc['VPCId'] for vpc in response.get('VPCs', [])],
            comment=config.get('Comment'),
            caller_reference=zone.get('CallerReference'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ResourceRecordSet:
    """
    A single record set. Fields the tool does not model (alias targets,
    routing policy identifiers, health checks) are kept in ``attributes`` so
    a fetched record set can be echoed back unchanged in a DELETE.
    """
    name: str
    record_type: str
    ttl: Optional[int] = None
    values: List[str] = field(default_factory=list)
    attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_bookkeeping(self) -> bool:
        return self.record_type in BOOKKEEPING_RECORD_TYPES

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> 'ResourceRecordSet':
        return cls(
            name=payload['Name'],
            record_type=payload['Type'],
            ttl=payload.get('TTL'),
            values=[r['Value'] for r in payload.get('ResourceRecords', [])],
            attributes={k: v for k, v in payload.items() if k not in _CORE_RECORD_FIELDS},
        )

    def to_api(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {'Name': self.name, 'Type': self.record_type}
        if self.ttl is not None:
            payload['TTL'] = self.ttl
        if self.values:
            payload['ResourceRecords'] = [{'Value': v} for v in self.values]
        payload.update(self.attributes)
        return payload


@dataclass
class Change:
    """One mutation inside a change batch"""
    action: ChangeAction
    record_set: ResourceRecordSet

    def to_api(self) -> Dict[str, Any]:
        return {'Action': self.action.value, 'ResourceRecordSet': self.record_set.to_api()}


@dataclass(frozen=True)
class ListCursor:
    """Continuation point for ListResourceRecordSets"""
    record_name: str
    record_type: str
    record_identifier: Optional[str] = None


@dataclass
class RecordPage:
    """One page of a record set listing"""
    records: List[ResourceRecordSet]
    next_cursor: Optional[ListCursor] = None
    more: bool = False


@dataclass
class RecordTemplate:
    """The fixed record every created record set is stamped from"""
    record_type: str = 'A'
    ttl: int = 300
    value: str = '127.0.0.1'

    def build(self, zone_name: str) -> ResourceRecordSet:
        """Build a record set with a unique label under the zone"""
        try:
            origin = dns.name.from_text(zone_name)
            name = dns.name.from_text(str(uuid.uuid4()), origin=origin)
        except dns.exception.DNSException as e:
            raise RecordTemplateError(f"Cannot build a record name under {zone_name}: {e}") from e
        return ResourceRecordSet(
            name=name.to_text(),
            record_type=self.record_type,
            ttl=self.ttl,
            values=[self.value],
        )


def strip_zone_prefix(zone_id: str) -> str:
    """Route 53 returns ids as /hostedzone/<id>; callers pass the bare id"""
    return zone_id.split('/')[-1]


def build_route53_client(region: Optional[str] = None,
                         endpoint: Optional[str] = None) -> Tuple[Any, Optional[str]]:
    """
    Build an explicit Route 53 client and return it with the resolved region.

    A malformed endpoint raises ValueError; profile and credential setup
    problems raise ZoneDirectoryError.
    """
    try:
        session = boto3.session.Session(region_name=region) if region else boto3.session.Session()
        client = session.client('route53', endpoint_url=endpoint) if endpoint else session.client('route53')
        return client, region or session.region_name
    except BotoCoreError as e:
        raise ZoneDirectoryError('build_client', str(e)) from e


class ZoneDirectory:
    """Route 53 operations used by the batch controller and the CLI"""

    def __init__(self, client, logger: logging.Logger = None):
        self.client = client
        self.logger = logger or logging.getLogger('floodzone.zone_directory')

    def _call(self, operation: str, **kwargs) -> Dict[str, Any]:
        self.logger.debug(f"Calling {operation}")
        try:
            return getattr(self.client, operation)(**kwargs)
        except ClientError as e:
            error = e.response.get('Error', {})
            message = f"{error.get('Code', 'Unknown')}: {error.get('Message', str(e))}"
            raise ZoneDirectoryError(operation, message) from e
        except BotoCoreError as e:
            raise ZoneDirectoryError(operation, str(e)) from e

    def create_zone(self, vpc_id: str, region: str) -> str:
        """Create a private hosted zone with a unique name and return its id"""
        now = datetime.now(timezone.utc)
        name = f"{ZONE_NAME_PREFIX}-{uuid.uuid4()}.{ZONE_NAME_SUFFIX}"
        response = self._call(
            'create_hosted_zone',
            Name=name,
            CallerReference=str(int(time.time())),
            HostedZoneConfig={
                'PrivateZone': True,
                'Comment': f"Created by floodzone at {now.strftime('%Y-%m-%d %H:%M:%S UTC')}",
            },
            VPC={'VPCId': vpc_id, 'VPCRegion': region},
        )
        zone_id = strip_zone_prefix(response['HostedZone']['Id'])
        self.logger.info(f"Created private hosted zone {zone_id} ({name}) in {region} for {vpc_id}")
        return zone_id

    def describe_zone(self, zone_id: str) -> HostedZone:
        return HostedZone.from_api(self._call('get_hosted_zone', Id=zone_id))

    def list_records(self, zone_id: str, page_size: int,
                     cursor: Optional[ListCursor] = None) -> RecordPage:
        """Fetch one page of record sets starting at the cursor"""
        kwargs: Dict[str, Any] = {'HostedZoneId': zone_id, 'MaxItems': str(page_size)}
        if cursor is not None:
            kwargs['StartRecordName'] = cursor.record_name
            kwargs['StartRecordType'] = cursor.record_type
            if cursor.record_identifier:
                kwargs['StartRecordIdentifier'] = cursor.record_identifier

        response = self._call('list_resource_record_sets', **kwargs)
        records = [ResourceRecordSet.from_api(r) for r in response.get('ResourceRecordSets', [])]
        more = bool(response.get('IsTruncated', False))
        next_cursor = None
        if more:
            next_cursor = ListCursor(
                record_name=response['NextRecordName'],
                record_type=response['NextRecordType'],
                record_identifier=response.get('NextRecordIdentifier'),
            )
        return RecordPage(records=records, next_cursor=next_cursor, more=more)

    def mutate_records(self, zone_id: str, changes: List[Change]) -> str:
        """Submit one all-or-nothing change batch and return the change id"""
        response = self._call(
            'change_resource_record_sets',
            HostedZoneId=zone_id,
            ChangeBatch={'Changes': [change.to_api() for change in changes]},
        )
        return response['ChangeInfo']['Id']

    def delete_zone(self, zone_id: str) -> None:
        self._call('delete_hosted_zone', Id=zone_id)
        self.logger.info(f"Deleted hosted zone {zone_id}")
