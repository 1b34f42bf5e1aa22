#!/usr/bin/env python3
"""
Tests for the Route 53 zone directory adapter

Uses a stub Route 53 client that records the keyword arguments of every call
and answers with canned payloads.
"""

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from zone_directory import (
    Change, ChangeAction, HostedZone, ListCursor, RecordTemplate, RecordTemplateError,
    ResourceRecordSet, ZoneDirectory, ZoneDirectoryError, build_route53_client,
    strip_zone_prefix,
)


class Route53ClientStub:

    def __init__(self, responses=None, error=None):
        self.responses = responses or {}
        self.error = error
        self.calls = []

    def _answer(self, operation, kwargs):
        self.calls.append((operation, kwargs))
        if self.error is not None:
            raise self.error
        response = self.responses.get(operation, {})
        if isinstance(response, list):
            return response.pop(0)
        return response

    def create_hosted_zone(self, **kwargs):
        return self._answer('create_hosted_zone', kwargs)

    def get_hosted_zone(self, **kwargs):
        return self._answer('get_hosted_zone', kwargs)

    def list_resource_record_sets(self, **kwargs):
        return self._answer('list_resource_record_sets', kwargs)

    def change_resource_record_sets(self, **kwargs):
        return self._answer('change_resource_record_sets', kwargs)

    def delete_hosted_zone(self, **kwargs):
        return self._answer('delete_hosted_zone', kwargs)


GET_HOSTED_ZONE = {
    'HostedZone': {
        'Id': '/hostedzone/Z0123456789ABC',
        'Name': 'floodzone-test-1234.aws.',
        'CallerReference': '1700000000',
        'Config': {'Comment': 'Created by floodzone', 'PrivateZone': True},
        'ResourceRecordSetCount': 2,
    },
    'VPCs': [{'VPCRegion': 'us-east-1', 'VPCId': 'vpc-0123'}],
}


def test_create_zone_request_shape():
    stub = Route53ClientStub({'create_hosted_zone': {'HostedZone': {'Id': '/hostedzone/ZNEW'}}})
    directory = ZoneDirectory(stub)

    zone_id = directory.create_zone('vpc-0123', 'us-west-2')

    assert zone_id == 'ZNEW'
    operation, kwargs = stub.calls[0]
    assert operation == 'create_hosted_zone'
    assert kwargs['Name'].startswith('floodzone-test-')
    assert kwargs['Name'].endswith('.aws')
    assert kwargs['HostedZoneConfig']['PrivateZone'] is True
    assert kwargs['HostedZoneConfig']['Comment'].startswith('Created by floodzone at ')
    assert kwargs['VPC'] == {'VPCId': 'vpc-0123', 'VPCRegion': 'us-west-2'}
    assert kwargs['CallerReference'].isdigit()


def test_describe_zone():
    stub = Route53ClientStub({'get_hosted_zone': GET_HOSTED_ZONE})

    zone = ZoneDirectory(stub).describe_zone('Z0123456789ABC')

    assert stub.calls == [('get_hosted_zone', {'Id': 'Z0123456789ABC'})]
    assert zone == HostedZone(
        zone_id='Z0123456789ABC', name='floodzone-test-1234.aws.', record_set_count=2,
        private_zone=True, vpc_ids=['vpc-0123'], comment='Created by floodzone',
        caller_reference='1700000000',
    )
    assert zone.to_dict()['record_set_count'] == 2


def test_list_records_first_and_continued_pages():
    stub = Route53ClientStub({'list_resource_record_sets': [
        {
            'ResourceRecordSets': [
                {'Name': 'a.zone.', 'Type': 'A', 'TTL': 300, 'ResourceRecords': [{'Value': '127.0.0.1'}]},
            ],
            'IsTruncated': True,
            'NextRecordName': 'b.zone.',
            'NextRecordType': 'A',
            'NextRecordIdentifier': 'blue',
            'MaxItems': '1',
        },
        {
            'ResourceRecordSets': [
                {'Name': 'b.zone.', 'Type': 'A', 'SetIdentifier': 'blue', 'Weight': 10,
                 'TTL': 60, 'ResourceRecords': [{'Value': '10.0.0.1'}]},
            ],
            'IsTruncated': False,
            'MaxItems': '1',
        },
    ]})
    directory = ZoneDirectory(stub)

    first = directory.list_records('Z1', 1)
    second = directory.list_records('Z1', 1, first.next_cursor)

    assert first.more is True
    assert first.next_cursor == ListCursor('b.zone.', 'A', 'blue')
    assert first.records[0].values == ['127.0.0.1']
    assert second.more is False
    assert second.next_cursor is None
    assert second.records[0].attributes == {'SetIdentifier': 'blue', 'Weight': 10}
    assert stub.calls[0][1] == {'HostedZoneId': 'Z1', 'MaxItems': '1'}
    assert stub.calls[1][1] == {
        'HostedZoneId': 'Z1', 'MaxItems': '1', 'StartRecordName': 'b.zone.',
        'StartRecordType': 'A', 'StartRecordIdentifier': 'blue',
    }


def test_mutate_records_sends_one_batch():
    stub = Route53ClientStub({'change_resource_record_sets': {
        'ChangeInfo': {'Id': '/change/C123', 'Status': 'PENDING'}}})
    record = ResourceRecordSet('x.zone.', 'A', 300, ['127.0.0.1'])

    change_id = ZoneDirectory(stub).mutate_records('Z1', [
        Change(ChangeAction.CREATE, record),
        Change(ChangeAction.DELETE, record),
    ])

    assert change_id == '/change/C123'
    assert stub.calls == [('change_resource_record_sets', {
        'HostedZoneId': 'Z1',
        'ChangeBatch': {'Changes': [
            {'Action': 'CREATE', 'ResourceRecordSet': {
                'Name': 'x.zone.', 'Type': 'A', 'TTL': 300, 'ResourceRecords': [{'Value': '127.0.0.1'}]}},
            {'Action': 'DELETE', 'ResourceRecordSet': {
                'Name': 'x.zone.', 'Type': 'A', 'TTL': 300, 'ResourceRecords': [{'Value': '127.0.0.1'}]}},
        ]},
    })]


def test_record_set_round_trips_alias_targets():
    payload = {
        'Name': 'alias.zone.',
        'Type': 'A',
        'AliasTarget': {'HostedZoneId': 'Z2', 'DNSName': 'lb.example.', 'EvaluateTargetHealth': False},
    }

    record = ResourceRecordSet.from_api(payload)

    assert record.ttl is None
    assert record.values == []
    assert record.to_api() == payload


def test_delete_zone():
    stub = Route53ClientStub()

    ZoneDirectory(stub).delete_zone('Z1')

    assert stub.calls == [('delete_hosted_zone', {'Id': 'Z1'})]


def test_client_error_is_wrapped():
    error = ClientError({'Error': {'Code': 'InvalidVPCId', 'Message': 'The VPC ID is invalid'}},
                        'CreateHostedZone')
    directory = ZoneDirectory(Route53ClientStub(error=error))

    with pytest.raises(ZoneDirectoryError) as excinfo:
        directory.create_zone('vpc-bad', 'us-east-1')

    assert excinfo.value.operation == 'create_hosted_zone'
    assert 'InvalidVPCId' in str(excinfo.value)
    assert excinfo.value.__cause__ is error


def test_transport_error_is_wrapped():
    error = EndpointConnectionError(endpoint_url='https://route53.example')
    directory = ZoneDirectory(Route53ClientStub(error=error))

    with pytest.raises(ZoneDirectoryError) as excinfo:
        directory.describe_zone('Z1')

    assert excinfo.value.operation == 'get_hosted_zone'


def test_template_builds_unique_names_under_zone():
    template = RecordTemplate()

    first = template.build('floodzone-test-1234.aws.')
    second = template.build('floodzone-test-1234.aws')

    assert first.name != second.name
    assert first.name.endswith('.floodzone-test-1234.aws.')
    assert second.name.endswith('.floodzone-test-1234.aws.')
    assert first.to_api()['Type'] == 'A'
    assert first.ttl == 300
    assert first.values == ['127.0.0.1']


def test_bookkeeping_flag():
    assert ResourceRecordSet('zone.', 'SOA').is_bookkeeping
    assert ResourceRecordSet('zone.', 'NS').is_bookkeeping
    assert not ResourceRecordSet('zone.', 'A').is_bookkeeping


def test_strip_zone_prefix():
    assert strip_zone_prefix('/hostedzone/Z1') == 'Z1'
    assert strip_zone_prefix('Z1') == 'Z1'


@pytest.mark.parametrize("zone_name", [
    'x' * 64 + '.aws.',
    '.'.join(['a' * 63, 'b' * 63, 'c' * 63, 'd' * 60]) + '.',
])
def test_template_rejects_zone_names_with_no_room_for_a_label(zone_name):
    with pytest.raises(RecordTemplateError) as excinfo:
        RecordTemplate().build(zone_name)

    assert zone_name in str(excinfo.value)


def test_build_client_wraps_missing_profile(monkeypatch, tmp_path):
    monkeypatch.setenv("AWS_CONFIG_FILE", str(tmp_path / "config"))
    monkeypatch.setenv("AWS_SHARED_CREDENTIALS_FILE", str(tmp_path / "credentials"))
    monkeypatch.setenv("AWS_PROFILE", "floodzone-missing-profile")

    with pytest.raises(ZoneDirectoryError) as excinfo:
        build_route53_client(region='us-east-1')

    assert excinfo.value.operation == 'build_client'


def test_build_client_with_endpoint_and_region(monkeypatch, tmp_path):
    monkeypatch.setenv("AWS_CONFIG_FILE", str(tmp_path / "config"))
    monkeypatch.setenv("AWS_SHARED_CREDENTIALS_FILE", str(tmp_path / "credentials"))
    monkeypatch.delenv("AWS_PROFILE", raising=False)
    monkeypatch.delenv("AWS_DEFAULT_PROFILE", raising=False)

    client, region = build_route53_client(region='eu-west-1', endpoint='http://localhost:4566')

    assert region == 'eu-west-1'
    assert client.meta.endpoint_url == 'http://localhost:4566'

    with pytest.raises(ValueError):
        build_route53_client(region='eu-west-1', endpoint='not a url')
