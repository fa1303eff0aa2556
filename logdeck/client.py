import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import EVENTS_PAGE_LIMIT, GROUPS_PAGE_LIMIT
from .models import LogGroupRecord, LogRecord

logger = logging.getLogger(__name__)


class FetchError(Exception):
    # A failed call to the log service; the caller keeps its last-good state.
    pass


class FetchClient:
    """
    What the actors need from a log service. Both calls return one page and
    the opaque cursor for the next one (None when there is no next page).
    """

    def list_log_groups(self, prefix: str | None = None,
                        limit: int = GROUPS_PAGE_LIMIT,
                        cursor: str | None = None) -> tuple:
        raise NotImplementedError

    def fetch_log_events(self, group: str, cursor: str | None = None,
                         time_range: tuple = (None, None), query: str = '',
                         limit: int = EVENTS_PAGE_LIMIT) -> tuple:
        raise NotImplementedError


class CloudWatchLogsClient(FetchClient):
    # FetchClient over a boto3 'logs' client.

    def __init__(self, logs):
        self._logs = logs

    @classmethod
    def from_session(cls, profile: str | None = None,
                     region: str | None = None) -> 'CloudWatchLogsClient':
        try:
            session = boto3.session.Session(profile_name=profile, region_name=region)
            return cls(session.client('logs'))
        except BotoCoreError as exc:
            raise FetchError(f'Cannot create CloudWatch Logs client: {exc}') from exc

    def list_log_groups(self, prefix=None, limit=GROUPS_PAGE_LIMIT, cursor=None):
        params = {'limit': limit}
        if prefix:
            params['logGroupNamePrefix'] = prefix
        if cursor:
            params['nextToken'] = cursor
        resp   = self._call('describe_log_groups', params)
        groups = [LogGroupRecord(name=g['logGroupName'], arn=g.get('arn', ''))
                  for g in resp.get('logGroups', [])]
        return groups, resp.get('nextToken') or None

    def fetch_log_events(self, group, cursor=None, time_range=(None, None),
                         query='', limit=EVENTS_PAGE_LIMIT):
        params = {'logGroupName': group, 'limit': limit}
        start, end = time_range
        if start is not None:
            params['startTime'] = start
        if end is not None:
            params['endTime'] = end
        if query:
            params['filterPattern'] = query
        if cursor:
            params['nextToken'] = cursor
        resp    = self._call('filter_log_events', params)
        records = [LogRecord(id=e['eventId'],
                             message=e.get('message', '').rstrip('\n'),
                             timestamp=e.get('timestamp'))
                   for e in resp.get('events', [])]
        return records, resp.get('nextToken') or None

    # Internal

    def _call(self, operation: str, params: dict) -> dict:
        logger.debug('%s %s', operation, params)
        try:
            return getattr(self._logs, operation)(**params)
        except ClientError as exc:
            code = exc.response.get('Error', {}).get('Code', 'ClientError')
            raise FetchError(f'{operation} failed: {code}') from exc
        except BotoCoreError as exc:
            raise FetchError(f'{operation} failed: {exc}') from exc
