import datetime
import logging
from decimal import Decimal

import requests
from django.conf import settings
from django.utils import timezone

logger = logging.getLogger(__name__)


def _to_property(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if value is None:
        return ''
    return value


class HubSpotClient:
    """
    Thin wrapper over the HubSpot CRM v3 objects API.

    Every call returns a result dict with a ``status`` of ``success``,
    ``error`` or ``skipped`` (no access token configured). Nothing is raised to
    the caller; CRM sync never blocks a payment operation.
    """

    def __init__(self, access_token=None, base_url=None, timeout=None):
        self.access_token = settings.HUBSPOT_ACCESS_TOKEN if access_token is None else access_token
        self.base_url = (base_url or settings.HUBSPOT_API_URL).rstrip('/')
        self.timeout = timeout or settings.HUBSPOT_TIMEOUT

    @property
    def enabled(self):
        return bool(self.access_token)

    def _headers(self):
        return {
            'Authorization': f'Bearer {self.access_token}',
            'Content-Type': 'application/json',
        }

    def _request(self, method, path, properties):
        if not self.enabled:
            return {'status': 'skipped', 'message': 'HubSpot access token not configured'}

        payload = {'properties': {key: _to_property(value) for key, value in properties.items()}}
        url = f"{self.base_url}{path}"
        try:
            response = requests.request(method, url, json=payload, headers=self._headers(), timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
            return {'status': 'success', 'id': data.get('id'), 'data': data}
        except requests.exceptions.RequestException as e:
            logger.error(f"HubSpot {method} {path} failed: {str(e)}")
            return {'status': 'error', 'message': str(e)}

    def create_custom_object(self, object_type, properties, record_id=None):
        if record_id is not None:
            properties = {**properties, 'namc_record_id': str(record_id)}
        return self._request('POST', f'/crm/v3/objects/{object_type}', properties)

    def update_custom_object(self, object_type, object_id, properties):
        return self._request('PATCH', f'/crm/v3/objects/{object_type}/{object_id}', properties)

    def create_ticket(self, subject, content, pipeline, priority='HIGH', category=None, record_id=None):
        properties = {
            'subject': subject,
            'content': content,
            'hs_pipeline': pipeline,
            'hs_pipeline_stage': '1',
            'hs_ticket_priority': priority,
        }
        if category:
            properties['hs_ticket_category'] = category
        if record_id is not None:
            properties['namc_record_id'] = str(record_id)
        return self._request('POST', '/crm/v3/objects/tickets', properties)


def sync_record(instance, object_type, properties, client=None):
    """
    Create or update the CRM object mirroring ``instance`` and record the
    outcome on its ``hubspot_*`` fields.
    """
    client = client or HubSpotClient()
    if instance.hubspot_object_id:
        result = client.update_custom_object(object_type, instance.hubspot_object_id, properties)
    else:
        result = client.create_custom_object(object_type, properties, record_id=instance.pk)

    if result['status'] == 'skipped':
        return result

    update_fields = ['hubspot_sync_status', 'hubspot_last_sync']
    if result['status'] == 'success':
        instance.hubspot_sync_status = 'SYNCED'
        if not instance.hubspot_object_id and result.get('id'):
            instance.hubspot_object_id = result['id']
            update_fields.append('hubspot_object_id')
    else:
        instance.hubspot_sync_status = 'FAILED'
    instance.hubspot_last_sync = timezone.now()
    instance.save(update_fields=update_fields)
    return result
