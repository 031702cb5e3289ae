#!/usr/bin/env python3
"""
Receiver Data Manager.

Persists payloads received by the reference webhook endpoint: the full
payload as JSON, the records as CSV, and failure notifications appended to
an error log.
"""

import csv
import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from .models.payload import WebhookPayload, records_of

logger = logging.getLogger(__name__)

CSV_HEADERS = [
    'name', 'email', 'title', 'organization_name', 'linkedin_url',
    'city', 'state', 'country', 'phone', 'email_status'
]


def _file_timestamp(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.strftime('%Y-%m-%dT%H-%M-%S-%f')


def _first_phone(record: Dict[str, Any]) -> str:
    phones = record.get('phone_numbers')
    if isinstance(phones, list) and phones and isinstance(phones[0], dict):
        return phones[0].get('sanitized_number') or ''
    return ''


def summarize_records(records: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Summarize scraped lead records.

    Returns:
        Counts of records, verified emails and records with a phone number,
        plus the number of records per company
    """
    verified = [r for r in records if r.get('email') and r.get('email_status') == 'verified']
    with_phone = [r for r in records if _first_phone(r)]

    companies: Dict[str, int] = {}
    for record in records:
        company = record.get('organization_name') or 'Unknown'
        companies[company] = companies.get(company, 0) + 1

    return {
        'totalRecords': len(records),
        'verifiedEmails': len(verified),
        'withPhone': len(with_phone),
        'companies': companies,
    }


class DataManager:
    """Manages receiver files on local disk."""

    def __init__(self, base_dir: str = 'data', logs_dir: str = 'logs', prefix: str = 'run-data'):
        """
        Initialize DataManager.

        Args:
            base_dir: Directory for payload JSON and CSV files
            logs_dir: Directory holding ``errors.json``
            prefix: File name prefix for saved payloads
        """
        self.base_dir = base_dir
        self.logs_dir = logs_dir
        self.prefix = prefix

    @property
    def error_log_path(self) -> str:
        return os.path.join(self.logs_dir, 'errors.json')

    def save_payload(self, payload: WebhookPayload, now: Optional[datetime] = None) -> Dict[str, Optional[str]]:
        """
        Save a received payload as JSON, plus CSV when it has records.

        Returns:
            Paths of the written files (``csv`` is None for empty payloads)
        """
        os.makedirs(self.base_dir, exist_ok=True)
        stamp = _file_timestamp(now)
        json_path = os.path.join(self.base_dir, f"{self.prefix}-{stamp}.json")

        document = payload.to_dict()
        document['receivedAt'] = datetime.now(timezone.utc).isoformat()
        with open(json_path, 'w', encoding='utf-8') as f:
            json.dump(document, f, indent=2, ensure_ascii=False, default=str)
        logger.info(f"Data saved to: {json_path}")

        csv_path = None
        records = records_of(payload)
        if records:
            csv_path = os.path.join(self.base_dir, f"{self.prefix}-{stamp}.csv")
            self.write_csv(records, csv_path)

        return {'json': json_path, 'csv': csv_path}

    def write_csv(self, records: Sequence[Dict[str, Any]], path: str) -> int:
        """Write lead records to CSV; returns the number of rows written."""
        with open(path, 'w', encoding='utf-8', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=CSV_HEADERS, extrasaction='ignore')
            writer.writeheader()
            for record in records:
                row = {header: record.get(header) or '' for header in CSV_HEADERS}
                row['phone'] = _first_phone(record) or row['phone']
                writer.writerow(row)
        logger.info(f"CSV saved to: {path}")
        return len(records)

    def log_error(self, metadata: Dict[str, Any]) -> Dict[str, Any]:
        """Append a failure notification to ``errors.json``."""
        os.makedirs(self.logs_dir, exist_ok=True)
        entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'runId': metadata.get('runId'),
            'error': metadata.get('error'),
            'message': metadata.get('message'),
        }

        entries = self.load_errors()
        entries.append(entry)
        with open(self.error_log_path, 'w', encoding='utf-8') as f:
            json.dump(entries, f, indent=2, ensure_ascii=False)

        logger.info(f"Error logged to: {self.error_log_path}")
        return entry

    def load_errors(self) -> List[Dict[str, Any]]:
        """Read the error log; a missing or corrupt file reads as empty."""
        if not os.path.exists(self.error_log_path):
            return []
        try:
            with open(self.error_log_path, 'r', encoding='utf-8') as f:
                entries = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read error log, starting a new one: {e}")
            return []
        return entries if isinstance(entries, list) else []
