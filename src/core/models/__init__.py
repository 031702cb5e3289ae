#!/usr/bin/env python3
"""
Core data models for run monitoring and webhook delivery.

Contains all data structures used throughout the application.
"""

from .run import RunStatus, RunInfo, RunHandle, MonitorOutcome, MonitorResult
from .payload import WebhookPayload, PayloadBuilder, payload_from_dict

__all__ = [
    'RunStatus', 'RunInfo', 'RunHandle', 'MonitorOutcome', 'MonitorResult',
    'WebhookPayload', 'PayloadBuilder', 'payload_from_dict'
]
