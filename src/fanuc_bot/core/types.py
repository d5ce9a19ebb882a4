"""Shared types and enumerations."""

from __future__ import annotations

from enum import StrEnum


class WizardKind(StrEnum):
    TARGET = "target"
    SERVICE = "service"
    NEW_KEY = "new_key"
    CONNECTION = "connection"
    POLLING = "polling"


class WizardState(StrEnum):
    """Position of a user in the conversation FSM. Stored verbatim in the users table."""

    IDLE = "idle"

    # Kafka target wizard
    WAITING_NAME = "waiting_name"
    WAITING_BROKER = "waiting_broker"
    WAITING_TOPIC = "waiting_topic"
    WAITING_KEY = "waiting_key"

    # Extra key on an existing target
    WAITING_NEW_KEY = "waiting_new_key"

    # Fanuc service wizard
    WAITING_SVC_NAME = "waiting_svc_name"
    WAITING_SVC_HOST = "waiting_svc_host"
    WAITING_SVC_KEY = "waiting_svc_key"

    # Machine connection wizard (remote)
    WAITING_CONN_ENDPOINT = "waiting_conn_endpoint"
    WAITING_CONN_TIMEOUT = "waiting_conn_timeout"
    WAITING_CONN_MODEL = "waiting_conn_model"
    WAITING_CONN_SERIES = "waiting_conn_series"

    # Polling wizard (remote)
    WAITING_POLL_INTERVAL = "waiting_poll_interval"


DEFAULT_KEY_ID = 0  # the implicit keyless view of every target
