"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from knotcap.policy.models import Policy
from knotcap.policy.parser import load_policy
from knotcap.session.files import SessionFiles
from knotcap.session.models import SessionRecord


@pytest.fixture
def fixtures_dir() -> Path:
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def simple_policy_path(fixtures_dir: Path) -> Path:
    return fixtures_dir / "simple_policy.conf"


@pytest.fixture
def messy_policy_path(fixtures_dir: Path) -> Path:
    return fixtures_dir / "messy_policy.conf"


@pytest.fixture
def simple_policy(simple_policy_path: Path) -> Policy:
    return load_policy(simple_policy_path)


@pytest.fixture
def session_files(tmp_path: Path) -> SessionFiles:
    return SessionFiles(tmp_path / "logs")


@pytest.fixture
def record() -> SessionRecord:
    return SessionRecord(
        host="api.example.com",
        scheme="https",
        method="GET",
        uri="/v1/items?a=1&b=",
        task_id="task-1",
        client_identifier="agent/1.0",
        rsp_status="200",
        rsp_message="OK",
        rsp_content_type="application/json",
        server_ip="93.184.216.34",
        server_port=443,
        req_path="task-1/1.req",
        rsp_path="task-1/1.rsp",
        dns_start=1000.0,
        connect_start=1000.125,
        send_start=1000.25,
        send_end=1000.5,
        receive_start=1000.75,
        receive_end=1001.0,
    )
