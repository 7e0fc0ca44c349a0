"""Pytest configuration and shared fixtures."""

import gzip
import json
import os
import shutil
import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from n8nbackup.config.settings import BackupConfig
from n8nbackup.containers.manager import ContainerManager, ExecResult

SAMPLE_DUMP = """--
-- PostgreSQL database dump
--

-- Dumped from database version 15.4
-- Dumped by pg_dump version 15.4

SET statement_timeout = 0;
SET lock_timeout = 0;
SET client_encoding = 'UTF8';

CREATE TABLE public.workflow_entity (
    id character varying(36) NOT NULL,
    name character varying(128) NOT NULL
);

COPY public.workflow_entity (id, name) FROM stdin;
1\tDaily report
2\tSlack alerts
\\.

--
-- PostgreSQL database dump complete
--
"""


@pytest.fixture
def temp_directory():
    """Create a temporary directory for testing."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture(autouse=True)
def isolate_filesystem(temp_directory, monkeypatch):
    """Isolate filesystem operations and configuration to a temporary directory."""
    monkeypatch.chdir(temp_directory)
    for name in (
        "N8N_BACKUP_CONFIG",
        "N8N_BACKUP_DIR",
        "N8N_BACKUP_LOG_DIR",
        "N8N_BACKUP_RETENTION",
        "N8N_CONTAINER",
        "POSTGRES_CONTAINER",
        "POSTGRES_USER",
        "POSTGRES_DB",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def mock_docker_client():
    """Mock Docker client for testing."""
    client = MagicMock()
    client.ping.return_value = True
    client.containers.list.return_value = []
    return client


@pytest.fixture
def sample_workflows():
    """Two workflows as returned by ``n8n export:workflow --all``."""
    return [
        {
            "id": "1",
            "name": "Daily report",
            "active": True,
            "nodes": [
                {"id": "a1", "name": "Cron", "type": "n8n-nodes-base.cron", "parameters": {}},
                {"id": "a2", "name": "Email", "type": "n8n-nodes-base.emailSend", "parameters": {}},
            ],
            "connections": {},
        },
        {
            "id": "2",
            "name": "Slack alerts",
            "active": False,
            "nodes": [{"id": "b1", "name": "Webhook", "type": "n8n-nodes-base.webhook", "parameters": {}}],
            "connections": {},
        },
    ]


@pytest.fixture
def sample_dump():
    """Plain-text pg_dump output."""
    return SAMPLE_DUMP


@pytest.fixture
def backup_config(temp_directory):
    """Configuration pointing at the temporary directory."""
    return BackupConfig(
        backup_dir=Path(temp_directory) / "backups",
        log_dir=Path(temp_directory) / "logs",
        retention=3,
        restart_wait=0,
    )


@pytest.fixture
def fake_containers(backup_config, sample_workflows, sample_dump):
    """ContainerManager double behaving like a healthy n8n deployment."""
    containers = MagicMock(spec=ContainerManager)
    containers.ping.return_value = True
    containers.running_container_names.return_value = [
        backup_config.n8n.container,
        backup_config.postgres.container,
    ]
    containers.get_uptime.return_value = "Up 2 hours"
    containers.exec.return_value = ExecResult(0, "", "")

    def copy_from_container(name, source, destination):
        with open(destination, "w", encoding="utf-8") as f:
            json.dump(sample_workflows, f, indent=2)
        return destination

    def exec_to_file(name, command, destination):
        with open(destination, "w", encoding="utf-8") as f:
            f.write(sample_dump)
        return ExecResult(0, "", "")

    containers.copy_from_container.side_effect = copy_from_container
    containers.exec_to_file.side_effect = exec_to_file
    containers.copy_to_container.side_effect = lambda name, source, destination: destination
    return containers


@pytest.fixture
def create_backup_set(backup_config, sample_workflows, sample_dump):
    """Factory writing a published backup set into the backup directory."""

    def _create(timestamp, workflows=None, database=True, manifest=True, corrupt_database=False, mtime=None):
        backup_dir = backup_config.backup_dir
        backup_dir.mkdir(parents=True, exist_ok=True)
        created = []

        if workflows is not False:
            path = backup_dir / f"workflows_{timestamp}.json"
            path.write_text(json.dumps(sample_workflows if workflows is None else workflows), encoding="utf-8")
            created.append(path)

        if database:
            path = backup_dir / f"database_{timestamp}.sql.gz"
            if corrupt_database:
                path.write_bytes(gzip.compress(sample_dump.encode("utf-8"))[:40])
            else:
                path.write_bytes(gzip.compress(sample_dump.encode("utf-8")))
            created.append(path)

        if manifest:
            path = backup_dir / f"manifest_{timestamp}.txt"
            path.write_text(f"n8n BACKUP MANIFEST\nTimestamp: {timestamp}\n", encoding="utf-8")
            created.append(path)

        if mtime is not None:
            for path in created:
                os.utime(path, (mtime, mtime))

        return created

    return _create
