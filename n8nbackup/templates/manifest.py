"""Backup manifest template."""


def get_manifest_template() -> str:
    """Get the manifest_<timestamp>.txt template."""
    return """================================================================================
n8n BACKUP MANIFEST
================================================================================
Timestamp: {{ timestamp }}
Date: {{ date }}
Hostname: {{ hostname }}
Tool Version: {{ tool_version }}

CONTAINER INFORMATION:
----------------------
n8n Container: {{ n8n_container }}
PostgreSQL Container: {{ postgres_container }}

n8n Version: {{ n8n_version }}
n8n Uptime: {{ n8n_uptime }}
PostgreSQL Version: {{ postgres_version }}

BACKUP FILES:
-------------
Workflows: {{ workflows_file }}
Database: {{ database_file }}

FILE SIZES:
-----------
Workflows: {{ workflows_size }}
Database: {{ database_size }}

CHECKSUMS (SHA256):
-------------------
{{ workflows_checksum }}  {{ workflows_file }}
{{ database_checksum }}  {{ database_file }}

DISK USAGE:
-----------
Backup partition: {{ backup_partition }}
n8n container: {{ n8n_disk_usage }}

WORKFLOW COUNT:
---------------
Total workflows: {{ workflow_count }}

DATABASE STATISTICS:
--------------------
{{ database_statistics }}

================================================================================
"""
