"""JSON schemas for the n8n backup CLI."""

CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "backup_dir": {"type": "string", "minLength": 1},
        "log_dir": {"type": "string", "minLength": 1},
        "retention": {"type": "integer", "minimum": 1},
        "min_free_mb": {"type": "integer", "minimum": 0},
        "command_timeout": {"type": "number", "exclusiveMinimum": 0},
        "restart_wait": {"type": "number", "minimum": 0},
        "n8n": {
            "type": "object",
            "properties": {
                "container": {"type": "string", "minLength": 1},
                "data_dir": {
                    "type": "string",
                    "description": "n8n data directory inside the container (disk usage probe)",
                },
                "export_path": {
                    "type": "string",
                    "pattern": r"^/",
                    "description": "Path the export is written to inside the container",
                },
                "import_path": {
                    "type": "string",
                    "pattern": r"^/",
                    "description": "Path the export is copied to before import",
                },
            },
            "additionalProperties": False,
        },
        "postgres": {
            "type": "object",
            "properties": {
                "container": {"type": "string", "minLength": 1},
                "user": {"type": "string", "minLength": 1},
                "database": {"type": "string", "minLength": 1},
                "min_dump_lines": {"type": "integer", "minimum": 0},
                "dump_marker": {"type": "string"},
                "stats_limit": {"type": "integer", "minimum": 1},
                "restore_path": {"type": "string", "pattern": r"^/"},
            },
            "additionalProperties": False,
        },
    },
    "additionalProperties": False,
}

# An n8n export:workflow --all file is a JSON array of workflow objects
WORKFLOW_EXPORT_SCHEMA = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "id": {"type": ["string", "integer"]},
            "name": {"type": "string"},
            "nodes": {"type": "array"},
            "connections": {"type": "object"},
        },
        "required": ["id"],
    },
}
