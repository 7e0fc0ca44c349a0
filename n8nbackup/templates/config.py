"""Default configuration file template."""


def get_config_template() -> str:
    """Get the n8n-backup.yml template."""
    return """# n8n backup configuration
# Relative directories are resolved against the directory holding this file.

backup_dir: {{ backup_dir }}
log_dir: {{ log_dir }}

# Number of backup sets to keep
retention: {{ retention }}

# Minimum free space on the backup filesystem, in MB
min_free_mb: {{ min_free_mb }}

# Deadline for every container command, in seconds
command_timeout: {{ command_timeout }}

# Seconds to wait after restarting n8n during cycle-test
restart_wait: {{ restart_wait }}

n8n:
  container: {{ n8n.container }}
  data_dir: {{ n8n.data_dir }}
  export_path: {{ n8n.export_path }}
  import_path: {{ n8n.import_path }}

postgres:
  container: {{ postgres.container }}
  user: {{ postgres.user }}
  database: {{ postgres.database }}
  min_dump_lines: {{ postgres.min_dump_lines }}
  dump_marker: "{{ postgres.dump_marker }}"
  stats_limit: {{ postgres.stats_limit }}
  restore_path: {{ postgres.restore_path }}
"""
