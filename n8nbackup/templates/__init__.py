"""Text templates rendered with Jinja2."""
