"""Validation and deployment of generated workspace specs to Notion."""
