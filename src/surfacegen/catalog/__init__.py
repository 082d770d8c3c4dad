"""Advertising-surface template catalog."""

from .catalog import DEFAULT_TEMPLATES, Template, TemplateCatalog, TemplateCategory

__all__ = ["DEFAULT_TEMPLATES", "Template", "TemplateCatalog", "TemplateCategory"]
