"""Field Survey Manager: MongoDB-backed survey authoring, data entry and reporting."""

__version__ = '1.0.0'
