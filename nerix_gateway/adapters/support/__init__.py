"""Support request storage adapters."""
