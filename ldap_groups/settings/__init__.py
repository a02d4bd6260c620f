"""Provider settings package.

Typed configuration (schema) plus the translation of flat provider
property mappings into it.
"""

from .schema import ConfigurationError, GroupProviderSettings, properties_to_payload

__all__ = [
    "ConfigurationError",
    "GroupProviderSettings",
    "properties_to_payload",
]
