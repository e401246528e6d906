from .entity_mapper import (
    SYSTEM_PROPERTIES,
    DictEntityMapper,
    EntityMapper,
    ModelEntityMapper,
    is_metadata_field,
)

__all__ = [
    "SYSTEM_PROPERTIES",
    "DictEntityMapper",
    "EntityMapper",
    "ModelEntityMapper",
    "is_metadata_field",
]
