"""Profile entity type and payload field registries."""

from app.schema.entity_types import (
    ENTITY_TYPE_VALUES,
    ProfileEntityType,
    infer_entity_type_from_field,
    normalize_entity_type,
)
from app.schema.profile_fields import (
    FieldKind,
    FieldSpec,
    field_names,
    field_specs,
    get_field_spec,
    identity_field_names,
    resolve_field_name,
)

__all__ = [
    "ENTITY_TYPE_VALUES",
    "FieldKind",
    "FieldSpec",
    "ProfileEntityType",
    "field_names",
    "field_specs",
    "get_field_spec",
    "identity_field_names",
    "infer_entity_type_from_field",
    "normalize_entity_type",
    "resolve_field_name",
]
