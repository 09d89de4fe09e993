from .base import AssociableRelation, AttachableRelation, AttachmentData, OnMatch, Relation
from .belongs_to_many import BelongsToMany
from .compare_columns import COMPARE_RULES, CompareColumns
from .equal_fields import BelongsTo, EqualFields, HasMany, HasOne


__all__ = (
    "COMPARE_RULES",
    "AssociableRelation",
    "AttachableRelation",
    "AttachmentData",
    "BelongsTo",
    "BelongsToMany",
    "CompareColumns",
    "EqualFields",
    "HasMany",
    "HasOne",
    "OnMatch",
    "Relation",
)
