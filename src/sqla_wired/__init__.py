"""Model relations and eager loading on top of SQLAlchemy Core.

sqla_wired maps table rows to plain ``Model`` objects, filters queries by
declared relations (``where_relation("posts.category")``) and loads related
models in batches: one query per relation level, however many models are
loaded.  ``load_cyclic`` follows self-referencing relations until the whole
tree or cycle is in memory, linking repeated rows to a single instance.
"""

from ._version import __version__, __version_tuple__
from .config import MapperConfig
from .constraints import AnyRelated, RelatedMatching, RelatedTo, RelatedToAny, as_constraint
from .datastructures import frozendict
from .exceptions import (
    DatabaseError,
    IncorrectModelError,
    IncorrectQueryError,
    InvalidArgumentError,
    InvalidReturnValueError,
    NotModelError,
    RelationError,
    WiredError,
)
from .loading import load, load_cyclic
from .mapper import Mapper
from .model import Model, relation
from .query import ModelQuery, apply_relation_filter, make_relation_criterion
from .relations import (
    BelongsTo,
    BelongsToMany,
    CompareColumns,
    EqualFields,
    HasMany,
    HasOne,
    OnMatch,
    Relation,
)
from .tools import (
    collect_cyclic_relatives,
    collect_relatives,
    filter_model_relatives,
    filter_models_relatives,
    group_by_type,
    wired_cache_clear,
    wired_cache_info,
)


__all__ = (
    "AnyRelated",
    "BelongsTo",
    "BelongsToMany",
    "CompareColumns",
    "DatabaseError",
    "EqualFields",
    "HasMany",
    "HasOne",
    "IncorrectModelError",
    "IncorrectQueryError",
    "InvalidArgumentError",
    "InvalidReturnValueError",
    "Mapper",
    "MapperConfig",
    "Model",
    "ModelQuery",
    "NotModelError",
    "OnMatch",
    "RelatedMatching",
    "RelatedTo",
    "RelatedToAny",
    "Relation",
    "RelationError",
    "WiredError",
    "__version__",
    "__version_tuple__",
    "apply_relation_filter",
    "as_constraint",
    "collect_cyclic_relatives",
    "collect_relatives",
    "filter_model_relatives",
    "filter_models_relatives",
    "frozendict",
    "group_by_type",
    "load",
    "load_cyclic",
    "make_relation_criterion",
    "relation",
    "wired_cache_clear",
    "wired_cache_info",
)
