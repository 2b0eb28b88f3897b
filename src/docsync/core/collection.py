"""
EntitySet: an ordered set of entities synchronized as one unit.

A set dispatches as a batch: create inserts every member in one call,
update/patch/delete fan out per member and read merges the returned
documents back by identifier.
"""

import inspect
import logging
from typing import Any, Callable, ClassVar, Dict, Iterable, Iterator, List, Optional, Type, Union

from .entity import Entity
from .hooks import HookPipeline
from .mixins import ObservableMixin, PersistenceMixin

logger = logging.getLogger(__name__)

EntityLike = Union[Entity, Dict[str, Any]]


class EntitySet(ObservableMixin, PersistenceMixin):
    """
    Ordered set of entities of one ``model`` class.

    Example:
        class Users(EntitySet):
            model = User

        users = Users([{"username": "ada"}, {"username": "grace"}]).bind(engine)
        await users.sync()
    """

    model: ClassVar[Type[Entity]] = Entity
    database: ClassVar[Optional[str]] = None
    url: ClassVar[Optional[str]] = None
    before: ClassVar[Dict[str, Any]] = {}
    after: ClassVar[Dict[str, Any]] = {}
    hooks: ClassVar[HookPipeline] = HookPipeline()

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls.hooks = HookPipeline.from_tables(cls.before, cls.after)

    def __init__(self, models: Optional[Iterable[EntityLike]] = None, *,
                 database: Optional[str] = None, url: Optional[str] = None,
                 engine: Optional[Any] = None):
        self._events: Dict[str, List[Callable[..., Any]]] = {}
        self._changed: Dict[str, Any] = {}
        self._previous: Dict[str, Any] = {}
        self._options: Dict[str, Any] = {}
        self._attributes: Dict[str, Any] = {}
        self._engine = engine
        self.models: List[Entity] = []

        if database:
            self._options["database"] = database
        if url:
            self._options["url"] = url
        if models:
            self.add(models)

    # Settings fall back to the member model's

    @property
    def database_name(self) -> Optional[str]:
        return self._options.get("database") or type(self).database or self.model.database

    @property
    def collection_name(self) -> Optional[str]:
        return self._options.get("url") or type(self).url or self.model.url

    @property
    def stored(self) -> bool:
        """True when any member is stored."""
        return any(model.stored for model in self.models)

    @property
    def attributes(self) -> Dict[str, Any]:
        return dict(self._attributes)

    def _read_attribute(self, key: str, default: Any = None) -> Any:
        return self._attributes.get(key, default)

    def _write_attribute(self, key: str, value: Any) -> None:
        self._attributes[key] = value

    def bind(self, engine: Any) -> 'EntitySet':
        super().bind(engine)
        for model in self.models:
            model.bind(engine)
        return self

    def members(self) -> List[Entity]:
        return list(self.models)

    # Membership

    def _prepare(self, item: EntityLike) -> Entity:
        if isinstance(item, Entity):
            entity = item
        elif isinstance(item, dict):
            entity = self.model(**item)
        else:
            raise TypeError(f"Cannot add {type(item).__name__} to {type(self).__name__}")
        if entity.sync_engine is None and self._engine is not None:
            entity.bind(self._engine)
        return entity

    def add(self, items: Union[EntityLike, Iterable[EntityLike]]) -> List[Entity]:
        """
        Add entities (or attribute dicts) to the set.

        An item whose identifier is already present is merged into the
        existing member instead of being added twice.

        Returns:
            The members that were added or merged, in input order
        """
        if isinstance(items, (Entity, dict)):
            items = [items]

        result = []
        for item in items:
            entity = self._prepare(item)
            existing = self.get_by_id(entity.id) if entity.id is not None else None
            if existing is not None:
                if existing is not entity:
                    existing.set(entity.attributes)
                result.append(existing)
                continue
            self.models.append(entity)
            self.trigger("add", entity, self)
            result.append(entity)
        return result

    def remove(self, entity: Entity) -> Optional[Entity]:
        # identity, not equality: two unsaved records may be equal
        for index, model in enumerate(self.models):
            if model is entity:
                del self.models[index]
                self.trigger("remove", entity, self)
                return entity
        return None

    def reset(self, items: Optional[Iterable[EntityLike]] = None) -> 'EntitySet':
        """Replace every member without emitting add/remove events."""
        self.models = []
        if items:
            self.models = [self._prepare(item) for item in items]
        self.trigger("reset", self)
        return self

    def merge(self, documents: Iterable[Dict[str, Any]]) -> List[Entity]:
        """Merge documents loaded from the store; the merged members are marked stored."""
        merged = self.add(list(documents))
        for entity in merged:
            entity.stored = True
            entity.mark_synced()
        return merged

    # Lookup

    def get_by_id(self, identifier: Any) -> Optional[Entity]:
        for model in self.models:
            if model.id is not None and model.id == identifier:
                return model
        return None

    def where(self, **attributes: Any) -> List[Entity]:
        return [model for model in self.models
                if all(model.get(key) == value for key, value in attributes.items())]

    def find_where(self, **attributes: Any) -> Optional[Entity]:
        matches = self.where(**attributes)
        return matches[0] if matches else None

    def documents(self) -> List[Dict[str, Any]]:
        return [model.attributes for model in self.models]

    async def validate_attributes(self, attributes: Dict[str, Any]) -> Any:
        """Validate every member; return the first error, or None."""
        for model in self.models:
            result = model.validate_attributes(model.attributes)
            if inspect.isawaitable(result):
                result = await result
            if result is not None:
                logger.debug(f"{type(model).__name__} {model.id!r} failed validation")
                return result
        return None

    def __len__(self) -> int:
        return len(self.models)

    def __iter__(self) -> Iterator[Entity]:
        return iter(self.models)

    def __getitem__(self, index: int) -> Entity:
        return self.models[index]

    def __repr__(self) -> str:
        return f"{type(self).__name__}({len(self.models)} models)"
