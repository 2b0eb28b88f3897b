from typing import Any, Callable, ClassVar, Dict, List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr
from pydantic import ValidationError as ModelValidationError

from .hooks import HookPipeline
from .mixins import ObservableMixin, PersistenceMixin


class Entity(ObservableMixin, PersistenceMixin, BaseModel):
    """
    A single record synchronized with a document collection.

    Declared fields are validated by pydantic; any other keyword becomes a
    free-form attribute. The store identifier is the ``id`` field, stored
    as ``_id``.

    Example:
        class User(Entity):
            database = "app"
            url = "users"
            before = {"create username": str.lower}

            username: str
    """
    model_config = ConfigDict(extra="allow",
                              arbitrary_types_allowed=True,
                              populate_by_name=True)

    # Class-level settings (ClassVar keeps them out of the attribute set)
    database: ClassVar[Optional[str]] = None
    url: ClassVar[Optional[str]] = None
    before: ClassVar[Dict[str, Any]] = {}
    after: ClassVar[Dict[str, Any]] = {}
    hooks: ClassVar[HookPipeline] = HookPipeline()

    id: Optional[Any] = Field(default=None, alias="_id")

    _stored: bool = PrivateAttr(default=False)
    _engine: Optional[Any] = PrivateAttr(default=None)
    _options: Dict[str, Any] = PrivateAttr(default_factory=dict)
    _events: Dict[str, List[Callable[..., Any]]] = PrivateAttr(default_factory=dict)
    _changed: Dict[str, Any] = PrivateAttr(default_factory=dict)
    _previous: Dict[str, Any] = PrivateAttr(default_factory=dict)

    @classmethod
    def __pydantic_init_subclass__(cls, **kwargs: Any) -> None:
        super().__pydantic_init_subclass__(**kwargs)
        cls.hooks = HookPipeline.from_tables(cls.before, cls.after)

    def model_post_init(self, __context: Any) -> None:
        # An ObjectId can only have come from the store.
        self._stored = isinstance(self.id, ObjectId)

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_"):
            super().__setattr__(name, value)
        elif isinstance(getattr(type(self), name, None), property):
            object.__setattr__(self, name, value)
        else:
            self.set(name, value)

    @property
    def stored(self) -> bool:
        """True iff the store is known to hold a record with this identifier."""
        return self._stored

    @stored.setter
    def stored(self, value: bool) -> None:
        self._stored = bool(value)

    @property
    def attributes(self) -> Dict[str, Any]:
        """Current attribute set as a document, ``_id`` included when known."""
        document = self.model_dump(by_alias=True)
        if document.get("_id") is None:
            document.pop("_id", None)
        return document

    @staticmethod
    def _field_key(key: str) -> str:
        return "id" if key == "_id" else key

    def _read_attribute(self, key: str, default: Any = None) -> Any:
        key = self._field_key(key)
        if key in type(self).model_fields:
            return getattr(self, key)
        return (self.__pydantic_extra__ or {}).get(key, default)

    def _write_attribute(self, key: str, value: Any) -> None:
        BaseModel.__setattr__(self, self._field_key(key), value)

    def validate_attributes(self, attributes: Dict[str, Any]) -> Any:
        """
        Validate an attribute set; return None when valid, else the error.

        The default re-validates the declared fields with pydantic. Override
        to add business rules; the return value becomes the ValidationError
        message.
        """
        try:
            type(self).model_validate(attributes)
        except ModelValidationError as error:
            return str(error)
        return None

    def __repr__(self) -> str:
        state = "stored" if self._stored else "new"
        return f"{type(self).__name__}({self.attributes!r}, {state})"
