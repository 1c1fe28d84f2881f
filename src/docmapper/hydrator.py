"""Model construction from value trees."""

from __future__ import annotations

from typing import Any, Callable, Generic, TypeVar

from docmapper.values import Model, set_values

ModelT = TypeVar("ModelT")


class Hydrator(Generic[ModelT]):
    """Creates models of one class and fills them from value trees.

    Args:
        model_class: Class to instantiate. It must be constructible without
            arguments and expose a ``values`` dict.
        factory: Optional callable used instead of ``model_class()``.

    Example:
        >>> hydrator = Hydrator(Order)
        >>> order = hydrator.hydrate({"_id": oid, "status": "new"})
    """

    def __init__(
        self,
        model_class: type[ModelT] = Model,  # type: ignore[assignment]
        factory: Callable[[], ModelT] | None = None,
    ) -> None:
        self._model_class = model_class
        self._factory = factory or model_class

    @property
    def model_class(self) -> type[ModelT]:
        return self._model_class

    def create(self) -> ModelT:
        """Create a fresh, empty model."""
        return self._factory()

    def hydrate(self, values: dict[str, Any], model: ModelT | None = None) -> ModelT:
        """Fill ``model`` (or a new one) with a copy of ``values``."""
        if model is None:
            model = self.create()
        set_values(model, values)
        return model
