"""Document identity helpers.

The reserved ``_id`` field holds a store-generated ``bson.ObjectId``. These
helpers read and write it on models and turn the accepted identity forms
(ObjectId, model, 24-hex string) into a canonical ObjectId.
"""

from __future__ import annotations

from typing import Any

from bson import ObjectId
from bson.errors import InvalidId

from docmapper.base import UnsupportedIdentityError
from docmapper.values import is_model, values_of

ID_FIELD = "_id"


def get_object_id(model: Any) -> ObjectId | None:
    """Return the model's identity, or None if it has not been stored yet."""
    return values_of(model).get(ID_FIELD)


def set_object_id(model: Any, object_id: ObjectId | None) -> None:
    """Assign (or clear, with None) the model's identity."""
    values = values_of(model)
    if object_id is None:
        values.pop(ID_FIELD, None)
    else:
        values[ID_FIELD] = object_id


def resolve_object_id(value: Any) -> ObjectId:
    """Normalize a model, ObjectId or string id into an ObjectId.

    Raises:
        UnsupportedIdentityError: If the value has none of those shapes, is
            an invalid string, or is a model that has not been stored.
    """
    if isinstance(value, ObjectId):
        return value

    if isinstance(value, str):
        try:
            return ObjectId(value)
        except InvalidId as e:
            raise UnsupportedIdentityError(value) from e

    if is_model(value):
        object_id = get_object_id(value)
        if isinstance(object_id, ObjectId):
            return object_id
        if isinstance(object_id, str):
            return resolve_object_id(object_id)

    raise UnsupportedIdentityError(value)
