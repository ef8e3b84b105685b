"""
JSON Codec

Converts typed values to and from the text that storage backends hold.

DESIGN DECISION: Encoding is canonical - sorted keys, no whitespace.
Two equal values always produce byte-identical text, which is what lets
the staleness detector compare snapshots with a plain string comparison.

All JSON and schema errors are isolated here. Nothing outside this
module ever sees a json.JSONDecodeError or a pydantic ValidationError
coming out of stored data.
"""

import json
from typing import Any, Optional, TypeVar

from pydantic import BaseModel, ValidationError


ModelT = TypeVar("ModelT", bound=BaseModel)


class CodecError(Exception):
    """Base exception for codec errors."""
    pass


class EncodingError(CodecError):
    """Value cannot be serialized (cyclic structure, unsupported type)."""
    pass


class DecodingError(CodecError):
    """Stored text is malformed or does not match the expected schema."""
    pass


class JsonCodec:
    """
    Canonical JSON codec.

    Pydantic models are dumped in JSON mode using their field aliases,
    so wire names like "lastScreen" are preserved.
    """

    def encode(self, value: Any) -> str:
        """
        Serialize a value.

        Args:
            value: A pydantic model, or any JSON-compatible value
                   (which may contain pydantic models)

        Returns:
            Canonical JSON text

        Raises:
            EncodingError: If the value cannot be serialized
        """
        try:
            return json.dumps(
                value,
                default=self._default,
                sort_keys=True,
                separators=(",", ":"),
                ensure_ascii=False,
                allow_nan=False,
            )
        except (TypeError, ValueError, RecursionError) as e:
            raise EncodingError(f"Value is not serializable: {e}") from e

    def decode(self, text: str, model: Optional[type[ModelT]] = None) -> Any:
        """
        Deserialize stored text.

        Args:
            text: Text previously produced by encode()
            model: Optional pydantic model to validate into

        Returns:
            The parsed value, or a model instance when `model` is given

        Raises:
            DecodingError: If the text is malformed or fails validation
        """
        try:
            data = json.loads(text)
        except (TypeError, ValueError) as e:
            raise DecodingError(f"Malformed stored value: {e}") from e

        if model is None:
            return data

        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise DecodingError(
                f"Stored value does not match {model.__name__}: {e.error_count()} errors"
            ) from e

    @staticmethod
    def _default(value: Any) -> Any:
        if isinstance(value, BaseModel):
            return value.model_dump(mode="json", by_alias=True)
        raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
