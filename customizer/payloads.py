import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Literal, Type, Union

from pydantic import ValidationError

from .schemas import ConfigurationSystem, EndowSystem, PayloadModel, PurchaseOptions

logger = logging.getLogger(__name__)

PayloadKind = Literal["configuration", "endow", "options"]

PAYLOAD_TYPES: Dict[str, Type[PayloadModel]] = {
	"configuration": ConfigurationSystem,
	"endow": EndowSystem,
	"options": PurchaseOptions,
}


@dataclass(frozen=True)
class MalformedConfiguration:
	kind: str
	error: str
	raw: Any = None


Parsed = Union[ConfigurationSystem, EndowSystem, PurchaseOptions, MalformedConfiguration]


def new_id(prefix: str) -> str:
	return f"{prefix}_{uuid.uuid4().hex[:12]}"


def empty_payload(kind: PayloadKind) -> PayloadModel:
	return PAYLOAD_TYPES[kind]()


def parse_payload(kind: PayloadKind, raw: Any) -> Parsed:
	"""Validate a stored payload.

	``raw`` may be ``None``, a JSON string or already-decoded JSON. A missing
	or blank payload is an empty one, not a malformed one.
	"""
	model = PAYLOAD_TYPES[kind]
	if raw is None or (isinstance(raw, str) and raw.strip() == ""):
		return model()
	data = raw
	if isinstance(raw, str):
		try:
			data = json.loads(raw)
		except ValueError as exc:
			logger.warning("Stored %s payload is not valid JSON: %s", kind, exc)
			return MalformedConfiguration(kind=kind, error=f"invalid JSON: {exc}", raw=raw)
	try:
		return model.model_validate(data)
	except ValidationError as exc:
		logger.warning("Stored %s payload failed validation (%d errors)", kind, exc.error_count())
		return MalformedConfiguration(kind=kind, error=str(exc), raw=raw)


def parse_configuration(raw: Any) -> Union[ConfigurationSystem, MalformedConfiguration]:
	return parse_payload("configuration", raw)


def parse_endow(raw: Any) -> Union[EndowSystem, MalformedConfiguration]:
	return parse_payload("endow", raw)


def parse_options(raw: Any) -> Union[PurchaseOptions, MalformedConfiguration]:
	return parse_payload("options", raw)


def or_empty(parsed: Parsed) -> PayloadModel:
	if isinstance(parsed, MalformedConfiguration):
		return empty_payload(parsed.kind)
	return parsed


def serialize(payload: PayloadModel) -> str:
	return json.dumps(payload.to_payload())
