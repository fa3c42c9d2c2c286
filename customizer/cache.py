import logging
from typing import Any, Callable, Dict, Hashable, Tuple

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, Hashable]

INVALIDATIONS: Dict[str, Tuple[Tuple[str, str], ...]] = {
	"variant.configuration.update": (("configuration", "self"), ("quote", "self")),
	"variant.endow.update": (("endow", "self"), ("endow_availability", "self")),
	"variant.options.update": (("options", "self"), ("quote", "self")),
	"product.update": (("background_capability", "self"),),
	"product_custom.update": (("product_custom", "self"), ("catalog_index", "all"), ("endow_availability", "all")),
}

_MISSING = object()


class ResourceCache:
	def __init__(self) -> None:
		self._entries: Dict[CacheKey, Any] = {}

	def __contains__(self, key: CacheKey) -> bool:
		return key in self._entries

	def get(self, kind: str, entity_id: Hashable, default: Any = None) -> Any:
		return self._entries.get((kind, entity_id), default)

	def set(self, kind: str, entity_id: Hashable, value: Any) -> None:
		self._entries[(kind, entity_id)] = value

	def get_or_load(self, kind: str, entity_id: Hashable, loader: Callable[[], Any]) -> Any:
		value = self._entries.get((kind, entity_id), _MISSING)
		if value is _MISSING:
			value = loader()
			self._entries[(kind, entity_id)] = value
		return value

	def invalidate(self, kind: str, entity_id: Hashable) -> None:
		self._entries.pop((kind, entity_id), None)

	def invalidate_kind(self, kind: str) -> None:
		for key in [key for key in self._entries if key[0] == kind]:
			del self._entries[key]

	def invalidate_for(self, mutation: str, entity_id: Hashable) -> None:
		try:
			targets = INVALIDATIONS[mutation]
		except KeyError:
			raise KeyError(f"no invalidation set declared for mutation {mutation!r}") from None
		for kind, scope in targets:
			if scope == "all":
				self.invalidate_kind(kind)
			else:
				self.invalidate(kind, entity_id)
		logger.debug("Invalidated %s for %s=%s", [kind for kind, _ in targets], mutation, entity_id)

	def clear(self) -> None:
		self._entries.clear()
