import json

import pytest

from customizer import authoring
from customizer.cache import ResourceCache
from customizer.payloads import (
	MalformedConfiguration,
	or_empty,
	parse_configuration,
	parse_endow,
	parse_options,
	serialize,
)
from customizer.schemas import ConfigurationSystem, EndowSystem, PurchaseOptions

STORED_CONFIG = {
	"items": [
		{
			"id": "lego",
			"name": "Lego",
			"baseQuantity": 2,
			"isRequired": True,
			"isActive": True,
			"priority": 1,
			"priceRules": [
				{"id": "r1", "condition": "greater_than", "minQuantity": 5, "pricePerUnit": 1000, "description": "Price 1,000/unit when > 5"},
				{"id": "r2", "condition": "between", "minQuantity": 10, "maxQuantity": 20, "pricePerUnit": 800, "description": "Bulk"},
			],
		}
	],
	"variantCategoryRules": [{"id": "vr1", "categoryId": "cat-lego", "categoryName": "Lego", "isRequired": True, "maxSelections": 2}],
	"globalCategoryRules": [],
	"allowCustomQuantity": True,
	"minCustomQuantity": 1,
	"maxCustomQuantity": 50,
}


def test_parse_stored_configuration():
	config = parse_configuration(STORED_CONFIG)
	assert isinstance(config, ConfigurationSystem)
	assert config.items[0].price_rules[1].max_quantity == 20
	assert config.category_rule_for("cat-lego").max_selections == 2
	assert config.max_custom_quantity == 50


def test_configuration_round_trip():
	config = parse_configuration(STORED_CONFIG)
	assert parse_configuration(serialize(config)) == config
	edited = authoring.add_variant_category_rule(config, "cat-frame", False, None, "Frames", rule_id="vr2")
	assert parse_configuration(edited.to_payload()) == edited


def test_wire_format_is_camel_case():
	payload = parse_configuration(STORED_CONFIG).to_payload()
	assert set(payload) == {"items", "variantCategoryRules", "allowCustomQuantity", "minCustomQuantity", "maxCustomQuantity"}
	assert "pricePerUnit" in payload["items"][0]["priceRules"][0]
	assert "maxQuantity" not in payload["items"][0]["priceRules"][0]


def test_missing_payload_is_empty_not_malformed():
	assert parse_configuration(None) == ConfigurationSystem()
	assert parse_configuration("  ") == ConfigurationSystem()
	assert parse_endow(None) == EndowSystem()


def test_stored_bounds_are_normalised():
	config = parse_configuration({"minCustomQuantity": 0, "maxCustomQuantity": -3})
	assert (config.min_custom_quantity, config.max_custom_quantity) == (1, 1)
	config = parse_configuration({"minCustomQuantity": 150})
	assert (config.min_custom_quantity, config.max_custom_quantity) == (150, 150)
	assert parse_configuration({}).allow_custom_quantity is True


@pytest.mark.parametrize(
	"raw",
	[
		"{not json",
		{"items": "oops"},
		{"items": [{"id": "x", "name": "X", "baseQuantity": -1}]},
		{"items": [{"id": "x", "name": "X", "priceRules": [{"id": "r", "condition": "between", "minQuantity": 5, "maxQuantity": 2, "pricePerUnit": 1}]}]},
		{"variantCategoryRules": [{"id": "c", "categoryId": "cat", "maxSelections": 0}]},
	],
)
def test_malformed_configuration_is_a_single_value(raw):
	parsed = parse_configuration(raw)
	assert isinstance(parsed, MalformedConfiguration)
	assert parsed.kind == "configuration"
	assert or_empty(parsed) == ConfigurationSystem()


def test_options_accept_legacy_shapes():
	listed = parse_options([{"id": "o1", "content": "Wrap", "price": 20000, "isActive": True, "priority": 1}])
	wrapped = parse_options({"purchaseOptions": [{"id": "o1", "content": "Wrap", "price": 20000, "isActive": True, "priority": 1}]})
	assert isinstance(listed, PurchaseOptions)
	assert listed == wrapped
	assert listed.to_payload() == [{"id": "o1", "content": "Wrap", "price": 20000.0, "isActive": True, "priority": 1}]
	assert isinstance(parse_options([{"id": "o1", "content": "Wrap", "price": -1}]), MalformedConfiguration)


def test_endow_accepts_plain_text_list():
	endow = parse_endow(json.dumps({"endows": ["Card", "Box"], "customProducts": [{"id": "c1", "productCustomId": "pc-1", "quantity": 2}]}))
	assert [item.content for item in endow.items] == ["Card", "Box"]
	assert endow.custom_products[0].quantity == 2
	assert parse_endow(endow.to_payload()) == endow


def test_cache_invalidation_is_declared_per_mutation():
	cache = ResourceCache()
	cache.set("configuration", "v1", "config-v1")
	cache.set("configuration", "v2", "config-v2")
	cache.set("quote", "v1", "quote-v1")
	cache.set("endow", "v1", "endow-v1")

	cache.invalidate_for("variant.configuration.update", "v1")
	assert ("configuration", "v1") not in cache
	assert ("quote", "v1") not in cache
	assert cache.get("configuration", "v2") == "config-v2"
	assert cache.get("endow", "v1") == "endow-v1"

	cache.set("catalog_index", "cat-a", [1])
	cache.set("catalog_index", "cat-b", [2])
	cache.invalidate_for("product_custom.update", "pc-1")
	assert ("catalog_index", "cat-a") not in cache
	assert ("catalog_index", "cat-b") not in cache

	with pytest.raises(KeyError):
		cache.invalidate_for("unknown.mutation", "v1")


def test_cache_get_or_load_loads_once():
	cache = ResourceCache()
	calls = []

	def loader():
		calls.append(1)
		return "value"

	assert cache.get_or_load("options", "v1", loader) == "value"
	assert cache.get_or_load("options", "v1", loader) == "value"
	assert len(calls) == 1
