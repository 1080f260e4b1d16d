"""
Unit tests for the small core services: cache, signal buses, localization,
identifiers and log formatting.
"""

import logging

import pytest

from formx.core.cache import DataCache
from formx.core.logging import StructuredFormatter, get_logger, set_session_id, session_id_cv
from formx.core.signals import SignalBus, get_bus
from formx.lib.ids import (
    generate_component_id,
    generate_component_ids,
    generate_component_name,
    generate_form_id,
    generate_guid,
    get_type_from_component_id,
    is_valid_component_id,
    is_valid_guid,
)
from formx.lib.localization import LocalizationManager


class TestDataCache:

    def test_hit_and_expiry(self):
        now = [100.0]
        cache = DataCache(ttl_seconds=5, clock=lambda: now[0])
        cache.set("countries", [1])
        assert cache.get("countries") == [1]
        now[0] = 106.0
        assert cache.get("countries") is None
        assert len(cache) == 0

    def test_writes_drop_expired_entries(self):
        now = [0.0]
        cache = DataCache(ttl_seconds=5, clock=lambda: now[0])
        cache.set("region=eu", [1])
        cache.set("region=us", [2])
        now[0] = 10.0
        cache.set("region=asia", [3])
        assert len(cache) == 1
        assert cache.get("region=asia") == [3]

    def test_prune_keeps_live_entries(self):
        now = [0.0]
        cache = DataCache(ttl_seconds=5, clock=lambda: now[0])
        cache.set("old", 1)
        now[0] = 4.0
        cache.set("new", 2)
        now[0] = 7.0
        assert cache.prune() == 1
        assert cache.get("new") == 2

    def test_invalidate_and_clear(self):
        cache = DataCache(ttl_seconds=60)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.invalidate("a")
        assert cache.get("a") is None
        cache.clear()
        assert len(cache) == 0

    def test_keys_are_prefixed(self):
        assert DataCache.key("x") == "formx-data-x"


class TestSignalBus:

    @pytest.mark.asyncio
    async def test_sync_and_async_subscribers(self):
        bus = SignalBus("test")
        seen = []

        async def async_sub(msg):
            seen.append(("async", msg))

        bus.subscribe(lambda msg: seen.append(("sync", msg)))
        bus.subscribe(async_sub)
        await bus.publish("hello")
        assert seen == [("sync", "hello"), ("async", "hello")]
        assert bus.last_message == "hello"

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_stop_delivery(self):
        bus = SignalBus("test")
        seen = []

        def broken(msg):
            raise RuntimeError("x")

        bus.subscribe(broken)
        bus.subscribe(seen.append)
        await bus.publish(1)
        assert seen == [1]

    @pytest.mark.asyncio
    async def test_unsubscribe_and_keep_last(self):
        bus = SignalBus("test", keep_last=False)
        seen = []
        unsubscribe = bus.subscribe(seen.append)
        unsubscribe()
        await bus.publish(1)
        assert seen == []
        assert bus.last_message is None

    def test_get_bus_is_a_registry(self):
        assert get_bus("modal") is get_bus("modal")
        assert get_bus("modal") is not get_bus("other")


class TestLocalizationManager:

    @pytest.fixture
    def manager(self):
        return LocalizationManager.from_persisted({
            "defaultLanguage": "en-US",
            "languages": [{"code": "en-US", "name": "English (US)"}, {"code": "es-ES", "name": "Spanish (ES)"}],
            "localization": {"en-US": {"title": "Title", "only_en": "English"}, "es-ES": {"title": "Titulo"}},
        })

    def test_resolve_order(self, manager):
        assert manager.resolve("title", "es-ES") == "Titulo"
        assert manager.resolve("only_en", "es-ES") == "English"
        assert manager.resolve("unknown", "es-ES") == "unknown"
        assert manager.resolve("") == ""

    def test_set_language_accepts_known_codes_only(self, manager):
        assert manager.set_language("es-ES") is True
        assert manager.translate("title") == "Titulo"
        assert manager.set_language("fr-FR") is False
        assert manager.current_language == "es-ES"

    def test_translate_default(self, manager):
        assert manager.translate("missing", "Fallback") == "Fallback"

    def test_add_translations(self, manager):
        manager.add_translations("fr-FR", {"title": "Titre"})
        assert manager.resolve("title", "fr-FR") == "Titre"


class TestIds:

    def test_component_id_shape(self):
        cid = generate_component_id("Select")
        assert cid.startswith("sele-")
        assert len(cid) == len("sele-") + 8
        assert is_valid_component_id(cid)
        assert get_type_from_component_id(cid) == "sele"
        assert generate_component_id().startswith("comp-")

    def test_ids_are_unique(self):
        assert len({generate_component_id("TextInput") for _ in range(50)}) == 50

    def test_guid(self):
        assert is_valid_guid(generate_guid())
        assert not is_valid_guid("not-a-guid")

    def test_form_id(self):
        assert generate_form_id("My Form!") == "my_form_v1"
        assert generate_form_id("  Tax   return 2024 ", "v2") == "tax_return_2024_v2"

    def test_component_name_avoids_clashes(self):
        assert generate_component_name("firstName") == "firstname"
        assert generate_component_name("email", existing_names={"email"}) == "email_1"
        assert generate_component_name("email", existing_names={"email", "email_1"}) == "email_2"
        assert generate_component_name(None, "Date Picker") == "date_picker"

    def test_generate_component_ids(self):
        ids = generate_component_ids("Amount", "price")
        assert set(ids) == {"id", "guid", "name"}
        assert ids["name"] == "price"


class TestLogging:

    def test_get_logger_hierarchy(self):
        assert get_logger("formx.lib.dependencies").name == "formx.dependencies"
        assert get_logger().name == "formx"

    def test_formatter_includes_session(self):
        formatter = StructuredFormatter()
        formatter.USE_COLOR = False
        record = logging.LogRecord("formx.actions", logging.INFO, __file__, 1, "[ACTION] done", None, None)
        token = set_session_id("abcdef1234")
        try:
            line = formatter.format(record)
        finally:
            session_id_cv.reset(token)
        assert "INFO" in line
        assert "formx.actions [abcdef12]" in line
        assert line.endswith("[ACTION] done")

    def test_formatter_colours_tags(self):
        formatter = StructuredFormatter()
        assert "\033[" in formatter._colorize_tags("[VALIDATE] x")
