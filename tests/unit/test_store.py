"""
Unit tests for the per-session form data store.
"""

from formx.lib.store import FormDataStore


class TestReadsAndWrites:

    def test_set_and_get(self, store):
        assert store.set("name", "Ada") is True
        assert store.get("name") == "Ada"
        assert "name" in store
        assert store.get("missing") is None

    def test_equal_write_is_a_noop(self, store):
        store.set("n", 1)
        assert store.set("n", 1) is False

    def test_type_change_is_a_write(self, store):
        store.set("n", 1)
        assert store.set("n", True) is True

    def test_setting_none_on_a_new_key_is_a_write(self, store):
        assert store.set("x", None) is True
        assert "x" in store

    def test_get_all_is_a_copy(self, store):
        store.set("rows", [{"a": 1}])
        snapshot = store.get_all()
        snapshot["rows"][0]["a"] = 2
        assert store.get("rows") == [{"a": 1}]

    def test_reset_restores_initial_data(self):
        store = FormDataStore({"country": "NO"})
        store.set("country", "SE")
        store.set("city", "Malmo")
        store.reset()
        assert store.get_all() == {"country": "NO"}

    def test_initial_data_is_copied(self):
        initial = {"rows": []}
        store = FormDataStore(initial)
        store.get("rows").append(1)
        store.reset()
        assert store.get("rows") == []
        assert initial == {"rows": []}

    def test_clear(self):
        store = FormDataStore({"a": 1})
        store.clear()
        store.reset()
        assert store.get_all() == {}


class TestListeners:

    def test_listener_receives_changes(self, store):
        seen = []
        store.subscribe(lambda key, value, previous: seen.append((key, value, previous)))
        store.set("a", 1)
        store.set("a", 1)
        store.set("a", 2)
        assert seen == [("a", 1, None), ("a", 2, 1)]

    def test_whole_store_replacement_has_no_key(self, store):
        seen = []
        store.subscribe(lambda key, value, previous: seen.append(key))
        store.reset()
        assert seen == [None]

    def test_unsubscribe(self, store):
        seen = []
        unsubscribe = store.subscribe(lambda *args: seen.append(args))
        unsubscribe()
        unsubscribe()
        store.set("a", 1)
        assert seen == []

    def test_failing_listener_does_not_block_others(self, store):
        seen = []

        def broken(*args):
            raise RuntimeError("boom")

        store.subscribe(broken)
        store.subscribe(lambda key, *rest: seen.append(key))
        store.set("a", 1)
        assert seen == ["a"]


class TestScriptSurface:
    """Aliases and property evaluation used by scripts."""

    def test_camel_case_aliases(self, store):
        store.setData("x", 5)
        assert store.getData("x") == 5
        assert store.getAllData() == {"x": 5}

    def test_evaluate_property_against_store(self):
        store = FormDataStore({"qty": 2, "price": 4})
        prop = {"computeType": "Function", "fnSource": "return data.qty * data.price;"}
        assert store.evaluate_property(prop) == 8
