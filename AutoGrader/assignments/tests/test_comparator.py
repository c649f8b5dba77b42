import pytest

from assignments.comparator import kind_of, matches_shape, values_equal


class TestValuesEqual:
    def test_none_only_equals_none(self):
        assert values_equal(None, None)
        assert not values_equal(None, 0)
        assert not values_equal(0, None)
        assert not values_equal(None, [])

    def test_int_and_float_compare_numerically(self):
        assert values_equal(1, 1.0)
        assert not values_equal(1, 2)

    def test_bool_is_not_a_number(self):
        assert not values_equal(True, 1)
        assert not values_equal(0, False)
        assert values_equal(False, False)

    def test_tolerance(self):
        assert values_equal(0.30000000000000004, 0.3, tolerance=1e-9)
        assert values_equal(0.3333, 1 / 3, tolerance=0.001)
        assert not values_equal(0.5, 0.6, tolerance=0.01)

    def test_zero_tolerance_is_exact(self):
        assert not values_equal(0.1 + 0.2, 0.3, tolerance=0)

    def test_lists_are_ordered(self):
        assert values_equal([1, 2, 3], [1, 2, 3])
        assert not values_equal([1, 2, 3], [3, 2, 1])
        assert not values_equal([1, 2], [1, 2, 3])

    def test_tuple_equals_list(self):
        assert values_equal((1, 2), [1, 2])

    def test_dict_key_order_does_not_matter(self):
        assert values_equal({"a": 1, "b": [1, 2]}, {"b": [1, 2], "a": 1})
        assert not values_equal({"a": 1}, {"a": 1, "b": 2})
        assert not values_equal({"a": 1}, {"b": 1})

    def test_tolerance_propagates_into_nested_values(self):
        assert values_equal({"avg": [0.1 + 0.2]}, {"avg": [0.3]}, tolerance=1e-9)

    def test_list_is_not_dict(self):
        assert not values_equal([], {})

    def test_strings(self):
        assert values_equal("abc", "abc")
        assert not values_equal("1", 1)

    @pytest.mark.parametrize("value", [None, 0, 1.5, "x", [1, [2]], {"k": {"n": None}}, True])
    def test_reflexive(self, value):
        assert values_equal(value, value)


class TestMatchesShape:
    def test_type_tags(self):
        value = {"name": "Ada", "age": 36, "tags": [], "active": True, "meta": {}, "extra": None}
        shape = {"name": "string", "age": "number", "tags": "array", "active": "boolean", "meta": "object", "extra": "null"}
        assert matches_shape(value, shape)

    def test_list_is_not_object(self):
        assert not matches_shape({"tags": []}, {"tags": "object"})

    def test_bool_is_not_number(self):
        assert not matches_shape({"n": True}, {"n": "number"})

    def test_missing_key(self):
        assert not matches_shape({"a": 1}, {"a": "number", "b": "string"})

    def test_literals_use_strict_equality(self):
        assert matches_shape({"ok": False, "code": 3}, {"ok": False, "code": 3})
        assert not matches_shape({"ok": 0}, {"ok": False})

    def test_extra_keys_are_fine(self):
        assert matches_shape({"a": 1, "b": 2}, {"a": "number"})

    @pytest.mark.parametrize("value", [None, [], "x", 3])
    def test_non_dict_values_never_match(self, value):
        assert not matches_shape(value, {"a": "number"})


def test_kind_of():
    assert kind_of(None) == "null"
    assert kind_of(True) == "boolean"
    assert kind_of(2) == "number"
    assert kind_of(2.5) == "number"
    assert kind_of("s") == "string"
    assert kind_of([1]) == "array"
    assert kind_of({}) == "object"
