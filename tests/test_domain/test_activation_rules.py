"""
Tests for the pure activation rules.
"""
import itertools

import pytest

from creatorhub.domain.activation import (
    MIN_GALLERY_PHOTOS,
    SOURCE_CONNECT_RECORD,
    SOURCE_LEGACY_USER_FLAGS,
    SOURCE_PROFILE_MIRROR,
    SOURCE_USER_FLAG,
    any_flag,
    compute_is_active,
    derive_profile_complete,
    resolve_payment_connected,
)


class TestComputeIsActive:

    @pytest.mark.parametrize(
        "profile,payment,published,any_product",
        list(itertools.product([False, True], repeat=4)),
    )
    def test_formula_over_all_combinations(self, profile, payment, published, any_product):
        expected = profile and payment and (published or any_product)
        assert compute_is_active(profile, payment, published, any_product) is expected

    def test_no_products_is_inactive(self):
        assert compute_is_active(True, True, False, False) is False

    def test_unpublished_product_still_activates(self):
        assert compute_is_active(True, True, False, True) is True


class TestDeriveProfileComplete:

    def test_explicit_flag_wins(self):
        assert derive_profile_complete(True, None, None, None, 0) is True

    def test_all_fields_and_enough_photos(self):
        assert derive_profile_complete(None, "Ann", "bio", "a.png", MIN_GALLERY_PHOTOS) is True

    def test_too_few_photos(self):
        assert derive_profile_complete(False, "Ann", "bio", "a.png", MIN_GALLERY_PHOTOS - 1) is False

    def test_blank_name_does_not_count(self):
        assert derive_profile_complete(None, "   ", "bio", "a.png", 10) is False

    def test_missing_avatar(self):
        assert derive_profile_complete(None, "Ann", "bio", None, 10) is False


class TestResolvePaymentConnected:

    def test_first_truthy_source_wins(self):
        connected, source = resolve_payment_connected({
            SOURCE_USER_FLAG: None,
            SOURCE_PROFILE_MIRROR: True,
            SOURCE_LEGACY_USER_FLAGS: True,
        })
        assert connected is True
        assert source == SOURCE_PROFILE_MIRROR

    def test_all_absent(self):
        assert resolve_payment_connected({}) == (False, None)

    def test_false_falls_through_to_legacy(self):
        connected, source = resolve_payment_connected({
            SOURCE_USER_FLAG: False,
            SOURCE_PROFILE_MIRROR: False,
            SOURCE_CONNECT_RECORD: None,
            SOURCE_LEGACY_USER_FLAGS: True,
        })
        assert (connected, source) == (True, SOURCE_LEGACY_USER_FLAGS)

    def test_callable_not_evaluated_after_a_hit(self):
        calls = []

        def lookup():
            calls.append(1)
            return True

        resolve_payment_connected({SOURCE_USER_FLAG: True, SOURCE_CONNECT_RECORD: lookup})
        assert calls == []

    def test_callable_evaluated_when_reached(self):
        connected, source = resolve_payment_connected({
            SOURCE_USER_FLAG: False,
            SOURCE_CONNECT_RECORD: lambda: True,
        })
        assert (connected, source) == (True, SOURCE_CONNECT_RECORD)


class TestAnyFlag:

    def test_none_when_all_absent(self):
        assert any_flag([None, None]) is None

    def test_false_when_present_and_false(self):
        assert any_flag([None, False]) is False

    def test_true_when_any_true(self):
        assert any_flag([False, True]) is True
