import pytest

from app.services.eligibility import EligibilityGate, evaluate_eligibility
from tests.conftest import SPECIAL_CATEGORY


@pytest.fixture
def gate() -> EligibilityGate:
    return EligibilityGate(required_count=2, special_category_id=SPECIAL_CATEGORY)


def test_empty_cart_is_blocked(gate):
    decision = gate.evaluate(set())

    assert not decision.checkout_enabled
    assert not decision.single_item_fast_path
    assert decision.progress == "empty"
    assert decision.message == "Select items from at least 2 different categories"


def test_single_regular_category_is_blocked(gate):
    decision = gate.evaluate({"A"})

    assert not decision.checkout_enabled
    assert not decision.single_item_fast_path
    assert decision.progress == "partial"
    assert decision.message == "1 of 2 required categories selected - Add more items!"


def test_special_category_alone_uses_fast_path(gate):
    decision = gate.evaluate({SPECIAL_CATEGORY})

    assert decision.checkout_enabled
    assert decision.single_item_fast_path
    assert decision.progress == "special"


def test_enough_categories_use_main_path(gate):
    decision = gate.evaluate({"A", "B"})

    assert decision.checkout_enabled
    assert not decision.single_item_fast_path
    assert decision.progress == "ready"
    assert decision.category_count == 2


def test_special_with_other_categories_uses_main_path(gate):
    decision = gate.evaluate({SPECIAL_CATEGORY, "A"})

    assert decision.checkout_enabled
    assert not decision.single_item_fast_path


def test_special_bypasses_required_count():
    gate = EligibilityGate(required_count=3, special_category_id=SPECIAL_CATEGORY)

    decision = gate.evaluate({SPECIAL_CATEGORY, "A"})

    assert decision.checkout_enabled
    assert decision.progress == "special"


def test_missing_category_ids_are_ignored(gate):
    decision = gate.evaluate(["A", None, "", "A"])
    assert decision.category_count == 1


def test_required_count_is_at_least_one():
    gate = EligibilityGate(required_count=0, special_category_id=None)

    assert not gate.evaluate([]).checkout_enabled
    assert gate.evaluate(["A"]).checkout_enabled


def test_evaluate_eligibility_uses_settings(settings):
    decision = evaluate_eligibility({"A"}, settings)
    assert decision.required_count == settings.REQUIRED_CATEGORIES_COUNT
    assert evaluate_eligibility({SPECIAL_CATEGORY}, settings).single_item_fast_path
