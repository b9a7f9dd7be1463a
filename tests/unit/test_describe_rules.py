import pytest

from healing_locator.locators.describe_rules import CLICK_RULES, describe_step, describe_target
from healing_locator.locators.normalizer import normalize
from healing_locator.models.action_models import ActionType
from healing_locator.models.descriptor import ByCssOrXPath, ByRole, ByTestId, FreeText


@pytest.mark.parametrize("raw, label", [
    ("place-order-button", "place order button"),
    ("getByTestId('order-button')", "place order button"),
    ("account-link", "account link"),
    ("getByTestId('header').getByRole('link', { name: 'Account' })", "account link"),
    ("continue-button", "continue button"),
    ("getByRole('button', { name: 'Sign in' })", "sign in button"),
    ("search-button", "search button"),
    ("add-to-cart", "add to cart button"),
    ("proceed-to-checkout", "proceed to checkout button"),
    ("checkout button", "proceed to checkout button"),
    ("credit-card-option", "payment method"),
    ("getByRole('textbox', { name: 'Email address' })", "email field"),
    ("getByRole('textbox', { name: 'Password' })", "password field"),
    ("getByRole('link', { name: 'Blue running shoes' })", "product link"),
])
def test_click_labels(raw, label):
    assert describe_target(normalize(raw), ActionType.CLICK) == label


def test_rules_are_evaluated_in_order():
    # Matches both the order rule and the account rule; the order rule is listed first.
    assert describe_target(ByTestId("account-order-button")) == "place order button"
    assert CLICK_RULES[0].label == "place order button"


def test_textbox_rules_need_textbox_role():
    assert describe_target(ByRole(role="button", name="Email me")) == "Email me button"


def test_account_link_is_not_product_link():
    assert describe_target(ByRole(role="link", name="My account")) == "account link"


@pytest.mark.parametrize("raw, label", [
    ("#email", "email field"),
    ("input[name='password']", "password field"),
    ("search box", "search field"),
    ("#first-name", "field"),
])
def test_fill_labels(raw, label):
    assert describe_target(normalize(raw), ActionType.TYPE) == label


def test_fallback_labels_per_variant():
    assert describe_target(FreeText(description="red sneaker tile")) == "red sneaker tile"
    assert describe_target(ByRole(role="heading", name="Specials")) == "Specials heading"
    assert describe_target(ByTestId("promo_banner")) == "promo banner"
    assert describe_target(ByCssOrXPath(selector="div > span")) == "element"


def test_describe_step_sentences():
    assert describe_step(ActionType.CLICK, "account link") == "Click account link"
    assert describe_step(ActionType.TYPE, "email field", "a@b.c") == "Type 'a@b.c' into email field"
    assert describe_step(ActionType.SELECT, "size", "XL") == "Select 'XL' in size"
    assert describe_step("wait", "cart badge") == "Wait for cart badge"
    assert describe_step(ActionType.NAVIGATE, "https://shop.example") == "Navigate to https://shop.example"


@pytest.mark.parametrize("target", ["#password", "input[name=passwd]", "user-pwd"])
def test_typed_passwords_are_masked(target):
    label = describe_target(normalize(target), ActionType.TYPE)
    assert label == "password field"
    assert describe_step(ActionType.TYPE, label, "hunter2") == "Type '********' into password field"


def test_other_typed_values_stay_readable():
    assert describe_step(ActionType.TYPE, "search field", "hunter2") == "Type 'hunter2' into search field"
