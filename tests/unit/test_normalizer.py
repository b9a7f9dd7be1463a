import pytest

from healing_locator.locators.normalizer import looks_like_css_or_xpath, normalize
from healing_locator.models.descriptor import (
    ByCssOrXPath,
    ByRole,
    ByTestId,
    ByText,
    FreeText,
)


@pytest.mark.parametrize("raw", [
    "getByTestId('account-link')",
    'get_by_test_id("account-link")',
    "page.getByTestId('account-link')",
    '[data-testid="account-link"]',
    "[data-testid='account-link']",
    "data-testid=account-link",
    "testid=account-link",
    "account-link",
])
def test_test_id_hints(raw):
    descriptor = normalize(raw)
    assert isinstance(descriptor, ByTestId)
    assert descriptor.test_id == "account-link"
    assert descriptor.raw == raw


@pytest.mark.parametrize("raw, role, name", [
    ("getByRole('button', { name: 'Place order' })", "button", "Place order"),
    ('await page.getByRole("link", { name: "Sign in" });', "link", "Sign in"),
    ('get_by_role("checkbox", name="Remember me")', "checkbox", "Remember me"),
    ('role=button[name="Checkout"]', "button", "Checkout"),
    ("role=navigation", "navigation", ""),
])
def test_role_hints(raw, role, name):
    descriptor = normalize(raw)
    assert isinstance(descriptor, ByRole)
    assert descriptor.role == role
    assert descriptor.name == name


@pytest.mark.parametrize("raw, text", [
    ("getByText('Continue Shopping')", "Continue Shopping"),
    ("text=Sign in", "Sign in"),
    ('text="Sign in"', "Sign in"),
    ("getByText('It\\'s here')", "It's here"),
])
def test_text_hints(raw, text):
    descriptor = normalize(raw)
    assert isinstance(descriptor, ByText)
    assert descriptor.text == text


def test_codegen_chain_becomes_selector_chain():
    descriptor = normalize("getByTestId('header').getByRole('link', { name: 'Account' })")
    assert isinstance(descriptor, ByCssOrXPath)
    assert descriptor.selector == '[data-testid="header"] >> role=link[name="Account"]'


def test_nested_test_id_chain():
    descriptor = normalize("page.getByTestId('cart').getByTestId('item-1')")
    assert descriptor == ByCssOrXPath(
        selector='[data-testid="cart"] >> [data-testid="item-1"]',
        raw="page.getByTestId('cart').getByTestId('item-1')",
    )


def test_chain_with_first_uses_nth():
    descriptor = normalize("getByTestId('product-card').first()")
    assert isinstance(descriptor, ByCssOrXPath)
    assert descriptor.selector == '[data-testid="product-card"] >> nth=0'


def test_chain_respects_custom_test_id_attribute():
    descriptor = normalize("getByTestId('a').getByTestId('b')", test_id_attribute="data-qa")
    assert descriptor.selector == '[data-qa="a"] >> [data-qa="b"]'


@pytest.mark.parametrize("raw", [
    "//button[@id='checkout']",
    "(//a[contains(., 'Account')])[1]",
    "xpath=//div",
    "css=div.cart",
    "#checkout",
    ".btn-primary",
    "button:has-text('Continue Shopping')",
    "div.header > a",
    "ul li.item:nth-child(2)",
    "nav >> text=Account",
    "button",
    "input[name='email']",
])
def test_css_and_xpath(raw):
    descriptor = normalize(raw)
    assert isinstance(descriptor, ByCssOrXPath)
    assert descriptor.selector == raw


def test_xpath_detection():
    assert normalize("//button").is_xpath
    assert normalize("(//a)[2]").is_xpath
    assert not normalize("#checkout").is_xpath


def test_free_text_with_trailing_role_noun():
    descriptor = normalize("checkout button")
    assert isinstance(descriptor, FreeText)
    assert descriptor.description == "checkout button"
    assert descriptor.role_hint == "button"
    assert descriptor.name_hint == "checkout"


def test_free_text_strips_leading_filler_from_name_hint():
    descriptor = normalize("Click the continue button")
    assert descriptor.role_hint == "button"
    assert descriptor.name_hint == "continue"


@pytest.mark.parametrize("raw, role", [
    ("email field", "textbox"),
    ("Reviews tab", "tab"),
    ("country dropdown", "combobox"),
    ("Add to cart button", "button"),
])
def test_free_text_role_hints(raw, role):
    descriptor = normalize(raw)
    assert isinstance(descriptor, FreeText)
    assert descriptor.role_hint == role


def test_plain_free_text_has_no_hint():
    descriptor = normalize("continue")
    assert descriptor == FreeText(description="continue", raw="continue")


def test_quoted_free_text_is_unquoted():
    assert normalize("'Add to cart'").description == "Add to cart"


def test_words_that_are_tags_do_not_become_css():
    assert not looks_like_css_or_xpath("form input")
    assert isinstance(normalize("form input"), FreeText)
    assert isinstance(normalize("Sign in"), FreeText)


@pytest.mark.parametrize("raw", [
    None,
    "",
    "   ",
    "getByRole(",
    "getByRole('button', { name: 'unterminated",
    "foo('bar')",
    "Sign in (optional)",
    "))((",
    "[data-testid=",
    "role=",
    "text=",
    "\x00\x01",
    "🛒 cart",
])
def test_normalize_is_total(raw):
    descriptor = normalize(raw)
    assert isinstance(descriptor, (ByTestId, ByRole, ByText, ByCssOrXPath, FreeText))


def test_empty_input_is_empty_free_text():
    assert normalize("") == FreeText(description="", raw="")
    assert normalize(None) == FreeText(description="", raw="")


def test_normalize_is_pure():
    assert normalize("account-link") == normalize("account-link")
