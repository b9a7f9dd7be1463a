import pytest

from conftest import FakePage, run
from healing_locator.browser_provider import (
    BrowserConfig,
    LocalPlaywrightProvider,
    MockBrowserProvider,
    RemoteBrowserProvider,
    create_browser_provider,
)


@pytest.mark.parametrize("provider_type, cls", [
    ("local", LocalPlaywrightProvider),
    ("remote", RemoteBrowserProvider),
    ("mock", MockBrowserProvider),
])
def test_factory(provider_type, cls):
    assert isinstance(create_browser_provider(BrowserConfig(provider_type=provider_type)), cls)


def test_factory_rejects_unknown_type():
    with pytest.raises(ValueError):
        create_browser_provider(BrowserConfig(provider_type="selenium"))


def test_viewport():
    assert BrowserConfig(viewport_width=1920, viewport_height=1080).viewport == {"width": 1920, "height": 1080}


def test_mock_provider_returns_the_fake_page():
    page = FakePage()
    provider = MockBrowserProvider(BrowserConfig(provider_type="mock"), mock_page=page)

    assert run(provider.get_page()) is page
    run(provider.close())
    assert provider.closed


def test_mock_provider_without_page():
    with pytest.raises(NotImplementedError):
        run(MockBrowserProvider(BrowserConfig(provider_type="mock")).get_page())


def test_remote_provider_requires_url():
    with pytest.raises(ValueError, match="remote_cdp_url"):
        run(RemoteBrowserProvider(BrowserConfig(provider_type="remote")).get_page())


def test_close_before_start_is_harmless():
    run(LocalPlaywrightProvider(BrowserConfig()).close())
