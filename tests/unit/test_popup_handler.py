from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from conftest import FakeElement, FakePage, run
from healing_locator.healing_config import PopupConfig
from healing_locator.popup_handler import PopupHandler
from healing_locator.utils.event_logger import EventType

CLOSE = '[aria-label*="close" i]'
ACCEPT = 'button:has-text("Accept")'


class FakeDialog:
    def __init__(self, type="alert", message="Are you sure?"):
        self.type = type
        self.message = message
        self.handled = None

    async def accept(self):
        self.handled = "accepted"

    async def dismiss(self):
        self.handled = "dismissed"


class FakeWindow:
    def __init__(self, url, loads=True):
        self.url = url
        self.loads = loads
        self.closed = False

    async def wait_for_load_state(self, state="load", timeout=None):
        if not self.loads:
            raise PlaywrightTimeoutError("Timeout waiting for domcontentloaded")

    async def close(self):
        self.closed = True


def quick_config(**overrides):
    return PopupConfig(settle_ms=0, check_timeout_ms=50, **overrides)


def test_install_registers_listeners_once():
    page = FakePage()
    handler = PopupHandler(page, quick_config())
    handler.install()
    handler.install()

    assert len(page.listeners["dialog"]) == 1
    assert len(page.context.listeners["page"]) == 1

    handler.uninstall()
    assert page.listeners["dialog"] == []
    assert page.context.listeners["page"] == []


def test_disabled_handler_installs_nothing():
    page = FakePage()
    PopupHandler(page, quick_config(enabled=False)).install()
    assert page.listeners == {}


def test_alerts_are_accepted_and_prompts_dismissed(quiet_logger):
    handler = PopupHandler(FakePage(), quick_config())
    alert, prompt = FakeDialog("confirm"), FakeDialog("prompt", "Your name?")

    run(handler._on_dialog(alert))
    run(handler._on_dialog(prompt))

    assert alert.handled == "accepted"
    assert prompt.handled == "dismissed"
    assert handler.dialogs_handled == 2
    events = quiet_logger.events_of(EventType.POPUP_DISMISSED)
    assert [event.details["selector"] for event in events] == ["dialog:confirm", "dialog:prompt"]
    assert events[1].details["dialog_message"] == "Your name?"


def test_dialog_handled_elsewhere_is_ignored():
    class GoneDialog(FakeDialog):
        async def accept(self):
            raise PlaywrightError("Cannot accept dialog which is already handled!")

    handler = PopupHandler(FakePage(), quick_config())
    run(handler._on_dialog(GoneDialog()))
    assert handler.dialogs_handled == 0


def test_popup_windows_are_closed():
    handler = PopupHandler(FakePage(), quick_config())
    ad = FakeWindow("https://ads.example/popup?id=4", loads=False)
    checkout = FakeWindow("https://shop.example/checkout")

    run(handler._on_new_page(ad))
    run(handler._on_new_page(checkout))

    assert ad.closed
    assert not checkout.closed
    assert handler.windows_closed == 1


def test_visible_modal_and_cookie_banner_are_dismissed():
    close, accept = FakeElement("close"), FakeElement("accept")
    page = FakePage({CLOSE: [close], ACCEPT: [accept]})

    dismissed = run(PopupHandler(page, quick_config()).dismiss_interruptions())

    assert dismissed == 2
    assert close.actions == [("click",)]
    assert accept.actions == [("click",)]


def test_one_dismissal_per_group():
    page = FakePage({
        ".close-button": [FakeElement("first")],
        CLOSE: [FakeElement("second")],
    })
    dismissed = run(PopupHandler(page, quick_config()).dismiss_interruptions())

    assert dismissed == 1
    assert page.actions == [("click", ".close-button")]


def test_hidden_controls_are_skipped():
    page = FakePage({CLOSE: [FakeElement("close", visible=False)]})
    assert run(PopupHandler(page, quick_config()).dismiss_interruptions()) == 0
    assert page.actions == []


def test_page_errors_never_escape():
    page = FakePage({
        ".close-button": [FakeElement("broken", error=PlaywrightError("Element is outside of the viewport"))],
        CLOSE: [FakeElement("close")],
    })

    dismissed = run(PopupHandler(page, quick_config()).dismiss_interruptions())

    assert dismissed == 1
    assert page.actions == [("click", CLOSE)]


def test_disabled_handler_dismisses_nothing():
    page = FakePage({CLOSE: [FakeElement()]})
    assert run(PopupHandler(page, quick_config(enabled=False)).dismiss_interruptions()) == 0
    assert page.actions == []
