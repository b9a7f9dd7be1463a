import asyncio

import pytest

from conftest import FakeElement, FakeModel, FakePage, run
from healing_locator.browser_provider import BrowserConfig, MockBrowserProvider
from healing_locator.error_handling import ScenarioAbortedError, SessionError
from healing_locator.healing_config import PopupConfig, SessionConfig
from healing_locator.session import HealingSession

ACCOUNT = '[data-testid="account-link"]'


class FakeVideo:
    async def path(self):
        return "/tmp/videos/run.webm"


def make_session(page, healing, **overrides):
    config = SessionConfig(healing=healing, debug_mode=False, **overrides)
    provider = MockBrowserProvider(BrowserConfig(provider_type="mock"), mock_page=page)
    return HealingSession(config, provider=provider, ask_model=FakeModel('{"selector": "#nothing"}')), provider


def test_context_manager_runs_and_closes(fast_config):
    page = FakePage({ACCOUNT: [FakeElement("account")]})
    session, provider = make_session(page, fast_config)

    async def scenario():
        async with session:
            assert session.is_open
            return await session.run([
                {"action": "navigate", "target": "https://shop.example/"},
                {"action": "click", "target": "account-link"},
            ])

    result = run(scenario())

    assert result.success
    assert result.steps_executed == 2
    assert provider.closed
    assert not session.is_open
    assert page.listeners["dialog"] == []


def test_close_is_idempotent(fast_config):
    session, provider = make_session(FakePage(), fast_config)

    async def scenario():
        await session.start()
        await session.close()
        await session.close()

    run(scenario())
    assert provider.closed


def test_closed_session_refuses_to_run(fast_config):
    session, _ = make_session(FakePage(), fast_config)

    async def scenario():
        await session.start()
        await session.close()
        await session.run([{"action": "click", "target": "account-link"}])

    with pytest.raises(SessionError):
        run(scenario())


def test_scenario_timeout_aborts_with_partial_result(fast_config):
    page = FakePage({"#email": [FakeElement("email")]})
    page.hanging_selectors.add(ACCOUNT)
    healing = fast_config.model_copy(update={"deterministic_timeout_ms": 30000})
    session, provider = make_session(page, healing, scenario_timeout_ms=300)

    with pytest.raises(ScenarioAbortedError) as excinfo:
        run(session.run([
            {"action": "type", "target": "#email", "value": "jo@shop.example"},
            {"action": "click", "target": "account-link"},
        ]))

    partial = excinfo.value.partial_result
    assert partial.success is False
    assert partial.steps_executed == 1
    assert partial.errors[-1]["step"] == 2
    assert "aborted" in partial.errors[-1]["error"]
    assert provider.closed


def test_cancellation_releases_the_browser(fast_config):
    page = FakePage()
    page.hanging_selectors.add(ACCOUNT)
    healing = fast_config.model_copy(update={"deterministic_timeout_ms": 30000})
    session, provider = make_session(page, healing)

    async def scenario():
        task = asyncio.create_task(session.run([{"action": "click", "target": "account-link"}]))
        await asyncio.sleep(0.1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    run(scenario())
    assert provider.closed


def test_session_error_closes_the_browser(fast_config):
    page = FakePage()
    page.closed = True
    session, provider = make_session(page, fast_config)

    with pytest.raises(SessionError):
        run(session.run([{"action": "click", "target": "account-link"}]))
    assert provider.closed


def test_video_path_is_recorded(fast_config, tmp_path):
    page = FakePage({ACCOUNT: [FakeElement()]})
    page.video = FakeVideo()
    session, _ = make_session(page, fast_config, record_video=True, output_dir=str(tmp_path))

    async def scenario():
        async with session:
            return await session.run([{"action": "click", "target": "account-link"}])

    result = run(scenario())
    assert result.video == "/tmp/videos/run.webm"


def test_video_directory_follows_output_dir(tmp_path):
    config = SessionConfig(record_video=True, output_dir=str(tmp_path), debug_mode=False)
    session = HealingSession(config, provider=MockBrowserProvider(BrowserConfig(provider_type="mock")))
    assert session._browser_config().record_video_dir == str(tmp_path / "videos")


def test_screenshots_are_written_per_step(fast_config, tmp_path):
    page = FakePage({ACCOUNT: [FakeElement()]})
    session, _ = make_session(page, fast_config, record_screenshots=True, output_dir=str(tmp_path))

    async def scenario():
        async with session:
            return await session.run([{"action": "click", "target": "account-link"}])

    result = run(scenario())
    assert result.screenshots == [str(tmp_path / "screenshots" / "step-01.png")]


def test_failed_startup_releases_the_driver(fast_config):
    class BrokenLaunch(MockBrowserProvider):
        async def get_page(self):
            self.driver_started = True
            raise RuntimeError("Executable doesn't exist at ~/.cache/ms-playwright/chromium")

    provider = BrokenLaunch(BrowserConfig(provider_type="mock"))
    session = HealingSession(SessionConfig(healing=fast_config, debug_mode=False), provider=provider)

    with pytest.raises(RuntimeError, match="Executable"):
        run(session.run([{"action": "click", "target": "account-link"}]))
    assert provider.driver_started
    assert provider.closed
    assert not session.is_open


def test_timeout_between_steps_blames_the_next_step(fast_config):
    page = FakePage({"#email": [FakeElement("email")], "#name": [FakeElement("name")]})
    healing = fast_config.model_copy(update={"popup": PopupConfig(settle_ms=2000, check_timeout_ms=50)})
    session, provider = make_session(page, healing, scenario_timeout_ms=300)

    with pytest.raises(ScenarioAbortedError) as excinfo:
        run(session.run([
            {"action": "type", "target": "#email", "value": "jo@shop.example"},
            {"action": "type", "target": "#name", "value": "Jo"},
        ]))

    partial = excinfo.value.partial_result
    assert [(step.index, step.success) for step in partial.steps] == [(1, True)]
    assert partial.errors[-1]["step"] == 2
    assert partial.errors[-1]["description"].startswith("Type 'Jo' into")
    assert "aborted at step 2" in str(excinfo.value)
    assert provider.closed
