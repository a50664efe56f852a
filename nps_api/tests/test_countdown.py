"""Tests for the cancellable countdown."""

import asyncio

from nps_api.services.countdown import Countdown


async def test_ticks_down_and_expires_once():
    ticks: list[int] = []
    expired: list[bool] = []

    countdown = Countdown(
        3, on_tick=ticks.append, on_expire=lambda: expired.append(True), interval=0
    ).start()
    await countdown.wait()

    assert ticks == [2, 1, 0]
    assert expired == [True]
    assert countdown.remaining == 0
    assert not countdown.running


async def test_cancel_stops_all_callbacks():
    ticks: list[int] = []
    expired: list[bool] = []

    countdown = Countdown(
        10, on_tick=ticks.append, on_expire=lambda: expired.append(True), interval=0.01
    ).start()
    await asyncio.sleep(0.025)
    countdown.cancel()
    seen = len(ticks)
    await asyncio.sleep(0.05)

    assert len(ticks) == seen
    assert expired == []
    assert countdown.remaining == 10 - seen


async def test_reset_restores_initial_value():
    countdown = Countdown(5, interval=0).start()
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    countdown.reset()
    await countdown.wait()
    assert countdown.remaining == 5
    assert not countdown.running


async def test_callback_may_cancel_its_own_countdown():
    holder: dict[str, Countdown] = {}

    def on_expire():
        holder["cd"].cancel()

    holder["cd"] = Countdown(1, on_expire=on_expire, interval=0).start()
    await holder["cd"].wait()
    assert holder["cd"].remaining == 0


async def test_wait_without_start_returns():
    await Countdown(3).wait()
