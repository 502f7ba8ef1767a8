import random

from modules.portal_watch.lib.config import DelayWindow
from modules.portal_watch.lib.politeness import Politeness, no_delay


def test_delay_stays_within_window():
    p = Politeness(rng=random.Random(7), sleep=lambda _s: None)
    picks = {p.delay_ms(DelayWindow(100, 120)) for _ in range(200)}
    assert min(picks) >= 100
    assert max(picks) <= 120


def test_pause_sleeps_in_seconds():
    slept = []
    p = Politeness(sleep=slept.append)
    assert p.pause(DelayWindow(1500, 1500)) == 1500
    assert slept == [1.5]


def test_zero_window_never_sleeps():
    slept = []
    Politeness(sleep=slept.append).pause(DelayWindow(0, 0))
    assert slept == []


def test_inverted_window_is_clamped():
    p = Politeness(sleep=lambda _s: None)
    assert p.delay_ms(DelayWindow(300, 100)) == 300


def test_no_delay_returns_chosen_ms_without_sleeping():
    assert no_delay().pause(DelayWindow(5, 5)) == 5
