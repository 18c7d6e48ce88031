"""비네트/프리롤 사이클 상태 머신 테스트."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from adcycle.config import VignetteConfig
from adcycle.cycle import (
    CycleAction,
    CycleStateMachine,
    FragmentKind,
    classify_fragment,
)
from adcycle.tracking import CycleKind

VIGNETTE = "#google_vignette"
PREROLL = "#goog_fullscreen_ad"


@pytest.fixture
def machine(store, vignette_config, clock):
    return CycleStateMachine(store, vignette_config, clock=clock)


def test_classify_fragment():
    assert classify_fragment("#google_vignette", None) is FragmentKind.VIGNETTE
    assert classify_fragment("#x=goog_fullscreen_ad", "#a") is FragmentKind.PREROLL
    assert classify_fragment("#section-2", "#section-1") is FragmentKind.UNMATCHED
    assert classify_fragment("#section-2", "#section-2") is FragmentKind.UNCHANGED
    assert classify_fragment("", "#section-1") is FragmentKind.UNCHANGED
    # 비교 기준 없음
    assert classify_fragment("#section-1", None) is FragmentKind.UNCHANGED


def test_three_vignettes_switch_to_preroll_cycle(machine, store, clock):
    decisions = [machine.handle_fragment(VIGNETTE) for _ in range(3)]

    assert [d.action for d in decisions[:2]] == [CycleAction.NONE, CycleAction.NONE]
    assert decisions[2].action is CycleAction.START_PREROLL_CYCLE
    assert decisions[2].preroll_count == 1

    tracking = store.get()
    assert tracking.current_cycle is CycleKind.PREROLL
    assert tracking.vignette_count == 0
    assert tracking.preroll_count == 0
    assert tracking.total_vignette_count == 3
    assert tracking.last_vignette_time == clock.now_ms


@pytest.mark.parametrize("threshold", [1, 2, 5])
def test_vignette_threshold_generic(store, clock, threshold):
    config = VignetteConfig(enabled=True, vignette_to_preroll={"count": threshold, "trigger": 2})
    machine = CycleStateMachine(store, config, clock=clock)
    for _ in range(threshold - 1):
        assert machine.handle_fragment(VIGNETTE).action is CycleAction.NONE
        assert store.get().current_cycle is CycleKind.VIGNETTE
    decision = machine.handle_fragment(VIGNETTE)
    assert decision.action is CycleAction.START_PREROLL_CYCLE
    assert decision.preroll_count == 2
    assert store.get().vignette_count == 0


def test_zero_trigger_means_one_preroll(store, clock):
    config = VignetteConfig(enabled=True, vignette_to_preroll={"count": 1, "trigger": 0})
    decision = CycleStateMachine(store, config, clock=clock).handle_fragment(VIGNETTE)
    assert decision.preroll_count == 1


def test_zero_threshold_never_switches(store, clock):
    config = VignetteConfig(
        enabled=True,
        vignette_to_preroll={"count": 0, "trigger": 1},
        preroll_to_vignette={"count": 0, "trigger": 1},
    )
    machine = CycleStateMachine(store, config, clock=clock)
    for _ in range(20):
        assert machine.handle_fragment(VIGNETTE).action is CycleAction.NONE
    assert store.get().vignette_count == 20
    assert store.get().current_cycle is CycleKind.VIGNETTE

    for _ in range(20):
        machine.handle_fragment(PREROLL)
    assert store.get().preroll_count == 20
    assert store.get().current_cycle is CycleKind.PREROLL


def test_prerolls_revert_to_vignette_cycle(store, clock):
    config = VignetteConfig(enabled=True, preroll_to_vignette={"count": 2, "trigger": 3})
    machine = CycleStateMachine(store, config, clock=clock)

    machine.handle_fragment(PREROLL)
    tracking = store.get()
    assert tracking.current_cycle is CycleKind.PREROLL
    assert tracking.preroll_count == 1

    decision = machine.handle_fragment(PREROLL)
    assert decision.action is CycleAction.NONE
    tracking = store.get()
    assert tracking.current_cycle is CycleKind.VIGNETTE
    assert tracking.preroll_count == 0
    assert tracking.vignette_count == 0
    assert tracking.total_preroll_count == 2


def test_ad_events_reset_missed_count(machine, store):
    store.update(missed_vignette_count=1)
    machine.handle_fragment(VIGNETTE)
    assert store.get().missed_vignette_count == 0

    store.update(missed_vignette_count=1, current_cycle=CycleKind.PREROLL)
    machine.handle_fragment(PREROLL)
    assert store.get().missed_vignette_count == 0


def test_only_active_cycle_counter_is_live(machine, store):
    machine.handle_fragment(VIGNETTE)
    machine.handle_fragment(VIGNETTE)
    store.update(current_cycle=CycleKind.VIGNETTE)
    machine.record_preroll()
    # prerollToVignette.count == 1 → 즉시 비네트 사이클 복귀, 양쪽 0
    tracking = store.get()
    assert tracking.vignette_count == 0
    assert tracking.preroll_count == 0


def test_unmatched_fallback_fires_on_second_change(machine, store):
    machine.handle_fragment("")
    first = machine.handle_fragment("#level-1")
    second = machine.handle_fragment("#level-2")

    assert first.action is CycleAction.NONE
    assert second.action is CycleAction.TRIGGER_FALLBACK
    tracking = store.get()
    assert tracking.missed_vignette_count == 2
    assert tracking.last_vignette_time == 0


def test_unmatched_does_not_fire_in_preroll_cycle(machine, store):
    store.update(current_cycle=CycleKind.PREROLL)
    machine.handle_fragment("")
    for i in range(5):
        assert machine.handle_fragment(f"#page-{i}").action is CycleAction.NONE
    assert store.get().missed_vignette_count == 5


def test_max_missed_zero_never_fires(store, clock):
    config = VignetteConfig(enabled=True, max_vignette_missed=0)
    machine = CycleStateMachine(store, config, clock=clock)
    machine.handle_fragment("")
    for i in range(50):
        assert machine.handle_fragment(f"#page-{i}").action is CycleAction.NONE


def test_same_fragment_is_not_a_miss(machine, store):
    machine.handle_fragment("#a")
    machine.handle_fragment("#a")
    assert store.get() is None


def test_disabled_is_noop(store, clock):
    machine = CycleStateMachine(store, VignetteConfig(enabled=False), clock=clock)
    assert machine.handle_fragment(VIGNETTE).action is CycleAction.NONE
    assert store.get() is None


def test_should_trigger_preroll(machine, store):
    assert machine.should_trigger_preroll().action is CycleAction.NONE

    store.update(vignette_count=3)
    decision = machine.should_trigger_preroll()
    assert decision.action is CycleAction.START_PREROLL_CYCLE
    assert decision.preroll_count == 1

    store.update(vignette_count=0, missed_vignette_count=2)
    assert machine.should_trigger_preroll().action is CycleAction.TRIGGER_FALLBACK

    store.update(current_cycle=CycleKind.PREROLL)
    assert machine.should_trigger_preroll().action is CycleAction.NONE


def test_counts_never_negative(machine, store):
    for fragment in [VIGNETTE, PREROLL, "#a", VIGNETTE, "#b", PREROLL, PREROLL]:
        machine.handle_fragment(fragment)
        tracking = store.get()
        assert tracking.vignette_count >= 0
        assert tracking.preroll_count >= 0
        assert tracking.missed_vignette_count >= 0
