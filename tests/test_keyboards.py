"""Tests for the keyboard registry and its activation rules."""

import pytest

from plugged_kbd.input_device import InputDevice
from plugged_kbd.keyboards import Keyboard
from plugged_kbd.keyboards import Keyboards
from plugged_kbd.models import Rule

KBD1 = 'AT Translated Set 2'
KBD2 = 'OLKB Planck'
KBD3 = 'Input Club Infinity_Ergodox/QMK'

DATA = [
    (KBD1, 0, 'AT Translated Set 2', 'fr+latin9'),
    (KBD2, 1, 'Planck', 'us+altgr-intl'),
    (KBD3, 1, 'Input Club Infinity Ergodox/QMK', 'fr+bepo'),
]


@pytest.fixture
def kbd(ism):
    return Keyboards(ism)


@pytest.fixture
def changes(kbd):
    events = []
    kbd.changed.connect(lambda sender: events.append(sender))
    return events


def check_invariants(kbd):
    ids = [dev.id for dev in kbd.values()]
    assert len(ids) == len(set(ids))
    for dev in kbd.values():
        assert dev.connected or dev.associated is not None


class TestRegistry:
    def test_has_default_values(self, kbd):
        assert kbd.current is None
        assert kbd.default_source is None
        assert len(kbd) == 0

    def test_accepts_a_new_device(self, kbd, detector):
        kbd.add(detector, KBD2)
        assert len(kbd) == 1
        assert KBD2 in kbd
        assert detector.requested == [KBD2]
        dev = kbd.get(KBD2)
        assert dev.connected
        assert dev.associated is None

    def test_uses_descriptor_display_name(self, kbd):
        class Detector:
            def get_device(self, name):
                dev = InputDevice(name, name_resolver=lambda _ev: 'Planck')
                dev.add_phys('event20', 'usb-0000:00:14.0-2/input0')
                return dev

        kbd.add(Detector(), KBD2)
        assert kbd.get(KBD2).display_name == 'Planck'

    def test_guesses_priority_of_unknown_keyboards(self, kbd, detector):
        kbd.add(detector, KBD1)
        assert kbd.get(KBD1).priority == 0
        kbd.add(detector, KBD2)
        assert kbd.get(KBD2).priority == 1
        kbd.add(detector, KBD3)
        assert kbd.get(KBD3).priority == 2

    def test_double_add_keeps_one_record(self, kbd, detector, changes):
        kbd.add(detector, KBD1)
        kbd.add(detector, KBD1)
        assert len(kbd) == 1
        assert kbd.get(KBD1).priority == 0
        assert len(changes) == 2

    def test_add_emits_one_change(self, kbd, detector, changes):
        kbd.rule_list = DATA
        changes.clear()
        kbd.add(detector, KBD1)
        assert changes == [kbd]

    def test_remove_unknown_is_noop(self, kbd, detector, changes):
        kbd.remove(detector, KBD1)
        assert len(kbd) == 0
        assert changes == []

    def test_unassociated_keyboard_is_pruned_on_removal(self, kbd, detector):
        kbd.add(detector, KBD1)
        kbd.remove(detector, KBD1)
        assert KBD1 not in kbd

    def test_associated_keyboard_survives_removal(self, kbd, detector, src2):
        kbd.add(detector, KBD2)
        kbd.associate(kbd.get(KBD2), src2)
        kbd.remove(detector, KBD2)
        dev = kbd.get(KBD2)
        assert dev is not None
        assert not dev.connected
        assert dev.associated is src2

    def test_invariants_hold_over_add_remove_sequences(self, kbd, detector):
        kbd.rule_list = DATA[:1]
        sequence = [
            ('add', KBD1), ('add', KBD2), ('add', KBD2), ('remove', KBD1),
            ('remove', KBD2), ('remove', KBD2), ('add', KBD3), ('add', KBD1),
            ('remove', KBD3), ('remove', KBD1),
        ]
        for op, name in sequence:
            getattr(kbd, op)(detector, name)
            check_invariants(kbd)
        assert [dev.id for dev in kbd.values()] == [KBD1]

    def test_clear(self, kbd, detector, changes):
        kbd.rule_list = DATA
        kbd.add(detector, KBD1)
        kbd.clear()
        assert len(kbd) == 0
        assert kbd.current is None

    def test_keyboard_str(self, src1):
        dev = Keyboard(KBD1, False, 'AT', 3)
        assert str(dev) == f'Kbd {KBD1} (AT) with priority 3 not connected, not associated'
        dev.associate(src1)
        assert str(dev).endswith('associated to: fr1')

    def test_keyboard_default_display_name(self):
        assert Keyboard(KBD1).display_name == KBD1


class TestAssociations:
    def test_associates_an_added_keyboard(self, kbd, detector, src2):
        kbd.add(detector, KBD2)
        k = kbd.get(KBD2)
        kbd.associate(k, src2)
        assert k.associated is src2
        assert kbd.current is None

    def test_makes_keyboard_current_if_associated_with_current_source(self, kbd, ism, detector, src2):
        ism.set_current(src2)
        kbd.update_current_source()
        kbd.add(detector, KBD2)
        k = kbd.get(KBD2)
        kbd.associate(k, src2)
        assert k.associated is src2
        assert kbd.current is k

    def test_makes_keyboard_current_when_source_changed(self, kbd, ism, detector, src2):
        kbd.add(detector, KBD2)
        k = kbd.get(KBD2)
        kbd.associate(k, src2)
        assert kbd.current is None
        ism.set_current(src2)
        kbd.update_current_source()
        assert kbd.current is k

    def test_associate_always_emits(self, kbd, detector, src3, changes):
        kbd.add(detector, KBD2)
        changes.clear()
        kbd.associate(kbd.get(KBD2), src3)
        assert changes == [kbd]

    def test_deassociate_clears_current_without_fallback(self, kbd, ism, detector):
        kbd.rule_list = DATA
        kbd.add(detector, KBD1)
        kbd.add(detector, KBD2)
        assert kbd.current.id == KBD2
        ism.activated.clear()

        kbd.deassociate(kbd.get(KBD2))

        assert kbd.current is None
        assert kbd.get(KBD2).associated is None
        assert ism.activated == []

    def test_deassociate_other_keeps_current(self, kbd, detector, changes):
        kbd.rule_list = DATA
        kbd.add(detector, KBD1)
        kbd.add(detector, KBD2)
        changes.clear()
        kbd.deassociate(kbd.get(KBD1))
        assert kbd.current.id == KBD2
        assert changes == [kbd]

    def test_update_current_source_ignores_priority(self, kbd, ism, detector, src1, src3):
        kbd.rule_list = DATA
        kbd.add(detector, KBD2)
        kbd.add(detector, KBD3)
        kbd.add(detector, KBD1)
        ism.set_current(src3)
        kbd.update_current_source()
        assert kbd.current.id == KBD3
        ism.set_current(src1)
        kbd.update_current_source()
        assert kbd.current.id == KBD1

    def test_update_current_source_skips_disconnected(self, kbd, ism, src2):
        kbd.rule_list = DATA
        ism.set_current(src2)
        kbd.update_current_source()
        assert kbd.current is None

    def test_update_current_source_clears_current(self, kbd, ism, detector, src3):
        kbd.rule_list = DATA
        kbd.add(detector, KBD2)
        assert kbd.current.id == KBD2
        ism.set_current(src3)
        kbd.update_current_source()
        assert kbd.current is None


class TestRuleList:
    def test_recovers_state_from_config_data(self, kbd, src1, src2):
        kbd.rule_list = [
            ('AT Translated Set 2', 0, 'AT Translated Set 2', 'fr+latin9'),
            ('OLKB Planck', 1, 'Planck', 'us+altgr-intl'),
        ]
        assert len(kbd) == 2
        assert kbd.current is None
        dev1 = kbd.get(KBD1)
        assert dev1.id == KBD1
        assert dev1.priority == 0
        assert dev1.connected is False
        assert dev1.associated is src1
        dev2 = kbd.get(KBD2)
        assert dev2.priority == 1
        assert dev2.display_name == 'Planck'
        assert dev2.connected is False
        assert dev2.associated is src2

    def test_round_trip(self, kbd):
        kbd.rule_list = DATA
        assert [rule.as_tuple() for rule in kbd.rule_list] == DATA

    def test_getter_skips_unassociated(self, kbd, detector):
        kbd.rule_list = DATA[:1]
        kbd.add(detector, KBD2)
        assert [rule.kbd_id for rule in kbd.rule_list] == [KBD1]

    def test_getter_returns_rules(self, kbd):
        kbd.rule_list = DATA[1:2]
        assert kbd.rule_list == [Rule(KBD2, 1, 'Planck', 'us+altgr-intl')]

    def test_accepts_rule_records(self, kbd, src3):
        kbd.rule_list = [Rule(KBD3, 4, 'Ergodox', 'fr+bepo')]
        assert kbd.get(KBD3).associated is src3
        assert kbd.get(KBD3).priority == 4

    def test_drops_unknown_sources(self, kbd, caplog):
        kbd.rule_list = [
            (KBD1, 0, 'AT', 'fr+latin9'),
            (KBD2, 1, 'Planck', 'de+neo'),
        ]
        assert KBD1 in kbd
        assert KBD2 not in kbd
        assert 'de+neo' in caplog.text

    def test_drops_malformed_entries(self, kbd):
        kbd.rule_list = [
            (KBD1, 0, 'AT'),
            (KBD2, -1, 'Planck', 'us+altgr-intl'),
            (KBD3, '1', 'Ergodox', 'fr+bepo'),
            'not a rule',
            (KBD1, 0, 'AT', 'fr+latin9'),
        ]
        assert [dev.id for dev in kbd.values()] == [KBD1]

    def test_setter_emits_once(self, kbd, changes):
        kbd.rule_list = DATA
        assert changes == [kbd]

    def test_new_keyboards_do_not_reuse_restored_priorities(self, kbd, detector):
        detector.devices['Other'] = InputDevice('Other', name_resolver=lambda _ev: None)
        kbd.rule_list = DATA
        kbd.add(detector, 'Other')
        assert kbd.get('Other').priority == 3

    def test_new_keyboard_goes_above_sparse_restored_priorities(self, kbd, detector):
        detector.devices['Other'] = InputDevice('Other', name_resolver=lambda _ev: None)
        kbd.rule_list = [
            (KBD1, 0, 'AT Translated Set 2', 'fr+latin9'),
            (KBD2, 2, 'Planck', 'us+altgr-intl'),
        ]
        kbd.add(detector, 'Other')
        assert kbd.get('Other').priority == 3
        assert sorted(dev.priority for dev in kbd.values()) == [0, 2, 3]


class TestPluggedIn:
    def test_accepts_a_known_device_and_makes_it_current(self, kbd, ism, detector, src1):
        kbd.rule_list = DATA
        kbd.add(detector, KBD1)
        assert len(kbd) == 3
        k1 = kbd.get(KBD1)
        assert k1.priority == 0
        assert k1.connected
        assert k1.associated is src1
        assert kbd.current is k1
        # fr+latin9 is already active
        assert ism.activated == []

    def test_changes_input_source_when_device_is_plugged(self, kbd, ism, detector, src2):
        kbd.rule_list = DATA
        kbd.add(detector, KBD1)
        assert src2 not in ism.activated
        kbd.add(detector, KBD2)
        k2 = kbd.get(KBD2)
        assert k2.priority == 1
        assert k2.connected
        assert kbd.current is k2
        assert ism.activated == [src2]

    def test_respects_keyboard_priority(self, kbd, ism, detector, src2):
        kbd.rule_list = DATA
        ism.set_current(src2)
        assert kbd.current is None
        kbd.add(detector, KBD2)
        assert kbd.current.id == KBD2
        kbd.add(detector, KBD1)
        assert kbd.current.id == KBD2

    def test_replug_of_lower_priority_keeps_current(self, kbd, ism, detector, src2):
        kbd.rule_list = DATA[:2]
        kbd.add(detector, KBD1)
        kbd.add(detector, KBD2)
        assert kbd.current.id == KBD2
        assert ism.activated == [src2]
        kbd.add(detector, KBD1)
        assert kbd.current.id == KBD2
        assert ism.activated == [src2]

    def test_equal_priority_favours_incoming(self, kbd, ism, detector, src3):
        kbd.rule_list = DATA
        kbd.add(detector, KBD2)
        kbd.add(detector, KBD3)
        assert kbd.current.id == KBD3
        assert ism.activated[-1] is src3

    def test_activates_when_no_current_and_source_differs(self, kbd, ism, detector, src2):
        kbd.rule_list = DATA
        kbd.add(detector, KBD2)
        assert ism.activated == [src2]
        assert kbd.current.id == KBD2

    def test_unassociated_keyboard_changes_nothing(self, kbd, ism, detector):
        kbd.rule_list = DATA[:1]
        kbd.add(detector, KBD1)
        current = kbd.current
        kbd.add(detector, KBD2)
        assert kbd.current is current
        assert ism.activated == []


class TestPluggedOut:
    def test_changes_current_if_keyboard_is_removed(self, kbd, detector):
        kbd.rule_list = DATA
        kbd.add(detector, KBD1)
        assert kbd.current.id == KBD1
        kbd.remove(detector, KBD1)
        k = kbd.get(KBD1)
        assert k.connected is False
        assert kbd.current is None

    def test_selects_another_keyboard_when_current_is_unplugged(self, kbd, ism, detector, src2):
        kbd.rule_list = DATA
        ism.set_current(src2)
        kbd.add(detector, KBD2)
        kbd.add(detector, KBD1)
        assert kbd.current.id == KBD2
        kbd.remove(detector, KBD2)
        assert kbd.current.id == KBD1

    def test_fallback_then_default_source(self, kbd, ism, detector, src1, src3):
        kbd.rule_list = DATA[:2]
        kbd.default_source = src3
        kbd.add(detector, KBD1)
        kbd.add(detector, KBD2)
        ism.activated.clear()

        kbd.remove(detector, KBD2)
        assert kbd.current.id == KBD1
        assert ism.activated == [src1]

        kbd.remove(detector, KBD1)
        assert kbd.current is None
        assert ism.activated == [src1, src3]

    def test_fallback_picks_lowest_priority(self, kbd, ism, detector, src2):
        kbd.rule_list = [
            (KBD1, 5, 'AT', 'fr+latin9'),
            (KBD2, 2, 'Planck', 'us+altgr-intl'),
            (KBD3, 7, 'Ergodox', 'fr+bepo'),
        ]
        kbd.add(detector, KBD1)
        kbd.add(detector, KBD2)
        kbd.add(detector, KBD3)
        assert kbd.current.id == KBD3
        ism.activated.clear()

        kbd.remove(detector, KBD3)
        assert kbd.current.id == KBD2
        assert ism.activated == [src2]

    def test_no_default_source_activates_nothing(self, kbd, ism, detector):
        kbd.rule_list = DATA
        kbd.add(detector, KBD2)
        ism.activated.clear()
        kbd.remove(detector, KBD2)
        assert kbd.current is None
        assert ism.activated == []

    def test_removing_non_current_changes_nothing(self, kbd, ism, detector, src3):
        kbd.rule_list = DATA
        kbd.default_source = src3
        kbd.add(detector, KBD1)
        kbd.add(detector, KBD2)
        ism.activated.clear()
        kbd.remove(detector, KBD1)
        assert kbd.current.id == KBD2
        assert ism.activated == []

    def test_manual_switch_is_not_fought(self, kbd, ism, detector, src3):
        kbd.rule_list = DATA[:2]
        kbd.default_source = src3
        kbd.add(detector, KBD2)
        ism.set_current(src3)
        kbd.update_current_source()
        assert kbd.current is None
        ism.activated.clear()
        kbd.remove(detector, KBD2)
        assert ism.activated == []

    def test_remove_emits_one_change(self, kbd, detector, changes):
        kbd.rule_list = DATA
        kbd.add(detector, KBD1)
        kbd.add(detector, KBD2)
        changes.clear()
        kbd.remove(detector, KBD2)
        assert changes == [kbd]


class TestReassert:
    def test_restores_current_source(self, kbd, ism, detector, src2, src3):
        kbd.rule_list = DATA
        kbd.add(detector, KBD2)
        ism.set_current(src3)
        ism.activated.clear()
        assert kbd.reassert() is True
        assert ism.activated == [src2]

    def test_nothing_to_do_when_source_matches(self, kbd, ism, detector, src2):
        kbd.rule_list = DATA
        kbd.add(detector, KBD2)
        ism.set_current(src2)
        assert kbd.reassert() is False

    def test_nothing_to_do_without_current(self, kbd):
        assert kbd.reassert() is False
