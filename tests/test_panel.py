import gc

from panelbus import Control, Panel, SubscriberDeliveryFailure, UnknownSubscriber


def _sequencer(panel, make_control, log=None):
    transport = panel.add(Control("transport"))
    light = transport.add(make_control("light", log))
    stop = transport.add(make_control("stop", log))
    return light, stop


def test_subscribe_and_broadcast_signals(panel, make_control):
    light, stop = _sequencer(panel, make_control)

    panel.notify("broadcast-subscribe", {"topic": "Sequencer|Transport|%w", "controlName": "light"})
    panel.notify("broadcast-subscribe", {"topic": "Stop", "controlName": "stop"})
    panel.notify("broadcast", {"topic": "Sequencer|Transport|Stop", "message": {"beat": 17}})
    panel.notify("broadcast", {"topic": "Sequencer|PlayHead|CurrentBeat", "message": {"beat": 18}})

    # delivered with the topic as the signal key and the message as data
    assert light.received == [("Sequencer|Transport|Stop", {"beat": 17})]
    assert stop.received == [("Sequencer|Transport|Stop", {"beat": 17})]


def test_control_helpers_send_signals_to_root(panel, make_control):
    log = []
    light, stop = _sequencer(panel, make_control, log)
    light.subscribe("Transport")
    stop.subscribe("Transport")

    stop.broadcast("Sequencer|Transport|Play")

    assert log == [
        ("light", "Sequencer|Transport|Play", None),
        ("stop", "Sequencer|Transport|Play", None),
    ]


def test_unknown_control_name_is_not_fatal(panel, make_control, errors):
    light, _ = _sequencer(panel, make_control)

    panel.notify("broadcast-subscribe", {"topic": "anything", "controlName": "nope"})
    panel.notify("broadcast", {"topic": "anything", "message": 1})

    assert len(panel.bus.registry) == 0
    assert light.received == []
    assert len(errors) == 1
    assert isinstance(errors[0], UnknownSubscriber)
    assert errors[0].name == "nope"


def test_bad_signal_data_is_ignored(panel, make_control):
    _sequencer(panel, make_control)

    panel.notify("broadcast-subscribe", {"topic": "x"})
    panel.notify("broadcast-subscribe", None)
    panel.notify("broadcast-subscribe", {"topic": 5, "controlName": "light"})
    panel.notify("broadcast", "not a dict")
    panel.notify("broadcast", {"message": 1})

    assert len(panel.bus.registry) == 0
    assert panel.bus.metrics.get_counter("published") == 0


def test_broadcast_without_message_delivers_none(panel, make_control):
    light, _ = _sequencer(panel, make_control)
    light.subscribe("Play")

    panel.notify("broadcast", {"topic": "Transport|Play"})

    assert light.received == [("Transport|Play", None)]


def test_other_keys_reach_panel_handlers(panel):
    seen = []
    panel.on("custom", lambda key, data: seen.append((key, data)))

    panel.notify("custom", {"a": 1})

    assert seen == [("custom", {"a": 1})]
    assert panel.signals.handles("broadcast")
    assert not panel.signals.handles("custom")


def test_delivery_uses_control_key_handler(panel):
    seen = []
    fader = panel.add(Control("fader"))
    fader.on("Mixer|Volume", lambda key, data: seen.append(data))
    fader.subscribe("Mixer|Volume")

    fader.broadcast("Mixer|Volume", 0.5)

    assert seen == [0.5]


def test_failing_control_is_isolated(panel, make_control, errors):
    class Broken(Control):
        def on_notify(self, key, data):
            raise RuntimeError("broken control")

    broken = panel.add(Broken("broken"))
    after = panel.add(make_control("after"))
    broken.subscribe("Play")
    after.subscribe("Play")

    panel.notify("broadcast", {"topic": "Play", "message": 1})

    assert after.received == [("Play", 1)]
    assert isinstance(errors[0], SubscriberDeliveryFailure)


def test_bus_does_not_keep_controls_alive(panel, make_control, errors):
    ghost = panel.add(make_control("ghost"))
    ghost.subscribe("Play")
    panel.remove(ghost)
    del ghost
    gc.collect()

    panel.notify("broadcast", {"topic": "Play"})

    assert len(errors) == 1
    assert isinstance(errors[0], SubscriberDeliveryFailure)
    assert isinstance(errors[0].cause, LookupError)


def test_find_walks_the_tree(panel, make_control):
    light, stop = _sequencer(panel, make_control)

    assert panel.find("light") is light
    assert panel.find("transport").find("stop") is stop
    assert panel.find("missing") is None
    assert light.root is panel
    assert panel.control_count() == 3


def test_add_moves_control_between_parents(panel):
    a = panel.add(Control("a"))
    b = panel.add(Control("b"))
    child = a.add(Control("child"))

    b.add(child)

    assert child.parent is b
    assert a.children == []
    assert b.children == [child]


def test_reset_starts_new_session(panel, make_control):
    light, _ = _sequencer(panel, make_control)
    light.subscribe("Play")

    panel.reset()
    panel.notify("broadcast", {"topic": "Play"})

    assert light.received == []
    assert panel.find("light") is light


def test_panels_are_independent(make_control):
    first, second = Panel("first"), Panel("second")
    a = first.add(make_control("a"))
    second.add(make_control("a"))
    a.subscribe("x")

    second.notify("broadcast", {"topic": "x"})

    assert a.received == []
    assert len(second.bus.registry) == 0


def test_unsubscribe_control_removes_all_its_subscriptions(panel, make_control):
    light, stop = _sequencer(panel, make_control)
    light.subscribe("Play")
    panel.notify("broadcast-subscribe", {"topic": "Stop", "controlName": "light"})
    stop.subscribe("Stop")

    assert panel.bus.unsubscribe_control(light) == 2

    assert [e.subscriber.subscriber_id for e in panel.bus.subscriptions()] == ["stop"]
    assert panel.bus.unsubscribe_control(light) == 0
    panel.notify("broadcast", {"topic": "Transport|Stop"})
    assert light.received == []
    assert stop.received == [("Transport|Stop", None)]
