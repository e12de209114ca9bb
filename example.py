"""Example: a sequencer panel whose controls talk over the broadcast bus."""

import logging

from panelbus import Control, Panel

logging.basicConfig(level=logging.INFO)


class TransportLight(Control):
    """Lights up on any transport event."""

    def on_notify(self, key, data):
        print(f"{self.name}: {key} -> {data}")


def main() -> None:
    panel = Panel("sequencer")
    transport = panel.add(Control("transport"))
    light = transport.add(TransportLight("transport_light"))
    stop_button = transport.add(TransportLight("stop_indicator"))

    light.subscribe("Sequencer|Transport|%w")
    stop_button.subscribe("Stop")

    transport.broadcast("Sequencer|Transport|Play", {"beat": 1})
    transport.broadcast("Sequencer|Transport|Stop", {"beat": 17})
    transport.broadcast("Sequencer|PlayHead|CurrentBeat", {"beat": 18})

    # Unknown controls are logged and ignored.
    panel.notify("broadcast-subscribe", {"topic": "anything", "controlName": "missing"})

    print(panel.bus.stats())


if __name__ == "__main__":
    main()
