import asyncio
import logging

import ensemble
import ensemble.expressions
import ensemble.timing

logging.basicConfig(level=logging.INFO)

# Walks a four-chord progression across whoever is connected, one chord every
# eight seconds. Connect peers to ws://localhost:8765 before the first send.

PROGRESSION = [
	["C3", "G3", "E4", "C5"],
	["A2", "E3", "C4", "A4"],
	["F2", "C3", "A3", "F4"],
	["G2", "D3", "B3", "G4"],
]

config = ensemble.ControllerConfig(strategy="weighted", seed=3)
config.transition = ensemble.timing.TransitionConfig(duration=3.0, stagger=0.4, duration_spread=0.25)

controller = ensemble.Controller(config)

# Vibrato rates at 1x, 3/2x and 2x the base rate.
controller.state.set_harmonic_selection("vibrato", "numerator", [2, 3, 4])
controller.state.set_harmonic_selection("vibrato", "denominator", [2])


async def main () -> None:

	await controller.start()

	try:
		while True:
			for chord in PROGRESSION:

				controller.state.set_chord(chord)
				controller.state.set_expression(chord[-1], ensemble.expressions.Vibrato(depth=0.015))

				try:
					controller.coordinator.send_current_part()
				except ensemble.BroadcastError as e:
					logging.warning(f"{e}")

				await asyncio.sleep(8)
	finally:
		await controller.stop()


if __name__ == "__main__":
	try:
		asyncio.run(main())
	except KeyboardInterrupt:
		pass
