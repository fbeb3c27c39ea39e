"""MIDI keyboard chord entry.

Held keys form the chord. The chord latches: releasing keys leaves it in
place, and the first key pressed after everything was released starts a new
chord. Chord edits update the performance state only; nothing is sent to
peers until the performer sends the part.

mido delivers messages on its own thread. They are handed to the asyncio
loop with ``call_soon_threadsafe`` before the state is touched.
"""

import asyncio
import logging
import typing

import mido

import ensemble.notes
import ensemble.state


logger = logging.getLogger(__name__)


def select_input_device (device_name: typing.Optional[str] = None, callback: typing.Optional[typing.Callable] = None) -> typing.Tuple[typing.Optional[str], typing.Optional[typing.Any]]:

	"""Open a MIDI input device.

	If the named device is not found, falls back to the first available input
	with a warning. Returns ``(None, None)`` when no name is given or nothing
	can be opened.
	"""

	if device_name is None:
		return None, None

	try:
		inputs = mido.get_input_names()
		logger.info(f"Available MIDI inputs: {inputs}")

		target = device_name

		if target not in inputs:
			logger.warning(f"MIDI input device '{target}' not found.")
			if inputs:
				target = inputs[0]
				logger.warning(f"Fallback to: {target}")
			else:
				return None, None

		midi_in = mido.open_input(target, callback=callback)
		logger.info(f"Opened MIDI input: {target}")
		return target, midi_in

	except Exception as e:
		logger.error(f"Failed to open MIDI input: {e}")
		return None, None


class MidiChordInput:

	"""Turns held MIDI keys into chord changes."""

	def __init__ (self, state: ensemble.state.PerformanceState, device_name: typing.Optional[str] = None) -> None:

		self._state = state
		self.device_name = device_name
		self.midi_in: typing.Optional[typing.Any] = None

		self._loop: typing.Optional[asyncio.AbstractEventLoop] = None
		self._held: typing.Set[int] = set()
		self._latched: typing.List[int] = []

	@property
	def held_notes (self) -> typing.List[int]:
		return sorted(self._held)

	def start (self) -> bool:

		"""Open the input port. Must be called from the running event loop."""

		self._loop = asyncio.get_running_loop()

		device_name, midi_in = select_input_device(self.device_name, self._on_midi_input)

		if device_name is None:
			return False

		self.device_name = device_name
		self.midi_in = midi_in

		return True

	def stop (self) -> None:

		if self.midi_in is not None:
			self.midi_in.close()
			self.midi_in = None
			logger.info("MIDI input closed")

	def _on_midi_input (self, message: typing.Any) -> None:

		"""Runs on mido's callback thread."""

		if self._loop is None:
			return

		self._loop.call_soon_threadsafe(self.handle_message, message)

	def handle_message (self, message: typing.Any) -> bool:

		"""Apply one MIDI message. Returns True if the chord changed."""

		if message.type == "note_on" and message.velocity > 0:

			if not self._held:
				self._latched = []

			self._held.add(message.note)

			if message.note not in self._latched:
				self._latched.append(message.note)
				self._state.set_chord([ensemble.notes.Note.from_midi(note) for note in sorted(self._latched)])
				return True

		elif message.type in ("note_off", "note_on"):
			self._held.discard(message.note)

		return False
