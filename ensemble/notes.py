"""Note values and pitch conversions.

A ``Note`` is owned by its frequency in Hz. The display name (``"E4"``) is a
derived view and is never stored separately, so the two can't drift.

Module-level constants:
- `PC_TO_NOTE_NAME`: Maps pitch classes (0-11) to sharp note names
- `NOTE_NAME_TO_PC`: Maps note names (sharps and flats) to pitch classes
- `A4_FREQUENCY`: Reference tuning (440 Hz, MIDI note 69)
"""

import dataclasses
import math
import re
import typing


A4_FREQUENCY: float = 440.0
A4_MIDI: int = 69

PC_TO_NOTE_NAME: typing.List[str] = [
	"C",
	"C#",
	"D",
	"D#",
	"E",
	"F",
	"F#",
	"G",
	"G#",
	"A",
	"A#",
	"B",
]

NOTE_NAME_TO_PC: typing.Dict[str, int] = {
	"C": 0,
	"C#": 1,
	"Db": 1,
	"D": 2,
	"D#": 3,
	"Eb": 3,
	"E": 4,
	"F": 5,
	"F#": 6,
	"Gb": 6,
	"G": 7,
	"G#": 8,
	"Ab": 8,
	"A": 9,
	"A#": 10,
	"Bb": 10,
	"B": 11,
}

_NOTE_NAME_RE = re.compile(r"^([A-G])([#b]?)(-?\d+)$")


def frequency_to_midi (frequency: float) -> float:

	"""Convert a frequency to a (fractional) MIDI note number."""

	return A4_MIDI + 12 * math.log2(frequency / A4_FREQUENCY)


def midi_to_frequency (midi_note: float) -> float:

	"""Convert a MIDI note number to a frequency in Hz (A4 = 440)."""

	return A4_FREQUENCY * (2.0 ** ((midi_note - A4_MIDI) / 12.0))


def frequency_to_note_name (frequency: float) -> str:

	"""Return the nearest equal-tempered note name for a frequency.

	Parameters:
		frequency: Frequency in Hz. Must be positive.

	Returns:
		Sharp-spelled name with octave, e.g. ``"C4"`` for 261.63 Hz.

	Raises:
		ValueError: If the frequency is not a positive finite number.
	"""

	if not math.isfinite(frequency) or frequency <= 0:
		raise ValueError(f"Frequency must be positive, got {frequency!r}")

	midi_note = int(round(frequency_to_midi(frequency)))
	octave = midi_note // 12 - 1

	return f"{PC_TO_NOTE_NAME[midi_note % 12]}{octave}"


def note_name_to_frequency (name: str) -> float:

	"""Convert a note name (``"A4"``, ``"Bb3"``, ``"F#5"``) to a frequency.

	Raises:
		ValueError: If the name is not recognised.
	"""

	match = _NOTE_NAME_RE.match(name.strip())

	if match is None:
		raise ValueError(f"Unknown note name: {name!r}")

	letter, accidental, octave = match.groups()
	pc = NOTE_NAME_TO_PC[letter + accidental]
	midi_note = (int(octave) + 1) * 12 + pc

	return midi_to_frequency(midi_note)


@dataclasses.dataclass(frozen=True)
class Note:

	"""A pitch, stored canonically as a frequency in Hz.

	Two notes are equal when their frequencies are equal, so a chord can hold
	two notes that share a display name but were tuned differently.

	Example:
		```python
		Note(329.63).name           # "E4"
		Note.from_name("G4")        # Note(frequency=391.995...)
		Note.from_midi(60).name     # "C4"
		```
	"""

	frequency: float

	def __post_init__ (self) -> None:

		frequency = float(self.frequency)

		if not math.isfinite(frequency) or frequency <= 0:
			raise ValueError(f"Note frequency must be positive, got {self.frequency!r}")

		object.__setattr__(self, "frequency", frequency)

	@property
	def name (self) -> str:

		"""Display name derived from the frequency."""

		return frequency_to_note_name(self.frequency)

	@property
	def midi (self) -> int:

		"""Nearest MIDI note number."""

		return int(round(frequency_to_midi(self.frequency)))

	@classmethod
	def from_name (cls, name: str) -> "Note":

		"""Create a note from a name such as ``"C#4"``."""

		return cls(note_name_to_frequency(name))

	@classmethod
	def from_midi (cls, midi_note: int) -> "Note":

		"""Create a note from a MIDI note number."""

		return cls(midi_to_frequency(midi_note))

	def semitones_to (self, other: "Note") -> int:

		"""Return the rounded semitone distance from this note to *other*."""

		return int(round(12 * math.log2(other.frequency / self.frequency)))

	def __str__ (self) -> str:

		return self.name


def coerce_note (value: typing.Union["Note", float, int, str]) -> Note:

	"""Accept a Note, a frequency, or a note name and return a Note."""

	if isinstance(value, Note):
		return value

	if isinstance(value, str):
		return Note.from_name(value)

	return Note(float(value))
