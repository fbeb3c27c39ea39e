"""Program banks.

A bank is a snapshot of everything needed to rebuild a performance: the base
parameters and power flag that were last sent, plus the chord, per-note
expressions and harmonic selections. Banks are keyed by small integers.

``BankStore`` keeps banks in memory. ``YamlBankStore`` additionally writes
them to a YAML file after every change and reads them back on startup.
"""

import dataclasses
import logging
import os
import typing

import yaml

import ensemble.context
import ensemble.expressions
import ensemble.harmonic
import ensemble.notes
import ensemble.state


logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class Bank:

	"""One saved performance snapshot."""

	base_params: typing.Dict[str, typing.Any]
	power: bool = True
	chord: typing.Tuple[ensemble.notes.Note, ...] = ()
	expressions: typing.Mapping[ensemble.notes.Note, ensemble.expressions.Expression] = dataclasses.field(default_factory=dict)
	harmonic: ensemble.harmonic.HarmonicSelection = dataclasses.field(default_factory=ensemble.harmonic.HarmonicSelection)
	name: str = ""
	timestamp: float = 0.0

	def snapshot (self) -> ensemble.state.StateSnapshot:

		"""Musical state of the bank, without any peer assignment."""

		return ensemble.state.StateSnapshot(
			chord = self.chord,
			expressions = dict(self.expressions),
			harmonic = self.harmonic.copy()
		)

	def to_dict (self) -> typing.Dict[str, typing.Any]:

		return {
			"name": self.name,
			"timestamp": self.timestamp,
			"power": self.power,
			"parameters": dict(self.base_params),
			"chord": self.snapshot().chord_dict(),
			"harmonicSelections": self.harmonic.to_dict(),
		}

	@classmethod
	def from_dict (cls, data: typing.Mapping[str, typing.Any]) -> "Bank":

		"""Rebuild a bank from its stored form.

		Expressions are matched to chord notes by name; names that match no
		chord note are dropped.
		"""

		chord_data = data.get("chord") or {}
		chord = tuple(ensemble.notes.Note(frequency) for frequency in chord_data.get("frequencies") or [])

		by_name: typing.Dict[str, ensemble.notes.Note] = {}

		for note in chord:
			if note.name in by_name:
				logger.warning(
					f"Bank chord notes {by_name[note.name].frequency} Hz and {note.frequency} Hz "
					f"share the name {note.name}; stored expressions apply to the first"
				)
			else:
				by_name[note.name] = note
		expressions: typing.Dict[ensemble.notes.Note, ensemble.expressions.Expression] = {}

		for note_name, expression_data in (chord_data.get("expressions") or {}).items():

			note = by_name.get(note_name)

			if note is None:
				logger.warning(f"Dropping stored expression for {note_name}: not in the bank's chord")
				continue

			expression = ensemble.expressions.expression_from_dict(expression_data)

			if ensemble.expressions.is_active(expression):
				expressions[note] = expression

		return cls(
			base_params = dict(data.get("parameters") or {}),
			power = bool(data.get("power", True)),
			chord = chord,
			expressions = expressions,
			harmonic = ensemble.harmonic.HarmonicSelection.from_dict(data.get("harmonicSelections")),
			name = str(data.get("name", "")),
			timestamp = float(data.get("timestamp", 0.0))
		)


class BankStore:

	"""In-memory mapping of bank id to ``Bank``."""

	def __init__ (self, clock: ensemble.context.Clock = ensemble.context.wall_clock_ms) -> None:

		self._banks: typing.Dict[int, Bank] = {}
		self._clock = clock

	def save (
		self,
		bank_id: int,
		base_params: typing.Mapping[str, typing.Any],
		power: bool,
		snapshot: ensemble.state.StateSnapshot
	) -> Bank:

		"""Store a snapshot under *bank_id*, replacing any previous bank."""

		bank = Bank(
			base_params = dict(base_params),
			power = bool(power),
			chord = tuple(snapshot.chord),
			expressions = dict(snapshot.expressions),
			harmonic = snapshot.harmonic.copy(),
			name = f"Bank {bank_id}",
			timestamp = self._clock()
		)

		self._banks[int(bank_id)] = bank
		self._persist()

		logger.info(f"Saved bank {bank_id}: {len(bank.chord)} notes, {len(bank.expressions)} expressions")

		return bank

	def get (self, bank_id: int) -> typing.Optional[Bank]:
		return self._banks.get(int(bank_id))

	def delete (self, bank_id: int) -> bool:

		if self._banks.pop(int(bank_id), None) is None:
			return False

		self._persist()
		return True

	def clear (self) -> None:

		self._banks.clear()
		self._persist()

		logger.info("All banks cleared")

	def ids (self) -> typing.List[int]:
		return sorted(self._banks)

	def __contains__ (self, bank_id: object) -> bool:
		return bank_id in self._banks

	def __len__ (self) -> int:
		return len(self._banks)

	def _persist (self) -> None:

		"""Hook for stores with a backing file."""


class YamlBankStore (BankStore):

	"""A ``BankStore`` backed by a YAML file.

	The file is read once at construction; a missing file starts empty and a
	corrupt one is logged and ignored. Every change rewrites the file.
	"""

	def __init__ (self, path: str, clock: ensemble.context.Clock = ensemble.context.wall_clock_ms) -> None:

		super().__init__(clock)

		self.path = path
		self._load()

	def _load (self) -> None:

		if not os.path.exists(self.path):
			logger.info(f"Bank file {self.path} not found, starting with no banks")
			return

		try:
			with open(self.path, "r") as f:
				data = yaml.safe_load(f) or {}
		except (OSError, yaml.YAMLError) as exc:
			logger.error(f"Failed to load banks from {self.path}: {exc}")
			return

		if not isinstance(data, dict):
			logger.error(f"Bank file {self.path} is not a mapping, ignoring it")
			return

		for key, bank_data in data.items():
			try:
				self._banks[int(key)] = Bank.from_dict(bank_data)
			except (TypeError, ValueError, AttributeError) as exc:
				logger.warning(f"Skipping bank {key!r} in {self.path}: {exc}")

		logger.info(f"Loaded {len(self._banks)} banks from {self.path}")

	def _persist (self) -> None:

		data = {bank_id: bank.to_dict() for bank_id, bank in sorted(self._banks.items())}

		try:
			with open(self.path, "w") as f:
				yaml.safe_dump(data, f, sort_keys=False)
		except OSError as exc:
			logger.error(f"Failed to save banks to {self.path}: {exc}")
