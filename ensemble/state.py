"""Authoritative performance state.

``PerformanceState`` owns the chord, the per-note expressions, the harmonic
ratio selections, the connected peer ids and the distribution strategy. Each
logical change has exactly one mutation method. Chord, peer-set and strategy
changes recompute the full peer assignment before returning it, so the
assignment can never be stale with respect to any of them. Expression edits
refresh the expression carried by each existing slot.

Every mutation bumps ``version`` and emits ``ASSIGNMENT_CHANGED`` on the
context's event bus.
"""

import dataclasses
import logging
import typing

import ensemble.context
import ensemble.distribution
import ensemble.events
import ensemble.expressions
import ensemble.harmonic
import ensemble.notes


logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class PartAssignment:

	"""What one peer should play: a note slot and that note's expression."""

	note: ensemble.notes.Note
	index: int
	expression: ensemble.expressions.Expression = ensemble.expressions.NO_EXPRESSION

	@property
	def frequency (self) -> float:
		return self.note.frequency

	def to_dict (self) -> typing.Dict[str, typing.Any]:

		return {
			"frequency": self.note.frequency,
			"noteName": self.note.name,
			"expression": ensemble.expressions.expression_to_dict(self.expression),
		}


Assignment = typing.Dict[str, PartAssignment]


@dataclasses.dataclass(frozen=True)
class StateSnapshot:

	"""An immutable copy of the musical state, used for program context and banks."""

	chord: typing.Tuple[ensemble.notes.Note, ...] = ()
	expressions: typing.Mapping[ensemble.notes.Note, ensemble.expressions.Expression] = dataclasses.field(default_factory=dict)
	harmonic: ensemble.harmonic.HarmonicSelection = dataclasses.field(default_factory=ensemble.harmonic.HarmonicSelection)
	assignment: typing.Mapping[str, PartAssignment] = dataclasses.field(default_factory=dict)

	def chord_dict (self) -> typing.Dict[str, typing.Any]:

		"""Wire form: ``{"frequencies": [...], "expressions": {noteName: {...}}}``.

		Expressions are keyed by display name, so two notes that share a name
		collide; the later one wins and a warning is logged.
		"""

		expressions: typing.Dict[str, typing.Dict[str, typing.Any]] = {}
		owners: typing.Dict[str, ensemble.notes.Note] = {}

		for note, expression in self.expressions.items():

			if not ensemble.expressions.is_active(expression):
				continue

			if note.name in owners:
				logger.warning(
					f"Expressions for {owners[note.name].frequency} Hz and {note.frequency} Hz "
					f"share the name {note.name}; sending the one for {note.frequency} Hz"
				)

			owners[note.name] = note
			expressions[note.name] = ensemble.expressions.expression_to_dict(expression)

		return {
			"frequencies": [note.frequency for note in self.chord],
			"expressions": expressions,
		}

	def parts_dict (self) -> typing.Dict[str, typing.Dict[str, typing.Any]]:

		return {peer_id: part.to_dict() for peer_id, part in self.assignment.items()}


def _unique_notes (notes: typing.Iterable[typing.Union[ensemble.notes.Note, float, str]]) -> typing.Tuple[ensemble.notes.Note, ...]:

	"""Coerce to Notes and drop repeats, keeping the first occurrence."""

	seen: typing.Set[ensemble.notes.Note] = set()
	result: typing.List[ensemble.notes.Note] = []

	for value in notes:
		note = ensemble.notes.coerce_note(value)
		if note not in seen:
			seen.add(note)
			result.append(note)

	return tuple(result)


class PerformanceState:

	"""The controller's single mutable store of musical state."""

	def __init__ (
		self,
		context: ensemble.context.CoordinationContext,
		strategy: typing.Optional[str] = None
	) -> None:

		self._context = context
		self._chord: typing.Tuple[ensemble.notes.Note, ...] = ()
		self._expressions: typing.Dict[ensemble.notes.Note, ensemble.expressions.Expression] = {}
		self._harmonic = ensemble.harmonic.HarmonicSelection()
		self._peers: typing.List[str] = []
		self._strategy = ensemble.distribution.resolve_strategy(strategy or context.config.strategy)
		self._assignment: Assignment = {}
		self.version = 0

	# Read-only views

	@property
	def chord (self) -> typing.Tuple[ensemble.notes.Note, ...]:
		return self._chord

	@property
	def expressions (self) -> typing.Dict[ensemble.notes.Note, ensemble.expressions.Expression]:
		return dict(self._expressions)

	@property
	def harmonic (self) -> ensemble.harmonic.HarmonicSelection:

		"""A copy of the selections; edit through ``set_harmonic_selection``."""

		return self._harmonic.copy()

	@property
	def peers (self) -> typing.Tuple[str, ...]:
		return tuple(self._peers)

	@property
	def strategy (self) -> str:
		return self._strategy

	@property
	def assignment (self) -> Assignment:
		return dict(self._assignment)

	def assignment_for (self, peer_id: str) -> typing.Optional[PartAssignment]:
		return self._assignment.get(peer_id)

	def expression_for (self, note: ensemble.notes.Note) -> ensemble.expressions.Expression:
		return self._expressions.get(note, ensemble.expressions.NO_EXPRESSION)

	def snapshot (self) -> StateSnapshot:

		return StateSnapshot(
			chord = self._chord,
			expressions = dict(self._expressions),
			harmonic = self._harmonic.copy(),
			assignment = dict(self._assignment)
		)

	# Mutations

	def set_chord (self, notes: typing.Iterable[typing.Union[ensemble.notes.Note, float, str]]) -> Assignment:

		"""Replace the chord and prune expressions for notes no longer in it."""

		self._chord = _unique_notes(notes)

		dropped = [note for note in self._expressions if note not in self._chord]

		for note in dropped:
			del self._expressions[note]

		if dropped:
			logger.info(f"Pruned expressions for {[note.name for note in dropped]}")

		logger.info(f"Chord set: [{', '.join(note.name for note in self._chord)}]")

		return self._commit()

	def clear_chord (self) -> Assignment:
		return self.set_chord([])

	def set_expression (
		self,
		note: typing.Union[ensemble.notes.Note, float, str],
		expression: typing.Union[ensemble.expressions.Expression, typing.Mapping[str, typing.Any], None]
	) -> Assignment:

		"""Attach an expression to a chord note; ``NoExpression`` or None clears it.

		A note name matches the chord note with that display name. Notes that
		are not in the chord are ignored with a warning.
		"""

		target = self._find_chord_note(note)

		if target is None:
			logger.warning(f"Cannot set expression: note {note} is not in the current chord")
			return self.assignment

		if expression is None or isinstance(expression, typing.Mapping):
			expression = ensemble.expressions.expression_from_dict(expression)

		if ensemble.expressions.is_active(expression):
			self._expressions[target] = expression
		else:
			self._expressions.pop(target, None)

		logger.info(f"Expression set: {target.name} -> {expression.type}")

		return self._commit(redistribute=False)

	def set_harmonic_selection (self, kind: str, part: str, values: typing.Iterable[int]) -> Assignment:

		"""Replace one harmonic ratio set (never left empty)."""

		self._harmonic.set(kind, part, values)

		return self._commit(redistribute=False)

	def toggle_harmonic_value (self, kind: str, part: str, value: int) -> Assignment:

		self._harmonic.toggle(kind, part, value)

		return self._commit(redistribute=False)

	def set_strategy (self, strategy: str) -> Assignment:

		self._strategy = ensemble.distribution.resolve_strategy(strategy)
		logger.info(f"Distribution strategy: {self._strategy}")

		return self._commit()

	def add_peer (self, peer_id: str) -> Assignment:

		if peer_id not in self._peers:
			self._peers.append(peer_id)

		return self._commit()

	def remove_peer (self, peer_id: str) -> Assignment:

		if peer_id in self._peers:
			self._peers.remove(peer_id)

		return self._commit()

	def restore (
		self,
		chord: typing.Iterable[typing.Union[ensemble.notes.Note, float, str]],
		expressions: typing.Mapping[ensemble.notes.Note, ensemble.expressions.Expression],
		harmonic: ensemble.harmonic.HarmonicSelection
	) -> Assignment:

		"""Replace chord, expressions and harmonic selections in one step (bank load)."""

		self._chord = _unique_notes(chord)
		self._expressions = {
			note: expression
			for note, expression in expressions.items()
			if note in self._chord and ensemble.expressions.is_active(expression)
		}
		self._harmonic = harmonic.copy()

		return self._commit()

	# Internals

	def _find_chord_note (self, note: typing.Union[ensemble.notes.Note, float, str]) -> typing.Optional[ensemble.notes.Note]:

		if isinstance(note, str):

			matches = [chord_note for chord_note in self._chord if chord_note.name == note]

			if len(matches) > 1:
				logger.warning(f"Note name {note} matches {len(matches)} chord notes; using {matches[0].frequency} Hz")

			return matches[0] if matches else None

		candidate = ensemble.notes.coerce_note(note)

		return candidate if candidate in self._chord else None

	def _redistribute (self) -> Assignment:

		slots = ensemble.distribution.distribute(self._chord, self._peers, self._strategy, self._context.rng)

		return {
			peer_id: PartAssignment(slot.note, slot.index, self.expression_for(slot.note))
			for peer_id, slot in slots.items()
		}

	def _refresh_expressions (self) -> Assignment:

		"""Keep every peer on its slot but pick up the current expressions."""

		return {
			peer_id: dataclasses.replace(part, expression=self.expression_for(part.note))
			for peer_id, part in self._assignment.items()
		}

	def _commit (self, redistribute: bool = True) -> Assignment:

		"""Recompute the assignment, bump the version, and notify listeners.

		Expression and harmonic edits keep the existing note slots so that
		random strategies don't reshuffle peers on every gesture.
		"""

		if redistribute:
			self._assignment = self._redistribute()
		else:
			self._assignment = self._refresh_expressions()

		self.version += 1

		self._context.events.emit(ensemble.events.ASSIGNMENT_CHANGED, self.assignment, self.version)

		return self.assignment
