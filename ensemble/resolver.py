"""Program resolution.

``ParameterResolver`` is the only place programs are assembled for peers.
Every program starts from a copy of the base parameters and is built fresh on
each call; nothing is diffed against what a peer received before.

Resolution steps
────────────────
1. Copy the base parameters.
2. Overlay the assigned note's frequency as ``fundamentalFrequency``.
3. Reset all expression flags, then enable the assigned kind. Its rate is the
   base rate times a harmonic ratio sampled fresh from the current
   numerator/denominator sets, so two resolutions of the same assignment
   usually differ.
4. Attach the transition verbatim.
5. Attach shared context: the whole chord, the whole assignment, power,
   peer id and timestamp.

A peer without a usable assignment gets the base parameters with every
expression off and ``power`` False, so it can't sound stale pitch data.
"""

import logging
import random
import typing

import ensemble.context
import ensemble.expressions
import ensemble.state
import ensemble.timing


logger = logging.getLogger(__name__)

Program = typing.Dict[str, typing.Any]

DEFAULT_VIBRATO_RATE: float = 5.0
DEFAULT_TREMOLO_SPEED: float = 10.0
DEFAULT_TRILL_SPEED: float = 8.0

_ENABLE_FLAGS = ("vibratoEnabled", "tremoloEnabled", "trillEnabled")


def _first (*values: typing.Any) -> typing.Any:

	"""Return the first value that is not None."""

	for value in values:
		if value is not None:
			return value

	return None


def has_valid_note (assignment: typing.Optional[ensemble.state.PartAssignment]) -> bool:

	"""True when the assignment exists and carries a positive frequency."""

	return assignment is not None and assignment.note.frequency > 0


class ParameterResolver:

	"""Builds complete, self-contained programs for individual peers."""

	def __init__ (
		self,
		state: ensemble.state.PerformanceState,
		rng: typing.Optional[random.Random] = None,
		clock: ensemble.context.Clock = ensemble.context.wall_clock_ms
	) -> None:

		self._state = state
		self._rng = rng or random.Random()
		self._clock = clock

	def resolve_for_peer (
		self,
		peer_id: str,
		assignment: typing.Optional[ensemble.state.PartAssignment],
		base_params: typing.Mapping[str, typing.Any],
		transition: typing.Union[ensemble.timing.TransitionConfig, typing.Mapping[str, typing.Any], None],
		power: bool = True,
		snapshot: typing.Optional[ensemble.state.StateSnapshot] = None
	) -> Program:

		"""Resolve the program one peer should receive.

		Parameters:
			peer_id: Target peer.
			assignment: The peer's part, or None for a benched peer.
			base_params: Global synthesis parameters.
			transition: Transition settings, attached as given.
			power: Power flag for assigned peers. Benched peers always get False.
			snapshot: Musical state to resolve against; defaults to the live state.
				Used to resolve programs from saved banks.

		Returns:
			A JSON-ready program dict.
		"""

		snapshot = snapshot or self._state.snapshot()
		program: Program = dict(base_params)

		for flag in _ENABLE_FLAGS:
			program[flag] = False

		program["expression"] = ensemble.expressions.NONE

		part = assignment if has_valid_note(assignment) else None

		if part is not None:
			program["fundamentalFrequency"] = part.note.frequency
			self._apply_expression(program, part, snapshot)
		elif assignment is not None:
			logger.warning(f"Ignoring assignment without a valid frequency for {peer_id}")

		program["transition"] = ensemble.timing.coerce_transition(transition).to_dict()
		program["chord"] = snapshot.chord_dict()
		program["parts"] = snapshot.parts_dict()
		program["power"] = bool(power) and part is not None
		program["synthId"] = peer_id
		program["timestamp"] = self._clock()

		if part is not None:
			logger.debug(f"Resolved program for {peer_id}: freq={part.note.frequency:.2f}Hz, expr={program['expression']}")
		else:
			logger.debug(f"Resolved silent program for {peer_id}")

		return program

	def _apply_expression (
		self,
		program: Program,
		assignment: ensemble.state.PartAssignment,
		snapshot: ensemble.state.StateSnapshot
	) -> None:

		"""Enable the assignment's expression kind and fill in its parameters."""

		expression = assignment.expression

		if not ensemble.expressions.is_active(expression):
			return

		harmonic = snapshot.harmonic
		ratio = harmonic.sample_ratio(expression.type, self._rng)
		program["expression"] = expression.type

		if isinstance(expression, ensemble.expressions.Vibrato):

			base_rate = _first(program.get("vibratoRate"), DEFAULT_VIBRATO_RATE)

			program["vibratoEnabled"] = True
			program["vibratoDepth"] = _first(expression.depth, program.get("vibratoDepth"), ensemble.expressions.DEFAULT_VIBRATO_DEPTH)
			program["vibratoRate"] = base_rate * ratio

		elif isinstance(expression, ensemble.expressions.Tremolo):

			base_speed = _first(program.get("tremoloSpeed"), DEFAULT_TREMOLO_SPEED)

			program["tremoloEnabled"] = True
			program["tremoloDepth"] = _first(expression.depth, program.get("tremoloDepth"), ensemble.expressions.DEFAULT_TREMOLO_DEPTH)
			program["tremoloArticulation"] = _first(expression.articulation, program.get("tremoloArticulation"), ensemble.expressions.DEFAULT_TREMOLO_ARTICULATION)
			program["tremoloSpeed"] = base_speed * ratio

		elif isinstance(expression, ensemble.expressions.Trill):

			base_speed = _first(program.get("trillSpeed"), DEFAULT_TRILL_SPEED)

			interval = expression.interval

			if interval is None and expression.target_note is not None:
				interval = assignment.note.semitones_to(expression.target_note)

			program["trillEnabled"] = True
			program["trillInterval"] = _first(interval, program.get("trillInterval"), ensemble.expressions.DEFAULT_TRILL_INTERVAL)
			program["trillArticulation"] = _first(expression.articulation, program.get("trillArticulation"), ensemble.expressions.DEFAULT_TRILL_ARTICULATION)
			program["trillSpeed"] = base_speed * ratio

		logger.debug(f"{expression.type}: ratio={ratio:.3f}")
