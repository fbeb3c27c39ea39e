"""Per-note expressions.

An expression is one of four kinds, each a frozen dataclass:

- ``NoExpression``: plain sustained note.
- ``Vibrato(depth)``: pitch modulation.
- ``Tremolo(depth, articulation)``: amplitude modulation.
- ``Trill(target_note, interval, articulation)``: alternation with a second pitch.

Optional fields may be ``None``; the parameter resolver fills them from the
base program or the documented defaults. On the wire an expression is a dict
with a ``type`` key, e.g. ``{"type": "vibrato", "depth": 0.02}``.
"""

import dataclasses
import logging
import math
import typing

import ensemble.notes


logger = logging.getLogger(__name__)

NONE = "none"
VIBRATO = "vibrato"
TREMOLO = "tremolo"
TRILL = "trill"

EXPRESSION_KINDS: typing.Tuple[str, ...] = (VIBRATO, TREMOLO, TRILL)

DEFAULT_VIBRATO_DEPTH: float = 0.01
DEFAULT_TREMOLO_DEPTH: float = 0.3
DEFAULT_TREMOLO_ARTICULATION: float = 0.8
DEFAULT_TRILL_INTERVAL: int = 2
DEFAULT_TRILL_ARTICULATION: float = 0.7


@dataclasses.dataclass(frozen=True)
class NoExpression:

	"""No modulation."""

	type: typing.ClassVar[str] = NONE


@dataclasses.dataclass(frozen=True)
class Vibrato:

	"""Pitch vibrato with an optional depth."""

	depth: typing.Optional[float] = None

	type: typing.ClassVar[str] = VIBRATO


@dataclasses.dataclass(frozen=True)
class Tremolo:

	"""Amplitude tremolo with optional depth and articulation."""

	depth: typing.Optional[float] = None
	articulation: typing.Optional[float] = None

	type: typing.ClassVar[str] = TREMOLO


@dataclasses.dataclass(frozen=True)
class Trill:

	"""Trill towards a target note.

	``interval`` is in semitones. When it is ``None`` and a target note is
	given, the resolver uses the distance from the assigned note to the target.
	"""

	target_note: typing.Optional[ensemble.notes.Note] = None
	interval: typing.Optional[int] = None
	articulation: typing.Optional[float] = None

	type: typing.ClassVar[str] = TRILL


Expression = typing.Union[NoExpression, Vibrato, Tremolo, Trill]

NO_EXPRESSION = NoExpression()


def is_active (expression: typing.Optional[Expression]) -> bool:

	"""Return True for any expression other than ``NoExpression``."""

	return expression is not None and expression.type != NONE


def _optional_float (data: typing.Mapping[str, typing.Any], key: str) -> typing.Optional[float]:

	value = data.get(key)

	if value is None:
		return None

	try:
		number = float(value)
	except (TypeError, ValueError):
		logger.warning(f"Ignoring non-numeric expression field {key}={value!r}")
		return None

	if not math.isfinite(number):
		logger.warning(f"Ignoring non-finite expression field {key}={value!r}")
		return None

	return number


def _optional_interval (data: typing.Mapping[str, typing.Any]) -> typing.Optional[int]:

	value = data.get("interval")

	if value is None:
		return None

	if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
		logger.warning(f"Ignoring invalid trill interval {value!r}")
		return None

	return int(value)


def expression_from_dict (data: typing.Optional[typing.Mapping[str, typing.Any]]) -> Expression:

	"""Decode a wire-format expression dict.

	Missing or unrecognised types decode to ``NoExpression`` (with a warning
	for unrecognised ones) rather than raising, since these usually come from a
	UI gesture mid-performance.
	"""

	if not data:
		return NO_EXPRESSION

	kind = data.get("type", NONE)

	if kind == NONE:
		return NO_EXPRESSION

	if kind == VIBRATO:
		return Vibrato(depth=_optional_float(data, "depth"))

	if kind == TREMOLO:
		return Tremolo(
			depth = _optional_float(data, "depth"),
			articulation = _optional_float(data, "articulation")
		)

	if kind == TRILL:

		target: typing.Optional[ensemble.notes.Note] = None
		raw_target = data.get("targetNote")

		if raw_target is not None:
			try:
				target = ensemble.notes.coerce_note(raw_target)
			except (TypeError, ValueError):
				logger.warning(f"Ignoring invalid trill target {raw_target!r}")

		return Trill(
			target_note = target,
			interval = _optional_interval(data),
			articulation = _optional_float(data, "articulation")
		)

	logger.warning(f"Unknown expression type {kind!r}, treating as none")
	return NO_EXPRESSION


def expression_to_dict (expression: typing.Optional[Expression]) -> typing.Dict[str, typing.Any]:

	"""Encode an expression to its wire form, omitting unset fields."""

	if expression is None:
		return {"type": NONE}

	result: typing.Dict[str, typing.Any] = {"type": expression.type}

	if isinstance(expression, Trill):

		if expression.target_note is not None:
			result["targetNote"] = expression.target_note.name
		if expression.interval is not None:
			result["interval"] = expression.interval
		if expression.articulation is not None:
			result["articulation"] = expression.articulation

		return result

	for field in dataclasses.fields(expression):
		value = getattr(expression, field.name)
		if value is not None:
			result[field.name] = value

	return result
