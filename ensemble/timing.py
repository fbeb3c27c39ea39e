"""Transition configuration and humanized per-peer timing.

Stagger and duration spread are multiplicative jitter, symmetric in log
space: a knob value of 1.0 maps to a factor in ``[0.5, 2.0]`` of the base
duration, with under- and over-shoot equally likely.
"""

import dataclasses
import logging
import math
import random
import typing


logger = logging.getLogger(__name__)

DEFAULT_DURATION: float = 10.0
DEFAULT_STAGGER: float = 0.0
DEFAULT_DURATION_SPREAD: float = 0.0
DEFAULT_GLISSANDO: bool = True

_LN2 = math.log(2.0)


def _number (value: typing.Any, name: str, default: float) -> float:

	"""Parse a numeric field, returning the default for missing or bad values."""

	if value is None:
		return default

	if isinstance(value, bool):
		logger.warning(f"Transition {name} must be a number, got {value!r}; using {default}")
		return default

	try:
		number = float(value)
	except (TypeError, ValueError):
		logger.warning(f"Transition {name} must be a number, got {value!r}; using {default}")
		return default

	if not math.isfinite(number):
		logger.warning(f"Transition {name} is not finite; using {default}")
		return default

	return number


def _unit (value: typing.Any, name: str, default: float) -> float:

	"""Parse a ``[0, 1]`` knob, clamping out-of-range values."""

	number = _number(value, name, default)

	if number < 0.0 or number > 1.0:
		clamped = min(1.0, max(0.0, number))
		logger.warning(f"Transition {name} {number} outside [0, 1]; clamped to {clamped}")
		return clamped

	return number


@dataclasses.dataclass(frozen=True)
class TransitionConfig:

	"""How a chord change moves across the ensemble.

	Parameters:
		duration: Base transition time in seconds (>= 0).
		stagger: Start-time humanization, 0.0 to 1.0.
		duration_spread: Duration humanization, 0.0 to 1.0.
		glissando: Whether peers slide between pitches.
	"""

	duration: float = DEFAULT_DURATION
	stagger: float = DEFAULT_STAGGER
	duration_spread: float = DEFAULT_DURATION_SPREAD
	glissando: bool = DEFAULT_GLISSANDO

	@classmethod
	def from_dict (cls, data: typing.Optional[typing.Mapping[str, typing.Any]]) -> "TransitionConfig":

		"""Build from a wire dict, clamping bad values instead of raising.

		Accepts ``durationSpread`` or ``duration_spread``.
		"""

		if not data:
			return cls()

		duration = _number(data.get("duration"), "duration", DEFAULT_DURATION)

		if duration < 0:
			logger.warning(f"Transition duration {duration} is negative; using {DEFAULT_DURATION}")
			duration = DEFAULT_DURATION

		spread = data.get("durationSpread", data.get("duration_spread"))
		glissando = data.get("glissando")

		return cls(
			duration = duration,
			stagger = _unit(data.get("stagger"), "stagger", DEFAULT_STAGGER),
			duration_spread = _unit(spread, "durationSpread", DEFAULT_DURATION_SPREAD),
			glissando = DEFAULT_GLISSANDO if glissando is None else bool(glissando)
		)

	@classmethod
	def zero (cls) -> "TransitionConfig":

		"""An instant transition, used to catch up late-joining peers."""

		return cls(duration=0.0, stagger=0.0, duration_spread=0.0)

	def to_dict (self) -> typing.Dict[str, typing.Any]:

		return {
			"duration": self.duration,
			"stagger": self.stagger,
			"durationSpread": self.duration_spread,
			"glissando": self.glissando,
		}


def coerce_transition (value: typing.Union[TransitionConfig, typing.Mapping[str, typing.Any], None]) -> TransitionConfig:

	"""Accept a ``TransitionConfig``, a wire dict, or None (defaults)."""

	if isinstance(value, TransitionConfig):
		return value

	return TransitionConfig.from_dict(value)


@dataclasses.dataclass(frozen=True)
class Timing:

	"""Per-peer start delay and transition duration, in seconds."""

	delay: float
	duration: float

	def to_dict (self) -> typing.Dict[str, float]:

		return {"delay": self.delay, "duration": self.duration}


def _jitter (amount: float, rng: random.Random) -> float:

	"""Return a multiplier in ``[2**-amount, 2**amount]``, uniform in log space."""

	return math.exp((2.0 * rng.random() - 1.0) * amount * _LN2)


def timing_for (
	config: typing.Union[TransitionConfig, typing.Mapping[str, typing.Any]],
	peer_index: int = 0,
	rng: typing.Optional[random.Random] = None
) -> Timing:

	"""Compute a humanized delay and duration for one peer.

	``delay`` is zero without stagger, otherwise the base duration scaled by a
	jitter factor; it is clamped at zero. ``duration`` is scaled by an
	independent draw when a spread is set and is not clamped.

	``peer_index`` is the peer's position in the send order. Draws come from
	*rng* in call order, so a seeded generator makes a whole broadcast
	reproducible.
	"""

	config = coerce_transition(config)
	rng = rng or random.Random()

	delay = 0.0

	if config.stagger > 0:
		delay = config.duration * _jitter(config.stagger, rng)

	duration = config.duration

	if config.duration_spread > 0:
		duration = config.duration * _jitter(config.duration_spread, rng)

	return Timing(delay=max(0.0, delay), duration=duration)


class TransitionTimingCalculator:

	"""Holds the random source used for per-peer timing."""

	def __init__ (self, rng: typing.Optional[random.Random] = None) -> None:

		self.rng = rng or random.Random()

	def timing_for (self, config: typing.Union[TransitionConfig, typing.Mapping[str, typing.Any]], peer_index: int = 0) -> Timing:

		return timing_for(config, peer_index, self.rng)
