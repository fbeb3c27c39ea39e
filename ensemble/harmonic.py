"""Harmonic ratio selections.

Each expression kind scales its rate by a ratio ``numerator / denominator``
whose terms are drawn from user-selected sets of small integers (1-12). The
sets persist independently of the chord and are edited only by explicit user
action. A set is never empty: removing the last value puts 1 back.
"""

import logging
import random
import typing

import ensemble.expressions


logger = logging.getLogger(__name__)

NUMERATOR = "numerator"
DENOMINATOR = "denominator"
PARTS: typing.Tuple[str, str] = (NUMERATOR, DENOMINATOR)

MIN_VALUE: int = 1
MAX_VALUE: int = 12


def selection_key (kind: str, part: str) -> str:

	"""Return the wire key for a selection, e.g. ``"vibrato-numerator"``."""

	return f"{kind}-{part}"


def _check (kind: str, part: str) -> None:

	if kind not in ensemble.expressions.EXPRESSION_KINDS:
		raise ValueError(f"Unknown expression kind: {kind!r}")

	if part not in PARTS:
		raise ValueError(f"Unknown ratio part: {part!r}")


def _clean (values: typing.Iterable[typing.Any]) -> typing.Set[int]:

	"""Keep integers in range; log and drop anything else."""

	cleaned: typing.Set[int] = set()

	for value in values:
		try:
			number = int(value)
		except (TypeError, ValueError):
			logger.warning(f"Ignoring non-integer harmonic value {value!r}")
			continue

		if MIN_VALUE <= number <= MAX_VALUE:
			cleaned.add(number)
		else:
			logger.warning(f"Ignoring harmonic value {number} outside {MIN_VALUE}-{MAX_VALUE}")

	return cleaned


class HarmonicSelection:

	"""Numerator and denominator sets for every expression kind.

	Example:
		```python
		selection = HarmonicSelection()
		selection.set("vibrato", "numerator", [1, 2, 3])
		selection.set("vibrato", "denominator", [1, 2])
		ratio = selection.sample_ratio("vibrato", rng)   # one of 1, 2, 3, 0.5, 1.5
		```
	"""

	def __init__ (self, selections: typing.Optional[typing.Mapping[typing.Tuple[str, str], typing.Iterable[int]]] = None) -> None:

		self._sets: typing.Dict[typing.Tuple[str, str], typing.Set[int]] = {
			(kind, part): {1}
			for kind in ensemble.expressions.EXPRESSION_KINDS
			for part in PARTS
		}

		if selections:
			for (kind, part), values in selections.items():
				self.set(kind, part, values)

	def get (self, kind: str, part: str) -> typing.Tuple[int, ...]:

		"""Return the sorted values of one set."""

		_check(kind, part)

		return tuple(sorted(self._sets[(kind, part)]))

	def set (self, kind: str, part: str, values: typing.Iterable[typing.Any]) -> None:

		"""Replace one set. An empty or fully invalid input leaves ``{1}``."""

		_check(kind, part)

		cleaned = _clean(values)
		self._sets[(kind, part)] = cleaned or {1}

	def add (self, kind: str, part: str, value: int) -> None:

		_check(kind, part)

		self._sets[(kind, part)] |= _clean([value])

	def remove (self, kind: str, part: str, value: int) -> None:

		"""Remove a value; removing the last one re-inserts 1."""

		_check(kind, part)

		values = self._sets[(kind, part)]
		values.discard(value)

		if not values:
			values.add(1)

	def toggle (self, kind: str, part: str, value: int) -> None:

		_check(kind, part)

		if value in self._sets[(kind, part)]:
			self.remove(kind, part, value)
		else:
			self.add(kind, part, value)

	def select_only (self, kind: str, part: str, value: int) -> None:

		"""Replace a set with a single value."""

		self.set(kind, part, [value])

	def sample_ratio (self, kind: str, rng: random.Random) -> float:

		"""Draw a numerator and denominator independently and return their ratio."""

		numerator = rng.choice(self.get(kind, NUMERATOR))
		denominator = rng.choice(self.get(kind, DENOMINATOR))

		return numerator / denominator

	def copy (self) -> "HarmonicSelection":

		return HarmonicSelection({key: set(values) for key, values in self._sets.items()})

	def to_dict (self) -> typing.Dict[str, typing.List[int]]:

		"""Encode with wire keys (``"trill-denominator": [1, 2]``)."""

		return {
			selection_key(kind, part): sorted(values)
			for (kind, part), values in self._sets.items()
		}

	@classmethod
	def from_dict (cls, data: typing.Optional[typing.Mapping[str, typing.Iterable[typing.Any]]]) -> "HarmonicSelection":

		"""Decode wire keys. Unknown keys are ignored; missing keys default to ``{1}``."""

		selection = cls()

		for key, values in (data or {}).items():

			kind, _, part = key.partition("-")

			try:
				selection.set(kind, part, values)
			except ValueError:
				logger.warning(f"Ignoring unknown harmonic selection key {key!r}")

		return selection

	def __eq__ (self, other: object) -> bool:

		if not isinstance(other, HarmonicSelection):
			return NotImplemented

		return self._sets == other._sets

	def __repr__ (self) -> str:

		return f"HarmonicSelection({self.to_dict()!r})"
