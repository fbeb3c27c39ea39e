"""Note distribution across peers.

``distribute()`` partitions a chord's notes over the connected peers. It is a
pure function: the only source of randomness is the ``rng`` argument, so a
seeded ``random.Random`` makes every strategy reproducible.

Strategies
──────────
- ``round-robin``: peer *i* plays ``notes[i % N]``. Deterministic default.
- ``random``: every peer draws a note uniformly. May skew.
- ``balanced``: per-note peer counts differ by at most one; peers fill the
  note buckets in order.
- ``randomized-balanced``: identical per-note counts to ``balanced``, but the
  peers are shuffled before filling the buckets.
- ``weighted``: like ``balanced`` but the leftover peers favour the root, then
  the fifth, then the remaining notes.

When there are more notes than peers some notes get no peer, which is fine.
Duplicate frequencies are separate slots, identified by ``index``.
"""

import dataclasses
import logging
import random
import typing

import ensemble.notes


logger = logging.getLogger(__name__)

ROUND_ROBIN = "round-robin"
RANDOM = "random"
BALANCED = "balanced"
RANDOMIZED_BALANCED = "randomized-balanced"
WEIGHTED = "weighted"

DEFAULT_STRATEGY = ROUND_ROBIN

ROOT_INDEX = 0
FIFTH_INDEX = 2


@dataclasses.dataclass(frozen=True)
class NoteSlot:

	"""A note chosen for a peer, plus its position in the note list."""

	note: ensemble.notes.Note
	index: int


Distribution = typing.Dict[str, NoteSlot]
StrategyFn = typing.Callable[[typing.Sequence[ensemble.notes.Note], typing.Sequence[str], random.Random], Distribution]


def balanced_counts (peer_count: int, note_count: int) -> typing.List[int]:

	"""Return per-note peer counts of ``floor(M/N)`` or ``ceil(M/N)``, summing to M.

	The first ``M % N`` notes get the extra peer.
	"""

	if note_count <= 0:
		return []

	base, remainder = divmod(peer_count, note_count)

	return [base + (1 if i < remainder else 0) for i in range(note_count)]


def weighted_counts (peer_count: int, note_count: int) -> typing.List[int]:

	"""Balanced counts with leftover peers given to root, fifth, then the rest."""

	if note_count <= 0:
		return []

	base, remainder = divmod(peer_count, note_count)
	counts = [base] * note_count

	priority = [ROOT_INDEX]

	if note_count >= 3:
		priority.append(FIFTH_INDEX)

	priority.extend(i for i in range(note_count) if i not in priority)

	for i in priority[:remainder]:
		counts[i] += 1

	return counts


def _fill_buckets (
	notes: typing.Sequence[ensemble.notes.Note],
	peer_ids: typing.Sequence[str],
	counts: typing.Sequence[int]
) -> Distribution:

	"""Hand out peers in order: the first ``counts[0]`` to note 0, and so on."""

	result: Distribution = {}
	position = 0

	for index, count in enumerate(counts):
		for peer_id in peer_ids[position:position + count]:
			result[peer_id] = NoteSlot(notes[index], index)
		position += count

	return result


def _round_robin (notes: typing.Sequence[ensemble.notes.Note], peer_ids: typing.Sequence[str], rng: random.Random) -> Distribution:

	return {
		peer_id: NoteSlot(notes[i % len(notes)], i % len(notes))
		for i, peer_id in enumerate(peer_ids)
	}


def _random (notes: typing.Sequence[ensemble.notes.Note], peer_ids: typing.Sequence[str], rng: random.Random) -> Distribution:

	result: Distribution = {}

	for peer_id in peer_ids:
		index = rng.randrange(len(notes))
		result[peer_id] = NoteSlot(notes[index], index)

	return result


def _balanced (notes: typing.Sequence[ensemble.notes.Note], peer_ids: typing.Sequence[str], rng: random.Random) -> Distribution:

	return _fill_buckets(notes, peer_ids, balanced_counts(len(peer_ids), len(notes)))


def _randomized_balanced (notes: typing.Sequence[ensemble.notes.Note], peer_ids: typing.Sequence[str], rng: random.Random) -> Distribution:

	shuffled = list(peer_ids)
	rng.shuffle(shuffled)

	return _fill_buckets(notes, shuffled, balanced_counts(len(peer_ids), len(notes)))


def _weighted (notes: typing.Sequence[ensemble.notes.Note], peer_ids: typing.Sequence[str], rng: random.Random) -> Distribution:

	return _fill_buckets(notes, peer_ids, weighted_counts(len(peer_ids), len(notes)))


_STRATEGY_FNS: typing.Dict[str, StrategyFn] = {
	ROUND_ROBIN: _round_robin,
	RANDOM: _random,
	BALANCED: _balanced,
	RANDOMIZED_BALANCED: _randomized_balanced,
	WEIGHTED: _weighted,
}

STRATEGIES: typing.Tuple[str, ...] = tuple(_STRATEGY_FNS)


def resolve_strategy (strategy: typing.Optional[str]) -> str:

	"""Return a valid strategy name, falling back to round-robin with a warning."""

	if strategy is None:
		return DEFAULT_STRATEGY

	normalized = str(strategy).strip().lower().replace("_", "-")

	if normalized in _STRATEGY_FNS:
		return normalized

	logger.warning(f"Unknown distribution strategy {strategy!r}, using {DEFAULT_STRATEGY}")
	return DEFAULT_STRATEGY


def distribute (
	notes: typing.Sequence[ensemble.notes.Note],
	peer_ids: typing.Sequence[str],
	strategy: typing.Optional[str] = DEFAULT_STRATEGY,
	rng: typing.Optional[random.Random] = None
) -> Distribution:

	"""Assign one note to each peer.

	Parameters:
		notes: Notes to hand out. Duplicates are treated as distinct slots.
		peer_ids: Peers in their stable ordering.
		strategy: One of ``STRATEGIES``. Unknown names fall back to round-robin.
		rng: Random source. A fresh unseeded ``random.Random`` is used if omitted.

	Returns:
		Mapping of peer id to ``NoteSlot``. Empty when either input is empty.
	"""

	if not notes or not peer_ids:
		return {}

	name = resolve_strategy(strategy)
	fn = _STRATEGY_FNS[name]

	return fn(list(notes), list(peer_ids), rng or random.Random())


def note_counts (distribution: Distribution, note_count: int) -> typing.List[int]:

	"""Return how many peers landed on each note index."""

	counts = [0] * note_count

	for slot in distribution.values():
		counts[slot.index] += 1

	return counts
