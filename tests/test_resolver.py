import random
import typing

import pytest

import ensemble.config
import ensemble.expressions
import ensemble.notes
import ensemble.resolver
import ensemble.state
import ensemble.timing

import conftest


BASE = ensemble.config.DEFAULT_BASE_PARAMS
TRANSITION = ensemble.timing.TransitionConfig(duration=2.0, stagger=0.5)


@pytest.fixture
def resolver (state: ensemble.state.PerformanceState, rng: random.Random) -> ensemble.resolver.ParameterResolver:

	return ensemble.resolver.ParameterResolver(state, rng, conftest.fixed_clock)


def _assign (state: ensemble.state.PerformanceState, peer_id: str = "a") -> ensemble.state.PartAssignment:

	state.add_peer(peer_id)
	state.set_chord(conftest.C_MAJOR)

	assignment = state.assignment_for(peer_id)
	assert assignment is not None

	return assignment


def test_unassigned_peer_gets_silence (resolver: ensemble.resolver.ParameterResolver) -> None:

	"""No assignment means base params, every expression off, and power False."""

	program = resolver.resolve_for_peer("a", None, BASE, TRANSITION, power=True)

	assert program["power"] is False
	assert "fundamentalFrequency" not in program
	assert program["vibratoEnabled"] is False
	assert program["tremoloEnabled"] is False
	assert program["trillEnabled"] is False
	assert program["bowForce"] == BASE["bowForce"]
	assert program["synthId"] == "a"
	assert program["timestamp"] == conftest.FIXED_TIME_MS


def test_assigned_peer_gets_frequency (state: ensemble.state.PerformanceState, resolver: ensemble.resolver.ParameterResolver) -> None:

	assignment = _assign(state)
	program = resolver.resolve_for_peer("a", assignment, BASE, TRANSITION)

	assert program["fundamentalFrequency"] == 261.63
	assert program["power"] is True
	assert program["expression"] == "none"
	assert program["transition"] == {"duration": 2.0, "stagger": 0.5, "durationSpread": 0.0, "glissando": True}
	assert program["chord"]["frequencies"] == [261.63, 329.63, 392.0]
	assert program["parts"] == {"a": {"frequency": 261.63, "noteName": "C4", "expression": {"type": "none"}}}


def test_power_off_is_passed_through (state: ensemble.state.PerformanceState, resolver: ensemble.resolver.ParameterResolver) -> None:

	program = resolver.resolve_for_peer("a", _assign(state), BASE, TRANSITION, power=False)

	assert program["power"] is False
	assert program["fundamentalFrequency"] == 261.63


def test_base_params_are_not_mutated (state: ensemble.state.PerformanceState, resolver: ensemble.resolver.ParameterResolver) -> None:

	base = dict(BASE)
	state.add_peer("a")
	state.set_chord(conftest.C_MAJOR)
	state.set_expression("C4", ensemble.expressions.Vibrato(depth=0.05))

	resolver.resolve_for_peer("a", state.assignment_for("a"), base, TRANSITION)

	assert base == BASE


def test_vibrato_overlay (state: ensemble.state.PerformanceState, resolver: ensemble.resolver.ParameterResolver) -> None:

	"""Exactly one expression flag is enabled, with the expression's depth."""

	state.add_peer("a")
	state.set_chord(conftest.C_MAJOR)
	state.set_expression("C4", ensemble.expressions.Vibrato(depth=0.05))

	program = resolver.resolve_for_peer("a", state.assignment_for("a"), BASE, TRANSITION)

	assert program["expression"] == "vibrato"
	assert program["vibratoEnabled"] is True
	assert program["tremoloEnabled"] is False
	assert program["trillEnabled"] is False
	assert program["vibratoDepth"] == 0.05
	assert program["vibratoRate"] == BASE["vibratoRate"]


def test_tremolo_defaults (state: ensemble.state.PerformanceState, resolver: ensemble.resolver.ParameterResolver) -> None:

	"""Missing expression fields fall back to base params, then defaults."""

	state.add_peer("a")
	state.set_chord(conftest.C_MAJOR)
	state.set_expression("C4", ensemble.expressions.Tremolo())

	program = resolver.resolve_for_peer("a", state.assignment_for("a"), {"masterGain": 0.5}, TRANSITION)

	assert program["tremoloEnabled"] is True
	assert program["tremoloDepth"] == ensemble.expressions.DEFAULT_TREMOLO_DEPTH
	assert program["tremoloArticulation"] == ensemble.expressions.DEFAULT_TREMOLO_ARTICULATION
	assert program["tremoloSpeed"] == ensemble.resolver.DEFAULT_TREMOLO_SPEED


def test_trill_interval_from_target (state: ensemble.state.PerformanceState, resolver: ensemble.resolver.ParameterResolver) -> None:

	"""A trill with a target and no interval uses the semitone distance."""

	state.add_peer("a")
	state.set_chord(conftest.C_MAJOR)
	state.set_expression("C4", ensemble.expressions.Trill(target_note=ensemble.notes.Note.from_name("D#4")))

	program = resolver.resolve_for_peer("a", state.assignment_for("a"), BASE, TRANSITION)

	assert program["trillEnabled"] is True
	assert program["trillInterval"] == 3
	assert program["trillArticulation"] == BASE["trillArticulation"]


class RecordingRandom (random.Random):

	"""Seeded random source that remembers every value ``choice`` returns."""

	def __init__ (self, seed: int) -> None:

		super().__init__(seed)
		self.choices: list = []

	def choice (self, seq: typing.Sequence[typing.Any]) -> typing.Any:

		value = super().choice(seq)
		self.choices.append(value)
		return value


def test_harmonic_ratios_are_sampled_per_call (state: ensemble.state.PerformanceState) -> None:

	"""Repeated resolutions draw every numerator/denominator pair in the selected sets."""

	rng = RecordingRandom(7)
	resolver = ensemble.resolver.ParameterResolver(state, rng, conftest.fixed_clock)

	state.add_peer("a")
	state.set_chord(conftest.C_MAJOR)
	state.set_expression("C4", ensemble.expressions.Vibrato())
	state.set_harmonic_selection("vibrato", "numerator", [1, 2, 3])
	state.set_harmonic_selection("vibrato", "denominator", [1, 2])

	assignment = state.assignment_for("a")
	pairs = set()

	for _ in range(1000):
		rng.choices.clear()
		program = resolver.resolve_for_peer("a", assignment, BASE, TRANSITION)

		assert len(rng.choices) == 2
		numerator, denominator = rng.choices
		pairs.add((numerator, denominator))

		assert program["vibratoRate"] == pytest.approx(BASE["vibratoRate"] * numerator / denominator)

	assert pairs == {(n, d) for n in (1, 2, 3) for d in (1, 2)}


def test_snapshot_overrides_live_state (state: ensemble.state.PerformanceState, resolver: ensemble.resolver.ParameterResolver) -> None:

	_assign(state)

	g4 = ensemble.notes.Note(392.0)
	part = ensemble.state.PartAssignment(g4, 0, ensemble.expressions.Vibrato())
	snapshot = ensemble.state.StateSnapshot(chord=(g4,), expressions={g4: ensemble.expressions.Vibrato()}, assignment={"a": part})

	program = resolver.resolve_for_peer("a", part, BASE, TRANSITION, snapshot=snapshot)

	assert program["chord"]["frequencies"] == [392.0]
	assert program["parts"] == {"a": part.to_dict()}
	assert program["vibratoEnabled"] is True


def test_transition_dict_is_normalized (state: ensemble.state.PerformanceState, resolver: ensemble.resolver.ParameterResolver) -> None:

	program = resolver.resolve_for_peer("a", _assign(state), BASE, {"duration": 1, "stagger": 2})

	assert program["transition"] == {"duration": 1.0, "stagger": 1.0, "durationSpread": 0.0, "glissando": True}
