import typing

import pytest

import ensemble.expressions
import ensemble.notes
import ensemble.protocol


def test_vibrato_from_dict () -> None:

	expression = ensemble.expressions.expression_from_dict({"type": "vibrato", "depth": 0.02})

	assert expression == ensemble.expressions.Vibrato(depth=0.02)
	assert ensemble.expressions.is_active(expression)


def test_missing_fields_stay_none () -> None:

	"""Fields left out of the wire form are None, to be filled in at resolution."""

	expression = ensemble.expressions.expression_from_dict({"type": "tremolo"})

	assert expression == ensemble.expressions.Tremolo(depth=None, articulation=None)


def test_unknown_type_decodes_to_none () -> None:

	"""An unknown type should not raise, just decode to NoExpression."""

	expression = ensemble.expressions.expression_from_dict({"type": "glissando"})

	assert expression is ensemble.expressions.NO_EXPRESSION
	assert not ensemble.expressions.is_active(expression)


def test_empty_and_none_decode_to_none () -> None:

	assert ensemble.expressions.expression_from_dict(None) is ensemble.expressions.NO_EXPRESSION
	assert ensemble.expressions.expression_from_dict({}) is ensemble.expressions.NO_EXPRESSION
	assert ensemble.expressions.expression_from_dict({"type": "none"}) is ensemble.expressions.NO_EXPRESSION


def test_trill_target_note_by_name () -> None:

	"""Trill targets are note names on the wire and Notes in memory."""

	expression = ensemble.expressions.expression_from_dict({"type": "trill", "targetNote": "D4", "articulation": 0.5})

	assert isinstance(expression, ensemble.expressions.Trill)
	assert expression.target_note == ensemble.notes.Note.from_name("D4")
	assert expression.interval is None

	assert ensemble.expressions.expression_to_dict(expression) == {
		"type": "trill",
		"targetNote": "D4",
		"articulation": 0.5,
	}


def test_invalid_trill_target_is_dropped () -> None:

	expression = ensemble.expressions.expression_from_dict({"type": "trill", "targetNote": "nonsense", "interval": 3})

	assert expression == ensemble.expressions.Trill(target_note=None, interval=3)


def test_to_dict_omits_unset_fields () -> None:

	assert ensemble.expressions.expression_to_dict(ensemble.expressions.Vibrato()) == {"type": "vibrato"}
	assert ensemble.expressions.expression_to_dict(ensemble.expressions.NO_EXPRESSION) == {"type": "none"}
	assert ensemble.expressions.expression_to_dict(None) == {"type": "none"}


def test_non_numeric_depth_is_ignored () -> None:

	expression = ensemble.expressions.expression_from_dict({"type": "vibrato", "depth": "deep"})

	assert expression == ensemble.expressions.Vibrato(depth=None)


@pytest.mark.parametrize("interval", [float("nan"), float("inf"), float("-inf"), "three", True])
def test_invalid_trill_interval_is_dropped (interval: typing.Any, caplog: pytest.LogCaptureFixture) -> None:

	"""Non-finite or non-numeric intervals decode to None with a warning."""

	expression = ensemble.expressions.expression_from_dict({"type": "trill", "interval": interval, "articulation": 0.4})

	assert expression == ensemble.expressions.Trill(target_note=None, interval=None, articulation=0.4)
	assert "Ignoring invalid trill interval" in caplog.text


def test_nan_interval_from_json_does_not_raise () -> None:

	message = ensemble.protocol.decode('{"type": "trill", "interval": NaN}')

	expression = ensemble.expressions.expression_from_dict(message)

	assert isinstance(expression, ensemble.expressions.Trill)
	assert expression.interval is None


def test_non_finite_depth_is_dropped () -> None:

	expression = ensemble.expressions.expression_from_dict({"type": "vibrato", "depth": float("inf")})

	assert expression == ensemble.expressions.Vibrato(depth=None)


def test_float_interval_is_truncated () -> None:

	expression = ensemble.expressions.expression_from_dict({"type": "trill", "interval": 2.0})

	assert expression == ensemble.expressions.Trill(interval=2)
