import sys, pathlib
sys.path.insert(0, str(pathlib.Path(__file__).parent.parent))

import math

import pytest

import calculator_session as session
from calculator_session import (
    HistoryEntry, MemoryOperation, SessionPhase, SessionState, UNDO_LIMIT,
)
from expression_engine import DivisionByZeroError, DomainError, UnknownCharError
from number_format import FormatSettings


def typed(text, state=None):
    state = state or SessionState()
    for char in text:
        state = session.submit_character(state, char)
    return state


def test_new_session_is_idle():
    state = SessionState()
    assert state.phase == SessionPhase.IDLE
    assert session.display(state) == ("0", "")

def test_typing_composes():
    state = typed("12+3")
    assert state.buffer == "12+3"
    assert state.phase == SessionPhase.COMPOSING

def test_consecutive_operators_rejected():
    state = typed("5+")
    assert session.submit_character(state, "+") is state
    assert session.submit_character(state, "*") is state
    assert typed("5++").buffer == "5+"

def test_fragment_with_adjacent_operators_rejected():
    state = SessionState()
    assert session.submit_character(state, "5++3") is state
    assert session.submit_character(typed("2"), "*-3").buffer == "2"
    assert session.submit_character(state, "-5+3").buffer == "-5+3"

def test_leading_minus_allowed():
    assert typed("-5").buffer == "-5"

def test_calculate_success():
    state = session.calculate(typed("2+3*4"))
    assert state.result == 14
    assert state.phase == SessionPhase.RESULT_SHOWN
    assert state.buffer == "2+3*4"
    assert state.history == (HistoryEntry("2+3*4", "14.00"),)
    assert session.display(state) == ("2+3*4", "= 14.00")

def test_calculate_failure_keeps_buffer():
    state = session.calculate(typed("1/0"))
    assert isinstance(state.error, DivisionByZeroError)
    assert state.buffer == "1/0"
    assert state.history == ()
    assert state.phase == SessionPhase.COMPOSING
    assert session.display(state) == ("1/0", "Error")

def test_calculate_empty_buffer_is_noop():
    state = SessionState()
    assert session.calculate(state) is state

def test_editing_after_result_composes_again():
    state = session.calculate(typed("2*3"))
    state = session.submit_character(state, "0")
    assert state.result is None
    assert state.phase == SessionPhase.COMPOSING

def test_evaluate_leaves_state_alone():
    state = typed("5!")
    evaluation = session.evaluate(state)
    assert evaluation.result == 120
    assert evaluation.formatted == "120.00"
    assert state.history == ()
    with pytest.raises(DomainError):
        session.evaluate(typed("sqrt(-1)"))
    with pytest.raises(UnknownCharError):
        session.evaluate(typed("2#"))

def test_auto_close_through_session():
    state = session.calculate(typed("sqrt(16"))
    assert state.result == 4

def test_clear_and_backspace():
    state = typed("123")
    state = session.backspace(state)
    assert state.buffer == "12"
    state = session.clear(state)
    assert state.buffer == ""
    assert state.phase == SessionPhase.IDLE
    assert session.backspace(state).phase == SessionPhase.IDLE

def test_undo_restores_previous_buffer():
    state = typed("12")
    state = session.clear(state)
    state = session.undo(state)
    assert state.buffer == "12"
    state = session.undo(state)
    assert state.buffer == "1"

def test_undo_on_empty_stack_is_noop():
    state = SessionState()
    assert session.undo(state) is state

def test_undo_stack_is_bounded():
    state = SessionState()
    for i in range(25):
        state = session.submit_character(state, str(i % 10))
        assert len(state.undo_stack) <= UNDO_LIMIT
    after_edits = state.buffer
    assert len(after_edits) == 25

    for _ in range(20):
        state = session.undo(state)
    assert state.buffer == after_edits[:5]
    assert state.buffer != ""
    assert session.undo(state) is state

def test_rejected_operator_does_not_push_undo():
    state = typed("5+")
    assert len(session.submit_character(state, "-").undo_stack) == 2

def test_memory_survives_clear():
    state = session.calculate(typed("7*6"))
    state = session.memory_op(state, MemoryOperation.ADD)
    state = session.clear(state)
    assert state.memory == 42

def test_memory_add_and_subtract_use_buffer_when_no_result():
    state = typed("10")
    state = session.memory_op(state, "m+")
    state = session.memory_op(state, "m+")
    assert state.memory == 20
    assert state.history == ()
    assert state.result is None
    state = session.memory_op(state, "m-")
    assert state.memory == 10

def test_memory_ignores_invalid_buffer():
    state = typed("1/0")
    assert session.memory_op(state, "m+").memory == 0
    assert session.memory_op(SessionState(), "m+").memory == 0

def test_memory_recall_and_clear():
    state = session.memory_op(typed("2.5"), "m+")
    state = session.clear(state)
    state = session.submit_character(state, "4*")
    state = session.memory_op(state, MemoryOperation.RECALL)
    assert state.buffer == "4*2.5"
    state = session.calculate(state)
    assert state.result == 10

    state = session.memory_op(state, "mc")
    assert state.memory == 0

def test_memory_recall_integral_value():
    state = session.memory_op(typed("3"), "m+")
    state = session.memory_op(session.clear(state), "mr")
    assert state.buffer == "3"

def test_memory_recall_small_value_stays_parseable():
    state = session.memory_op(typed("1/10000000"), "m+")
    state = session.memory_op(session.clear(state), "mr")
    assert state.buffer == "0.0000001"
    state = session.calculate(state)
    assert state.error is None
    assert state.result == 1e-07

def test_memory_recall_negative_value_after_operator():
    state = session.memory_op(typed("0-3"), "m+")
    state = session.memory_op(typed("5+", session.clear(state)), "mr")
    assert state.buffer == "5+(-3)"
    assert session.calculate(state).result == 2

def test_memory_recall_skips_infinity():
    state = session.memory_op(typed("200!"), "m+")
    assert state.memory == math.inf
    assert session.memory_op(state, "mr") is state

def test_unknown_memory_operation():
    with pytest.raises(ValueError):
        session.memory_op(SessionState(), "m*")

def test_handle_function_mapping():
    assert session.handle_function(SessionState(), "sqrt").buffer == "sqrt("
    assert session.handle_function(SessionState(), "log").buffer == "log10("
    assert session.handle_function(SessionState(), "ln").buffer == "log("
    assert session.handle_function(typed("2"), "power").buffer == "2^"
    assert session.handle_function(SessionState(), "pow10").buffer == "10^"
    with pytest.raises(ValueError):
        session.handle_function(SessionState(), "cosh")

def test_factorial_and_percent_need_an_operand():
    assert session.handle_function(typed("5"), "factorial").buffer == "5!"
    assert session.handle_function(typed("5+"), "factorial").buffer == "5+"
    assert session.handle_function(typed("50"), "percent").buffer == "50/100"
    assert session.handle_function(typed("(1+1)"), "percent").buffer == "(1+1)/100"
    assert session.handle_function(SessionState(), "percent").buffer == ""

def test_handle_constant():
    state = session.handle_constant(typed("2*"), "pi")
    assert state.buffer == "2*3.14159265359"
    with pytest.raises(ValueError):
        session.handle_constant(SessionState(), "tau")

def test_handle_key():
    state = SessionState()
    for key in ["2", "^", "3", "Enter"]:
        state = session.handle_key(state, key)
    assert state.result == 8
    state = session.handle_key(state, "Escape")
    assert state.buffer == ""
    state = session.handle_key(session.handle_key(state, "r"), "9")
    assert state.buffer == "sqrt(9"
    state = session.handle_key(state, "Backspace")
    assert state.buffer == "sqrt("
    assert session.handle_key(state, "F5") is state

def test_history_recall_export_and_clear():
    state = session.calculate(typed("1000*3"))
    state = session.calculate(session.submit_character(session.clear(state), "2+2"))
    assert session.export_history(state) == "1000*3 = 3,000.00\n2+2 = 4.00"

    state = session.recall_history(state, 0)
    assert state.buffer == "1000*3"
    assert state.result == 3000
    assert state.phase == SessionPhase.RESULT_SHOWN

    for index in (-1, 2):
        with pytest.raises(ValueError):
            session.recall_history(state, index)

    state = session.clear_history(state)
    assert state.history == ()
    assert session.export_history(state) == ""

def test_settings_change_formatting():
    state = session.calculate(typed("1/3"))
    state = session.with_settings(state, FormatSettings(precision=4, use_separator=False))
    assert session.display(state) == ("1/3", "= 0.3333")

def test_sessions_are_independent():
    first = typed("1+1")
    second = typed("9")
    assert session.calculate(first).result == 2
    assert first.result is None
    assert second.buffer == "9"
