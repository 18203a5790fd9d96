#!/usr/bin/env python3
"""
Calculator Session State
Input buffer, undo history, memory register and calculation history.

A SessionState is an immutable value: every operation takes the current
state and returns the next one, so independent sessions never share data.
"""

import math
import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple

from expression_engine import (
    BINARY_OPERATORS,
    DIGITS,
    CalculatorError,
    evaluate_expression,
)
from number_format import FormatSettings

logger = logging.getLogger(__name__)

UNDO_LIMIT = 20

CONSTANT_TEXT = {
    'pi': '3.14159265359',
    'e': '2.71828182846',
}

# ==========================================
# DATA MODELS
# ==========================================

class SessionPhase(Enum):
    IDLE = "IDLE"
    COMPOSING = "COMPOSING"
    RESULT_SHOWN = "RESULT_SHOWN"


class MemoryOperation(Enum):
    CLEAR = "mc"
    RECALL = "mr"
    ADD = "m+"
    SUBTRACT = "m-"


@dataclass(frozen=True)
class HistoryEntry:
    expression: str
    formatted: str

    def __str__(self) -> str:
        return f"{self.expression} = {self.formatted}"


@dataclass(frozen=True)
class Evaluation:
    result: float
    formatted: str


@dataclass(frozen=True)
class SessionState:
    """Everything one calculator session knows"""
    buffer: str = ""
    result: Optional[float] = None
    error: Optional[CalculatorError] = None
    memory: float = 0.0
    undo_stack: Tuple[str, ...] = ()
    history: Tuple[HistoryEntry, ...] = ()
    settings: FormatSettings = field(default_factory=FormatSettings)

    @property
    def phase(self) -> SessionPhase:
        if not self.buffer:
            return SessionPhase.IDLE
        if self.result is not None and self.error is None:
            return SessionPhase.RESULT_SHOWN
        return SessionPhase.COMPOSING

# ==========================================
# BUFFER EDITING
# ==========================================

def _push_undo(state: SessionState) -> Tuple[str, ...]:
    """Snapshot the buffer, dropping the oldest entry past the limit"""
    return (state.undo_stack + (state.buffer,))[-UNDO_LIMIT:]


def _edit(state: SessionState, buffer: str) -> SessionState:
    return replace(state, buffer=buffer, result=None, error=None,
                   undo_stack=_push_undo(state))


def _has_operator_collision(text: str) -> bool:
    return any(a in BINARY_OPERATORS and b in BINARY_OPERATORS for a, b in zip(text, text[1:]))


def submit_character(state: SessionState, text: str) -> SessionState:
    """Append a key press or fragment such as 'sqrt(' to the buffer"""
    if not text:
        return state

    # Prevent invalid consecutive operators like '5++', inside the fragment too
    if _has_operator_collision(state.buffer[-1:] + text):
        logger.debug(f"Rejected operator {text!r} after {state.buffer!r}")
        return state

    return _edit(state, state.buffer + text)


def clear(state: SessionState) -> SessionState:
    """Reset buffer and result; memory and history are kept"""
    return _edit(state, "")


def backspace(state: SessionState) -> SessionState:
    return _edit(state, state.buffer[:-1])


def undo(state: SessionState) -> SessionState:
    if not state.undo_stack:
        return state
    return replace(state, buffer=state.undo_stack[-1], result=None, error=None,
                   undo_stack=state.undo_stack[:-1])


def with_settings(state: SessionState, settings: FormatSettings) -> SessionState:
    return replace(state, settings=settings)

# ==========================================
# EVALUATION
# ==========================================

def evaluate(state: SessionState) -> Evaluation:
    """Evaluate the buffer without touching the session

    Raises the engine's CalculatorError subclasses on invalid input.
    """
    result = evaluate_expression(state.buffer)
    return Evaluation(result, state.settings.format(result))


def calculate(state: SessionState) -> SessionState:
    """Evaluate the buffer, recording the result in history

    Failures never propagate: the error is stored on the returned state and
    the buffer is kept for correction.
    """
    if not state.buffer:
        return state

    try:
        evaluation = evaluate(state)
    except CalculatorError as e:
        logger.warning(f"Calculation failed for {state.buffer!r}: {e}")
        return replace(state, result=None, error=e)

    entry = HistoryEntry(state.buffer, evaluation.formatted)
    logger.info(f"Calculated {entry}")
    return replace(state, result=evaluation.result, error=None,
                   history=state.history + (entry,))

# ==========================================
# MEMORY REGISTER
# ==========================================

def _number_text(value: float) -> str:
    """Positional text for a value re-entered into the buffer; negatives are parenthesised"""
    if value.is_integer():
        text = str(int(value))
    else:
        # repr switches to exponent notation, which the grammar cannot read
        text = format(Decimal(repr(value)), 'f')
    return f"({text})" if value < 0 else text


def _current_value(state: SessionState) -> Optional[float]:
    """Cached result, else the buffer evaluated in value-only mode"""
    if state.result is not None and state.error is None:
        return state.result
    if not state.buffer:
        return None
    try:
        return evaluate(state).result
    except CalculatorError as e:
        logger.warning(f"Memory operation skipped, {state.buffer!r} did not evaluate: {e}")
        return None


def memory_op(state: SessionState, op) -> SessionState:
    """Apply mc, mr, m+ or m- to the session"""
    op = MemoryOperation(op)

    if op == MemoryOperation.CLEAR:
        return replace(state, memory=0.0)

    if op == MemoryOperation.RECALL:
        if not math.isfinite(state.memory):
            logger.warning(f"Cannot recall non-finite memory value {state.memory}")
            return state
        return _edit(state, state.buffer + _number_text(state.memory))

    value = _current_value(state)
    if value is None:
        return state

    memory = state.memory + value if op == MemoryOperation.ADD else state.memory - value
    logger.info(f"Memory {op.value}: {state.memory} -> {memory}")
    return replace(state, memory=memory)

# ==========================================
# FUNCTIONS, CONSTANTS AND KEYS
# ==========================================

_FUNCTION_TEXT = {
    'sqrt': 'sqrt(',
    'power': '^',
    'sin': 'sin(',
    'cos': 'cos(',
    'tan': 'tan(',
    'log': 'log10(',
    'ln': 'log(',
    'pow10': '10^',
}


def _ends_with_digit(buffer: str) -> bool:
    return bool(buffer) and buffer[-1] in DIGITS


def handle_function(state: SessionState, name: str) -> SessionState:
    """Insert the text behind a scientific function button"""
    if name == 'factorial':
        # Only directly after a number
        if _ends_with_digit(state.buffer):
            return submit_character(state, '!')
        return state

    if name == 'percent':
        if _ends_with_digit(state.buffer) or state.buffer.endswith(')'):
            return submit_character(state, '/100')
        return state

    if name not in _FUNCTION_TEXT:
        raise ValueError(f"Unknown function: {name}")
    return submit_character(state, _FUNCTION_TEXT[name])


def handle_constant(state: SessionState, name: str) -> SessionState:
    if name not in CONSTANT_TEXT:
        raise ValueError(f"Unknown constant: {name}")
    return submit_character(state, CONSTANT_TEXT[name])


def handle_key(state: SessionState, key: str) -> SessionState:
    """Map a keyboard key to a session action; unknown keys are ignored"""
    if len(key) == 1 and key in DIGITS + BINARY_OPERATORS + '.()':
        return submit_character(state, key)
    if key in ('Enter', '='):
        return calculate(state)
    if key == 'Backspace':
        return backspace(state)
    if key == 'Escape':
        return clear(state)
    if key == 'r':
        return handle_function(state, 'sqrt')
    if key == '%':
        return handle_function(state, 'percent')
    if key == '!':
        return handle_function(state, 'factorial')
    return state

# ==========================================
# HISTORY AND DISPLAY
# ==========================================

def recall_history(state: SessionState, index: int) -> SessionState:
    """Load a past calculation back into the buffer with its result shown"""
    if not 0 <= index < len(state.history):
        raise ValueError(f"No history entry {index}")
    entry = state.history[index]
    recalled = _edit(state, entry.expression)
    return replace(recalled, result=float(entry.formatted.replace(',', '')))


def clear_history(state: SessionState) -> SessionState:
    logger.info(f"Cleared {len(state.history)} history entries")
    return replace(state, history=())


def export_history(state: SessionState) -> str:
    return "\n".join(str(entry) for entry in state.history)


def display(state: SessionState) -> Tuple[str, str]:
    """Input line and result line as the UI shows them"""
    if state.error is not None:
        result_text = "Error"
    elif state.result is not None:
        result_text = f"= {state.settings.format(state.result)}"
    else:
        result_text = ""
    return state.buffer or "0", result_text
