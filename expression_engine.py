#!/usr/bin/env python3
"""
Expression Engine
Tokenizer, recursive descent parser and tree evaluator for calculator input.
Input text is never executed as code: it is scanned into tokens, parsed into
an expression tree and the tree is evaluated with explicit float semantics.
"""

import math
import logging
from typing import List, Optional, Union
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

FACTORIAL_LIMIT = 100
# Each nesting level costs six parser frames; 100 levels stays well inside
# the default recursion limit of 1000
MAX_NESTING_DEPTH = 100

FUNCTIONS = ('sqrt', 'sin', 'cos', 'tan', 'log', 'log10')

CONSTANTS = {
    'pi': math.pi,
    'e': math.e,
}

BINARY_OPERATORS = '+-*/^'
DIGITS = '0123456789'

# Longest names first so 'log10' wins over 'log'
_IDENTIFIERS = sorted(list(FUNCTIONS) + list(CONSTANTS), key=len, reverse=True)

# ==========================================
# ERRORS
# ==========================================

class CalculatorError(ValueError):
    """Base class for every error the engine reports"""

    def __init__(self, message: str, position: Optional[int] = None):
        super().__init__(message)
        self.position = position


class LexError(CalculatorError):
    pass


class UnknownCharError(LexError):
    """Character that does not start any token"""

    def __init__(self, position: int, char: str):
        super().__init__(f"Unexpected character at position {position}: {char}", position)
        self.char = char


class ParseError(CalculatorError):
    pass


class ExpectedParenError(ParseError):
    pass


class EmptyOrIncompleteError(ParseError):
    pass


class UnexpectedTokenError(ParseError):
    pass


class NestingTooDeepError(ParseError):
    pass


class EvalError(CalculatorError):
    pass


class DivisionByZeroError(EvalError):
    pass


class DomainError(EvalError):
    pass

# ==========================================
# TOKENIZER
# ==========================================

class TokenType(Enum):
    NUMBER = "NUMBER"
    OPERATOR = "OPERATOR"
    FUNCTION = "FUNCTION"
    CONSTANT = "CONSTANT"
    LPAREN = "LPAREN"
    RPAREN = "RPAREN"
    FACTORIAL = "FACTORIAL"


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: Union[str, float]
    position: int


# Token types that may carry a postfix '!'
_FACTORIAL_TARGETS = (TokenType.NUMBER, TokenType.RPAREN, TokenType.CONSTANT, TokenType.FACTORIAL)


def tokenize(text: str) -> List[Token]:
    """Convert expression string into tokens"""
    tokens = []
    i = 0

    while i < len(text):
        char = text[i]

        if char.isspace():
            i += 1

        # Numbers: digits with at most one decimal point
        elif char in DIGITS or (char == '.' and i + 1 < len(text) and text[i + 1] in DIGITS):
            j = i
            has_dot = False
            while j < len(text):
                if text[j] in DIGITS:
                    j += 1
                elif text[j] == '.' and not has_dot:
                    has_dot = True
                    j += 1
                else:
                    break
            tokens.append(Token(TokenType.NUMBER, float(text[i:j]), i))
            i = j

        # Functions and constants
        elif char.isalpha():
            word = next((name for name in _IDENTIFIERS if text[i:i + len(name)].lower() == name), None)
            if word is None:
                raise UnknownCharError(i, char)
            token_type = TokenType.CONSTANT if word in CONSTANTS else TokenType.FUNCTION
            tokens.append(Token(token_type, word, i))
            i += len(word)

        elif char in BINARY_OPERATORS:
            tokens.append(Token(TokenType.OPERATOR, char, i))
            i += 1
        elif char == '(':
            tokens.append(Token(TokenType.LPAREN, '(', i))
            i += 1
        elif char == ')':
            tokens.append(Token(TokenType.RPAREN, ')', i))
            i += 1
        elif char == '!' and tokens and tokens[-1].type in _FACTORIAL_TARGETS:
            tokens.append(Token(TokenType.FACTORIAL, '!', i))
            i += 1
        else:
            raise UnknownCharError(i, char)

    logger.debug(f"Tokenized {text!r} into {len(tokens)} tokens")
    return tokens

# ==========================================
# EXPRESSION TREE
# ==========================================

@dataclass(frozen=True)
class Literal:
    value: float


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: 'Node'
    right: 'Node'


@dataclass(frozen=True)
class UnaryFunction:
    name: str
    operand: 'Node'


@dataclass(frozen=True)
class Factorial:
    operand: 'Node'


@dataclass(frozen=True)
class Negate:
    operand: 'Node'


Node = Union[Literal, BinaryOp, UnaryFunction, Factorial, Negate]

# ==========================================
# PARSER
# ==========================================

def close_parentheses(tokens: List[Token]) -> List[Token]:
    """Append a synthetic ')' for every '(' left open"""
    depth = 0
    for token in tokens:
        if token.type == TokenType.LPAREN:
            depth += 1
        elif token.type == TokenType.RPAREN and depth:
            depth -= 1

    position = tokens[-1].position + 1 if tokens else 0
    return list(tokens) + [Token(TokenType.RPAREN, ')', position)] * depth


class _Parser:
    """Recursive descent parser building an expression tree"""

    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.pos = 0
        self.depth = 0

    def parse(self) -> Node:
        if not self.tokens:
            raise EmptyOrIncompleteError("Expression is empty")

        tree = self._parse_expression()

        if self.pos < len(self.tokens):
            token = self.tokens[self.pos]
            raise UnexpectedTokenError(f"Unexpected token '{token.value}' at position {token.position}",
                                       token.position)
        return tree

    def _current_token(self) -> Optional[Token]:
        """Get current token without consuming"""
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _consume_token(self) -> Optional[Token]:
        """Get current token and advance position"""
        token = self._current_token()
        if token:
            self.pos += 1
        return token

    def _current_operator(self, operators: str) -> Optional[str]:
        token = self._current_token()
        if token and token.type == TokenType.OPERATOR and token.value in operators:
            return token.value
        return None

    def _descend(self):
        self.depth += 1
        if self.depth > MAX_NESTING_DEPTH:
            token = self._current_token()
            raise NestingTooDeepError(f"Expression nested deeper than {MAX_NESTING_DEPTH} levels",
                                      token.position if token else None)

    def _expect_closing(self, opener: Token):
        token = self._current_token()
        if not token or token.type != TokenType.RPAREN:
            raise ExpectedParenError(f"Expected ')' to close '(' at position {opener.position}",
                                     token.position if token else None)
        self._consume_token()

    def _parse_expression(self) -> Node:
        """Parse additive expression (lowest precedence)"""
        left = self._parse_term()

        while self._current_operator('+-'):
            op = self._consume_token().value
            left = BinaryOp(op, left, self._parse_term())

        return left

    def _parse_term(self) -> Node:
        """Parse multiplicative expression"""
        left = self._parse_unary()

        while self._current_operator('*/'):
            op = self._consume_token().value
            left = BinaryOp(op, left, self._parse_unary())

        return left

    def _parse_unary(self) -> Node:
        """Parse leading signs; binds looser than '^' so -2^2 is -(2^2)"""
        negative = False
        while self._current_operator('+-'):
            if self._consume_token().value == '-':
                negative = not negative

        operand = self._parse_power()
        return Negate(operand) if negative else operand

    def _parse_power(self) -> Node:
        """Parse power expression, right associative"""
        base = self._parse_postfix()

        if self._current_operator('^'):
            self._consume_token()
            self._descend()
            exponent = self._parse_unary()
            self.depth -= 1
            return BinaryOp('^', base, exponent)

        return base

    def _parse_postfix(self) -> Node:
        """Parse factorials, which bind tighter than everything else"""
        node = self._parse_primary()

        while self._current_token() and self._current_token().type == TokenType.FACTORIAL:
            self._consume_token()
            node = Factorial(node)

        return node

    def _parse_primary(self) -> Node:
        """Parse numbers, constants, function calls and parentheses"""
        token = self._current_token()

        if not token:
            raise EmptyOrIncompleteError("Unexpected end of expression")

        if token.type == TokenType.NUMBER:
            self._consume_token()
            return Literal(token.value)

        if token.type == TokenType.CONSTANT:
            self._consume_token()
            return Literal(CONSTANTS[token.value])

        if token.type == TokenType.FUNCTION:
            self._consume_token()
            opener = self._current_token()
            if not opener or opener.type != TokenType.LPAREN:
                raise ExpectedParenError(f"Expected '(' after function {token.value}", token.position)
            self._consume_token()
            self._descend()
            argument = self._parse_expression()
            self._expect_closing(opener)
            self.depth -= 1
            return UnaryFunction(token.value, argument)

        if token.type == TokenType.LPAREN:
            self._consume_token()
            self._descend()
            inner = self._parse_expression()
            self._expect_closing(token)
            self.depth -= 1
            return inner

        if token.type in (TokenType.OPERATOR, TokenType.RPAREN):
            raise EmptyOrIncompleteError(f"Missing operand before '{token.value}' at position {token.position}",
                                         token.position)

        raise UnexpectedTokenError(f"Unexpected token '{token.value}' at position {token.position}",
                                   token.position)


def parse(tokens: List[Token]) -> Node:
    """Build an expression tree, closing any parentheses left open"""
    tree = _Parser(close_parentheses(tokens)).parse()
    logger.debug(f"Parsed {len(tokens)} tokens into {type(tree).__name__}")
    return tree

# ==========================================
# EVALUATOR
# ==========================================

def _power(base: float, exponent: float) -> float:
    """Floating point pow: overflow gives infinity, invalid domains give NaN"""
    if base == 0 and exponent < 0:
        odd = exponent.is_integer() and exponent % 2 == 1
        return math.copysign(math.inf, base) if odd else math.inf
    try:
        return math.pow(base, exponent)
    except OverflowError:
        odd = exponent.is_integer() and exponent % 2 == 1
        return -math.inf if base < 0 and odd else math.inf
    except ValueError:
        return math.nan


def factorial(value: float) -> float:
    """Factorial of a non-negative integer; anything above the limit is infinity"""
    if math.isnan(value) or value < 0:
        raise DomainError(f"Factorial is undefined for {value}")
    if math.isinf(value):
        return math.inf
    if not value.is_integer():
        raise DomainError(f"Factorial requires an integer, got {value}")
    if value > FACTORIAL_LIMIT:
        return math.inf
    return float(math.factorial(int(value)))


def _apply_function(name: str, value: float) -> float:
    if name == 'sqrt':
        if value < 0:
            raise DomainError(f"Square root of negative number: {value}")
        return math.sqrt(value)

    if name in ('sin', 'cos', 'tan'):
        if math.isinf(value):
            raise DomainError(f"{name} is undefined for {value}")
        return getattr(math, name)(value)

    if name in ('log', 'log10'):
        if value <= 0:
            raise DomainError(f"{name} requires a positive number, got {value}")
        return math.log(value) if name == 'log' else math.log10(value)

    raise DomainError(f"Unknown function: {name}")


def _apply_operator(op: str, left: float, right: float) -> float:
    if op == '+':
        return left + right
    if op == '-':
        return left - right
    if op == '*':
        return left * right
    if op == '/':
        if right == 0:
            raise DivisionByZeroError("Division by zero")
        return left / right
    return _power(left, right)


def _children(node: Node) -> tuple:
    if isinstance(node, BinaryOp):
        return (node.left, node.right)
    if isinstance(node, Literal):
        return ()
    return (node.operand,)


def evaluate(tree: Node) -> float:
    """Evaluate an expression tree; an explicit stack keeps long chains off the call stack"""
    pending = [(tree, False)]
    values: List[float] = []

    while pending:
        node, ready = pending.pop()

        if isinstance(node, Literal):
            values.append(float(node.value))
            continue

        if not ready:
            pending.append((node, True))
            for child in reversed(_children(node)):
                pending.append((child, False))
            continue

        if isinstance(node, BinaryOp):
            right = values.pop()
            left = values.pop()
            values.append(_apply_operator(node.op, left, right))
        elif isinstance(node, UnaryFunction):
            values.append(_apply_function(node.name, values.pop()))
        elif isinstance(node, Factorial):
            values.append(factorial(values.pop()))
        else:
            values.append(-values.pop())

    return values.pop()


def evaluate_expression(expression: str) -> float:
    """Run the full tokenize, parse and evaluate pipeline on text"""
    return evaluate(parse(tokenize(expression)))
