#!/usr/bin/env python3
"""
Scientific Calculator
Interactive front end for the expression engine: buffer editing, memory,
undo and history from the command line.
"""

import logging
from datetime import datetime
from pathlib import Path

import calculator_session as session
from calculator_session import SessionState
from expression_engine import CONSTANTS, FUNCTIONS
from number_format import FormatSettings, MAX_PRECISION, MIN_PRECISION

logger = logging.getLogger(__name__)

HELP_TEXT = f"""
Enter an expression fragment to append it to the input; end a line with '='
(or enter '=' alone) to calculate.

Operators:  + - * / ^   postfix !   parentheses (closed automatically)
Functions:  {', '.join(FUNCTIONS)}   (log is natural, log10 is base 10)
Constants:  {', '.join(CONSTANTS)}

Commands:
  help             - Show this help
  ac | clear       - Clear the input (memory and history are kept)
  back             - Delete the last character
  undo             - Undo the last edit
  mc, mr, m+, m-   - Memory clear / recall / add / subtract
  history          - Show calculation history
  recall <n>       - Load history entry n into the input
  export <path>    - Write history to a text file
  forget           - Clear history
  precision <n>    - Decimal places ({MIN_PRECISION}-{MAX_PRECISION})
  separator on|off - Thousands separator
  quit             - Exit calculator
"""


def setup_logging(level: int = logging.INFO, console_level: int = logging.ERROR,
                  log_dir: Path = Path("logs")):
    """Log to a dated file and, for serious problems, the console"""
    log_dir.mkdir(exist_ok=True)

    console = logging.StreamHandler()
    console.setLevel(console_level)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_dir / f'calculator_{datetime.now().strftime("%Y%m%d")}.log'),
            console
        ]
    )


def show(state: SessionState):
    input_text, result_text = session.display(state)
    print(f"  {input_text}")
    if state.error is not None:
        print(f"  Error: {state.error}")
    elif result_text:
        print(f"  {result_text}")
    print()


def show_history(state: SessionState):
    if not state.history:
        print("No history yet\n")
        return
    print("\nRecent calculations:")
    for index, entry in enumerate(state.history, 1):
        print(f"  {index}. {entry}")
    print()


def handle_command(state: SessionState, command: str, argument: str) -> SessionState:
    """Run a named command; returns None when the command is not recognised"""
    if command in ('ac', 'clear'):
        return session.clear(state)
    if command == 'back':
        return session.backspace(state)
    if command == 'undo':
        return session.undo(state)
    if command in ('mc', 'mr', 'm+', 'm-'):
        state = session.memory_op(state, command)
        print(f"  M = {state.settings.format(state.memory)}")
        return state
    if command == 'history':
        show_history(state)
        return state
    if command == 'forget':
        return session.clear_history(state)
    if command == 'recall':
        # Entries are numbered from 1 on screen
        return session.recall_history(state, int(argument) - 1)
    if command == 'export':
        if not argument:
            raise ValueError("Usage: export <path>")
        Path(argument).write_text(session.export_history(state) + "\n")
        logger.info(f"Exported {len(state.history)} history entries to {argument}")
        print(f"History written to {argument}\n")
        return state
    if command == 'precision':
        settings = FormatSettings(argument, state.settings.use_separator)
        return session.with_settings(state, settings)
    if command == 'separator':
        if argument not in ('on', 'off'):
            raise ValueError("Usage: separator on|off")
        settings = FormatSettings(state.settings.precision, argument == 'on')
        return session.with_settings(state, settings)
    return None


def handle_line(state: SessionState, line: str) -> SessionState:
    """Apply one line of user input to the session"""
    command, _, argument = line.partition(' ')
    updated = handle_command(state, command.lower(), argument.strip())
    if updated is not None:
        return updated

    fragment = line.replace(' ', '')
    calculate = fragment.endswith('=')
    if calculate:
        fragment = fragment[:-1]

    state = session.submit_character(state, fragment)
    if calculate:
        state = session.calculate(state)
    return state


def main():
    setup_logging()
    state = SessionState()

    print("=" * 60)
    print("SCIENTIFIC CALCULATOR")
    print("=" * 60)
    print("Type 'help' for commands, 'quit' to exit.")
    print()

    while True:
        try:
            user_input = input("calc> ").strip()

            if not user_input:
                continue

            if user_input.lower() == 'quit':
                print("Goodbye!")
                break
            elif user_input.lower() == 'help':
                print(HELP_TEXT)
                continue

            state = handle_line(state, user_input)
            show(state)

        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye!")
            break
        except ValueError as e:
            print(f"Error: {e}\n")
        except Exception as e:
            logger.error(f"Unexpected error in main loop: {e}")
            print(f"Unexpected error: {e}\n")

if __name__ == "__main__":
    main()
