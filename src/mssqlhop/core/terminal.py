# Built-in imports
import os
import shlex
import tempfile
from pathlib import Path
from typing import Iterable, List, Optional

# External library imports
from loguru import logger

from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggestFromHistory, ThreadedAutoSuggest
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.cursor_shapes import CursorShape
from prompt_toolkit.document import Document
from prompt_toolkit.history import FileHistory, History, InMemoryHistory, ThreadedHistory
from prompt_toolkit.lexers import PygmentsLexer
from prompt_toolkit.shortcuts import confirm
from prompt_toolkit.styles import style_from_pygments_cls

from pygments.lexers.sql import SqlLexer
from pygments.styles.monokai import MonokaiStyle

# Local library imports
from mssqlhop.core.actions.execution.query import Query
from mssqlhop.core.actions.factory import ActionFactory
from mssqlhop.core.exceptions import ActionNotFoundError
from mssqlhop.core.services.database import DatabaseContext
from mssqlhop.core.utils import helper, logbook
from mssqlhop.core.utils.formatters import OutputFormatter

SQL_STYLE = style_from_pygments_cls(MonokaiStyle)

# Handled by the terminal itself, never registered as actions
TERMINAL_COMMANDS = {
    "debug": "Toggle debug logging",
    "format": "Show or change the output format",
    "help": "Show available commands",
}


class ActionCompleter(Completer):
    """Completes the command name typed after the prefix."""

    def __init__(self, prefix: str = "!"):
        self.prefix = prefix

    def _candidates(self) -> dict:
        names = {name: ActionFactory.get_action_description(name) or "" for name in ActionFactory.list_actions()}
        names.update(TERMINAL_COMMANDS)
        return names

    def get_completions(self, document: Document, complete_event) -> Iterable[Completion]:
        text = document.text_before_cursor
        if not text.startswith(self.prefix):
            return

        typed = text[len(self.prefix) :].lstrip().lower()
        if " " in typed:
            return

        for name, meta in sorted(self._candidates().items()):
            if name.startswith(typed):
                yield Completion(name, start_position=-len(typed), display_meta=meta)


class Terminal:
    """
    Interactive session on the execution server.

    Plain input is sent as T-SQL through the active chain; input starting
    with the prefix runs an action or a terminal command.
    """

    def __init__(self, database_context: DatabaseContext, log_level: str = "INFO"):
        self.__database_context = database_context
        self.__log_level = log_level

    def __prompt(self) -> str:
        """[login(user)@execution_server:database]> """
        user_service = self.__database_context.user_service

        return "[{}({})@{}:{}]> ".format(
            user_service.system_user or "unknown",
            user_service.mapped_user or "unknown",
            self.__database_context.query_service.execution_server,
            self.__database_context.server.database or "master",
        )

    def execute_action(self, action_name: str, argument_list: List[str]) -> Optional[object]:
        """
        Run a registered action against the current database context.

        Returns:
            Whatever the action returns, or None if it failed

        Raises:
            ActionNotFoundError: If no action is registered under that name
        """
        action = ActionFactory.get_action(action_name)
        if action is None:
            raise ActionNotFoundError(action_name)

        try:
            action.validate_arguments(argument_list=argument_list)
        except ValueError as ve:
            logger.error(f"Invalid arguments for '{action_name}': {ve}")
            return None

        logger.info(
            f"Running '{action_name}' on {self.__database_context.query_service.execution_server}"
        )

        try:
            return action.execute(database_context=self.__database_context)
        except KeyboardInterrupt:
            print("\r", end="", flush=True)
            logger.warning(f"'{action_name}' interrupted")
        except Exception as e:
            logger.error(f"'{action_name}' failed: {e}")
        return None

    def __history(self, persistent: bool) -> History:
        if not persistent:
            return ThreadedHistory(InMemoryHistory())

        server = self.__database_context.server
        folder = Path(tempfile.gettempdir()) / "mssqlhop"
        folder.mkdir(exist_ok=True)

        path = folder / f"{server.hostname}_{server.system_user}_history"
        path.touch(exist_ok=True)
        try:
            os.chmod(path, 0o600)
        except PermissionError as e:
            logger.warning(f"Cannot restrict permissions of {path}: {e}")

        logger.info(f"Command history kept in {path}")
        return ThreadedHistory(FileHistory(str(path)))

    def __toggle_debug(self) -> None:
        level = "INFO" if self.__log_level in ("DEBUG", "TRACE") else "DEBUG"
        self.__log_level = logbook.setup_logging(level)
        logger.info(f"Log level is now {self.__log_level}")

    @staticmethod
    def __set_format(arguments: List[str]) -> None:
        if arguments:
            try:
                OutputFormatter.set_format(arguments[0])
            except ValueError as e:
                logger.error(str(e))
                return

        logger.info(
            f"Output format: {OutputFormatter.current_format()} "
            f"(available: {', '.join(OutputFormatter.get_available_formats())})"
        )

    @staticmethod
    def __show_help(arguments: List[str], prefix: str) -> None:
        if not arguments:
            helper.display_all_commands(prefix=prefix)
            return

        try:
            helper.display_command_help(arguments[0])
        except ActionNotFoundError as e:
            logger.warning(str(e))

    def __run_query(self, sql: str) -> None:
        query = Query()

        try:
            query.validate_arguments(additional_arguments=sql)
            query.execute(database_context=self.__database_context)
        except ValueError as ve:
            logger.error(str(ve))
        except KeyboardInterrupt:
            print("\r", end="", flush=True)
            logger.warning("Query interrupted")

    def handle_command(self, command_line: str, prefix: str = "!") -> None:
        """Dispatch one command line, prefix already stripped."""
        try:
            name, *arguments = shlex.split(command_line)
        except ValueError as e:
            logger.error(f"Cannot parse command: {e}")
            return

        name = name.lower()

        if name == "debug":
            self.__toggle_debug()
        elif name == "format":
            self.__set_format(arguments)
        elif name == "help":
            self.__show_help(arguments, prefix)
        else:
            try:
                self.execute_action(name, arguments)
            except ActionNotFoundError as e:
                logger.error(str(e))
                close = [known for known in helper.list_all_commands() if known.startswith(name[:2])]
                if close:
                    logger.info(f"Did you mean: {', '.join(close)}")
                logger.info(f"Type {prefix}help to list the available commands.")

    def start(self, prefix: str = "!", multiline: bool = False, history: bool = False) -> None:
        if multiline:
            logger.warning("Multiline input: submit with ESC then ENTER.")

        session = PromptSession(
            cursor=CursorShape.BLINKING_BEAM,
            multiline=multiline,
            enable_history_search=True,
            wrap_lines=True,
            auto_suggest=ThreadedAutoSuggest(auto_suggest=AutoSuggestFromHistory()),
            history=self.__history(history),
            completer=ActionCompleter(prefix=prefix),
            lexer=PygmentsLexer(SqlLexer),
            style=SQL_STYLE,
        )

        while True:
            try:
                line = session.prompt(message=self.__prompt()).strip()
            except EOFError:
                break
            except KeyboardInterrupt:
                # First Ctrl+C only clears a pending line
                if session.app.current_buffer.text:
                    continue
                if confirm("Exit?"):
                    break
                continue

            if not line:
                continue

            if line.startswith(prefix):
                command_line = line[len(prefix) :].strip()
                if command_line:
                    self.handle_command(command_line, prefix=prefix)
            else:
                self.__run_query(line)

        logger.info("Leaving terminal")
