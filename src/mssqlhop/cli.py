# Built-in imports
import argparse
import sys
from getpass import getpass
from typing import List, Optional, Tuple

# Third party imports
from loguru import logger

# Local library imports
from mssqlhop import __version__
from mssqlhop.core.exceptions import (
    ActionNotFoundError,
    ChainProbeError,
    ImpersonationFailedError,
    LinkedServerLoopDetectedError,
)
from mssqlhop.core.models.credentials import Credentials
from mssqlhop.core.models.linked_servers import ChainMode, LinkedServers
from mssqlhop.core.models.server import Server
from mssqlhop.core.services.authentication import AuthenticationService
from mssqlhop.core.services.database import DatabaseContext
from mssqlhop.core.terminal import Terminal
from mssqlhop.core.utils import banner, helper, logbook

# Registers every action with the factory
from mssqlhop.core import actions  # noqa: F401


USAGE_EXAMPLES = [
    "mssqlhop SQL01 -u sa -p password info",
    "mssqlhop SQL01 -u sa -p password -l SQL02,SQL03:svc_sql whoami",
    "mssqlhop SQL01 -u sa -p password -l SQL02 --check-chain chain",
    "mssqlhop SQL01 -u sa -p password -l SQL02,SQL03 --rpc query EXEC sp_who",
    "mssqlhop SQL01 -u sa -p password linkmap --limit 8",
    "mssqlhop -h linkmap",
]


def _add_authentication_arguments(parser: argparse.ArgumentParser) -> None:
    creds = parser.add_argument_group("Credentials")
    creds.add_argument("-u", "--username", type=str, help="SQL or Windows login.")
    creds.add_argument("-p", "--password", type=str, help="Password of the login.")
    creds.add_argument("-d", "--domain", type=str, help="Domain of a Windows login.")
    creds.add_argument(
        "-H", "--hashes", type=str, metavar="[LMHASH:]NTHASH", help="Pass the hash instead of a password."
    )
    creds.add_argument(
        "-windows-auth",
        action="store_true",
        default=False,
        help="Log in with Windows (NTLM) authentication instead of a SQL login.",
    )
    creds.add_argument(
        "-no-pass", action="store_true", help="Never prompt for a missing password."
    )

    kerberos = parser.add_argument_group("Kerberos")
    kerberos.add_argument(
        "-k", "--kerberos", action="store_true", help="Log in with a Kerberos ticket (KRB5CCNAME)."
    )
    kerberos.add_argument(
        "--aesKey", metavar="AESKEY", help="AES key (128 or 256 bits), implies Kerberos."
    )
    kerberos.add_argument(
        "--kdcHost", metavar="KDCHOST", help="Key distribution center, defaults to -dc-ip."
    )

    network = parser.add_argument_group("Connection")
    network.add_argument(
        "-dc-ip", type=str, metavar="ip address", help="Domain controller to ask for tickets."
    )
    network.add_argument(
        "-target-ip",
        type=str,
        metavar="ip address",
        help="Address to connect to when the host name does not resolve.",
    )


def _add_chain_arguments(parser: argparse.ArgumentParser) -> None:
    chain = parser.add_argument_group("Linked servers")
    chain.add_argument(
        "-l",
        "--links",
        type=str,
        help="Hops to chain, in order: 'SQL02:login,SQL03,SQL04:admin'.",
    )
    chain.add_argument(
        "--rpc",
        action="store_true",
        default=False,
        help="Forward queries with EXEC AT instead of the read-only OPENQUERY (needs RPC Out).",
    )
    chain.add_argument(
        "--check-chain",
        action="store_true",
        default=False,
        help="Probe every hop before running anything, abort on a loop.",
    )


def _add_session_arguments(parser: argparse.ArgumentParser) -> None:
    session = parser.add_argument_group("Session")
    session.add_argument("--prefix", type=str, default="!", help="Prefix of terminal commands.")
    session.add_argument(
        "--history",
        action="store_true",
        default=False,
        help="Keep the command history on disk between sessions.",
    )
    session.add_argument(
        "--multiline", action="store_true", default=False, help="Submit input with Alt+Enter."
    )
    session.add_argument("--debug", action="store_true", help="Same as --log-level DEBUG.")
    session.add_argument(
        "--log-level", type=str, choices=logbook.VALID_LEVELS, default=None, help="Logging level."
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mssqlhop",
        add_help=False,
        description="Hop across SQL Server linked servers and run T-SQL or actions at the end of the chain.",
        usage="%(prog)s <host> [options] [action [action-options]]",
        epilog="Without an action, an interactive terminal opens. Everything after the action name is passed to the action.",
        allow_abbrev=False,
    )

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-h",
        "--help",
        nargs="?",
        const="__general__",
        metavar="ACTION",
        help="Show this help, the help of ACTION, or the actions matching a keyword.",
    )
    parser.add_argument(
        "host",
        type=str,
        nargs="?",
        help="server[,port][:user][@database], e.g. 'SQL01', 'SQL01,1434', 'SQL01:sa@mydb'.",
    )

    _add_authentication_arguments(parser)
    _add_chain_arguments(parser)
    _add_session_arguments(parser)

    return parser


def display_general_help(parser: argparse.ArgumentParser) -> None:
    parser.print_help()
    helper.display_actions_by_category()

    print("Examples:")
    for example in USAGE_EXAMPLES:
        print(f"  {example}")
    print()


def _handle_help(args: argparse.Namespace, parser: argparse.ArgumentParser) -> Optional[int]:
    """Exit code if the command line only asks for help, else None."""
    if args.help is not None:
        if args.help == "__general__":
            display_general_help(parser)
        elif helper.action_exists(args.help):
            helper.display_command_help(args.help)
        else:
            helper.display_matching_commands(args.help)
        return 0

    if args.action and args.action_args and args.action_args[0] in ("-h", "--help"):
        try:
            helper.display_command_help(args.action)
        except ActionNotFoundError as exc:
            logger.error(str(exc))
            return 1
        return 0

    return None


def _log_level(args: argparse.Namespace) -> str:
    if args.log_level:
        return args.log_level
    return "DEBUG" if args.debug else "INFO"


def _credentials(args: argparse.Namespace) -> Credentials:
    credentials = Credentials.from_arguments(
        username=args.username,
        password=args.password,
        domain=args.domain,
        hashes=args.hashes,
        aes_key=args.aesKey,
        kdc_host=args.kdcHost or args.dc_ip,
        windows_auth=args.windows_auth,
        kerberos=args.kerberos,
    )

    if credentials.needs_password and not args.no_pass:
        credentials.password = getpass("Password: ")

    return credentials


def check_chain(database_context: DatabaseContext) -> bool:
    """
    Walk the active chain and report the outcome.

    Returns:
        True if every hop answered with a distinct execution state
    """
    try:
        states = database_context.validate_chain()
    except LinkedServerLoopDetectedError as loop:
        logger.error(
            f"Loop in the linked server chain: '{loop.hostname}' at hop {loop.repeated_position} "
            f"runs with the same context as hop {loop.first_position}"
        )
        return False
    except ChainProbeError as e:
        logger.error(f"Chain check failed: {e}")
        return False
    except Exception as e:
        logger.error(f"Chain check failed, a hop is unreachable: {e}")
        return False

    for position, state in enumerate(states):
        logger.info(f"Hop {position}: {state}")
    logger.success(f"Chain checked: {len(states)} hop(s), no loop")
    return True


def _enter_chain(
    database_context: DatabaseContext, linked_servers: LinkedServers, args: argparse.Namespace
) -> bool:
    """Route the session through the chain; False if it cannot be used."""
    database_context.set_linked_servers(linked_servers)

    if args.rpc:
        database_context.query_service.force_mode(ChainMode.REMOTE_PROCEDURE_CALL)

    route = " -> ".join([database_context.server.hostname] + linked_servers.server_names)
    logger.info(f"Server chain: {route}")

    if args.check_chain and not check_chain(database_context):
        return False

    try:
        user_name, system_user = database_context.user_service.get_info()
    except Exception as exc:
        logger.error(f"Cannot identify the login at the end of the chain: {exc}")
        return False

    logger.info(f"Running on {database_context.query_service.execution_server} as {system_user} ({user_name})")
    return True


def _run(database_context: DatabaseContext, linked_servers: Optional[LinkedServers], args, log_level: str) -> int:
    user_name, system_user = database_context.user_service.get_info()
    database_context.server.mapped_user = user_name
    database_context.server.system_user = system_user
    logger.info(f"Logged in on {database_context.server.hostname} as {system_user} ({user_name})")

    if linked_servers is not None and not linked_servers.is_empty:
        if not _enter_chain(database_context, linked_servers, args):
            return 1
    elif args.check_chain:
        logger.warning("No linked server chain to check.")

    terminal = Terminal(database_context, log_level=log_level)

    if not args.action:
        terminal.start(prefix=args.prefix, multiline=args.multiline, history=args.history)
        return 0

    try:
        terminal.execute_action(action_name=args.action, argument_list=args.action_args or [])
    except ActionNotFoundError as exc:
        logger.error(str(exc))
        logger.info("Use '-h' to list the available actions.")
        return 1

    return 0


def split_command_line(parser: argparse.ArgumentParser, argv: List[str]) -> Tuple[List[str], List[str]]:
    """
    Cut the command line before the action name, the second positional.

    Everything after it belongs to the action, options included, and is
    never seen by `parser`.

    Returns:
        (global arguments, [action, *action arguments])
    """
    value_options = {
        option: action.nargs
        for action in parser._actions
        for option in action.option_strings
        if action.nargs != 0
    }

    positionals = 0
    index = 0
    while index < len(argv):
        token = argv[index]

        if token.startswith("-") and token != "-":
            has_value = index + 1 < len(argv)
            if token not in value_options or not has_value:
                index += 1
            elif value_options[token] == "?" and argv[index + 1].startswith("-"):
                index += 1
            else:
                index += 2
            continue

        positionals += 1
        if positionals == 2:
            return argv[:index], argv[index:]
        index += 1

    return argv, []


def main(argv: Optional[List[str]] = None) -> int:
    print(banner.display_banner())

    parser = build_parser()
    argv = list(sys.argv[1:] if argv is None else argv)

    global_args, action_part = split_command_line(parser, argv)

    try:
        args = parser.parse_args(global_args)
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else 1

    args.action = action_part[0] if action_part else None
    args.action_args = action_part[1:]

    exit_code = _handle_help(args, parser)
    if exit_code is not None:
        return exit_code

    if not args.host:
        display_general_help(parser)
        return 1

    log_level = logbook.setup_logging(level=_log_level(args))

    try:
        server = Server.parse_server(server_input=args.host)
        linked_servers = LinkedServers(args.links) if args.links else None
    except ValueError as e:
        logger.error(f"Invalid target: {e}")
        return 1

    # Kerberos keeps the declared name for the SPN
    remote_name = server.hostname
    if args.target_ip:
        server.hostname = args.target_ip

    auth_service = AuthenticationService(
        server=server, credentials=_credentials(args), remote_name=remote_name
    )
    if not auth_service.connect():
        return 1

    try:
        database_context = DatabaseContext(server=server, mssql_instance=auth_service.connection)
        return _run(database_context, linked_servers, args, log_level)
    except ImpersonationFailedError as exc:
        logger.error(str(exc))
        return 1
    except Exception as exc:
        logger.error(f"Error in execution: {exc}")
        return 1
    finally:
        auth_service.disconnect()
